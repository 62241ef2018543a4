from dataclasses import replace
from datetime import timedelta

import pytest

from scrobble_bridge.entities import PollingSource
from scrobble_bridge.entities.maloja import MalojaClient
from scrobble_bridge.entities.webhook import PlexSource, TautulliSource
from scrobble_bridge.registry import Clients


@pytest.fixture
def clients(mocker):
    return mocker.AsyncMock(spec=Clients)


async def test_handle(build, clients, play):
    source = build(TautulliSource, name="t1", clients=["maloja"])
    await source.handle(play, clients)
    assert source.tracks_discovered == 1
    clients.scrobble.assert_awaited_once_with(replace(play, source_name="t1"), ["maloja"])


@pytest.mark.parametrize(
    ("data", "accepted"),
    [
        ({}, True),
        ({"users": ["ROGER"]}, True),
        ({"users": ["david"]}, False),
        ({"servers": ["home"], "libraries": ["music"]}, True),
        ({"servers": ["away"]}, False),
    ],
)
async def test_handle_filters(build, clients, play, data, accepted):
    source = build(PlexSource, **data)
    await source.handle(play, clients)
    assert source.tracks_discovered == int(accepted)
    assert clients.scrobble.await_count == int(accepted)


class _Polling(PollingSource):
    type = "fake"

    async def get_recently_played(self):
        return []


async def test_poll(mocker, build, clients, play):
    source = build(_Polling, interval=0)
    later = replace(play, played_at=source._last_played_at + timedelta(minutes=1))
    latest = replace(play, played_at=source._last_played_at + timedelta(minutes=2))
    old = replace(play, played_at=source._last_played_at - timedelta(minutes=1))
    mocker.patch.object(
        source,
        "get_recently_played",
        side_effect=[[latest, old, later], [latest], RuntimeError("stop")],
    )

    await source.poll(clients)

    assert source.polling is False
    assert source.tracks_discovered == 2
    assert [c.args[0].played_at for c in clients.scrobble.await_args_list] == [
        later.played_at,
        latest.played_at,
    ]


async def test_poll_already_polling(mocker, build, clients):
    source = build(_Polling)
    source.polling = True
    get = mocker.patch.object(source, "get_recently_played")
    await source.poll(clients)
    get.assert_not_called()
    assert source.polling is True


@pytest.fixture
def client(mocker, build):
    client = build(MalojaClient, url="http://maloja", api_key="key")
    client.initialized = True
    mocker.patch.object(client, "_scrobble")
    return client


async def test_scrobble(client, play):
    assert await client.scrobble(play)
    assert client.tracks_scrobbled == 1
    client._scrobble.assert_awaited_once_with(play)


async def test_scrobble_duplicate(client, play):
    assert await client.scrobble(play)
    assert not await client.scrobble(replace(play, played_at=play.played_at + timedelta(seconds=5)))
    assert await client.scrobble(replace(play, played_at=play.played_at + timedelta(minutes=5)))
    assert client.tracks_scrobbled == 2


async def test_scrobble_not_initialized(client, play):
    client.initialized = False
    assert not await client.scrobble(play)
    client._scrobble.assert_not_called()
