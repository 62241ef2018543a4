import logging

import pytest

from scrobble_bridge.entities import EntityConfig
from scrobble_bridge.entities.lastfm import LastfmClient, LastfmSource
from scrobble_bridge.entities.webhook import PlexSource, TautulliSource
from scrobble_bridge.registry import Clients, Sources, warn_name_collisions


def _cfg(type_, name, **data):
    return EntityConfig(type=type_, name=name, data=data)


@pytest.fixture
def sources(context):
    sources = Sources()
    sources.build_from_config(
        [_cfg("tautulli", "t1"), _cfg("plex", "p1"), _cfg("tautulli", "t2")],
        context,
        legacy=[
            EntityConfig(
                type="plex",
                name="unnamed",
                provenance="config.json (top level)",
            )
        ],
    )
    return sources


def test_build(sources):
    assert [(s.type, s.name) for s in sources] == [
        ("plex", "unnamed"),
        ("tautulli", "t1"),
        ("plex", "p1"),
        ("tautulli", "t2"),
    ]
    assert sources.get_by_name("unnamed").provenance == "config.json (top level)"


def test_get_by_type(sources):
    assert [s.name for s in sources.get_by_type("tautulli")] == ["t1", "t2"]
    assert sources.get_by_type("jellyfin") == []


def test_get_by_name(sources):
    assert isinstance(sources.get_by_name("p1"), PlexSource)
    assert sources.get_by_name("nope") is None


def test_build_skips_bad_blocks(context, caplog):
    sources = Sources()
    with caplog.at_level(logging.WARNING):
        sources.build_from_config(
            [
                _cfg("spotify", "broken"),
                _cfg("winamp", "w"),
                _cfg("tautulli", "t1"),
                _cfg("tautulli", "t1"),
                _cfg("plex", "t1", users="not a list"),
            ],
            context,
        )
    assert [s.name for s in sources] == ["t1"]
    assert isinstance(sources.get_by_name("t1"), TautulliSource)
    assert len([r for r in caplog.records if r.levelno == logging.WARNING]) == 4


async def test_initialize_continues_on_error(mocker, sources):
    first, *others = list(sources)
    mocker.patch.object(first, "initialize", side_effect=RuntimeError("boom"))
    await sources.initialize()
    assert not first.initialized
    assert all(s.initialized for s in others)


@pytest.fixture
def clients(mocker, context):
    clients = Clients()
    clients.build_from_config(
        [
            _cfg("maloja", "m1", url="http://m1", api_key="k"),
            _cfg("maloja", "m2", url="http://m2", api_key="k"),
        ],
        context,
    )
    for client in clients:
        mocker.patch.object(client, "scrobble")
    return clients


async def test_scrobble_all(clients, play):
    await clients.scrobble(play)
    for client in clients:
        client.scrobble.assert_awaited_once_with(play)


async def test_scrobble_named(clients, play):
    await clients.scrobble(play, ["m2"])
    clients.get_by_name("m1").scrobble.assert_not_called()
    clients.get_by_name("m2").scrobble.assert_awaited_once_with(play)


async def test_scrobble_continues_on_error(clients, play):
    clients.get_by_name("m1").scrobble.side_effect = RuntimeError("down")
    await clients.scrobble(play)
    clients.get_by_name("m2").scrobble.assert_awaited_once_with(play)


def test_name_collisions(context, caplog):
    sources = Sources()
    sources.build_from_config([_cfg("lastfm", "home", api_key="k", secret="s")], context)
    clients = Clients()
    clients.build_from_config([_cfg("lastfm", "home", api_key="k", secret="s")], context)
    assert isinstance(sources.get_by_name("home"), LastfmSource)
    assert isinstance(clients.get_by_name("home"), LastfmClient)
    with caplog.at_level(logging.WARNING):
        warn_name_collisions(sources, clients)
    assert "share names [home]" in caplog.text
