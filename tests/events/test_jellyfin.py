import pytest

from scrobble_bridge.events import PayloadError
from scrobble_bridge.events.jellyfin import parse

PAYLOAD = {
    "NotificationType": "PlaybackStart",
    "ItemType": "Audio",
    "Name": "Money",
    "Album": "The Dark Side Of The Moon",
    "Artist": "Pink Floyd",
    "RunTimeTicks": 3820000000,
    "NotificationUsername": "roger",
    "ServerName": "home",
}


def test_parse():
    event = parse(PAYLOAD)
    assert event.artists == ("Pink Floyd",)
    assert event.track == "Money"
    assert event.duration == 382
    assert event.meta.user == "roger"
    assert event.meta.server == "home"
    assert event.source_type == "jellyfin"


def test_parse_ignored():
    assert parse({**PAYLOAD, "NotificationType": "PlaybackStop"}) is None
    assert parse({**PAYLOAD, "ItemType": "Movie"}) is None


def test_parse_malformed():
    with pytest.raises(PayloadError):
        parse([])
    with pytest.raises(PayloadError):
        parse({**PAYLOAD, "Artist": ""})
