import pytest

from scrobble_bridge.events import PayloadError, PlayMeta
from scrobble_bridge.events.plex import parse


def _payload(**metadata):
    return {
        "event": "media.scrobble",
        "Account": {"title": "roger"},
        "Server": {"title": "home"},
        "Metadata": {
            "type": "track",
            "title": "Money",
            "parentTitle": "The Dark Side Of The Moon",
            "grandparentTitle": "Pink Floyd",
            "librarySectionTitle": "Music",
            "duration": 382000,
            **metadata,
        },
    }


def test_parse():
    event = parse(_payload())
    assert event.artists == ("Pink Floyd",)
    assert event.track == "Money"
    assert event.album == "The Dark Side Of The Moon"
    assert event.duration == 382
    assert event.meta == PlayMeta(user="roger", server="home", library="Music")
    assert event.source_type == "plex"


def test_parse_track_artist():
    assert parse(_payload(originalTitle="Roger Waters")).artists == ("Roger Waters",)


def test_parse_ignored():
    assert parse({**_payload(), "event": "media.play"}) is None
    assert parse(_payload(type="episode")) is None


def test_parse_malformed():
    with pytest.raises(PayloadError):
        parse({"event": "media.scrobble"})
    with pytest.raises(PayloadError):
        parse(_payload(title=None))
