import pytest

from scrobble_bridge.entities.maloja import MalojaClient
from scrobble_bridge.entities.spotify import SpotifySource
from scrobble_bridge.entities.webhook import JellyfinSource
from scrobble_bridge.status import describe, project


@pytest.fixture
def spotify(build):
    return build(SpotifySource, client_id="id", client_secret="secret")


@pytest.fixture
def jellyfin(build):
    return build(JellyfinSource)


@pytest.fixture
def maloja(build):
    return build(MalojaClient, url="http://maloja", api_key="key")


def test_not_initialized_wins(spotify):
    assert spotify.requires_auth and not spotify.authed
    assert project(spotify) == "Not Initialized"


def test_auth(spotify, mocker):
    spotify.initialized = True
    assert project(spotify) == "Auth Interaction Required"
    mocker.patch.object(SpotifySource, "requires_auth_interaction", False)
    assert project(spotify) == "Authentication Failed Or Not Attempted"


def test_polling(spotify):
    spotify.initialized = spotify.authed = True
    assert project(spotify) == "Idle"
    spotify.polling = True
    assert project(spotify) == "Running"


def test_counts(jellyfin, maloja):
    jellyfin.initialized = maloja.initialized = True
    assert project(jellyfin) == "Awaiting Data"
    assert project(maloja) == "Awaiting Data"
    jellyfin.tracks_discovered = 1
    maloja.tracks_scrobbled = 3
    assert project(jellyfin) == "Received Data"
    assert project(maloja) == "Received Data"


def test_describe(spotify, maloja):
    assert describe(spotify) == {
        "type": "spotify",
        "display": "Spotify",
        "name": "test",
        "status": "Not Initialized",
        "tracks": 0,
        "has_auth": True,
        "has_auth_interaction": True,
        "can_poll": True,
    }
    assert "can_poll" not in describe(maloja)
