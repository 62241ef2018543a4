from scrobble_bridge.entities.interface import (
    AuthCodeFlow,
    Client,
    Entity,
    EntityConfig,
    EntityContext,
    PollingSource,
    Readiness,
    Source,
    TokenAuth,
)
from scrobble_bridge.entities.lastfm import LastfmClient, LastfmSource
from scrobble_bridge.entities.maloja import MalojaClient
from scrobble_bridge.entities.spotify import SpotifySource
from scrobble_bridge.entities.webhook import JellyfinSource, PlexSource, TautulliSource

SOURCE_TYPES: dict[str, type[Source]] = {
    t.type: t
    for t in (SpotifySource, LastfmSource, TautulliSource, PlexSource, JellyfinSource)
}
CLIENT_TYPES: dict[str, type[Client]] = {
    t.type: t for t in (LastfmClient, MalojaClient)
}

__all__ = [
    "CLIENT_TYPES",
    "SOURCE_TYPES",
    "AuthCodeFlow",
    "Client",
    "Entity",
    "EntityConfig",
    "EntityContext",
    "PollingSource",
    "Readiness",
    "Source",
    "TokenAuth",
]
