from scrobble_bridge.entities.interface import Source, SourceData
from scrobble_bridge.events import PlayEvent


class WebhookData(SourceData):
    # Only accept plays matching these, case-insensitive, when set.
    users: list[str] = []
    servers: list[str] = []
    libraries: list[str] = []


def _matches(allowed: list[str], value: str | None) -> bool:
    if not allowed:
        return True
    return value is not None and value.lower() in {a.lower() for a in allowed}


class WebhookSource(Source):
    """Source fed by a media server pushing plays to us."""

    Data = WebhookData

    def accepts(self, event: PlayEvent) -> bool:
        return (
            _matches(self.config.users, event.meta.user)
            and _matches(self.config.servers, event.meta.server)
            and _matches(self.config.libraries, event.meta.library)
        )


class TautulliSource(WebhookSource):
    type = "tautulli"


class PlexSource(WebhookSource):
    type = "plex"


class JellyfinSource(WebhookSource):
    type = "jellyfin"
