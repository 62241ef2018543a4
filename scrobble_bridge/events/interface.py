from dataclasses import dataclass
from datetime import datetime
from typing import Literal

type SourceType = Literal["spotify", "lastfm", "tautulli", "plex", "jellyfin"]


class PayloadError(ValueError):
    """Raised when a webhook payload cannot be turned into a play."""


@dataclass(kw_only=True, frozen=True)
class PlayMeta:
    web_url: str | None = None
    user: str | None = None
    server: str | None = None
    library: str | None = None


@dataclass(kw_only=True, frozen=True)
class PlayEvent:
    artists: tuple[str, ...]
    track: str
    album: str | None = None
    # Seconds.
    duration: float | None = None
    played_at: datetime
    meta: PlayMeta = PlayMeta()
    source_type: SourceType
    source_name: str = ""

    def display(self, with_time: bool = False) -> str:
        text = f"{' / '.join(self.artists)} - {self.track}"
        if with_time:
            return f"{self.played_at:%Y-%m-%d %H:%M:%S} {text}"
        return text
