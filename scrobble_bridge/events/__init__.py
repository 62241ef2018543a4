from collections.abc import Callable
from typing import Any

from scrobble_bridge.events import jellyfin, plex, tautulli
from scrobble_bridge.events.interface import (
    PayloadError,
    PlayEvent,
    PlayMeta,
    SourceType,
)

type Parser = Callable[[Any], PlayEvent | None]

PARSERS: dict[str, Parser] = {
    "tautulli": tautulli.parse,
    "plex": plex.parse,
    "jellyfin": jellyfin.parse,
}

__all__ = [
    "PARSERS",
    "Parser",
    "PayloadError",
    "PlayEvent",
    "PlayMeta",
    "SourceType",
]
