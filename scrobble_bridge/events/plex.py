from datetime import UTC, datetime
from typing import Any

from scrobble_bridge.events.interface import PayloadError, PlayEvent, PlayMeta


def parse(payload: Any) -> PlayEvent | None:
    if not isinstance(payload, dict):
        raise PayloadError("payload is not an object")
    if payload.get("event") != "media.scrobble":
        return None
    metadata = payload.get("Metadata")
    if not isinstance(metadata, dict):
        raise PayloadError("missing Metadata")
    if metadata.get("type") != "track":
        return None
    # Track artist when it differs from the album artist.
    artist = metadata.get("originalTitle") or metadata.get("grandparentTitle")
    track = metadata.get("title")
    if not artist or not track:
        raise PayloadError("missing artist or track name")
    duration = metadata.get("duration")
    return PlayEvent(
        artists=(artist,),
        track=track,
        album=metadata.get("parentTitle") or None,
        duration=duration / 1000 if isinstance(duration, int | float) else None,
        played_at=datetime.now(UTC),
        meta=PlayMeta(
            user=(payload.get("Account") or {}).get("title"),
            server=(payload.get("Server") or {}).get("title"),
            library=metadata.get("librarySectionTitle"),
        ),
        source_type="plex",
    )
