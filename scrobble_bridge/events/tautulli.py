from datetime import UTC, datetime
from typing import Any

from scrobble_bridge.events.interface import PayloadError, PlayEvent, PlayMeta


def _duration(value: Any) -> float | None:
    if value in (None, ""):
        return None
    try:
        return float(value)
    except (TypeError, ValueError) as e:
        raise PayloadError(f"invalid duration {value!r}") from e


def parse(payload: Any) -> PlayEvent | None:
    """Notification body configured in Tautulli's webhook agent, ie:

    {"media_type": "{media_type}", "artist_name": "{artist_name}", ...}
    """
    if not isinstance(payload, dict):
        raise PayloadError("payload is not an object")
    if payload.get("media_type") != "track":
        return None
    artist = payload.get("track_artist") or payload.get("artist_name")
    track = payload.get("track_name") or payload.get("title")
    if not artist or not track:
        raise PayloadError("missing artist or track name")
    return PlayEvent(
        artists=(artist,),
        track=track,
        album=payload.get("album_name") or None,
        duration=_duration(payload.get("duration")),
        played_at=datetime.now(UTC),
        meta=PlayMeta(
            user=payload.get("username"),
            server=payload.get("server"),
            library=payload.get("library_name"),
        ),
        source_type="tautulli",
    )
