from datetime import UTC, datetime
from typing import Any

from scrobble_bridge.events.interface import PayloadError, PlayEvent, PlayMeta

_TICKS_PER_SECOND = 10_000_000


def parse(payload: Any) -> PlayEvent | None:
    """Body sent by the Jellyfin webhook plugin, fields as named in its templates."""
    if not isinstance(payload, dict):
        raise PayloadError("payload is not an object")
    if (
        payload.get("NotificationType") != "PlaybackStart"
        or payload.get("ItemType") != "Audio"
    ):
        return None
    artist = payload.get("Artist")
    track = payload.get("Name")
    if not artist or not track:
        raise PayloadError("missing artist or track name")
    ticks = payload.get("RunTimeTicks")
    return PlayEvent(
        artists=(artist,),
        track=track,
        album=payload.get("Album") or None,
        duration=ticks / _TICKS_PER_SECOND if isinstance(ticks, int) else None,
        played_at=datetime.now(UTC),
        meta=PlayMeta(
            user=payload.get("NotificationUsername"),
            server=payload.get("ServerName"),
        ),
        source_type="jellyfin",
    )
