from typing import Any

from scrobble_bridge.entities import Client, Entity, Source


def project(entity: Entity) -> str:
    """Human status of an entity, first matching rule wins."""
    if not entity.initialized:
        return "Not Initialized"
    if entity.requires_auth and not entity.authed:
        if entity.requires_auth_interaction:
            return "Auth Interaction Required"
        return "Authentication Failed Or Not Attempted"
    if isinstance(entity, Source) and entity.can_poll:
        return "Running" if entity.polling else "Idle"
    return "Received Data" if _count(entity) > 0 else "Awaiting Data"


def _count(entity: Entity) -> int:
    if isinstance(entity, Source):
        return entity.tracks_discovered
    if isinstance(entity, Client):
        return entity.tracks_scrobbled
    return 0


def describe(entity: Entity) -> dict[str, Any]:
    row = {
        "type": entity.type,
        "display": entity.type.capitalize(),
        "name": entity.name,
        "status": project(entity),
        "tracks": _count(entity),
        "has_auth": entity.requires_auth,
        "has_auth_interaction": entity.requires_auth_interaction,
    }
    if isinstance(entity, Source):
        row["can_poll"] = entity.can_poll
    return row
