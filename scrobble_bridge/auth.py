import logging
from collections.abc import Mapping

from scrobble_bridge.entities import AuthCodeFlow, Entity, PollingSource, TokenAuth
from scrobble_bridge.poller import Poller
from scrobble_bridge.registry import Clients, Sources

logger = logging.getLogger(__name__)

# Callback paths containing this belong to the Last.fm token flow.
LASTFM_MARKER = "lastfm"


class AuthCorrelator:
    """Bring provider authorization responses back to the entity that asked for them.

    The state token of both flows is the entity name. Last.fm callbacks can
    target a client or a source, clients win when both share the name.
    """

    def __init__(self, sources: Sources, clients: Clients, poller: Poller):
        self._sources = sources
        self._clients = clients
        self._poller = poller

    def get_auth_url(self, entity: Entity) -> str | None:
        match entity:
            case TokenAuth():
                return entity.api.get_auth_url()
            case AuthCodeFlow():
                return entity.create_auth_url()
        return None

    async def handle_callback(self, path: str, query: Mapping[str, str]) -> str:
        if LASTFM_MARKER in path:
            return await self._token_callback(query)
        return await self._auth_code_callback(query)

    async def _token_callback(self, query: Mapping[str, str]) -> str:
        state = query.get("state", "")
        entity = self._clients.get_by_name(state) or self._sources.get_by_name(state)
        if entity is None:
            logger.warning("Last.fm callback for unknown entity %r", state)
            return f"No client or source named {state!r}"
        if not isinstance(entity, TokenAuth):
            return f"{entity.name} does not authenticate with a token"
        logger.info("[%s] received Last.fm auth callback", entity.name)
        try:
            await entity.api.authenticate(query.get("token", ""))
            await entity.initialize()
        except Exception as e:
            logger.warning("[%s] Last.fm authentication failed: %s", entity.name, e)
            return str(e)
        return "OK"

    async def _auth_code_callback(self, query: Mapping[str, str]) -> str:
        state = query.get("state", "")
        source = self._sources.get_by_name(state)
        if source is None:
            logger.warning("auth code callback for unknown source %r", state)
            return f"No source named {state!r}"
        if not isinstance(source, AuthCodeFlow):
            return f"{source.name} does not use an authorization code flow"
        logger.info("[%s] received auth code callback", source.name)
        result = await source.handle_auth_code_callback(query)
        if result is not True:
            return result
        if isinstance(source, PollingSource):
            self._poller.poll_now(source)
        return "OK"
