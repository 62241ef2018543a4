import json
import logging
from collections.abc import Awaitable, Callable
from dataclasses import asdict
from typing import Any

from aiohttp import ClientError, WSMsgType, web
from pydantic import ValidationError

from scrobble_bridge.auth import AuthCorrelator
from scrobble_bridge.dispatcher import Dispatcher
from scrobble_bridge.entities import Entity, PollingSource
from scrobble_bridge.entities.lastfm import LastfmError
from scrobble_bridge.entities.spotify import SpotifyError
from scrobble_bridge.livelog import LiveLog
from scrobble_bridge.poller import Poller
from scrobble_bridge.registry import Clients, Registry, Sources
from scrobble_bridge.status import describe

logger = logging.getLogger(__name__)

OK = "OK"


def _resolve[E: Entity](request: web.Request, registry: Registry[E]) -> E:
    if not (name := request.query.get("name")):
        raise web.HTTPBadRequest(text=f"Must specify a {registry.kind} name")
    if (entity := registry.get_by_name(name)) is None:
        raise web.HTTPBadRequest(
            text=f"No {registry.kind} with the name {name!r} exists"
        )
    return entity


def _pollable(request: web.Request, sources: Sources, action: str) -> PollingSource:
    source = _resolve(request, sources)
    if not isinstance(source, PollingSource):
        raise web.HTTPBadRequest(
            text=f"Specified source cannot {action} ({source.type})"
        )
    return source


class WebApp:
    """HTTP surface: webhooks, dashboard, authentication and log push channel.

    Webhook endpoints always answer OK, whatever happens to the payload.
    """

    def __init__(
        self,
        *,
        sources: Sources,
        clients: Clients,
        dispatcher: Dispatcher,
        poller: Poller,
        auth: AuthCorrelator,
        live_log: LiveLog,
    ):
        self._sources = sources
        self._clients = clients
        self._dispatcher = dispatcher
        self._poller = poller
        self._auth = auth
        self._live_log = live_log

    def build(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/", self.dashboard)
        app.router.add_post("/tautulli", self.tautulli)
        app.router.add_post("/plex", self.plex)
        app.router.add_post("/jellyfin", self.jellyfin)
        app.router.add_get("/client/auth", self.client_auth)
        app.router.add_get("/source/auth", self.source_auth)
        app.router.add_get("/poll", self.poll)
        app.router.add_get("/recent", self.recent)
        app.router.add_get("/logs/settings/update", self.update_log_settings)
        app.router.add_get("/logs/stream", self.log_stream)
        app.router.add_get("/{path:.*callback}", self.callback)
        return app

    def _log_view(self) -> list[dict[str, str]]:
        return [asdict(line) for line in self._live_log.view()]

    async def dashboard(self, request: web.Request) -> web.Response:
        return web.json_response(
            {
                "sources": [describe(s) for s in self._sources],
                "clients": [describe(c) for c in self._clients],
                "not_ready": [s.name for s in self._poller.not_ready],
                "logs": {
                    "output": self._log_view(),
                    "settings": self._live_log.settings.model_dump(),
                },
            }
        )

    async def _acknowledge(
        self,
        source_type: str,
        read: Callable[[], Awaitable[tuple[Any, str | None] | None]],
    ) -> web.Response:
        try:
            if (received := await read()) is not None:
                payload, name = received
                await self._dispatcher.handle_webhook(source_type, payload, name)
        except Exception:
            logger.exception("failed to process %s webhook", source_type)
        return web.Response(text=OK)

    async def tautulli(self, request: web.Request) -> web.Response:
        async def read():
            payload = await request.json()
            name = payload.get("scrobblerConfig") if isinstance(payload, dict) else None
            return payload, name

        return await self._acknowledge("tautulli", read)

    async def plex(self, request: web.Request) -> web.Response:
        async def read():
            form = await request.post()
            if (raw := form.get("payload")) is None:
                return None
            return json.loads(raw), None

        return await self._acknowledge("plex", read)

    async def jellyfin(self, request: web.Request) -> web.Response:
        # The webhook plugin sends json as text.
        async def read():
            return json.loads(await request.text()), None

        return await self._acknowledge("jellyfin", read)

    def _redirect(self, entity: Entity, kind: str) -> web.Response:
        if (url := self._auth.get_auth_url(entity)) is None:
            raise web.HTTPBadRequest(
                text=f"Specified {kind} does not have auth implemented ({entity.type})"
            )
        raise web.HTTPFound(url)

    async def client_auth(self, request: web.Request) -> web.Response:
        return self._redirect(_resolve(request, self._clients), "client")

    async def source_auth(self, request: web.Request) -> web.Response:
        return self._redirect(_resolve(request, self._sources), "source")

    async def poll(self, request: web.Request) -> web.Response:
        self._poller.poll_now(_pollable(request, self._sources, "poll"))
        return web.Response(text=OK)

    async def recent(self, request: web.Request) -> web.Response:
        source = _pollable(request, self._sources, "retrieve recent plays")
        try:
            recent = await source.get_recently_played()
        except (ClientError, LastfmError, SpotifyError) as e:
            logger.warning("[%s] could not retrieve recent plays: %s", source.name, e)
            raise web.HTTPServiceUnavailable(text=str(e)) from e
        plays = sorted(
            recent,
            key=lambda p: p.played_at,
            reverse=True,
        )
        return web.json_response(
            {
                "name": source.name,
                "type": source.type,
                "plays": [
                    {"play": p.display(with_time=True), "url": p.meta.web_url}
                    for p in plays
                ],
            }
        )

    async def update_log_settings(self, request: web.Request) -> web.Response:
        try:
            self._live_log.update(request.query)
        except ValidationError as e:
            raise web.HTTPBadRequest(text=str(e)) from e
        await self._live_log.broadcast()
        return web.Response(text=OK)

    async def log_stream(self, request: web.Request) -> web.WebSocketResponse:
        ws = web.WebSocketResponse()
        await ws.prepare(request)
        self._live_log.subscribe(ws)
        try:
            await ws.send_json({"event": "log", "data": self._log_view()})
            async for msg in ws:
                if msg.type == WSMsgType.ERROR:
                    logger.debug("log viewer error: %r", ws.exception())
        finally:
            self._live_log.unsubscribe(ws)
        return ws

    async def callback(self, request: web.Request) -> web.Response:
        return web.Response(
            text=await self._auth.handle_callback(request.path, request.query)
        )
