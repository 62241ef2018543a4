import logging
from contextlib import AsyncExitStack

from aiohttp import ClientSession, web
from concurrent_tasks import BackgroundTask

from scrobble_bridge.auth import AuthCorrelator
from scrobble_bridge.config import BridgeConfig
from scrobble_bridge.dispatcher import Dispatcher
from scrobble_bridge.entities import EntityContext
from scrobble_bridge.livelog import LiveLog
from scrobble_bridge.poller import Poller
from scrobble_bridge.registry import Clients, Sources, warn_name_collisions
from scrobble_bridge.server import WebApp

logger = logging.getLogger(__name__)


class ScrobbleOrchestrator(AsyncExitStack):
    """Build sources and clients, serve HTTP, and start polling.

    Everything is wired before the listener opens, so the server never answers
    with half its routes. Startup polling then runs in the background.
    An unexpected startup error is logged and leaves the process running.
    """

    def __init__(self, config: BridgeConfig, live_log: LiveLog):
        super().__init__()
        self._config = config
        self._live_log = live_log
        self.sources = Sources()
        self.clients = Clients()
        self.poller = Poller(self.sources, self.clients)
        self.auth = AuthCorrelator(self.sources, self.clients, self.poller)
        self.dispatcher = Dispatcher(self.sources, self.clients)
        self._log_push = BackgroundTask(live_log.tick)
        self._startup_poll = BackgroundTask(self._poll_at_startup)

    async def __aenter__(self):
        try:
            await self._start()
        except Exception:
            logger.exception("startup failed with an uncaught error")
        return self

    async def _start(self) -> None:
        session = await self.enter_async_context(ClientSession())
        context = EntityContext(
            base_url=self._config.http.url,
            config_dir=self._config.config_dir,
            session=session,
        )

        self.clients.build_from_config(self._config.clients, context)
        if not self.clients:
            logger.warning("no scrobble clients were configured")
        self.sources.build_from_config(
            self._config.sources,
            context,
            legacy=self._config.legacy_sources(),
        )
        warn_name_collisions(self.sources, self.clients)
        await self.clients.initialize()
        await self.sources.initialize()

        app = WebApp(
            sources=self.sources,
            clients=self.clients,
            dispatcher=self.dispatcher,
            poller=self.poller,
            auth=self.auth,
            live_log=self._live_log,
        ).build()
        runner = web.AppRunner(app)
        await runner.setup()
        self.push_async_callback(runner.cleanup)
        site = web.TCPSite(runner, self._config.http.host, self._config.http.port)
        await site.start()
        logger.info("server started at %s", self._config.http.url)

        self.callback(self.poller.close)
        self._log_push.create()
        self.callback(self._log_push.cancel)
        self._startup_poll.create()
        self.callback(self._startup_poll.cancel)

    async def _poll_at_startup(self) -> None:
        try:
            if not await self.poller.run_startup_poll():
                logger.info(
                    "some sources are not ready, open %s to continue",
                    self._config.http.url,
                )
        except Exception:
            logger.exception("startup polling failed")
