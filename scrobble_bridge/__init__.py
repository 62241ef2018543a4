import asyncio
import logging.config
import logging.handlers
import sys

from concurrent_tasks import LoopExceptionHandler

from scrobble_bridge.config import LOG_FORMAT, BridgeConfig, load_config
from scrobble_bridge.livelog import (
    LiveLog,
    LiveLogHandler,
    LogViewSettings,
    set_log_level,
)
from scrobble_bridge.orchestrator import ScrobbleOrchestrator

logger = logging.getLogger("scrobble_bridge")


def setup_logging(cfg: BridgeConfig, live_log: LiveLog) -> None:
    logging.config.dictConfig(cfg.logging)
    set_log_level(live_log.settings.level)
    root = logging.getLogger()
    handlers: list[logging.Handler] = [LiveLogHandler(live_log)]
    if cfg.log_dir:
        cfg.log_dir.mkdir(parents=True, exist_ok=True)
        handlers.append(
            logging.handlers.TimedRotatingFileHandler(
                cfg.log_dir / "scrobble.log", when="midnight", backupCount=7
            )
        )
    for handler in handlers:
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)


async def _run(cfg: BridgeConfig, live_log: LiveLog) -> None:
    stop_event = asyncio.Event()

    async def stop() -> None:
        logger.debug("stopping...")
        stop_event.set()

    logger.debug("starting...")
    async with LoopExceptionHandler(stop_func=stop):
        async with ScrobbleOrchestrator(cfg, live_log):
            logger.info("started")
            await stop_event.wait()
    logger.debug("stopped")


def run() -> None:
    cfg = load_config()
    if "--init-config" in sys.argv:
        cfg.save()
        sys.exit(0)

    live_log = LiveLog(LogViewSettings(level="debug") if "-v" in sys.argv else None)
    setup_logging(cfg, live_log)
    asyncio.run(_run(cfg, live_log))
