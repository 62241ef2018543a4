import asyncio
import logging
from collections.abc import Iterable

from concurrent_tasks import BackgroundTask

from scrobble_bridge.entities import PollingSource, Readiness, Source
from scrobble_bridge.registry import Clients

logger = logging.getLogger(__name__)

# Keeps log lines of one source together while it starts polling.
STAGGER = 1.5


class Poller:
    """Start polling sources, at startup or on demand.

    Polls run in the background; a source being polled twice at the same time
    is for the source to deal with.
    """

    def __init__(
        self,
        sources: Iterable[Source],
        clients: Clients,
        stagger: float = STAGGER,
    ):
        self._sources = sources
        self._clients = clients
        self._stagger = stagger
        self._polls: set[BackgroundTask] = set()
        # Sources waiting for someone to authenticate them on the dashboard.
        self.not_ready: list[PollingSource] = []

    async def run_startup_poll(self) -> bool:
        """:returns: whether every pollable source could start."""
        for source in self._sources:
            if not isinstance(source, PollingSource):
                continue
            await asyncio.sleep(self._stagger)
            match source.startup_readiness():
                case Readiness.READY:
                    self.poll_now(source)
                case Readiness.NEEDS_INTERACTION:
                    logger.info("[%s] needs authentication before polling", source.name)
                    self.not_ready.append(source)
                case Readiness.SKIP:
                    logger.debug("[%s] not initialized, not polling", source.name)
        return not self.not_ready

    def poll_now(self, source: PollingSource) -> None:
        if source in self.not_ready:
            self.not_ready.remove(source)
        task = BackgroundTask(source.poll, self._clients)
        self._polls.add(task)
        task.create().add_done_callback(lambda _: self._polls.discard(task))

    def close(self) -> None:
        for task in self._polls:
            task.cancel()
        self._polls.clear()
