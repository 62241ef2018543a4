import asyncio
import enum
import logging
from abc import ABC, abstractmethod
from collections import deque
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, replace
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import TYPE_CHECKING, Any, ClassVar, Literal

from aiohttp import ClientSession
from pydantic import BaseModel, Field

from scrobble_bridge.events import PlayEvent

if TYPE_CHECKING:
    from scrobble_bridge.registry import Clients

logger = logging.getLogger(__name__)

# Two plays of the same track closer than this are the same play.
DUPLICATE_WINDOW = timedelta(seconds=10)


class EntityConfig(BaseModel):
    type: str
    name: str = "unnamed"
    data: dict[str, Any] = Field(default_factory=dict)
    # Where the block came from, for logging.
    provenance: str = "config.json"


@dataclass(frozen=True)
class EntityContext:
    """What an entity needs from the process hosting it."""

    base_url: str
    config_dir: Path
    session: ClientSession | None = None


class Entity(ABC):
    type: ClassVar[str]
    requires_auth: ClassVar[bool] = False
    requires_auth_interaction: ClassVar[bool] = False
    Data: ClassVar[type[BaseModel]] = BaseModel

    def __init__(self, config: EntityConfig, context: EntityContext):
        self.name = config.name
        self.provenance = config.provenance
        # :raises pydantic.ValidationError: on invalid configuration data.
        self.config = self.Data.model_validate(config.data)
        self.initialized = False
        self.authed = False

    async def initialize(self) -> None:
        self.initialized = True

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r})"


class SourceData(BaseModel):
    # Names of clients to relay plays to, all clients when empty.
    clients: list[str] = []


class Source(Entity):
    can_poll: ClassVar[bool] = False
    Data = SourceData

    def __init__(self, config: EntityConfig, context: EntityContext):
        super().__init__(config, context)
        self.polling = False
        self.tracks_discovered = 0

    @property
    def client_names(self) -> Sequence[str]:
        return self.config.clients

    def accepts(self, event: PlayEvent) -> bool:
        return True

    async def handle(self, event: PlayEvent, clients: "Clients") -> None:
        if not self.accepts(event):
            logger.debug("[%s] filtered out %s", self.name, event.display())
            return
        event = replace(event, source_name=self.name)
        self.tracks_discovered += 1
        logger.info("[%s] discovered %s", self.name, event.display())
        await clients.scrobble(event, self.client_names)


class Readiness(enum.Enum):
    READY = enum.auto()
    # Needs someone to go through the dashboard first.
    NEEDS_INTERACTION = enum.auto()
    SKIP = enum.auto()


class PollingData(SourceData):
    # Seconds between two polls.
    interval: float = 60


class PollingSource(Source):
    can_poll = True
    Data = PollingData

    def __init__(self, config: EntityConfig, context: EntityContext):
        super().__init__(config, context)
        # Only plays after startup are new.
        self._last_played_at = datetime.now(UTC)

    def startup_readiness(self) -> Readiness:
        return Readiness.READY

    @abstractmethod
    async def get_recently_played(self) -> list[PlayEvent]:
        """Most recent plays, in any order."""

    async def poll(self, clients: "Clients") -> None:
        if self.polling:
            logger.warning("[%s] already polling", self.name)
            return
        self.polling = True
        logger.info("[%s] polling started", self.name)
        try:
            while True:
                for play in self._new_plays(await self.get_recently_played()):
                    await self.handle(play, clients)
                await asyncio.sleep(self.config.interval)
        except Exception:
            logger.exception("[%s] polling stopped on error", self.name)
        finally:
            self.polling = False

    def _new_plays(self, plays: Sequence[PlayEvent]) -> list[PlayEvent]:
        new = sorted(
            (p for p in plays if p.played_at > self._last_played_at),
            key=lambda p: p.played_at,
        )
        if new:
            self._last_played_at = new[-1].played_at
        return new


class AuthCodeFlow(ABC):
    """Send the user to the provider, then exchange the code it calls back with."""

    @abstractmethod
    def create_auth_url(self) -> str: ...

    @abstractmethod
    async def handle_auth_code_callback(
        self, query: Mapping[str, str]
    ) -> Literal[True] | str:
        """:returns: True once authenticated, otherwise a message for the user."""


class TokenApi(ABC):
    @abstractmethod
    def get_auth_url(self) -> str: ...

    @abstractmethod
    async def authenticate(self, token: str) -> None: ...


class TokenAuth(ABC):
    """Token flow: the provider calls back with a token the api turns into a session."""

    api: TokenApi


class Client(Entity):
    def __init__(self, config: EntityConfig, context: EntityContext):
        super().__init__(config, context)
        self.tracks_scrobbled = 0
        self._recent: deque[PlayEvent] = deque(maxlen=50)

    async def scrobble(self, event: PlayEvent) -> bool:
        if not self.initialized or (self.requires_auth and not self.authed):
            logger.warning(
                "[%s] not ready, cannot scrobble %s", self.name, event.display()
            )
            return False
        if self._already_scrobbled(event):
            logger.debug("[%s] already scrobbled %s", self.name, event.display())
            return False
        await self._scrobble(event)
        self.tracks_scrobbled += 1
        self._recent.appendleft(event)
        logger.info("[%s] scrobbled %s", self.name, event.display())
        return True

    def _already_scrobbled(self, event: PlayEvent) -> bool:
        return any(
            e.artists == event.artists
            and e.track == event.track
            and abs(e.played_at - event.played_at) < DUPLICATE_WINDOW
            for e in self._recent
        )

    @abstractmethod
    async def _scrobble(self, event: PlayEvent) -> None: ...
