import asyncio
import logging
import os
from collections import deque
from collections.abc import Mapping
from dataclasses import asdict, dataclass
from itertools import islice
from typing import Any, Literal, Protocol

from pydantic import BaseModel, Field, field_validator

CAPACITY = 101
LIMITS = (10, 20, 50, 100)
LEVELS = ("info", "debug")
# Seconds between two unconditional pushes of the log view.
PUSH_INTERVAL = 10
# Loggers following the live log level, besides the root one.
PACKAGE = "scrobble_bridge"


def _default_level() -> str:
    level = os.environ.get("LOG_LEVEL", "info").lower()
    return level if level in LEVELS else "info"


class LogViewSettings(BaseModel):
    limit: int = 50
    sort: Literal["ascending", "descending"] = "descending"
    level: str = Field(default_factory=_default_level)

    @field_validator("limit")
    @classmethod
    def _check_limit(cls, value: int) -> int:
        if value not in LIMITS:
            raise ValueError(f"limit must be one of {LIMITS}")
        return value

    @field_validator("level")
    @classmethod
    def _check_level(cls, value: str) -> str:
        value = value.lower()
        if value not in LEVELS:
            raise ValueError(f"level must be one of {LEVELS}")
        return value


@dataclass(frozen=True)
class LogLine:
    # Rendering hint.
    level: str
    text: str


class Viewer(Protocol):
    async def send_json(self, data: Any) -> None: ...


def set_log_level(level: str) -> None:
    """Apply a level to the root logger and our own.

    Levels set on third party loggers in the configuration are left alone.
    """
    value = logging.getLevelName(level.upper())
    logging.getLogger().setLevel(value)
    for name, other in logging.Logger.manager.loggerDict.items():
        if (
            isinstance(other, logging.Logger)
            and other.level != logging.NOTSET
            and (name == PACKAGE or name.startswith(f"{PACKAGE}."))
        ):
            other.setLevel(value)


class LiveLog:
    """Most recent log lines, first one being the latest, and how to view them.

    One instance per process, viewers all share the same view.
    """

    def __init__(
        self,
        settings: LogViewSettings | None = None,
        capacity: int = CAPACITY,
    ):
        self._lines: deque[LogLine] = deque(maxlen=capacity)
        self.settings = settings or LogViewSettings()
        self._viewers: set[Viewer] = set()

    def __len__(self) -> int:
        return len(self._lines)

    def append(self, line: LogLine) -> None:
        self._lines.appendleft(line)

    def update(self, changes: Mapping[str, str]) -> None:
        """:raises pydantic.ValidationError: settings are left untouched."""
        settings = LogViewSettings.model_validate(
            {**self.settings.model_dump(), **changes}
        )
        if settings.level != self.settings.level:
            set_log_level(settings.level)
        self.settings = settings

    def view(self) -> list[LogLine]:
        lines = list(islice(self._lines, self.settings.limit + 1))
        if self.settings.sort == "ascending":
            lines.reverse()
        return lines

    def subscribe(self, viewer: Viewer) -> None:
        self._viewers.add(viewer)

    def unsubscribe(self, viewer: Viewer) -> None:
        self._viewers.discard(viewer)

    async def broadcast(self) -> None:
        message = {"event": "log", "data": [asdict(line) for line in self.view()]}
        for viewer in list(self._viewers):
            try:
                await viewer.send_json(message)
            except ConnectionError:
                self.unsubscribe(viewer)

    async def tick(self, interval: float = PUSH_INTERVAL) -> None:
        while True:
            await asyncio.sleep(interval)
            await self.broadcast()


class LiveLogHandler(logging.Handler):
    def __init__(self, live_log: LiveLog, level: int = logging.NOTSET):
        super().__init__(level)
        self._live_log = live_log

    def emit(self, record: logging.LogRecord) -> None:
        try:
            line = LogLine(record.levelname.lower(), self.format(record))
        except Exception:
            self.handleError(record)
            return
        self._live_log.append(line)
