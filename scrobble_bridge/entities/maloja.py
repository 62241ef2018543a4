import logging

from aiohttp import ClientError
from pydantic import BaseModel

from scrobble_bridge.entities.interface import Client, EntityConfig, EntityContext
from scrobble_bridge.events import PlayEvent

logger = logging.getLogger(__name__)


class MalojaData(BaseModel):
    url: str
    api_key: str


class MalojaClient(Client):
    """Self-hosted scrobble server, authenticated by api key."""

    type = "maloja"
    Data = MalojaData

    def __init__(self, config: EntityConfig, context: EntityContext):
        super().__init__(config, context)
        self._session = context.session
        self._url = self.config.url.rstrip("/")

    async def initialize(self) -> None:
        try:
            async with self._session.get(f"{self._url}/apis/mlj_1/serverinfo") as resp:
                resp.raise_for_status()
        except ClientError as e:
            logger.warning("[%s] server unreachable: %s", self.name, e)
            return
        self.initialized = True

    async def _scrobble(self, event: PlayEvent) -> None:
        body = {
            "artists": list(event.artists),
            "title": event.track,
            "time": int(event.played_at.timestamp()),
            "key": self.config.api_key,
        }
        if event.album:
            body["album"] = event.album
        if event.duration:
            body["duration"] = int(event.duration)
        async with self._session.post(
            f"{self._url}/apis/mlj_1/newscrobble", json=body
        ) as resp:
            resp.raise_for_status()
