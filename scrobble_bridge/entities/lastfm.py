import hashlib
import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import Any
from urllib.parse import urlencode

from aiohttp import ClientError, ClientSession
from pydantic import BaseModel

from scrobble_bridge.entities.interface import (
    Client,
    EntityConfig,
    EntityContext,
    PollingData,
    PollingSource,
    Readiness,
    TokenApi,
    TokenAuth,
)
from scrobble_bridge.events import PlayEvent, PlayMeta

logger = logging.getLogger(__name__)

API_URL = "https://ws.audioscrobbler.com/2.0/"
AUTH_URL = "https://www.last.fm/api/auth/"


class LastfmError(Exception): ...


class LastfmCredentials(BaseModel):
    api_key: str
    secret: str
    # Defaults to the bridge's own callback.
    redirect_uri: str | None = None


class LastfmSession(BaseModel):
    key: str = ""
    username: str = ""


class LastfmApi(TokenApi):
    """Minimal Last.fm web service client.

    Authentication follows the web flow: the user is sent to `get_auth_url`,
    Last.fm redirects back with a token that `authenticate` exchanges for a session key.
    """

    def __init__(
        self,
        session: ClientSession,
        *,
        state: str,
        credentials: LastfmCredentials,
        redirect_uri: str,
        session_path: Path,
    ):
        self._http = session
        self._state = state
        self._api_key = credentials.api_key
        self._secret = credentials.secret
        self.redirect_uri = redirect_uri
        self._session_path = session_path
        self.session = LastfmSession()

    def load_session(self) -> None:
        if self._session_path.exists():
            self.session = LastfmSession.model_validate_json(
                self._session_path.read_text()
            )

    def _save_session(self) -> None:
        self._session_path.parent.mkdir(parents=True, exist_ok=True)
        self._session_path.write_text(self.session.model_dump_json())

    def get_auth_url(self) -> str:
        callback = f"{self.redirect_uri}?{urlencode({'state': self._state})}"
        return f"{AUTH_URL}?{urlencode({'api_key': self._api_key, 'cb': callback})}"

    def _sign(self, params: dict[str, str]) -> str:
        payload = "".join(f"{k}{v}" for k, v in sorted(params.items()))
        return hashlib.md5(f"{payload}{self._secret}".encode()).hexdigest()

    async def _call(
        self,
        method: str,
        params: dict[str, str] | None = None,
        *,
        signed: bool = False,
        post: bool = False,
    ) -> dict[str, Any]:
        query = {"method": method, "api_key": self._api_key, **(params or {})}
        if signed:
            query["api_sig"] = self._sign(query)
        query["format"] = "json"
        try:
            async with self._http.request(
                "POST" if post else "GET",
                API_URL,
                **({"data": query} if post else {"params": query}),
            ) as resp:
                body = await resp.json(content_type=None)
        except (ClientError, ValueError) as e:
            raise LastfmError(f"could not reach Last.fm: {e}") from e
        if "error" in body:
            raise LastfmError(f"Last.fm error {body['error']}: {body.get('message')}")
        return body

    async def authenticate(self, token: str) -> None:
        body = await self._call("auth.getSession", {"token": token}, signed=True)
        self.session = LastfmSession(
            key=body["session"]["key"],
            username=body["session"]["name"],
        )
        self._save_session()

    async def test_auth(self) -> bool:
        if not self.session.key:
            return False
        await self._call("user.getInfo", {"sk": self.session.key}, signed=True)
        return True

    async def scrobble(self, event: PlayEvent) -> None:
        params = {
            "artist": ", ".join(event.artists),
            "track": event.track,
            "timestamp": str(int(event.played_at.timestamp())),
            "sk": self.session.key,
        }
        if event.album:
            params["album"] = event.album
        if event.duration:
            params["duration"] = str(int(event.duration))
        await self._call("track.scrobble", params, signed=True, post=True)

    async def recent_tracks(self, limit: int = 20) -> list[dict[str, Any]]:
        body = await self._call(
            "user.getRecentTracks",
            {"user": self.session.username, "limit": str(limit)},
        )
        return body.get("recenttracks", {}).get("track", [])


class LastfmEntity(TokenAuth):
    """Shared by the source and the client: both authenticate the same way."""

    requires_auth = True
    requires_auth_interaction = True

    name: str
    initialized: bool
    authed: bool
    api: LastfmApi

    def _build_api(
        self, credentials: LastfmCredentials, context: EntityContext, kind: str
    ) -> LastfmApi:
        return LastfmApi(
            context.session,
            state=self.name,
            credentials=credentials,
            redirect_uri=credentials.redirect_uri
            or f"{context.base_url}/lastfm/callback",
            session_path=context.config_dir / f"lastfm-{kind}-{self.name}.session.json",
        )

    async def initialize(self) -> None:
        self.api.load_session()
        try:
            self.authed = await self.api.test_auth()
        except LastfmError as e:
            logger.warning("[%s] stored session rejected: %s", self.name, e)
            self.authed = False
        # Without a session, authentication goes through the dashboard.
        self.initialized = True
        if self.authed:
            logger.info(
                "[%s] authenticated as %s", self.name, self.api.session.username
            )


class LastfmSourceData(PollingData, LastfmCredentials): ...


def _to_play(track: dict[str, Any]) -> PlayEvent | None:
    # Currently playing, not scrobbled yet.
    if "date" not in track:
        return None
    return PlayEvent(
        artists=(track["artist"]["#text"],),
        track=track["name"],
        album=track.get("album", {}).get("#text") or None,
        played_at=datetime.fromtimestamp(int(track["date"]["uts"]), UTC),
        meta=PlayMeta(web_url=track.get("url")),
        source_type="lastfm",
    )


class LastfmSource(LastfmEntity, PollingSource):
    type = "lastfm"
    Data = LastfmSourceData

    def __init__(self, config: EntityConfig, context: EntityContext):
        super().__init__(config, context)
        self.api = self._build_api(self.config, context, "source")

    def startup_readiness(self) -> Readiness:
        return Readiness.READY if self.authed else Readiness.SKIP

    async def get_recently_played(self) -> list[PlayEvent]:
        plays = (_to_play(t) for t in await self.api.recent_tracks())
        return [p for p in plays if p is not None]


class LastfmClient(LastfmEntity, Client):
    type = "lastfm"
    Data = LastfmCredentials

    def __init__(self, config: EntityConfig, context: EntityContext):
        super().__init__(config, context)
        self.api = self._build_api(self.config, context, "client")

    async def _scrobble(self, event: PlayEvent) -> None:
        await self.api.scrobble(event)
