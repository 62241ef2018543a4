import logging
from collections.abc import Mapping
from datetime import datetime
from pathlib import Path
from typing import Any, Literal
from urllib.parse import urlencode

from aiohttp import BasicAuth, ClientError, ClientSession
from pydantic import BaseModel

from scrobble_bridge.entities.interface import (
    AuthCodeFlow,
    EntityConfig,
    EntityContext,
    PollingData,
    PollingSource,
    Readiness,
)
from scrobble_bridge.events import PlayEvent, PlayMeta

logger = logging.getLogger(__name__)

AUTHORIZE_URL = "https://accounts.spotify.com/authorize"
TOKEN_URL = "https://accounts.spotify.com/api/token"
RECENTLY_PLAYED_URL = "https://api.spotify.com/v1/me/player/recently-played"
SCOPES = ("user-read-recently-played", "user-read-currently-playing")


class SpotifyError(Exception): ...


class SpotifyData(PollingData):
    client_id: str
    client_secret: str
    # Defaults to the bridge's own callback.
    redirect_uri: str | None = None


class SpotifyTokens(BaseModel):
    access_token: str = ""
    refresh_token: str = ""


class SpotifyApi:
    def __init__(
        self,
        session: ClientSession,
        *,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        tokens_path: Path,
    ):
        self._session = session
        self._client_id = client_id
        self._client_secret = client_secret
        self.redirect_uri = redirect_uri
        self._tokens_path = tokens_path
        self.tokens = SpotifyTokens()

    @property
    def access_token(self) -> str:
        return self.tokens.access_token

    def load_tokens(self) -> None:
        if self._tokens_path.exists():
            self.tokens = SpotifyTokens.model_validate_json(
                self._tokens_path.read_text()
            )

    def _save_tokens(self) -> None:
        self._tokens_path.parent.mkdir(parents=True, exist_ok=True)
        self._tokens_path.write_text(self.tokens.model_dump_json())

    def auth_url(self, state: str) -> str:
        query = {
            "client_id": self._client_id,
            "response_type": "code",
            "redirect_uri": self.redirect_uri,
            "scope": " ".join(SCOPES),
            "state": state,
        }
        return f"{AUTHORIZE_URL}?{urlencode(query)}"

    async def _request_tokens(self, data: dict[str, str]) -> None:
        try:
            async with self._session.post(
                TOKEN_URL,
                data=data,
                auth=BasicAuth(self._client_id, self._client_secret),
            ) as resp:
                body = await resp.json(content_type=None)
        except (ClientError, ValueError) as e:
            raise SpotifyError(f"could not reach Spotify: {e}") from e
        if "error" in body:
            raise SpotifyError(
                f"Spotify refused the token request: {body.get('error_description') or body['error']}"
            )
        self.tokens = SpotifyTokens(
            access_token=body["access_token"],
            # Not always rotated on refresh.
            refresh_token=body.get("refresh_token") or self.tokens.refresh_token,
        )
        self._save_tokens()

    async def exchange_code(self, code: str) -> None:
        await self._request_tokens(
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": self.redirect_uri,
            }
        )

    async def refresh(self) -> None:
        if not self.tokens.refresh_token:
            raise SpotifyError("no refresh token")
        await self._request_tokens(
            {
                "grant_type": "refresh_token",
                "refresh_token": self.tokens.refresh_token,
            }
        )

    async def recently_played(self, limit: int = 20) -> list[dict[str, Any]]:
        for attempt in range(2):
            async with self._session.get(
                RECENTLY_PLAYED_URL,
                params={"limit": str(limit)},
                headers={"Authorization": f"Bearer {self.access_token}"},
            ) as resp:
                if resp.status == 401 and attempt == 0:
                    logger.debug("access token expired, refreshing")
                    await self.refresh()
                    continue
                resp.raise_for_status()
                body = await resp.json()
                return body.get("items", [])
        raise SpotifyError("unauthorized after refreshing the access token")


def _to_play(item: dict[str, Any], name: str) -> PlayEvent:
    track = item["track"]
    return PlayEvent(
        artists=tuple(a["name"] for a in track.get("artists", [])),
        track=track["name"],
        album=(track.get("album") or {}).get("name"),
        duration=track["duration_ms"] / 1000 if "duration_ms" in track else None,
        played_at=datetime.fromisoformat(item["played_at"]),
        meta=PlayMeta(web_url=(track.get("external_urls") or {}).get("spotify")),
        source_type="spotify",
        source_name=name,
    )


class SpotifySource(PollingSource, AuthCodeFlow):
    type = "spotify"
    requires_auth = True
    requires_auth_interaction = True
    Data = SpotifyData

    def __init__(self, config: EntityConfig, context: EntityContext):
        super().__init__(config, context)
        self.api = SpotifyApi(
            context.session,
            client_id=self.config.client_id,
            client_secret=self.config.client_secret,
            redirect_uri=self.config.redirect_uri or f"{context.base_url}/callback",
            tokens_path=context.config_dir / f"spotify-{self.name}.tokens.json",
        )

    async def initialize(self) -> None:
        self.api.load_tokens()
        if self.api.tokens.refresh_token:
            try:
                await self.api.refresh()
                self.authed = True
            except SpotifyError as e:
                logger.warning("[%s] stored credentials rejected: %s", self.name, e)
        self.initialized = True

    def startup_readiness(self) -> Readiness:
        if not self.api.access_token:
            return Readiness.NEEDS_INTERACTION
        return Readiness.READY

    def create_auth_url(self) -> str:
        logger.info("[%s] redirecting to Spotify authorization url", self.name)
        return self.api.auth_url(state=self.name)

    async def handle_auth_code_callback(
        self, query: Mapping[str, str]
    ) -> Literal[True] | str:
        if error := query.get("error"):
            return f"Spotify authorization failed: {error}"
        if not (code := query.get("code")):
            return "No authorization code received from Spotify"
        try:
            await self.api.exchange_code(code)
        except SpotifyError as e:
            logger.warning("[%s] %s", self.name, e)
            return str(e)
        self.authed = True
        logger.info("[%s] authenticated with Spotify", self.name)
        return True

    async def get_recently_played(self) -> list[PlayEvent]:
        return [_to_play(item, self.name) for item in await self.api.recently_played()]
