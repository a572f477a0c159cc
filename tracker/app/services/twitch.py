"""
Live-status probe against the Twitch Helix API.

Uses an app access token (client-credentials OAuth) cached until 60 s
before it expires, and caches the status itself for TWITCH_STATUS_TTL_S.
"""

import logging
from typing import Any, Dict, Optional

import httpx

from tracker.app.core.config import Settings
from tracker.app.services.cache import TTLCache

logger = logging.getLogger("tracker.twitch")

TOKEN_URL = "https://id.twitch.tv/oauth2/token"
STREAMS_URL = "https://api.twitch.tv/helix/streams"
TOKEN_EXPIRY_MARGIN_S = 60
REQUEST_TIMEOUT_S = 10

_TOKEN_KEY = "twitch:token"
_STATUS_KEY = "twitch:status"


class TwitchStatusService:
    def __init__(
        self,
        client_id: str,
        client_secret: str,
        user_login: str,
        status_ttl_s: int = 60,
        cache: Optional[TTLCache] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.user_login = user_login
        self.status_ttl_s = status_ttl_s
        self.cache = cache or TTLCache()
        self._transport = transport

    @classmethod
    def from_settings(cls, config: Settings) -> "TwitchStatusService":
        return cls(
            client_id=config.twitch_client_id,
            client_secret=config.twitch_client_secret,
            user_login=config.twitch_user_login,
            status_ttl_s=config.twitch_status_ttl_s,
        )

    @property
    def has_credentials(self) -> bool:
        return bool(self.client_id and self.client_secret)

    def reset(self) -> None:
        self.cache.clear()

    async def _get_token(self, client: httpx.AsyncClient) -> str:
        token = self.cache.get(_TOKEN_KEY)
        if token:
            return token
        response = await client.post(
            TOKEN_URL,
            params={
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "grant_type": "client_credentials",
            },
        )
        response.raise_for_status()
        payload = response.json()
        token = payload["access_token"]
        ttl = max(int(payload.get("expires_in", 0)) - TOKEN_EXPIRY_MARGIN_S, 0)
        self.cache.set(_TOKEN_KEY, token, ttl)
        return token

    async def get_status(self) -> Dict[str, Any]:
        if not self.has_credentials:
            return {"live": False, "reason": "NO_CREDENTIALS"}

        cached = self.cache.get(_STATUS_KEY)
        if cached is not None:
            return cached

        try:
            async with httpx.AsyncClient(timeout=REQUEST_TIMEOUT_S, transport=self._transport) as client:
                token = await self._get_token(client)
                response = await client.get(
                    STREAMS_URL,
                    params={"user_login": self.user_login},
                    headers={"Client-ID": self.client_id, "Authorization": f"Bearer {token}"},
                )
                response.raise_for_status()
                streams = response.json().get("data") or []
        except (httpx.HTTPError, KeyError, ValueError) as exc:
            logger.warning("Twitch status probe failed: %s", exc)
            return {"live": False, "error": str(exc)}

        if streams:
            stream = streams[0]
            data = {
                "live": True,
                "viewers": stream.get("viewer_count"),
                "title": stream.get("title"),
                "started_at": stream.get("started_at"),
            }
        else:
            data = {"live": False}
        self.cache.set(_STATUS_KEY, data, self.status_ttl_s)
        return data
