import asyncio
from urllib.parse import urlencode

import httpx
from loguru import logger

from .config import Settings
from .errors import StravaAPIError, TokenRefreshError, ActivityFetchError

BASE = "https://www.strava.com/api/v3"
AUTHORIZE_URL = "https://www.strava.com/oauth/authorize"
TOKEN_URL = "https://www.strava.com/oauth/token"
DEAUTHORIZE_URL = "https://www.strava.com/oauth/deauthorize"
SCOPE = "activity:read_all"

RETRY_STATUSES = {429, 500, 502, 503, 504}

def map_scope(scope) -> str:
    if not scope:
        return SCOPE
    if isinstance(scope, (list, tuple)):
        return ",".join(scope)
    return str(scope)

class StravaClient:
    """
    Thin async wrapper over the Strava OAuth and activity endpoints.
    Every call carries an explicit timeout; network errors, 429 and 5xx are
    retried with exponential backoff before giving up.
    """

    def __init__(self, settings: Settings, http: httpx.AsyncClient | None = None, sleep=asyncio.sleep):
        self.settings = settings
        self._http = http or httpx.AsyncClient(timeout=settings.STRAVA_HTTP_TIMEOUT)
        self._sleep = sleep

    async def aclose(self):
        await self._http.aclose()

    async def _request(self, method: str, url: str, error_cls=StravaAPIError, **kwargs) -> httpx.Response:
        backoff = self.settings.STRAVA_BACKOFF_SECONDS
        attempts = self.settings.STRAVA_MAX_RETRIES + 1
        for attempt in range(1, attempts + 1):
            try:
                r = await self._http.request(method, url, timeout=self.settings.STRAVA_HTTP_TIMEOUT, **kwargs)
            except httpx.TransportError as e:
                if attempt == attempts:
                    raise error_cls(f"Strava request failed: {e}") from e
                logger.warning(f"[STRAVA_API] network error on {method} {url} attempt={attempt}: {e}; backoff {backoff:.1f}s")
            else:
                if r.status_code not in RETRY_STATUSES or attempt == attempts:
                    return r
                logger.warning(f"[STRAVA_API] {r.status_code} on {method} {url} attempt={attempt}; backoff {backoff:.1f}s")
            await self._sleep(backoff)
            backoff = min(backoff * 2, self.settings.STRAVA_BACKOFF_MAX_SECONDS)
        raise AssertionError("unreachable")

    def authorize_url(self, state: str) -> str:
        params = {
            "client_id": self.settings.STRAVA_CLIENT_ID,
            "response_type": "code",
            "redirect_uri": self.settings.STRAVA_REDIRECT_URI,
            "scope": SCOPE,
            "approval_prompt": "auto",
            "state": state,
        }
        return f"{AUTHORIZE_URL}?{urlencode(params)}"

    async def exchange_code(self, code: str) -> dict:
        r = await self._request("POST", TOKEN_URL, data={
            "client_id": self.settings.STRAVA_CLIENT_ID,
            "client_secret": self.settings.STRAVA_CLIENT_SECRET,
            "code": code,
            "grant_type": "authorization_code",
        })
        if not r.is_success:
            raise StravaAPIError(f"Failed to exchange Strava code: {r.text}", r.status_code, r.text)
        return r.json()

    async def refresh_token(self, refresh_token: str) -> dict:
        r = await self._request("POST", TOKEN_URL, error_cls=TokenRefreshError, data={
            "client_id": self.settings.STRAVA_CLIENT_ID,
            "client_secret": self.settings.STRAVA_CLIENT_SECRET,
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
        })
        if not r.is_success:
            raise TokenRefreshError(f"Failed to refresh Strava token: {r.text}", r.status_code, r.text)
        return r.json()

    async def list_activities(self, access_token: str, after_ts: int | None, page: int, per_page: int) -> list[dict]:
        params = {"page": page, "per_page": per_page}
        if after_ts:
            params["after"] = after_ts
        r = await self._request(
            "GET", f"{BASE}/athlete/activities",
            error_cls=ActivityFetchError,
            headers={"Authorization": f"Bearer {access_token}"},
            params=params,
        )
        if not r.is_success:
            raise ActivityFetchError(f"Failed to load Strava activities: {r.status_code} {r.text}", r.status_code, r.text)
        return r.json()

    async def deauthorize(self, access_token: str) -> None:
        r = await self._request("POST", DEAUTHORIZE_URL, data={"token": access_token})
        if not r.is_success:
            raise StravaAPIError(f"Failed to deauthorize Strava token: {r.text}", r.status_code, r.text)
