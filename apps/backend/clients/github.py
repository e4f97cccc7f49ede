"""GitHub REST client (events only). Tokens are never logged."""
from __future__ import annotations

import logging

import httpx

from apps.backend.utils.api_errors import UpstreamError

logger = logging.getLogger(__name__)

API_BASE = "https://api.github.com"
EVENTS_PER_PAGE = 100


class GitHubClient:
    def __init__(
        self,
        token: str,
        *,
        base_url: str = API_BASE,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 30,
    ) -> None:
        self._token = token
        self._base_url = base_url.rstrip("/")
        self._transport = transport
        self._timeout = timeout

    def _headers(self) -> dict[str, str]:
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    async def fetch_events(self, username: str) -> list[dict]:
        """Recent public and private events for `username`, newest first."""
        url = f"{self._base_url}/users/{username}/events"
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as c:
            r = await c.get(url, headers=self._headers(), params={"per_page": EVENTS_PER_PAGE})
        if r.status_code >= 400:
            try:
                message = (r.json() or {}).get("message") or f"http_{r.status_code}"
            except ValueError:
                message = f"http_{r.status_code}"
            logger.warning("github_events_failed status=%s username=%s", r.status_code, username)
            raise UpstreamError("GitHub request failed", detail=str(message)[:200])
        payload = r.json()
        if not isinstance(payload, list):
            raise UpstreamError("GitHub request failed", detail="invalid_response")
        return payload
