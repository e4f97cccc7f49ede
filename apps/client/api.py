"""HTTP client for the Personal Assistant API.

Every call returns an ApiResponse; ordinary failures (network errors, non-2xx
statuses) come back as `error`, never as exceptions. A successful response
whose body is not JSON raises ApiProtocolError.

A 401 on an authenticated call triggers exactly one token rotation with the
stored refresh token and one retry. If rotation fails the original 401 is
returned as is.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any

import httpx

from apps.client.config import ClientSettings
from apps.client.token_store import MemoryTokenStore, TokenStore

logger = logging.getLogger(__name__)


class ApiProtocolError(Exception):
    """The server answered 2xx with a body that is not JSON."""


@dataclass
class ApiResponse:
    data: Any = None
    error: str | None = None
    status_code: int | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _iso(value: date | datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


class ApiClient:
    def __init__(
        self,
        base_url: str | None = None,
        token_store: TokenStore | None = None,
        *,
        transport: httpx.BaseTransport | None = None,
        timeout: float | None = None,
    ) -> None:
        settings = ClientSettings()
        self.base_url = (base_url or settings.api_url).rstrip("/")
        timeout = timeout if timeout is not None else settings.request_timeout
        self.tokens = token_store or MemoryTokenStore()
        self._http = httpx.Client(base_url=self.base_url, timeout=timeout, transport=transport)

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> "ApiClient":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def _send(
        self,
        method: str,
        endpoint: str,
        token: str | None,
        json_body: Any = None,
        params: dict | None = None,
    ) -> httpx.Response:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return self._http.request(method, endpoint, json=json_body, params=params, headers=headers)

    def _refresh_tokens(self) -> bool:
        refresh_token = self.tokens.get_refresh_token()
        if not refresh_token:
            return False
        try:
            r = self._http.post("/auth/refresh", json={"refreshToken": refresh_token})
        except httpx.HTTPError as e:
            logger.warning("token_refresh_network_error error=%s", str(e)[:200])
            return False
        if not r.is_success:
            return False
        try:
            data = r.json()
        except ValueError:
            return False
        access, refresh = (data or {}).get("accessToken"), (data or {}).get("refreshToken")
        if not access or not refresh:
            return False
        self.tokens.set_tokens(access, refresh)
        return True

    def _to_response(self, r: httpx.Response) -> ApiResponse:
        try:
            data = r.json() if r.content else None
        except ValueError as e:
            if r.is_success:
                raise ApiProtocolError(f"Malformed JSON body from {r.request.url.path}") from e
            data = None
        if not r.is_success:
            message = data.get("error") if isinstance(data, dict) else None
            return ApiResponse(error=message or "Request failed", status_code=r.status_code)
        return ApiResponse(data=data, status_code=r.status_code)

    def request(
        self,
        method: str,
        endpoint: str,
        *,
        json_body: Any = None,
        params: dict | None = None,
        authenticated: bool = True,
    ) -> ApiResponse:
        token = self.tokens.get_access_token() if authenticated else None
        try:
            r = self._send(method, endpoint, token, json_body, params)
            if r.status_code == 401 and token and self._refresh_tokens():
                r = self._send(method, endpoint, self.tokens.get_access_token(), json_body, params)
        except httpx.HTTPError as e:
            logger.warning("api_network_error method=%s endpoint=%s error=%s", method, endpoint, str(e)[:200])
            return ApiResponse(error="Network error")
        return self._to_response(r)

    # Auth

    def _store_auth(self, response: ApiResponse) -> ApiResponse:
        if response.ok and isinstance(response.data, dict):
            access = response.data.get("accessToken")
            refresh = response.data.get("refreshToken")
            if access and refresh:
                self.tokens.set_tokens(access, refresh)
        return response

    def register(self, email: str, password: str, name: str) -> ApiResponse:
        return self._store_auth(self.request(
            "POST",
            "/auth/register",
            json_body={"email": email, "password": password, "name": name},
            authenticated=False,
        ))

    def login(self, email: str, password: str) -> ApiResponse:
        return self._store_auth(self.request(
            "POST",
            "/auth/login",
            json_body={"email": email, "password": password},
            authenticated=False,
        ))

    def logout(self) -> None:
        self.tokens.clear_tokens()

    # Activities

    def _store_youtube_tokens(self, response: ApiResponse, key: str) -> ApiResponse:
        if response.ok and isinstance(response.data, dict) and response.data.get(key):
            self.tokens.set_youtube_tokens(response.data[key])
        return response

    def sync_activities(self) -> ApiResponse:
        response = self.request(
            "POST",
            "/activities/sync",
            json_body={"youtubeTokens": self.tokens.get_youtube_tokens()},
        )
        return self._store_youtube_tokens(response, "youtubeTokens")

    def get_activities(self, start: datetime | None = None, end: datetime | None = None) -> ApiResponse:
        params = {}
        if start:
            params["startDate"] = _iso(start)
        if end:
            params["endDate"] = _iso(end)
        return self.request("GET", "/activities", params=params or None)

    def generate_summary(self, day: date | datetime | None = None) -> ApiResponse:
        return self.request("POST", "/activities/summary", json_body={"date": _iso(day)})

    def get_summaries(self) -> ApiResponse:
        return self.request("GET", "/activities/summaries")

    def generate_priorities(self, upcoming_tasks: list | None = None, days: int = 7) -> ApiResponse:
        return self.request(
            "POST",
            "/activities/priorities",
            json_body={"upcomingTasks": upcoming_tasks or [], "days": days},
        )

    def connect_github(self, token: str, username: str) -> ApiResponse:
        return self.request(
            "POST",
            "/activities/github/connect",
            json_body={"token": token, "username": username},
        )

    # YouTube

    def get_youtube_auth_url(self) -> ApiResponse:
        return self.request("GET", "/activities/youtube/auth")

    def exchange_youtube_code(self, code: str) -> ApiResponse:
        response = self.request("POST", "/activities/youtube/token", json_body={"code": code})
        return self._store_youtube_tokens(response, "tokens")

    def track_youtube_video(self, video_id: str) -> ApiResponse:
        tokens = self.tokens.get_youtube_tokens()
        if not tokens:
            return ApiResponse(error="YouTube not connected")
        response = self.request(
            "POST",
            "/activities/youtube/track",
            json_body={"videoId": video_id, "tokens": tokens},
        )
        return self._store_youtube_tokens(response, "tokens")
