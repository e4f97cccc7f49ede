"""YouTube Data API v3 + Google OAuth client for the watch-history playlist.

Token dicts exchanged with the app client keep the `access_token` /
`refresh_token` / `expiry_date` (epoch ms) shape. They are turned into
google-auth Credentials, which refresh themselves when expired or on a 401;
`YouTubeClient.tokens` returns the current (possibly refreshed) pair so the
caller can store it again.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any

import httplib2
from google.auth.exceptions import GoogleAuthError
from google.oauth2.credentials import Credentials
from google_auth_httplib2 import AuthorizedHttp
from google_auth_oauthlib.flow import Flow
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from apps.backend.config import get_settings
from apps.backend.utils.api_errors import UpstreamError, ValidationError

logger = logging.getLogger(__name__)

AUTH_URI = "https://accounts.google.com/o/oauth2/v2/auth"
TOKEN_URI = "https://oauth2.googleapis.com/token"
SCOPES = [
    "https://www.googleapis.com/auth/youtube.readonly",
    "https://www.googleapis.com/auth/youtube",
]

WATCH_HISTORY_TITLE = "Personal Assistant Watch History"
WATCH_HISTORY_DESCRIPTION = "Videos tracked by Personal Assistant app for activity summaries"
PAGE_SIZE = 50


def build_flow(client_id: str, client_secret: str, redirect_uri: str) -> Flow:
    client_config = {
        "web": {
            "client_id": client_id,
            "client_secret": client_secret,
            "auth_uri": AUTH_URI,
            "token_uri": TOKEN_URI,
            "redirect_uris": [redirect_uri],
        }
    }
    # The code is exchanged in a later, separate request, so no PKCE verifier.
    return Flow.from_client_config(
        client_config,
        scopes=SCOPES,
        redirect_uri=redirect_uri,
        autogenerate_code_verifier=False,
    )


def build_auth_url(client_id: str, client_secret: str, redirect_uri: str) -> str:
    url, _state = build_flow(client_id, client_secret, redirect_uri).authorization_url(
        access_type="offline",
        prompt="consent",
    )
    return url


def credentials_from_tokens(tokens: dict, client_id: str, client_secret: str) -> Credentials:
    expiry = None
    expiry_ms = tokens.get("expiry_date")
    if isinstance(expiry_ms, (int, float)) and not isinstance(expiry_ms, bool):
        # google-auth compares against naive UTC
        expiry = datetime.fromtimestamp(expiry_ms / 1000, tz=timezone.utc).replace(tzinfo=None)
    scope = tokens.get("scope")
    return Credentials(
        token=tokens.get("access_token"),
        refresh_token=tokens.get("refresh_token"),
        token_uri=TOKEN_URI,
        client_id=client_id,
        client_secret=client_secret,
        scopes=scope.split() if isinstance(scope, str) and scope else SCOPES,
        expiry=expiry,
    )


def tokens_from_credentials(creds: Credentials) -> dict:
    out: dict[str, Any] = {
        "access_token": creds.token,
        "refresh_token": creds.refresh_token,
        "token_type": "Bearer",
        "scope": " ".join(creds.scopes or SCOPES),
    }
    if creds.expiry:
        out["expiry_date"] = int(creds.expiry.replace(tzinfo=timezone.utc).timestamp() * 1000)
    return out


async def exchange_code(
    code: str,
    client_id: str,
    client_secret: str,
    redirect_uri: str,
) -> dict:
    """Exchange an authorization code for a token dict."""
    flow = build_flow(client_id, client_secret, redirect_uri)
    try:
        await asyncio.to_thread(flow.fetch_token, code=code)
    except Exception as e:
        logger.warning("youtube_code_exchange_failed error=%s", str(e)[:200])
        raise UpstreamError("YouTube authorization failed", detail=str(e)[:200]) from e
    return tokens_from_credentials(flow.credentials)


class YouTubeClient:
    """
    Thin async wrapper over the discovery-built `youtube` v3 service.

    `http` replaces the underlying httplib2 transport (tests); credentials are
    always attached through AuthorizedHttp so refresh works the same either way.
    """

    def __init__(
        self,
        tokens: dict,
        *,
        client_id: str | None = None,
        client_secret: str | None = None,
        http: httplib2.Http | None = None,
    ) -> None:
        if not (tokens or {}).get("access_token"):
            raise ValidationError("YouTube tokens required")
        s = get_settings()
        self.credentials = credentials_from_tokens(
            tokens,
            client_id if client_id is not None else s.youtube_client_id,
            client_secret if client_secret is not None else s.youtube_client_secret,
        )
        if http is None:
            self._service = build("youtube", "v3", credentials=self.credentials, cache_discovery=False)
        else:
            self._service = build(
                "youtube", "v3", http=AuthorizedHttp(self.credentials, http=http), cache_discovery=False
            )

    @property
    def tokens(self) -> dict:
        return tokens_from_credentials(self.credentials)

    async def _execute(self, request, what: str) -> dict:
        try:
            data = await asyncio.to_thread(request.execute)
        except HttpError as e:
            status = getattr(e.resp, "status", None)
            logger.warning("youtube_request_failed call=%s status=%s", what, status)
            raise UpstreamError("YouTube request failed", detail=(e.reason or f"http_{status}")[:200]) from e
        except GoogleAuthError as e:
            logger.warning("youtube_auth_failed call=%s error=%s", what, str(e)[:200])
            raise UpstreamError("YouTube authorization failed", detail=str(e)[:200]) from e
        except (httplib2.HttpLib2Error, OSError) as e:
            logger.warning("youtube_network_error call=%s error=%s", what, str(e)[:200])
            raise UpstreamError("YouTube request failed", detail=str(e)[:200]) from e
        return data if isinstance(data, dict) else {}

    async def find_playlist(self, title: str) -> str | None:
        request = self._service.playlists().list(part="snippet", mine=True, maxResults=PAGE_SIZE)
        data = await self._execute(request, "playlists.list")
        for item in data.get("items") or []:
            if (item.get("snippet") or {}).get("title") == title and item.get("id"):
                return item["id"]
        return None

    async def create_playlist(self, title: str, description: str) -> str:
        request = self._service.playlists().insert(
            part="snippet,status",
            body={
                "snippet": {
                    "title": title,
                    "description": description,
                    "tags": ["personal-assistant", "watch-history"],
                },
                "status": {"privacyStatus": "private"},
            },
        )
        data = await self._execute(request, "playlists.insert")
        playlist_id = data.get("id")
        if not playlist_id:
            raise UpstreamError("YouTube request failed", detail="playlist_not_created")
        return playlist_id

    async def ensure_playlist(self, title: str = WATCH_HISTORY_TITLE) -> str:
        """Id of the playlist with exactly `title`, creating a private one if absent."""
        existing = await self.find_playlist(title)
        if existing:
            return existing
        logger.info("youtube_playlist_create title=%s", title)
        return await self.create_playlist(title, WATCH_HISTORY_DESCRIPTION)

    async def list_playlist_items(self, playlist_id: str) -> list[dict]:
        items: list[dict] = []
        page_token: str | None = None
        while True:
            request = self._service.playlistItems().list(
                part="snippet,contentDetails",
                playlistId=playlist_id,
                maxResults=PAGE_SIZE,
                pageToken=page_token,
            )
            data = await self._execute(request, "playlistItems.list")
            items.extend(data.get("items") or [])
            page_token = data.get("nextPageToken")
            if not page_token:
                return items

    async def add_video(self, playlist_id: str, video_id: str) -> dict:
        request = self._service.playlistItems().insert(
            part="snippet",
            body={
                "snippet": {
                    "playlistId": playlist_id,
                    "resourceId": {"kind": "youtube#video", "videoId": video_id},
                }
            },
        )
        return await self._execute(request, "playlistItems.insert")
