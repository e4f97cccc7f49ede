"""Activity sync, YouTube playlist tracking, daily summaries."""
from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Callable

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.orm import Session

from apps.backend.clients import youtube as youtube_client
from apps.backend.config import get_settings
from apps.backend.deps import get_db, get_current_user
from apps.backend.models.activity import Activity, SOURCE_GITHUB
from apps.backend.models.ai_summary import AISummary
from apps.backend.models.user import User
from apps.backend.services.activity_sources import ensure_source, list_sources
from apps.backend.services.activity_sync import ActivitySyncOrchestrator
from apps.backend.services.token_crypto import mask_token
from apps.backend.services.daily_summary import DailySummaryPipeline
from apps.backend.utils.api_errors import ValidationError
from apps.backend.utils.timeparse import to_local_naive

logger = logging.getLogger(__name__)

router = APIRouter()


class SyncBody(BaseModel):
    youtubeTokens: dict | None = None


class GitHubConnectBody(BaseModel):
    token: str | None = None
    username: str | None = None


class YouTubeCodeBody(BaseModel):
    code: str | None = None


class YouTubeTrackBody(BaseModel):
    videoId: str | None = None
    tokens: dict | None = None


class SummaryBody(BaseModel):
    date: str | None = None


class PrioritiesBody(BaseModel):
    upcomingTasks: list = Field(default_factory=list)
    days: int = Field(7, ge=1, le=30)


def get_sync_orchestrator(db: Session = Depends(get_db)) -> ActivitySyncOrchestrator:
    return ActivitySyncOrchestrator(db)


def get_summary_pipeline(db: Session = Depends(get_db)) -> DailySummaryPipeline:
    return DailySummaryPipeline(db)


def get_youtube_factory() -> Callable[[dict], youtube_client.YouTubeClient]:
    return youtube_client.YouTubeClient


def _parse_day(raw: str | None) -> date:
    if not raw:
        return date.today()
    raw = raw.strip()
    if len(raw) == 10:
        try:
            return date.fromisoformat(raw)
        except ValueError:
            raise ValidationError("Invalid date")
    parsed = to_local_naive(raw)
    if not parsed:
        raise ValidationError("Invalid date")
    return parsed.date()


def _parse_bound(raw: str, name: str) -> datetime:
    parsed = to_local_naive(raw)
    if not parsed:
        raise ValidationError(f"Invalid {name}")
    return parsed


@router.post("/sync")
async def sync_activities(
    body: SyncBody | None = None,
    user: User = Depends(get_current_user),
    orchestrator: ActivitySyncOrchestrator = Depends(get_sync_orchestrator),
):
    tokens = body.youtubeTokens if body else None
    result = await orchestrator.sync(user, youtube_tokens=tokens)
    return result.as_dict()


@router.post("/github/connect")
def connect_github(
    body: GitHubConnectBody,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    token = (body.token or "").strip()
    username = (body.username or "").strip()
    if not token or not username:
        raise ValidationError("GitHub token and username required")
    source = ensure_source(db, user.id, SOURCE_GITHUB, credentials={"token": token, "username": username})
    db.commit()
    logger.info("github_connected user_id=%s username=%s token=%s", user.id, username, mask_token(token))
    return {"success": True, "sourceId": source.id}


@router.get("/sources")
def get_sources(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return [s.as_dict() for s in list_sources(db, user.id)]


@router.get("/youtube/auth")
def youtube_auth(user: User = Depends(get_current_user)):
    s = get_settings()
    return {
        "authUrl": youtube_client.build_auth_url(
            s.youtube_client_id, s.youtube_client_secret, s.youtube_redirect_uri
        )
    }


@router.post("/youtube/token")
async def youtube_token(body: YouTubeCodeBody, user: User = Depends(get_current_user)):
    if not body.code:
        raise ValidationError("Authorization code required")
    s = get_settings()
    tokens = await youtube_client.exchange_code(
        body.code,
        s.youtube_client_id,
        s.youtube_client_secret,
        s.youtube_redirect_uri,
    )
    return {"tokens": tokens}


@router.post("/youtube/track")
async def youtube_track(
    body: YouTubeTrackBody,
    user: User = Depends(get_current_user),
    youtube_factory=Depends(get_youtube_factory),
):
    if not body.videoId or not body.tokens:
        raise ValidationError("Video ID and tokens required")
    client = youtube_factory(body.tokens)
    playlist_id = await client.ensure_playlist(youtube_client.WATCH_HISTORY_TITLE)
    await client.add_video(playlist_id, body.videoId)
    logger.info("youtube_video_tracked user_id=%s playlist_id=%s", user.id, playlist_id)
    # hand back the current pair; it changes when an expired access token was refreshed
    tokens = getattr(client, "tokens", None) or body.tokens
    return {"success": True, "playlistId": playlist_id, "tokens": tokens}


@router.post("/summary")
async def generate_summary(
    body: SummaryBody | None = None,
    user: User = Depends(get_current_user),
    pipeline: DailySummaryPipeline = Depends(get_summary_pipeline),
):
    day = _parse_day(body.date if body else None)
    summary = await pipeline.generate_summary(user, day)
    if summary is None:
        return {"message": "No activities found for this date", "summary": None}
    return summary


@router.post("/priorities")
async def generate_priorities(
    body: PrioritiesBody | None = None,
    user: User = Depends(get_current_user),
    pipeline: DailySummaryPipeline = Depends(get_summary_pipeline),
):
    body = body or PrioritiesBody()
    return await pipeline.generate_user_priorities(user, body.upcomingTasks, days=body.days)

@router.get("")
def get_activities(
    startDate: str | None = Query(None),
    endDate: str | None = Query(None),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    stmt = select(Activity).where(Activity.user_id == user.id)
    if startDate and endDate:
        stmt = stmt.where(
            Activity.timestamp >= _parse_bound(startDate, "startDate"),
            Activity.timestamp <= _parse_bound(endDate, "endDate"),
        )
    rows = db.execute(stmt.order_by(Activity.timestamp.desc())).scalars()
    return [a.as_dict() for a in rows]


@router.get("/summaries")
def get_summaries(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    rows = db.execute(
        select(AISummary).where(AISummary.user_id == user.id).order_by(AISummary.date.asc(), AISummary.created_at.asc())
    ).scalars()
    return [s.as_dict() for s in rows]
