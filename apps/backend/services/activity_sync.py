"""Activity sync: concurrent fan-out to GitHub, YouTube and local projects.

Each branch fetches, maps and persists its own batch. A failing branch is
logged and counted as zero; the other branches still complete and the caller
always receives a (possibly partial) result.

The session is shared by the branches but only touched between awaits, so
two branches never use it at the same time.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable, Iterable, Protocol

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from apps.backend.config import get_settings
from apps.backend.clients.github import GitHubClient
from apps.backend.clients.youtube import YouTubeClient, WATCH_HISTORY_TITLE
from apps.backend.models.activity import Activity, SOURCE_GITHUB, SOURCE_YOUTUBE, SOURCE_LOCAL
from apps.backend.models.user import User, new_id
from apps.backend.services.activity_sources import ensure_source, get_source_credentials, mark_synced
from apps.backend.services.github_activity import map_event
from apps.backend.services.local_projects import LocalProject, ProjectScanner
from apps.backend.services.youtube_activity import map_playlist_item

logger = logging.getLogger(__name__)


class EventSource(Protocol):
    async def fetch_events(self, username: str) -> list[dict]: ...


class PlaylistSource(Protocol):
    async def ensure_playlist(self, title: str = WATCH_HISTORY_TITLE) -> str: ...

    async def list_playlist_items(self, playlist_id: str) -> list[dict]: ...


class ProjectSource(Protocol):
    def scan(self) -> list[LocalProject]: ...


@dataclass
class SyncResult:
    github: int = 0
    youtube: int = 0
    local: int = 0
    youtube_tokens: dict | None = field(default=None, compare=False)

    def as_dict(self) -> dict:
        out = {
            "github": self.github,
            "youtube": self.youtube,
            "local": self.local,
            "message": "Activities synced successfully",
        }
        if self.youtube_tokens:
            out["youtubeTokens"] = self.youtube_tokens
        return out


def default_scanner() -> ProjectScanner:
    s = get_settings()
    return ProjectScanner(s.local_scan_root_list, allowed_extensions=s.allowed_extension_list)


def insert_activities(db: Session, rows: list[dict], *, ignore_conflicts: bool = False) -> None:
    """Batch insert. With `ignore_conflicts`, rows hitting the external-id unique key are dropped."""
    if not rows:
        return
    dialect = db.get_bind().dialect.name
    if not ignore_conflicts or dialect not in ("postgresql", "sqlite"):
        db.add_all([Activity(**row) for row in rows])
        db.flush()
        return
    now = datetime.now()
    values = [
        {
            "id": new_id(),
            "user_id": row["user_id"],
            "source_id": row.get("source_id"),
            "type": row["type"],
            "title": row["title"],
            "description": row.get("description"),
            "metadata": row.get("metadata_json") or {},
            "timestamp": row["timestamp"],
            "created_at": now,
            "external_id": row.get("external_id"),
        }
        for row in rows
    ]
    dialect_insert = postgresql.insert if dialect == "postgresql" else sqlite.insert
    db.execute(dialect_insert(Activity.__table__).values(values).on_conflict_do_nothing())


class ActivitySyncOrchestrator:
    def __init__(
        self,
        db: Session,
        *,
        github_factory: Callable[[str], EventSource] = GitHubClient,
        youtube_factory: Callable[[dict], PlaylistSource] = YouTubeClient,
        scanner: ProjectSource | None = None,
    ) -> None:
        self.db = db
        self.github_factory = github_factory
        self.youtube_factory = youtube_factory
        self.scanner = scanner or default_scanner()
        self._youtube_tokens: dict | None = None

    async def sync(self, user: User, youtube_tokens: dict | None = None) -> SyncResult:
        self._youtube_tokens = None
        github, youtube, local = await asyncio.gather(
            self._guarded("github", user, self.sync_github(user)),
            self._guarded("youtube", user, self.sync_youtube(user, youtube_tokens)),
            self._guarded("local", user, self.sync_local(user)),
        )
        result = SyncResult(github=github, youtube=youtube, local=local, youtube_tokens=self._youtube_tokens)
        logger.info(
            "sync_done user_id=%s github=%s youtube=%s local=%s",
            user.id, result.github, result.youtube, result.local,
        )
        return result

    async def _guarded(self, name: str, user: User, branch: Awaitable[int]) -> int:
        try:
            return await branch
        except Exception:
            logger.exception("sync_branch_failed source=%s user_id=%s", name, user.id)
            self.db.rollback()
            return 0

    async def sync_github(self, user: User) -> int:
        creds = get_source_credentials(self.db, user.id, SOURCE_GITHUB) or {}
        token, username = creds.get("token"), creds.get("username")
        if not token or not username:
            return 0
        events = await self.github_factory(token).fetch_events(username)
        source = ensure_source(self.db, user.id, SOURCE_GITHUB)
        rows = [map_event(e, user.id, source.id) for e in events]
        return self._persist(source, rows)

    async def sync_youtube(self, user: User, tokens: dict | None) -> int:
        if not tokens or not tokens.get("access_token"):
            return 0
        client = self.youtube_factory(tokens)
        playlist_id = await client.ensure_playlist(WATCH_HISTORY_TITLE)
        items = await client.list_playlist_items(playlist_id)
        # the client may have refreshed an expired access token
        current = getattr(client, "tokens", None) or tokens
        self._youtube_tokens = current
        source = ensure_source(self.db, user.id, SOURCE_YOUTUBE, credentials=current)
        rows = [map_playlist_item(item, user.id, source.id) for item in items]
        return self._persist(source, rows, ignore_conflicts=True)

    async def sync_local(self, user: User) -> int:
        projects = await asyncio.to_thread(self.scanner.scan)
        source = ensure_source(self.db, user.id, SOURCE_LOCAL)
        rows = [p.to_activity(user.id, source.id) for p in projects]
        return self._persist(source, rows)

    def _persist(self, source, rows: Iterable[dict], *, ignore_conflicts: bool = False) -> int:
        rows = list(rows)
        insert_activities(self.db, rows, ignore_conflicts=ignore_conflicts)
        mark_synced(source)
        self.db.commit()
        return len(rows)
