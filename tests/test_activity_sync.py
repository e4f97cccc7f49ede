"""Sync orchestrator: concurrent branches with isolated failures."""
import asyncio
import json

import pytest

from apps.backend.models.activity import Activity, ActivitySource
from apps.backend.models.user import User
from apps.backend.services.activity_sources import ensure_source, get_source_credentials
from apps.backend.services.activity_sync import ActivitySyncOrchestrator, SyncResult
from apps.backend.services.github_activity import event_title, event_description, map_event
from apps.backend.services.local_projects import ProjectScanner
from apps.backend.utils.api_errors import UpstreamError

PUSH_EVENT = {
    "id": "1001",
    "type": "PushEvent",
    "repo": {"name": "alice/tools"},
    "payload": {"commits": [{"message": "fix parser"}, {"message": "add tests"}]},
    "created_at": "2025-01-15T10:00:00Z",
}
PR_EVENT = {
    "id": "1002",
    "type": "PullRequestEvent",
    "repo": {"name": "alice/tools"},
    "payload": {"action": "opened", "pull_request": {"number": 7, "title": "Speed up sync"}},
    "created_at": "2025-01-15T11:00:00Z",
}


def _item(item_id, video_id, title="Video"):
    return {
        "id": item_id,
        "snippet": {"title": title, "channelTitle": "Chan", "channelId": "c1", "publishedAt": "2025-01-15T09:00:00Z"},
        "contentDetails": {"videoId": video_id},
    }


class FakeGitHub:
    def __init__(self, events=None, error=None):
        self.events = events or []
        self.error = error
        self.calls = []

    def __call__(self, token):
        self.token = token
        return self

    async def fetch_events(self, username):
        self.calls.append(username)
        await asyncio.sleep(0)
        if self.error:
            raise self.error
        return list(self.events)


class FakeYouTube:
    def __init__(self, items=None, error=None):
        self.items = items or []
        self.error = error

    def __call__(self, tokens):
        self.tokens = tokens
        return self

    async def ensure_playlist(self, title="Personal Assistant Watch History"):
        await asyncio.sleep(0)
        if self.error:
            raise self.error
        return "PL1"

    async def list_playlist_items(self, playlist_id):
        assert playlist_id == "PL1"
        return list(self.items)


class FakeScanner:
    def __init__(self, projects=None, error=None):
        self.projects = projects or []
        self.error = error

    def scan(self):
        if self.error:
            raise self.error
        return list(self.projects)


@pytest.fixture
def user(test_db_session):
    u = User(email="alice@example.com", password_hash="x", name="Alice")
    test_db_session.add(u)
    test_db_session.commit()
    test_db_session.refresh(u)
    return u


def _connect_github(db, user):
    ensure_source(db, user.id, "github", credentials={"token": "gh-token", "username": "alice"})
    db.commit()


def _local_scanner(tmp_path):
    proj = tmp_path / "proj"
    proj.mkdir()
    (proj / "claude.json").write_text(json.dumps({"description": "demo"}))
    return ProjectScanner([str(tmp_path)])


def test_github_failure_does_not_abort_other_branches(test_db_session, user, tmp_path):
    _connect_github(test_db_session, user)
    github = FakeGitHub(error=UpstreamError("GitHub request failed", detail="boom"))
    orch = ActivitySyncOrchestrator(
        test_db_session,
        github_factory=github,
        youtube_factory=FakeYouTube(items=[_item("i1", "v1"), _item("i2", "v2")]),
        scanner=_local_scanner(tmp_path),
    )
    result = asyncio.run(orch.sync(user, youtube_tokens={"access_token": "yt"}))
    assert result == SyncResult(github=0, youtube=2, local=1)
    assert github.calls == ["alice"]
    types = sorted(a.type for a in test_db_session.query(Activity).all())
    assert types == ["code_project", "video_watched", "video_watched"]


def test_every_branch_failing_still_returns_zero_counts(test_db_session, user):
    _connect_github(test_db_session, user)
    orch = ActivitySyncOrchestrator(
        test_db_session,
        github_factory=FakeGitHub(error=RuntimeError("down")),
        youtube_factory=FakeYouTube(error=RuntimeError("down")),
        scanner=FakeScanner(error=OSError("disk")),
    )
    result = asyncio.run(orch.sync(user, youtube_tokens={"access_token": "yt"}))
    assert result == SyncResult(0, 0, 0)
    assert test_db_session.query(Activity).count() == 0


def test_missing_credentials_short_circuit_to_zero(test_db_session, user):
    github = FakeGitHub(events=[PUSH_EVENT])
    orch = ActivitySyncOrchestrator(
        test_db_session,
        github_factory=github,
        youtube_factory=FakeYouTube(items=[_item("i1", "v1")]),
        scanner=FakeScanner(),
    )
    result = asyncio.run(orch.sync(user, youtube_tokens=None))
    assert result == SyncResult(0, 0, 0)
    assert github.calls == []


def test_github_events_are_mapped_and_stored_in_provider_order(test_db_session, user):
    _connect_github(test_db_session, user)
    github = FakeGitHub(events=[PUSH_EVENT, PR_EVENT])
    orch = ActivitySyncOrchestrator(test_db_session, github_factory=github, scanner=FakeScanner())
    result = asyncio.run(orch.sync(user))
    assert result.github == 2
    assert github.token == "gh-token"
    rows = test_db_session.query(Activity).order_by(Activity.timestamp).all()
    assert [r.title for r in rows] == [
        "Pushed 2 commits to alice/tools",
        "opened PR #7 in alice/tools",
    ]
    assert rows[0].description == "- fix parser\n- add tests"
    assert rows[0].metadata_json["repo"] == "alice/tools"
    source = test_db_session.query(ActivitySource).filter_by(user_id=user.id, type="github").one()
    assert source.last_sync is not None
    assert rows[0].source_id == source.id


def test_youtube_resync_ignores_duplicates_and_stores_tokens(test_db_session, user):
    youtube = FakeYouTube(items=[_item("i1", "v1"), _item("i2", "v2")])
    orch = ActivitySyncOrchestrator(test_db_session, youtube_factory=youtube, scanner=FakeScanner())
    asyncio.run(orch.sync(user, youtube_tokens={"access_token": "yt"}))
    youtube.items.append(_item("i3", "v3"))
    second = asyncio.run(orch.sync(user, youtube_tokens={"access_token": "yt2"}))
    assert second.youtube == 3
    assert test_db_session.query(Activity).filter_by(type="video_watched").count() == 3
    assert get_source_credentials(test_db_session, user.id, "youtube") == {"access_token": "yt2"}


def test_local_resync_duplicates_rows(test_db_session, user, tmp_path):
    orch = ActivitySyncOrchestrator(test_db_session, scanner=_local_scanner(tmp_path))
    asyncio.run(orch.sync(user))
    asyncio.run(orch.sync(user))
    assert test_db_session.query(Activity).filter_by(type="code_project").count() == 2


def test_event_templates():
    assert event_title({"type": "IssuesEvent", "repo": {"name": "r"}, "payload": {"action": "closed", "issue": {"number": 3, "title": "Bug"}}}) == "closed issue #3 in r"
    assert event_description({"type": "IssuesEvent", "payload": {"issue": {"title": "Bug"}}}) == "Bug"
    assert event_title({"type": "WatchEvent", "repo": {"name": "r"}}) == "WatchEvent in r"
    assert event_title({"type": "PushEvent", "repo": {"name": "r"}, "payload": {}}) == "Pushed 1 commits to r"
    long_push = {"type": "PushEvent", "payload": {"commits": [{"message": "x" * 400}, {"message": "y" * 400}]}}
    assert len(event_description(long_push)) == 500


def test_map_event_without_created_at_uses_now():
    row = map_event({"type": "ForkEvent", "repo": {"name": "r"}}, "u1", None)
    assert row["timestamp"] is not None
    assert row["type"] == "ForkEvent"


def test_credentials_round_trip_and_wrong_key():
    from apps.backend.services.token_crypto import decrypt_credentials, encrypt_credentials, mask_token

    cipher = encrypt_credentials({"token": "ghp_abcd1234"}, "key-one")
    assert "ghp_abcd1234" not in cipher
    assert decrypt_credentials(cipher, "key-one") == {"token": "ghp_abcd1234"}
    assert decrypt_credentials(cipher, "key-two") is None
    assert decrypt_credentials(None, "key-one") is None
    assert mask_token("ghp_abcd1234") == "****1234"


class RefreshingYouTube(FakeYouTube):
    def __call__(self, tokens):
        self.tokens = dict(tokens, access_token="fresh", expiry_date=1893456000000)
        return self


def test_youtube_refreshed_tokens_are_stored_and_returned(test_db_session, user):
    orch = ActivitySyncOrchestrator(
        test_db_session,
        youtube_factory=RefreshingYouTube(items=[_item("i1", "v1")]),
        scanner=FakeScanner(),
    )
    result = asyncio.run(orch.sync(user, youtube_tokens={"access_token": "stale", "refresh_token": "r1"}))
    assert result.youtube == 1
    assert result.as_dict()["youtubeTokens"]["access_token"] == "fresh"
    stored = get_source_credentials(test_db_session, user.id, "youtube")
    assert stored["access_token"] == "fresh"
    assert stored["refresh_token"] == "r1"


def test_sync_result_omits_tokens_when_youtube_skipped(test_db_session, user):
    orch = ActivitySyncOrchestrator(test_db_session, youtube_factory=FakeYouTube(), scanner=FakeScanner())
    result = asyncio.run(orch.sync(user))
    assert "youtubeTokens" not in result.as_dict()
