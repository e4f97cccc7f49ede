"""GitHub events -> Activity rows."""
from __future__ import annotations

from datetime import datetime

from apps.backend.utils.timeparse import to_local_naive

DESCRIPTION_LIMIT = 500


def event_title(event: dict) -> str:
    event_type = event.get("type") or "unknown"
    repo = (event.get("repo") or {}).get("name") or "unknown repository"
    payload = event.get("payload") or {}
    if event_type == "PushEvent":
        commits = payload.get("commits") or []
        return f"Pushed {len(commits) or 1} commits to {repo}"
    if event_type == "PullRequestEvent":
        number = (payload.get("pull_request") or {}).get("number") or payload.get("number")
        return f"{payload.get('action')} PR #{number} in {repo}"
    if event_type == "IssuesEvent":
        number = (payload.get("issue") or {}).get("number")
        return f"{payload.get('action')} issue #{number} in {repo}"
    return f"{event_type} in {repo}"


def event_description(event: dict) -> str:
    event_type = event.get("type")
    payload = event.get("payload") or {}
    if event_type == "PushEvent":
        commits = payload.get("commits") or []
        return "\n".join(f"- {c.get('message', '')}" for c in commits)[:DESCRIPTION_LIMIT]
    if event_type == "PullRequestEvent":
        return (payload.get("pull_request") or {}).get("title") or ""
    if event_type == "IssuesEvent":
        return (payload.get("issue") or {}).get("title") or ""
    return ""


def map_event(event: dict, user_id: str, source_id: str | None) -> dict:
    return {
        "user_id": user_id,
        "source_id": source_id,
        "type": event.get("type") or "unknown",
        "title": event_title(event),
        "description": event_description(event),
        "metadata_json": {
            "eventId": event.get("id"),
            "repo": (event.get("repo") or {}).get("name"),
            "payload": event.get("payload") or {},
        },
        "timestamp": to_local_naive(event.get("created_at")) or datetime.now(),
    }
