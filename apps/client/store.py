"""Client-side activity state with a typed action surface.

The store is the single source of truth for what the UI renders. It owns no
module-level state: callers create one per session and pass the ApiClient in.
Failures are reduced to a short generic message in `state.error`.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from typing import Callable

from apps.client.api import ApiClient, ApiProtocolError, ApiResponse

logger = logging.getLogger(__name__)

Listener = Callable[["ActivityState"], None]


@dataclass(frozen=True)
class ActivityState:
    github: list[dict] = field(default_factory=list)
    youtube: list[dict] = field(default_factory=list)
    local: list[dict] = field(default_factory=list)
    summary: dict | None = None
    loading: bool = False
    error: str | None = None
    last_sync: datetime | None = None
    youtube_connected: bool = False


class ActionFailed(Exception):
    pass


def split_by_source(activities: list[dict]) -> tuple[list[dict], list[dict], list[dict]]:
    github, youtube, local = [], [], []
    for a in activities or []:
        kind = a.get("type") or ""
        if kind == "video_watched":
            youtube.append(a)
        elif kind == "code_project":
            local.append(a)
        elif kind.endswith("Event"):
            github.append(a)
    return github, youtube, local


class ActivityStore:
    def __init__(self, api: ApiClient, initial: ActivityState | None = None) -> None:
        self.api = api
        self._state = initial or ActivityState(youtube_connected=bool(api.tokens.get_youtube_tokens()))
        self._listeners: list[Listener] = []

    @property
    def state(self) -> ActivityState:
        return self._state

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _set(self, **changes) -> None:
        self._state = replace(self._state, **changes)
        for listener in list(self._listeners):
            listener(self._state)

    @staticmethod
    def _unwrap(response: ApiResponse):
        if response.error:
            raise ActionFailed(response.error)
        return response.data

    def _run(self, failure_message: str, action: Callable[[], None]) -> bool:
        self._set(loading=True, error=None)
        try:
            action()
        except (ActionFailed, ApiProtocolError) as e:
            logger.warning("store_action_failed message=%s error=%s", failure_message, e)
            self._set(loading=False, error=failure_message)
            return False
        self._set(loading=False)
        return True

    # Actions

    def fetch_activities(self) -> bool:
        def action() -> None:
            data = self._unwrap(self.api.get_activities())
            github, youtube, local = split_by_source(data if isinstance(data, list) else [])
            self._set(github=github, youtube=youtube, local=local, last_sync=datetime.now())

        return self._run("Failed to fetch activities", action)

    def sync_activities(self) -> bool:
        def action() -> None:
            self._unwrap(self.api.sync_activities())
            data = self._unwrap(self.api.get_activities())
            github, youtube, local = split_by_source(data if isinstance(data, list) else [])
            self._set(github=github, youtube=youtube, local=local, last_sync=datetime.now())

        return self._run("Failed to sync activities", action)

    def generate_summary(self, day: date | None = None) -> bool:
        def action() -> None:
            data = self._unwrap(self.api.generate_summary(day))
            no_activities = isinstance(data, dict) and "summary" in data and data["summary"] is None
            self._set(summary=None if no_activities else data)

        return self._run("Failed to generate summary", action)

    def connect_youtube(self, code: str) -> bool:
        def action() -> None:
            self._unwrap(self.api.exchange_youtube_code(code))
            self._set(youtube_connected=True)

        if not self._run("Failed to connect YouTube", action):
            return False
        return self.sync_activities()

    def track_youtube_video(self, video_id: str) -> bool:
        return self._run("Failed to track video", lambda: self._unwrap(self.api.track_youtube_video(video_id)))

    def clear_error(self) -> None:
        self._set(error=None)
