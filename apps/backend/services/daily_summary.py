"""Daily summary and work priorities: activities -> generation service -> normalized JSON."""
from __future__ import annotations

import json
import logging
from datetime import date, timedelta
from typing import Any, Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session

from apps.backend.clients.azure_openai import AzureOpenAIClient, GenerationResult
from apps.backend.config import get_settings
from apps.backend.models.activity import Activity
from apps.backend.models.ai_summary import AISummary
from apps.backend.models.user import User
from apps.backend.utils.api_errors import GenerationEmpty, GenerationMalformed
from apps.backend.utils.timeparse import day_window

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are an intelligent personal assistant that analyzes daily activities "
    "and provides actionable insights. Always respond with valid JSON."
)

RESPONSE_SHAPE = """{
  "text": "A comprehensive summary of the day's activities",
  "insights": {
    "executiveSummary": "2-3 sentences highlighting key accomplishments",
    "timeAllocation": [
      {"category": "category name", "percentage": number}
    ],
    "productivityInsights": ["insight 1", "insight 2", ...],
    "keyAchievements": ["achievement 1", "achievement 2", ...],
    "areasOfConcern": ["concern 1", "concern 2", ...]
  },
  "priorities": ["priority 1 for tomorrow", "priority 2", ...]
}"""

NO_SUMMARY_TEXT = "No summary available"

PRIORITY_SYSTEM_PROMPT = (
    "You are a productivity expert who helps prioritize work based on past "
    "activities and upcoming commitments."
)

PRIORITY_SHAPE = """{
  "priorities": [
    {
      "rank": 1,
      "task": "task description",
      "reason": "why this is important",
      "estimatedTime": "time estimate"
    }
  ],
  "recommendations": ["recommendation 1", "recommendation 2"]
}"""


class TextGenerator(Protocol):
    deployment: str

    async def generate_text(
        self,
        messages: list[dict],
        *,
        max_tokens: int = 2000,
        temperature: float = 0.3,
        json_mode: bool = True,
    ) -> GenerationResult: ...


def default_generator() -> AzureOpenAIClient:
    s = get_settings()
    return AzureOpenAIClient(
        s.azure_openai_endpoint,
        s.azure_openai_deployment_name,
        s.azure_openai_api_key,
        s.azure_openai_api_version,
    )


def build_summary_prompt(activities: list[dict], day: date) -> str:
    return (
        f"Analyze my activities for {day.isoformat()} and provide a JSON response "
        f"with the following structure:\n\n{RESPONSE_SHAPE}\n\n"
        f"## Activities Data\n{json.dumps(activities, indent=2, ensure_ascii=False, default=str)}\n"
    )


def _str(value: Any) -> str:
    return value if isinstance(value, str) else ""


def _str_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [v for v in value if isinstance(v, str)]


def _time_allocation(value: Any) -> list[dict]:
    if not isinstance(value, list):
        return []
    out = []
    for item in value:
        if not isinstance(item, dict):
            continue
        pct = item.get("percentage")
        out.append({
            "category": _str(item.get("category")),
            "percentage": pct if isinstance(pct, (int, float)) and not isinstance(pct, bool) else 0,
        })
    return out


def _load_object(content: str, what: str) -> dict:
    try:
        parsed = json.loads(content)
    except ValueError:
        logger.warning("%s_response_not_json length=%s", what, len(content or ""))
        raise GenerationMalformed()
    if not isinstance(parsed, dict):
        raise GenerationMalformed()
    return parsed


def parse_summary_response(content: str) -> dict:
    """
    Strict about the envelope, lenient about the fields: non-JSON (or a JSON
    value that is not an object) raises GenerationMalformed, while any missing
    or mistyped field falls back to an empty value.
    """
    parsed = _load_object(content, "summary")
    insights = parsed.get("insights") if isinstance(parsed.get("insights"), dict) else {}
    return {
        "text": _str(parsed.get("text")) or NO_SUMMARY_TEXT,
        "insights": {
            "executiveSummary": _str(insights.get("executiveSummary")),
            "timeAllocation": _time_allocation(insights.get("timeAllocation")),
            "productivityInsights": _str_list(insights.get("productivityInsights")),
            "keyAchievements": _str_list(insights.get("keyAchievements")),
            "areasOfConcern": _str_list(insights.get("areasOfConcern")),
        },
        "priorities": _str_list(parsed.get("priorities")),
    }


def build_priority_prompt(recent_activities: list[dict], upcoming_tasks: list) -> str:
    return (
        "Based on recent activities and upcoming tasks, generate a prioritized work plan.\n\n"
        f"## Recent Activities\n{json.dumps(recent_activities, indent=2, ensure_ascii=False, default=str)}\n\n"
        f"## Upcoming Tasks\n{json.dumps(upcoming_tasks, indent=2, ensure_ascii=False, default=str)}\n\n"
        f"Return a JSON object with:\n{PRIORITY_SHAPE}\n"
    )


def parse_priorities_response(content: str) -> dict:
    """Same envelope rules as the summary; ranks default to list position."""
    parsed = _load_object(content, "priorities")
    raw = parsed.get("priorities") if isinstance(parsed.get("priorities"), list) else []
    priorities = []
    for item in raw:
        if not isinstance(item, dict):
            continue
        rank = item.get("rank")
        priorities.append({
            "rank": rank if isinstance(rank, int) and not isinstance(rank, bool) else len(priorities) + 1,
            "task": _str(item.get("task")),
            "reason": _str(item.get("reason")),
            "estimatedTime": _str(item.get("estimatedTime")),
        })
    return {
        "priorities": priorities,
        "recommendations": _str_list(parsed.get("recommendations")),
    }


def load_day_activities(db: Session, user_id: str, day: date) -> list[Activity]:
    start, end = day_window(day)
    return list(
        db.execute(
            select(Activity)
            .where(
                Activity.user_id == user_id,
                Activity.timestamp >= start,
                Activity.timestamp <= end,
            )
            .order_by(Activity.timestamp.asc())
        ).scalars()
    )


def load_recent_activities(db: Session, user_id: str, days: int, today: date | None = None) -> list[Activity]:
    """Activities from the start of `days - 1` days ago through the end of today."""
    today = today or date.today()
    start, _ = day_window(today - timedelta(days=max(days, 1) - 1))
    _, end = day_window(today)
    return list(
        db.execute(
            select(Activity)
            .where(
                Activity.user_id == user_id,
                Activity.timestamp >= start,
                Activity.timestamp <= end,
            )
            .order_by(Activity.timestamp.asc())
        ).scalars()
    )


def _prompt_activity(a: Activity) -> dict:
    return {
        "type": a.type,
        "title": a.title,
        "description": a.description,
        "metadata": a.metadata_json or {},
        "timestamp": a.timestamp.isoformat() if a.timestamp else None,
    }


class DailySummaryPipeline:
    def __init__(self, db: Session, generator: TextGenerator | None = None) -> None:
        self.db = db
        self.generator = generator or default_generator()

    async def generate_summary(self, user: User, day: date) -> dict | None:
        """None when the day has no activities; the generator is not called then."""
        activities = load_day_activities(self.db, user.id, day)
        if not activities:
            logger.info("summary_skipped_no_activities user_id=%s day=%s", user.id, day)
            return None
        messages = [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": build_summary_prompt([_prompt_activity(a) for a in activities], day)},
        ]
        result = await self.generator.generate_text(messages, max_tokens=2000, temperature=0.3, json_mode=True)
        if not result or not (result.content or "").strip():
            raise GenerationEmpty()
        summary = parse_summary_response(result.content)
        start, _ = day_window(day)
        row = AISummary(
            user_id=user.id,
            date=start,
            summary=summary["text"],
            insights=summary["insights"],
            priorities=summary["priorities"],
            model_version=(result.model or self.generator.deployment or "")[:50] or None,
        )
        self.db.add(row)
        self.db.commit()
        logger.info(
            "summary_created user_id=%s day=%s activities=%s summary_id=%s",
            user.id, day, len(activities), row.id,
        )
        return summary

    async def generate_work_priorities(self, recent_activities: list[dict], upcoming_tasks: list) -> dict:
        """Ranked work plan; not persisted. Nothing to rank means no generator call."""
        if not recent_activities and not upcoming_tasks:
            return {"priorities": [], "recommendations": []}
        messages = [
            {"role": "system", "content": PRIORITY_SYSTEM_PROMPT},
            {"role": "user", "content": build_priority_prompt(recent_activities, upcoming_tasks)},
        ]
        result = await self.generator.generate_text(messages, max_tokens=1500, temperature=0.2, json_mode=True)
        if not result or not (result.content or "").strip():
            raise GenerationEmpty()
        return parse_priorities_response(result.content)

    async def generate_user_priorities(self, user: User, upcoming_tasks: list, days: int = 7) -> dict:
        activities = load_recent_activities(self.db, user.id, days)
        plan = await self.generate_work_priorities([_prompt_activity(a) for a in activities], upcoming_tasks)
        logger.info(
            "priorities_generated user_id=%s activities=%s tasks=%s priorities=%s",
            user.id, len(activities), len(upcoming_tasks), len(plan["priorities"]),
        )
        return plan
