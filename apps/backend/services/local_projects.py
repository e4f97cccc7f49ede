"""Local Claude-assisted project discovery.

Walks the configured allow-list of roots looking for marker files. Every path
is resolved (symlinks included) and re-checked against the allow-list before
it is read or descended into, so a link pointing outside the roots is ignored.
"""
from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Iterable, Iterator

logger = logging.getLogger(__name__)

ACTIVITY_TYPE = "code_project"
MARKER_NAMES = frozenset({"claude.json", "CLAUDE.md", ".claude"})
DEFAULT_DESCRIPTION = "Local development project"
MAX_DEPTH = 5
PROJECT_FILES_DEPTH = 3
PROJECT_FILES_LIMIT = 100

LANGUAGE_MAP = {
    ".js": "JavaScript",
    ".jsx": "JavaScript",
    ".ts": "TypeScript",
    ".tsx": "TypeScript",
    ".py": "Python",
    ".java": "Java",
    ".cpp": "C++",
    ".c": "C",
    ".cs": "C#",
    ".go": "Go",
    ".rs": "Rust",
    ".swift": "Swift",
    ".kt": "Kotlin",
    ".rb": "Ruby",
    ".php": "PHP",
}


@dataclass
class LocalProject:
    name: str
    path: str
    description: str
    last_modified: datetime
    files: list[str] = field(default_factory=list)
    languages: list[str] = field(default_factory=list)

    def to_activity(self, user_id: str, source_id: str | None) -> dict:
        return {
            "user_id": user_id,
            "source_id": source_id,
            "type": ACTIVITY_TYPE,
            "title": self.name,
            "description": f"Claude project: {self.description}",
            "metadata_json": {
                "path": self.path,
                "lastModified": self.last_modified.isoformat(),
                "files": self.files,
                "languages": self.languages,
            },
            "timestamp": self.last_modified,
        }


def detect_languages(files: Iterable[str]) -> list[str]:
    found: list[str] = []
    for f in files:
        lang = LANGUAGE_MAP.get(os.path.splitext(f)[1].lower())
        if lang and lang not in found:
            found.append(lang)
    return found


def _read_description(path: Path) -> str | None:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return None
    if isinstance(data, dict):
        desc = data.get("description")
        if isinstance(desc, str) and desc.strip():
            return desc.strip()
    return None


class ProjectScanner:
    def __init__(
        self,
        roots: Iterable[str],
        allowed_extensions: Iterable[str] | None = None,
        max_depth: int = MAX_DEPTH,
    ) -> None:
        self.roots = [Path(os.path.realpath(r)) for r in roots]
        self.allowed_extensions = {e.lower() for e in (allowed_extensions or [])}
        self.max_depth = max_depth

    def is_path_allowed(self, path: str | Path) -> bool:
        resolved = Path(os.path.realpath(path))
        return any(resolved == root or root in resolved.parents for root in self.roots)

    def _walk(self, directory: Path, depth: int, max_depth: int) -> Iterator[Path]:
        """Yield entries under `directory`. Raises OSError only for `directory` itself."""
        with os.scandir(directory) as it:
            entries = sorted(it, key=lambda e: e.name)
        for entry in entries:
            full = directory / entry.name
            if not self.is_path_allowed(full):
                continue
            yield full
            try:
                is_dir = entry.is_dir()
            except OSError:
                continue
            if is_dir and not entry.name.startswith(".") and depth < max_depth:
                try:
                    yield from self._walk(full, depth + 1, max_depth)
                except OSError:
                    logger.debug("local_scan_dir_unreadable path=%s", full)

    def scan(self) -> list[LocalProject]:
        projects: list[LocalProject] = []
        seen: set[Path] = set()
        for root in self.roots:
            try:
                markers = [p for p in self._walk(root, 0, self.max_depth) if p.name in MARKER_NAMES]
            except OSError as e:
                logger.warning("local_scan_root_failed root=%s error=%s", root, e)
                continue
            for marker in markers:
                project_dir = marker.parent
                if project_dir in seen:
                    continue
                seen.add(project_dir)
                projects.append(self.analyze_project(marker))
        logger.info("local_scan_done roots=%s projects=%s", len(self.roots), len(projects))
        return projects

    def analyze_project(self, marker: Path) -> LocalProject:
        project_dir = marker.parent
        try:
            last_modified = datetime.fromtimestamp(marker.stat().st_mtime)
        except OSError:
            last_modified = datetime.now()
        description = (
            _read_description(project_dir / "claude.json")
            or _read_description(project_dir / "package.json")
            or DEFAULT_DESCRIPTION
        )
        all_files = self._project_files(project_dir)
        listed = [
            f for f in all_files
            if not self.allowed_extensions or os.path.splitext(f)[1].lower() in self.allowed_extensions
        ]
        return LocalProject(
            name=project_dir.name,
            path=str(project_dir),
            description=description,
            last_modified=last_modified,
            files=listed[:PROJECT_FILES_LIMIT],
            languages=detect_languages(all_files),
        )

    def _project_files(self, project_dir: Path) -> list[str]:
        try:
            return [
                str(p.relative_to(project_dir))
                for p in self._walk(project_dir, 0, PROJECT_FILES_DEPTH)
                if p.is_file()
            ]
        except OSError as e:
            logger.warning("local_scan_project_failed path=%s error=%s", project_dir, e)
            return []
