"""Local persistence of the access/refresh pair and provider tokens."""
from __future__ import annotations

import json
import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)

ACCESS_KEY = "access_token"
REFRESH_KEY = "refresh_token"
YOUTUBE_KEY = "youtube_tokens"


class TokenStore:
    """Key/value storage; subclasses decide where the values live."""

    def _load(self) -> dict:
        raise NotImplementedError

    def _save(self, data: dict) -> None:
        raise NotImplementedError

    def get_access_token(self) -> str | None:
        return self._load().get(ACCESS_KEY)

    def get_refresh_token(self) -> str | None:
        return self._load().get(REFRESH_KEY)

    def set_tokens(self, access_token: str, refresh_token: str) -> None:
        data = self._load()
        data[ACCESS_KEY] = access_token
        data[REFRESH_KEY] = refresh_token
        self._save(data)

    def clear_tokens(self) -> None:
        data = self._load()
        data.pop(ACCESS_KEY, None)
        data.pop(REFRESH_KEY, None)
        self._save(data)

    def get_youtube_tokens(self) -> dict | None:
        return self._load().get(YOUTUBE_KEY)

    def set_youtube_tokens(self, tokens: dict | None) -> None:
        data = self._load()
        if tokens:
            data[YOUTUBE_KEY] = tokens
        else:
            data.pop(YOUTUBE_KEY, None)
        self._save(data)


class MemoryTokenStore(TokenStore):
    def __init__(self, initial: dict | None = None) -> None:
        self._data: dict = dict(initial or {})

    def _load(self) -> dict:
        return dict(self._data)

    def _save(self, data: dict) -> None:
        self._data = dict(data)


class FileTokenStore(TokenStore):
    """JSON file, created with 0600 permissions."""

    def __init__(self, path: str | os.PathLike) -> None:
        self.path = Path(path)

    def _load(self) -> dict:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except ValueError:
            logger.warning("token_store_corrupt path=%s", self.path)
            return {}
        return data if isinstance(data, dict) else {}

    def _save(self, data: dict) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        fd = os.open(tmp, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f)
        os.replace(tmp, self.path)
