"""
Session store for client credentials.

The store is an opaque key-value surface with ``get``/``set``/``clear``
and nothing else.  The refresh credential lives under
``REFRESH_TOKEN_KEY`` and the current access credential under
``ACCESS_TOKEN_KEY``.  Two implementations are provided: an in-memory
store and a JSON file store which persists values between runs (the
equivalent of browser local storage).

An email value may additionally be kept for a short time for use by the
UI; see ``store_email`` and ``load_email``.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import time
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

REFRESH_TOKEN_KEY = "refreshToken"
ACCESS_TOKEN_KEY = "accessToken"
EMAIL_KEY = "EMAIL"
EMAIL_MAX_AGE = 300


class SessionStore:
    """Abstract key-value store."""

    def get(self, key: str) -> Optional[Any]:  # pragma: no cover - override
        raise NotImplementedError

    def set(self, key: str, value: Any) -> None:  # pragma: no cover - override
        raise NotImplementedError

    def clear(self, key: Optional[str] = None) -> None:  # pragma: no cover - override
        """Remove ``key``, or every key when ``key`` is ``None``."""
        raise NotImplementedError


class InMemorySessionStore(SessionStore):
    def __init__(self, initial: Optional[Dict[str, Any]] = None) -> None:
        self._values: Dict[str, Any] = dict(initial or {})

    def get(self, key: str) -> Optional[Any]:
        return self._values.get(key)

    def set(self, key: str, value: Any) -> None:
        self._values[key] = value

    def clear(self, key: Optional[str] = None) -> None:
        if key is None:
            self._values.clear()
        else:
            self._values.pop(key, None)


class JsonFileSessionStore(InMemorySessionStore):
    """Key-value store backed by a JSON file.

    The file is read once at construction and reads are served from
    memory, so request code never blocks on disk.  Every mutation rewrites
    the file through a temporary file and ``os.replace``; a crash leaves
    either the old or the new contents.  Values must be JSON serialisable.
    """

    def __init__(self, path: str) -> None:
        self.path = path
        exists = os.path.exists(self.path)
        super().__init__(self._read_file() if exists else {})
        if not exists:
            self._write_file()

    def _read_file(self) -> Dict[str, Any]:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Session store %s unreadable, starting empty: %s", self.path, exc)
            return {}
        return data if isinstance(data, dict) else {}

    def _write_file(self) -> None:
        directory = os.path.dirname(os.path.abspath(self.path))
        fd, tmp_path = tempfile.mkstemp(prefix=".session-", suffix=".json", dir=directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(self._values, f, indent=2)
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    def set(self, key: str, value: Any) -> None:
        super().set(key, value)
        self._write_file()

    def clear(self, key: Optional[str] = None) -> None:
        super().clear(key)
        self._write_file()


def build_session_store(path: str = "") -> SessionStore:
    """Return a file store when ``path`` is set, else an in-memory one."""
    if path:
        return JsonFileSessionStore(path)
    return InMemorySessionStore()


def store_email(store: SessionStore, email: str, max_age: int = EMAIL_MAX_AGE) -> None:
    """Keep ``email`` for ``max_age`` seconds."""
    store.set(EMAIL_KEY, {"value": email, "expires_at": time.time() + max_age})


def load_email(store: SessionStore) -> Optional[str]:
    """Return the stored email, or ``None`` if absent or expired."""
    record = store.get(EMAIL_KEY)
    if not isinstance(record, dict):
        return None
    if record.get("expires_at", 0) <= time.time():
        store.clear(EMAIL_KEY)
        return None
    return record.get("value")
