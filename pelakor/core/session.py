"""Client session state: bearer token, current user and theme preference.

Views get an :class:`AppSession` through FastAPI dependencies and never touch
storage directly. Two stores persist the same three keys:

- CookieSessionStore: one signed cookie (web)
- FileSessionStore: a JSON file in the user's home (CLI)
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer
from starlette.responses import Response

from pelakor.core.config import settings

logger = logging.getLogger("pelakor.session")

KEY_TOKEN = "userToken"
KEY_USER = "userData"
KEY_THEME = "themePreference"

THEMES = ("light", "dark", "system")
DEFAULT_THEME = "system"

SESSION_COOKIE = "sid"

# Signed cookie for session (stateless)
serializer = URLSafeTimedSerializer(settings.SECRET_KEY, salt="pelakor_sid")


class SessionStore(Protocol):
    def read(self) -> dict[str, Any]: ...

    def write(self, data: dict[str, Any]) -> None: ...

    def clear(self) -> None: ...


@dataclass
class AppSession:
    token: str | None = None
    user: dict[str, Any] | None = None
    theme: str = DEFAULT_THEME

    @property
    def is_authenticated(self) -> bool:
        return bool(self.token and self.user)

    @classmethod
    def load(cls, store: SessionStore) -> "AppSession":
        raw = store.read()
        user = raw.get(KEY_USER)
        if isinstance(user, str):
            try:
                user = json.loads(user)
            except ValueError:
                logger.warning("Discarding unreadable stored user data")
                user = None
        theme = raw.get(KEY_THEME)
        return cls(
            token=raw.get(KEY_TOKEN) or None,
            user=user if isinstance(user, dict) else None,
            theme=theme if theme in THEMES else DEFAULT_THEME,
        )

    def save(self, store: SessionStore) -> None:
        data: dict[str, Any] = {KEY_THEME: self.theme}
        if self.token:
            data[KEY_TOKEN] = self.token
        if self.user is not None:
            data[KEY_USER] = json.dumps(self.user)
        store.write(data)

    def sign_in(self, token: str, user: dict[str, Any]) -> None:
        self.token = token
        self.user = user

    def sign_out(self) -> None:
        # theme preference survives logout
        self.token = None
        self.user = None


@dataclass
class CookieSessionStore:
    """Reads the incoming signed cookie; writes are staged until `apply`."""

    cookie: str | None = None
    max_age_seconds: int = settings.SESSION_MAX_AGE_SECONDS
    _pending: str | None = field(default=None, init=False)
    _dirty: bool = field(default=False, init=False)

    def read(self) -> dict[str, Any]:
        if not self.cookie:
            return {}
        try:
            data = serializer.loads(self.cookie, max_age=self.max_age_seconds)
        except (BadSignature, SignatureExpired):
            return {}
        return data if isinstance(data, dict) else {}

    def write(self, data: dict[str, Any]) -> None:
        self._pending = serializer.dumps(data)
        self._dirty = True

    def clear(self) -> None:
        self._pending = None
        self._dirty = True

    def apply(self, resp: Response) -> Response:
        if not self._dirty:
            return resp
        if self._pending is None:
            resp.delete_cookie(SESSION_COOKIE)
            return resp
        resp.set_cookie(
            SESSION_COOKIE,
            self._pending,
            httponly=True,
            samesite=settings.COOKIE_SAMESITE,
            secure=settings.COOKIE_SECURE,
            max_age=self.max_age_seconds,
        )
        return resp


class FileSessionStore:
    def __init__(self, path: str | os.PathLike[str] | None = None):
        self.path = Path(os.path.expanduser(str(path or settings.SESSION_FILE)))

    def read(self) -> dict[str, Any]:
        try:
            with self.path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return {}
        except (OSError, ValueError):
            logger.warning("Ignoring unreadable session file %s", self.path)
            return {}
        return data if isinstance(data, dict) else {}

    def write(self, data: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=".session-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f)
            os.replace(tmp, self.path)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise

    def clear(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass
