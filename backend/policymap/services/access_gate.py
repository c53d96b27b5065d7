"""Shared-secret admin session gate with a per-session lockout."""

from __future__ import annotations

import hmac
import logging
import math
import time
from collections.abc import Callable, MutableMapping
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

Session = MutableMapping[str, Any]


@dataclass(slots=True)
class LoginResult:
    success: bool
    message: str
    status_code: int = 200
    locked_until: float | None = None
    attempts: int = 0


class AccessGate:
    """Gate for the admin surface, operating on a signed-cookie session mapping.

    A correct password opens a session for ``session_timeout`` seconds; each
    authorized request slides the expiry forward. ``max_attempts`` consecutive
    failures lock the session for ``lockout_seconds``.
    """

    def __init__(
        self,
        username: str,
        password: str,
        session_timeout: float,
        *,
        max_attempts: int = 5,
        lockout_seconds: float = 120,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.username = username
        self.password = password
        self.session_timeout = session_timeout
        self.max_attempts = max_attempts
        self.lockout_seconds = lockout_seconds
        self.clock = clock

    def login(self, session: Session, username: str | None, password: str) -> LoginResult:
        now = self.clock()
        blocked_until = session.get("blocked_until")
        if blocked_until and blocked_until > now:
            wait_seconds = math.ceil(blocked_until - now)
            return LoginResult(
                success=False,
                message=f"Too many failed attempts. Please try again in {wait_seconds} seconds.",
                status_code=429,
                locked_until=blocked_until,
                attempts=int(session.get("failed_attempts", 0)),
            )

        if self._credentials_match(username, password):
            session["failed_attempts"] = 0
            session.pop("blocked_until", None)
            session["is_admin"] = True
            session["expires_at"] = now + self.session_timeout
            logger.info("auth.login_succeeded")
            return LoginResult(success=True, message="Logged in")

        attempts = int(session.get("failed_attempts", 0)) + 1
        session["failed_attempts"] = attempts
        if attempts >= self.max_attempts:
            session["blocked_until"] = now + self.lockout_seconds
            logger.warning("auth.session_locked attempts=%d lockout_seconds=%s", attempts, self.lockout_seconds)
            return LoginResult(
                success=False,
                message="Too many failed attempts. Your account is temporarily locked.",
                status_code=429,
                locked_until=session["blocked_until"],
                attempts=attempts,
            )
        logger.info("auth.login_failed attempts=%d", attempts)
        return LoginResult(success=False, message="Invalid credentials", status_code=401, attempts=attempts)

    def is_authorized(self, session: Session) -> bool:
        """Valid admin session check; a successful check slides the expiry window."""

        if not session.get("is_admin"):
            return False
        now = self.clock()
        expires_at = session.get("expires_at")
        if expires_at is None or expires_at <= now:
            session.pop("is_admin", None)
            session.pop("expires_at", None)
            logger.info("auth.session_expired")
            return False
        session["expires_at"] = now + self.session_timeout
        return True

    def logout(self, session: Session) -> None:
        session.clear()
        logger.info("auth.logout")

    def status(self, session: Session) -> dict[str, Any]:
        now = self.clock()
        expires_at = session.get("expires_at")
        logged_in = bool(session.get("is_admin")) and expires_at is not None and expires_at > now
        return {
            "isLoggedIn": logged_in,
            "expiresAt": expires_at if logged_in else None,
            "lockedUntil": session.get("blocked_until"),
            "attempts": int(session.get("failed_attempts", 0)),
        }

    def _credentials_match(self, username: str | None, password: str) -> bool:
        password_ok = hmac.compare_digest((password or "").encode("utf-8"), self.password.encode("utf-8"))
        if username:
            username_ok = hmac.compare_digest(username.encode("utf-8"), self.username.encode("utf-8"))
            return password_ok and username_ok
        return password_ok
