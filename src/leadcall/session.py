import hmac
import logging
import secrets
import time
from dataclasses import dataclass, field

from leadcall.errors import AuthError

logger = logging.getLogger(__name__)

SESSION_MAX_AGE_SECONDS = 12 * 60 * 60


@dataclass
class OperatorSession:
    token: str
    role: str = "feedback"
    created_at: float = field(default_factory=time.time)


class SessionRegistry:
    """Operator sessions for one running app.

    Created at startup and cleared at shutdown; every authorized request
    resolves its session from here by token. Sessions expire after
    ``max_age_seconds`` and expired ones are dropped on the next login.
    """

    def __init__(
        self,
        password: str,
        role: str = "feedback",
        max_age_seconds: float = SESSION_MAX_AGE_SECONDS,
        clock=time.time,
    ):
        self._password = password
        self._role = role
        self._max_age = max_age_seconds
        self._clock = clock
        self._sessions: dict[str, OperatorSession] = {}

    def _expired(self, session: OperatorSession, now: float) -> bool:
        return now - session.created_at >= self._max_age

    def _prune(self, now: float) -> None:
        for token in [t for t, s in self._sessions.items() if self._expired(s, now)]:
            del self._sessions[token]

    def login(self, password: str) -> OperatorSession:
        if not self._password or not hmac.compare_digest(
            password.encode("utf-8"), self._password.encode("utf-8")
        ):
            logger.warning("Operator login rejected")
            raise AuthError("Invalid password")
        now = self._clock()
        self._prune(now)
        session = OperatorSession(token=secrets.token_urlsafe(32), role=self._role, created_at=now)
        self._sessions[session.token] = session
        logger.info("Operator logged in (role=%s)", session.role)
        return session

    def require(self, token: str | None) -> OperatorSession:
        session = self._sessions.get(token or "")
        if session is None:
            raise AuthError("Login required")
        if self._expired(session, self._clock()):
            self._sessions.pop(session.token, None)
            raise AuthError("Session expired, log in again")
        return session

    def logout(self, token: str) -> None:
        self._sessions.pop(token, None)

    def clear(self) -> None:
        self._sessions.clear()

    def __len__(self) -> int:
        return len(self._sessions)
