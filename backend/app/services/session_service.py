"""
Authenticated sessions.

A session is created on sign-in and owns that principal's ReportRepository;
sign-out tears both down. Nothing else keeps per-user state, so everything a
request needs is reached through the session it presents.
"""

import secrets
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

import structlog

from app.core.time_utils import get_utc_now
from app.schemas.user import UserProfile
from app.services.report_repository import ReportRepository

logger = structlog.get_logger()

SIGNED_IN = "signed_in"
SIGNED_OUT = "signed_out"

Listener = Callable[[str, "AuthSession"], None]


@dataclass
class AuthSession:
    session_id: str
    profile: UserProfile
    repository: ReportRepository
    created_at: datetime = field(default_factory=get_utc_now)
    expires_at: Optional[datetime] = None

    def expired(self, now: datetime) -> bool:
        return self.expires_at is not None and now >= self.expires_at


class SessionRegistry:
    def __init__(
        self,
        repository_factory: Callable[[Optional[UserProfile]], ReportRepository],
        ttl: Optional[timedelta] = None,
        clock: Callable[[], datetime] = get_utc_now,
    ):
        self._repository_factory = repository_factory
        self.ttl = ttl
        self.clock = clock
        self._sessions: Dict[str, AuthSession] = {}
        self._listeners: List[Listener] = []

    def __len__(self) -> int:
        return len(self._sessions)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register for sign-in/sign-out notifications; returns the unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, event: str, session: AuthSession) -> None:
        for listener in list(self._listeners):
            try:
                listener(event, session)
            except Exception as e:
                # A broken listener must not undo a sign-in or sign-out
                logger.error("session_listener_failed", event_name=event, error=str(e))

    async def sign_in(self, profile: UserProfile) -> AuthSession:
        """Start a session and load the report collection for its role."""
        self.evict_expired()
        repository = self._repository_factory(profile)
        await repository.list()
        now = self.clock()
        session = AuthSession(
            session_id=secrets.token_urlsafe(24),
            profile=profile,
            repository=repository,
            created_at=now,
            expires_at=now + self.ttl if self.ttl is not None else None,
        )
        self._sessions[session.session_id] = session
        logger.info("session_started", session_count=len(self._sessions), role=profile.role.value)
        self._notify(SIGNED_IN, session)
        return session

    def get(self, session_id: Optional[str]) -> Optional[AuthSession]:
        if not session_id:
            return None
        session = self._sessions.get(session_id)
        if session is not None and session.expired(self.clock()):
            self._end(session_id, reason="expired")
            return None
        return session

    def sign_out(self, session_id: str) -> bool:
        return self._end(session_id, reason="signed_out")

    def _end(self, session_id: str, reason: str) -> bool:
        session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        session.repository.close()
        logger.info("session_ended", reason=reason, session_count=len(self._sessions))
        self._notify(SIGNED_OUT, session)
        return True

    def evict_expired(self) -> int:
        """Tear down every session past its expiry; returns how many were removed."""
        now = self.clock()
        expired = [sid for sid, session in self._sessions.items() if session.expired(now)]
        for session_id in expired:
            self._end(session_id, reason="expired")
        return len(expired)

    def close_all(self) -> None:
        for session_id in list(self._sessions):
            self.sign_out(session_id)
