"""
IdentityProvider - credentials and the profile mirrored for each principal.

Authentication failures never say whether the email exists; throttled
accounts get a separate message so the caller can tell the user to wait.
"""

import time
from collections import deque
from typing import Callable, Deque, Dict, Optional

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.core import security
from app.core.exceptions import (
    AuthenticationError,
    NotFoundError,
    RegistrationError,
    ReportValidationError,
    StoreReadError,
    StoreWriteError,
)
from app.models.user import User, UserRole
from app.schemas.user import UserProfile

logger = structlog.get_logger()

INVALID_CREDENTIALS = "Invalid email or password."
TOO_MANY_ATTEMPTS = "Too many failed login attempts. Please try again later."
EMAIL_IN_USE = "Email is already in use. Try logging in or use a different email."


class LoginThrottle:
    """Sliding window of failed attempts per email."""

    def __init__(self, max_attempts: int, window_seconds: int, clock: Callable[[], float] = time.monotonic):
        self.max_attempts = max_attempts
        self.window_seconds = window_seconds
        self.clock = clock
        self._failures: Dict[str, Deque[float]] = {}

    def __len__(self) -> int:
        """Number of emails currently tracked."""
        return len(self._failures)

    def _prune(self, key: str) -> int:
        failures = self._failures.get(key)
        if failures is None:
            return 0
        cutoff = self.clock() - self.window_seconds
        while failures and failures[0] <= cutoff:
            failures.popleft()
        if not failures:
            del self._failures[key]
        return len(failures)

    def is_locked(self, key: str) -> bool:
        return self._prune(key) >= self.max_attempts

    def sweep(self) -> None:
        """Forget every email whose failures have all left the window."""
        for key in list(self._failures):
            self._prune(key)

    def record_failure(self, key: str) -> None:
        self.sweep()
        self._failures.setdefault(key, deque()).append(self.clock())

    def reset(self, key: str) -> None:
        self._failures.pop(key, None)


class IdentityProvider:
    def __init__(
        self,
        session_factory: async_sessionmaker,
        throttle: LoginThrottle,
        password_min_length: int = 6,
    ):
        self._session_factory = session_factory
        self.throttle = throttle
        self.password_min_length = password_min_length

    async def _find_by_email(self, email: str) -> Optional[User]:
        async with self._session_factory() as session:
            result = await session.execute(select(User).where(User.email == email))
            return result.scalar_one_or_none()

    async def register(self, email: str, password: str, name: str, role: UserRole) -> UserProfile:
        """
        Create credentials and write the profile for the new principal.
        """
        email = (email or "").strip().lower()
        name = (name or "").strip()
        if not email or not password or not name or not role:
            raise ReportValidationError("Please fill out all required fields", field="registration")
        if len(password) < self.password_min_length:
            raise ReportValidationError(
                f"Password must be at least {self.password_min_length} characters long", field="password"
            )
        try:
            role = UserRole(role)
        except ValueError:
            raise ReportValidationError("Unknown role", field="role")

        user = User(email=email, password_hash=security.hash_password(password), name=name, role=role)
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    session.add(user)
        except IntegrityError as e:
            logger.info("registration_rejected", reason="email_in_use")
            raise RegistrationError(EMAIL_IN_USE) from e
        except SQLAlchemyError as e:
            logger.error("registration_failed", error=str(e))
            raise StoreWriteError() from e

        logger.info("user_registered", user_id=user.id, role=role.value)
        return UserProfile.model_validate(user)

    async def authenticate(self, email: str, password: str) -> UserProfile:
        key = (email or "").strip().lower()
        if self.throttle.is_locked(key):
            logger.warning("login_throttled")
            raise AuthenticationError(TOO_MANY_ATTEMPTS)

        try:
            user = await self._find_by_email(key)
        except SQLAlchemyError as e:
            logger.error("login_lookup_failed", error=str(e))
            raise StoreReadError() from e

        if user is None or not security.verify_password(password or "", user.password_hash):
            self.throttle.record_failure(key)
            logger.info("login_failed")
            raise AuthenticationError(INVALID_CREDENTIALS)

        self.throttle.reset(key)
        logger.info("login_succeeded", user_id=user.id)
        return UserProfile.model_validate(user)

    async def read_profile(self, principal_id: str) -> UserProfile:
        try:
            async with self._session_factory() as session:
                user = await session.get(User, principal_id)
        except SQLAlchemyError as e:
            logger.error("profile_read_failed", user_id=principal_id, error=str(e))
            raise StoreReadError() from e
        if user is None:
            raise NotFoundError("Profile not found", landing="/login")
        return UserProfile.model_validate(user)
