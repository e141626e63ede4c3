from typing import Callable, Optional
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError
from pydantic import ValidationError

from app.core import security
from app.core.authorization import GuardOutcome, route_guard
from app.core.config import settings
from app.models.user import UserRole
from app.schemas.user import TokenPayload
from app.services.container import Services
from app.services.report_repository import ReportRepository
from app.services.session_service import AuthSession

reusable_oauth2 = OAuth2PasswordBearer(
    tokenUrl=f"{settings.API_V1_STR}/auth/login",
    auto_error=False,
)


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_optional_session(
    services: Services = Depends(get_services),
    token: Optional[str] = Depends(reusable_oauth2),
) -> Optional[AuthSession]:
    """
    The server-side session behind a bearer token, or None when there is no
    usable token or the session has already been signed out.
    """
    if not token:
        return None
    try:
        payload = security.decode_access_token(token)
        token_data = TokenPayload(**payload)
    except (JWTError, ValidationError):
        return None

    session = services.sessions.get(token_data.sid)
    if session is None or session.profile.id != token_data.sub:
        return None
    return session


def get_current_session(
    session: Optional[AuthSession] = Depends(get_optional_session),
) -> AuthSession:
    if session is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return session


def require_roles(*roles: UserRole) -> Callable[..., AuthSession]:
    """
    Dependency factory for role-gated routes, driven by route_guard:
    unauthenticated callers get 401 pointing at the login page, other roles
    get 403 pointing at their own dashboard.
    """

    def guard(session: Optional[AuthSession] = Depends(get_optional_session)) -> AuthSession:
        decision = route_guard(
            roles,
            authenticated=session is not None,
            profile=session.profile if session else None,
        )
        if decision.outcome == GuardOutcome.ALLOW:
            return session
        if decision.outcome == GuardOutcome.LOGIN:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail={"message": "Authentication required", "redirect": decision.location},
                headers={"WWW-Authenticate": "Bearer"},
            )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"message": "Not enough permissions", "redirect": decision.location},
        )

    return guard


ANY_ROLE = (UserRole.ADMIN, UserRole.VOLUNTEER, UserRole.NDRF)

get_admin_session = require_roles(UserRole.ADMIN)
get_staff_session = require_roles(*ANY_ROLE)


def get_session_repository(session: AuthSession = Depends(get_staff_session)) -> ReportRepository:
    return session.repository


def get_public_repository(services: Services = Depends(get_services)) -> ReportRepository:
    """A profile-less repository for civilian submissions."""
    return services.new_repository()
