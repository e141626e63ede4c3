from typing import Any
from fastapi import APIRouter, Depends, status
from fastapi.security import OAuth2PasswordRequestForm

from app.api.deps import get_current_session, get_services
from app.core import security
from app.core.authorization import landing_for
from app.schemas.user import MeResponse, RegisterRequest, Token
from app.services.container import Services
from app.services.session_service import AuthSession

router = APIRouter()


async def _start_session(services: Services, profile) -> Token:
    session = await services.sessions.sign_in(profile)
    access_token = security.create_access_token(
        profile.id, session.session_id, expires_delta=services.sessions.ttl
    )
    return Token(access_token=access_token, token_type="bearer", landing=landing_for(profile))


@router.post("/register", response_model=Token, status_code=status.HTTP_201_CREATED)
async def register(
    request: RegisterRequest,
    services: Services = Depends(get_services),
) -> Any:
    """
    Create an account with its profile and sign it in.
    """
    profile = await services.identity.register(request.email, request.password, request.name, request.role)
    return await _start_session(services, profile)


@router.post("/login", response_model=Token)
async def login_access_token(
    form_data: OAuth2PasswordRequestForm = Depends(),
    services: Services = Depends(get_services),
) -> Any:
    """
    OAuth2 compatible token login, get an access token for future requests.
    """
    profile = await services.identity.authenticate(form_data.username, form_data.password)
    return await _start_session(services, profile)


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(
    session: AuthSession = Depends(get_current_session),
    services: Services = Depends(get_services),
) -> None:
    services.sessions.sign_out(session.session_id)


@router.get("/me", response_model=MeResponse)
async def read_me(session: AuthSession = Depends(get_current_session)) -> Any:
    return MeResponse(profile=session.profile, landing=landing_for(session.profile))
