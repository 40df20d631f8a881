"""
Auth endpoints — sign-up, sign-in (OAuth2 password flow), refresh, sign-out, session.
"""

from __future__ import annotations

from fastapi import APIRouter, Cookie, Depends, HTTPException, Request, Response, status
from fastapi.security import OAuth2PasswordRequestForm
from slowapi import Limiter
from slowapi.util import get_remote_address

from app.api.v1.deps import get_current_profile, get_identity
from app.core.config import settings
from app.core.exceptions import AuthenticationError
from app.core.security import create_access_token, create_refresh_token, decode_refresh_token
from app.models.profile import Profile
from app.schemas.common import MessageResponse
from app.schemas.token import RefreshRequest, Token
from app.schemas.user import ProfileRead, SessionRead, SignUpRequest
from app.services.identity import IdentityService

# Rate limiter keyed by client IP
limiter = Limiter(key_func=get_remote_address)

router = APIRouter(prefix="/auth", tags=["auth"])


def _issue_tokens(response: Response, principal_id: str) -> Token:
    """Create a token pair and mirror it into HttpOnly cookies."""
    access_token = create_access_token(principal_id)
    refresh_token = create_refresh_token(principal_id)

    response.set_cookie(
        key="access_token",
        value=f"Bearer {access_token}",
        httponly=True,
        secure=settings.COOKIE_SECURE,
        samesite="lax",
        max_age=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    )
    response.set_cookie(
        key="refresh_token",
        value=refresh_token,
        httponly=True,
        secure=settings.COOKIE_SECURE,
        samesite="lax",
        max_age=settings.REFRESH_TOKEN_EXPIRE_DAYS * 24 * 60 * 60,
    )
    return Token(access_token=access_token, refresh_token=refresh_token)


@router.post("/sign-up", response_model=ProfileRead, status_code=201)
@limiter.limit("5/minute")
async def sign_up(
    request: Request,
    response: Response,
    body: SignUpRequest,
    identity: IdentityService = Depends(get_identity),
) -> Profile:
    """Register a new account. New users always start as ``member``."""
    profile = await identity.sign_up(body.email, body.password, body.full_name)
    _issue_tokens(response, profile.id)
    return profile


@router.post("/sign-in", response_model=Token)
@limiter.limit("5/minute")
async def sign_in(
    request: Request,
    response: Response,
    form_data: OAuth2PasswordRequestForm = Depends(),
    identity: IdentityService = Depends(get_identity),
) -> Token:
    """Authenticate with email/password. Tokens are returned and set as cookies."""
    try:
        account = await identity.sign_in(form_data.username, form_data.password)
    except AuthenticationError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=exc.detail,
            headers={"WWW-Authenticate": "Bearer"},
        ) from None
    # First sign-in after an out-of-band account creation still gets a profile
    await identity.ensure_profile(account.id, account.email)
    return _issue_tokens(response, account.id)


@router.post("/refresh", response_model=Token)
@limiter.limit("10/minute")
async def refresh(
    request: Request,
    response: Response,
    body: RefreshRequest | None = None,
    refresh_token_cookie: str | None = Cookie(None, alias="refresh_token"),
    identity: IdentityService = Depends(get_identity),
) -> Token:
    # Priority: Body > Cookie
    token_str = body.refresh_token if body and body.refresh_token else refresh_token_cookie
    if not token_str:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Refresh token missing",
        )

    payload = decode_refresh_token(token_str)
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired refresh token",
        )

    account = await identity.active_account(payload.get("sub", ""))
    return _issue_tokens(response, account.id)


@router.post("/sign-out", response_model=MessageResponse)
async def sign_out(response: Response) -> MessageResponse:
    """Clear auth cookies and end the session."""
    response.delete_cookie("access_token")
    response.delete_cookie("refresh_token")
    return MessageResponse(message="Signed out")


@router.get("/session", response_model=SessionRead)
async def current_session(
    current: Profile = Depends(get_current_profile),
) -> SessionRead:
    """Return the signed-in principal and their freshly read profile."""
    return SessionRead(
        user_id=current.id,
        email=current.email or "",
        profile=ProfileRead.model_validate(current),
    )
