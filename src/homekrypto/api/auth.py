"""Auth API — registration, sessions, password and email flows.

Learn: Routes for the account lifecycle:
- POST /auth/register → create an unverified account, email a link
- POST /auth/login → email/password → session cookie
- POST /auth/logout, /auth/logout-all → revoke one / every session
- POST /auth/forgot-password, /auth/reset-password → reset by email link
- POST /auth/change-password → logged-in password change
- GET  /auth/verify-email → confirm email, log in, redirect
- POST /auth/resend-verification → fresh verification link
- GET  /auth/me, PUT /auth/profile → current user

The session token only ever travels in the httpOnly cookie; it is
never put in a response body.
"""

from fastapi import APIRouter, Depends, Query, Request, Response
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from homekrypto.auth.dependencies import CurrentUser, get_current_user
from homekrypto.config import settings
from homekrypto.db.engine import get_db
from homekrypto.errors import NotFoundError
from homekrypto.notifications.notifier import EmailNotifier, get_notifier
from homekrypto.schemas.auth import (
    ChangePasswordRequest,
    ForgotPasswordRequest,
    LoginRequest,
    MessageResponse,
    RegisterRequest,
    RegisterResponse,
    ResendVerificationRequest,
    ResetPasswordRequest,
    TokenValidity,
    UpdateProfileRequest,
    UserEnvelope,
    UserRead,
)
from homekrypto.services.auth_service import AuthService, ClientInfo

router = APIRouter(prefix="/auth")


def _svc(
    db: AsyncSession = Depends(get_db),
    notifier: EmailNotifier = Depends(get_notifier),
) -> AuthService:
    return AuthService(db, notifier)


def _client(request: Request) -> ClientInfo:
    return ClientInfo(
        user_agent=request.headers.get("user-agent", ""),
        ip_address=request.client.host if request.client else "",
    )


def _set_session_cookie(response: Response, token: str, max_age: int) -> None:
    response.set_cookie(
        settings.cookie_name,
        token,
        max_age=max_age,
        path="/",
        httponly=True,
        secure=settings.is_production,
        samesite="strict",
    )


def _clear_session_cookie(response: Response) -> None:
    response.delete_cookie(
        settings.cookie_name,
        path="/",
        httponly=True,
        secure=settings.is_production,
        samesite="strict",
    )


# ─── Registration ───────────────────────────────────────

@router.post("/register", response_model=RegisterResponse, status_code=201)
async def register(body: RegisterRequest, svc: AuthService = Depends(_svc)):
    """Create an account. A verification email is queued, not awaited."""
    user = await svc.register(
        email=body.email,
        password=body.password,
        first_name=body.first_name,
        last_name=body.last_name,
        referral_code=body.referral_code,
    )
    return {
        "message": "Registration successful. Please check your email to verify your account.",
        "user": user,
    }


# ─── Sessions ───────────────────────────────────────────

@router.post("/login", response_model=UserEnvelope)
async def login(
    body: LoginRequest,
    request: Request,
    response: Response,
    svc: AuthService = Depends(_svc),
):
    user, issued = await svc.login(
        email=body.email,
        password=body.password,
        remember_me=body.remember_me,
        client=_client(request),
    )
    _set_session_cookie(response, issued.token, issued.max_age)
    return {"message": "Login successful", "user": user}


@router.post("/logout", response_model=MessageResponse)
async def logout(
    request: Request,
    response: Response,
    svc: AuthService = Depends(_svc),
):
    """Works without a valid session; the cookie is cleared either way."""
    await svc.logout(request.cookies.get(settings.cookie_name))
    _clear_session_cookie(response)
    return {"message": "Logged out successfully"}


@router.post("/logout-all", response_model=MessageResponse)
async def logout_all(
    response: Response,
    user: CurrentUser = Depends(get_current_user),
    svc: AuthService = Depends(_svc),
):
    await svc.logout_all(user.id)
    _clear_session_cookie(response)
    return {"message": "Logged out from all devices"}


# ─── Password reset / change ────────────────────────────

@router.post("/forgot-password", response_model=MessageResponse)
async def forgot_password(
    body: ForgotPasswordRequest, svc: AuthService = Depends(_svc)
):
    return {"message": await svc.forgot_password(body.email)}


@router.get("/reset-password/validate", response_model=TokenValidity)
async def validate_reset_token(
    token: str = Query(""), svc: AuthService = Depends(_svc)
):
    """Lets the reset form check a link before asking for a password."""
    return {"valid": await svc.validate_reset_token(token)}


@router.post("/reset-password", response_model=MessageResponse)
async def reset_password(
    body: ResetPasswordRequest,
    request: Request,
    svc: AuthService = Depends(_svc),
):
    await svc.reset_password(body.token, body.password, client=_client(request))
    return {"message": "Password reset successful"}


@router.post("/change-password", response_model=MessageResponse)
async def change_password(
    body: ChangePasswordRequest,
    request: Request,
    user: CurrentUser = Depends(get_current_user),
    svc: AuthService = Depends(_svc),
):
    await svc.change_password(
        user.id,
        body.current_password,
        body.new_password,
        client=_client(request),
    )
    return {"message": "Password changed successfully"}


# ─── Email verification ─────────────────────────────────

@router.get("/verify-email")
async def verify_email(
    request: Request,
    token: str = Query(""),
    svc: AuthService = Depends(_svc),
):
    """Verify, open a session and send the browser to the dashboard."""
    _, issued = await svc.verify_email(token, client=_client(request))
    redirect = RedirectResponse(url="/dashboard", status_code=303)
    _set_session_cookie(redirect, issued.token, issued.max_age)
    return redirect


@router.post("/resend-verification")
async def resend_verification(
    body: ResendVerificationRequest, svc: AuthService = Depends(_svc)
):
    user = await svc.resend_verification(body.email)
    return {"message": "Verification email sent successfully", "email": user.email}


# ─── Current user ───────────────────────────────────────

@router.get("/me", response_model=UserRead)
async def me(
    user: CurrentUser = Depends(get_current_user),
    svc: AuthService = Depends(_svc),
):
    record = await svc.get_user(user.id)
    if record is None:
        raise NotFoundError("User not found")
    return record


@router.put("/profile", response_model=UserEnvelope)
async def update_profile(
    body: UpdateProfileRequest,
    user: CurrentUser = Depends(get_current_user),
    svc: AuthService = Depends(_svc),
):
    record = await svc.update_profile(
        user.id,
        first_name=body.first_name,
        last_name=body.last_name,
        username=body.username,
    )
    return {"message": "Profile updated successfully", "user": record}
