"""Email OTP login and bearer-token authentication."""

import re
from datetime import UTC, datetime

from fastapi import APIRouter, Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select

from dietify.api.schemas import RefreshTokenRequest, SendOtpRequest, VerifyOtpRequest, utc_iso
from dietify.auth.tokens import (
    InvalidTokenError, create_access_token, create_refresh_token,
    decode_access_token, decode_refresh_token,
)
from dietify.config import ConfigurationError, settings
from dietify.models import User
from dietify.observability.logger import get_logger

log = get_logger("auth")

router = APIRouter(prefix="/api/v1/otp", tags=["auth"])

bearer = HTTPBearer(auto_error=False)

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def get_app_state():
    from dietify.main import app_state

    return app_state


async def get_current_user(credentials: HTTPAuthorizationCredentials | None = Depends(bearer)) -> dict:
    """Dependency: resolve ``Authorization: Bearer <token>`` to the acting user."""
    if credentials is None or not credentials.credentials:
        raise HTTPException(status_code=401, detail="Access token required")
    try:
        payload = decode_access_token(credentials.credentials)
    except InvalidTokenError as e:
        log.warning("auth_rejected", error=str(e))
        raise HTTPException(status_code=401, detail="Invalid or expired token") from None

    async with get_app_state()["session_factory"]() as session:
        user = await session.get(User, payload["userId"])
    if user is None or not user.verified:
        raise HTTPException(status_code=401, detail="User not found or not verified")
    return {"user_id": user.id, "email": user.email}


async def _get_or_create_user(session, email: str) -> tuple[User, bool]:
    result = await session.execute(select(User).where(User.email == email))
    user = result.scalar_one_or_none()
    if user is not None:
        return user, False
    user = User(email=email, verified=False, is_new_user=True, onboarding_completed=False,
                calorie_target=settings.default_calorie_target)
    session.add(user)
    await session.flush()
    log.info("user_created", user_id=user.id, email=email)
    return user, True


def _user_payload(user: User) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "verified": bool(user.verified),
        "isNewUser": bool(user.is_new_user),
        "needsOnboarding": not user.onboarding_completed,
        "onboardingCompleted": bool(user.onboarding_completed),
        "createdAt": utc_iso(user.created_at),
        "lastLoginAt": utc_iso(user.last_login_at),
    }


async def _login(session, user: User) -> dict:
    access_token = create_access_token(user.id, user.email)
    refresh_token, jti = create_refresh_token(user.id, user.email)
    user.verified = True
    user.last_login_at = datetime.now(UTC)
    user.refresh_token_jti = jti
    await session.commit()
    await session.refresh(user)
    return {"accessToken": access_token, "refreshToken": refresh_token, "user": _user_payload(user)}


async def _send_code(req: SendOtpRequest, resend: bool = False) -> dict:
    """Issue a fresh code for the identifier, replacing any pending one, and
    mail it. The code is dropped again if the mail cannot be sent."""
    identifier = req.identifier.strip().lower()
    if req.type != "email" or not EMAIL_RE.match(identifier):
        raise HTTPException(status_code=400, detail="Valid email address is required")

    state = get_app_state()
    otp_cache, mailer = state["otp_cache"], state["mailer"]
    async with state["session_factory"]() as session:
        user, created = await _get_or_create_user(session, identifier)
        is_new_user = created or bool(user.is_new_user)
        user.last_login_at = datetime.now(UTC)
        await session.commit()

    code = otp_cache.issue(identifier)
    try:
        sent = await mailer.send_code(identifier, code, is_new_user=is_new_user)
    except ConfigurationError as e:
        log.error("otp_mailer_unconfigured", error=str(e))
        sent = False
    if not sent:
        otp_cache.discard(identifier)
        verb = "resend" if resend else "send"
        raise HTTPException(status_code=500, detail=f"Failed to {verb} email. Please try again.")

    log.info("otp_sent", identifier=identifier, new_user=is_new_user, resend=resend)
    return {
        "success": True,
        "message": f"OTP {'resent' if resend else 'sent'} successfully to your email",
        "data": {
            "identifier": identifier,
            "type": "email",
            "isNewUser": is_new_user,
            "expiresIn": otp_cache.ttl_seconds,
        },
    }


@router.post("/send")
async def send_otp(req: SendOtpRequest):
    return await _send_code(req)


@router.post("/resend-otp")
async def resend_otp(req: SendOtpRequest):
    return await _send_code(req, resend=True)


@router.post("/verify")
async def verify_otp(req: VerifyOtpRequest):
    identifier = req.identifier.strip().lower()
    state = get_app_state()

    if settings.demo_email and identifier == settings.demo_email and req.otp == settings.demo_otp:
        async with state["session_factory"]() as session:
            user, created = await _get_or_create_user(session, identifier)
            if created:
                user.is_new_user = False
            data = await _login(session, user)
        log.info("demo_user_verified", user_id=data["user"]["id"])
        return {"success": True, "message": "Demo user verified successfully", "data": data}

    if req.type != "email" or not EMAIL_RE.match(identifier) or len(req.otp) != 6:
        raise HTTPException(status_code=400, detail="Valid email and 6-digit OTP are required")

    result = state["otp_cache"].verify(identifier, req.otp)
    if not result.ok:
        log.warning("otp_rejected", identifier=identifier, status=result.status.value)
        raise HTTPException(status_code=400, detail=result.message())

    async with state["session_factory"]() as session:
        user, _ = await _get_or_create_user(session, identifier)
        data = await _login(session, user)
    log.info("user_verified", user_id=data["user"]["id"], new_user=data["user"]["isNewUser"])
    return {"success": True, "message": result.message(), "data": data}


@router.post("/refresh-token")
async def refresh_token(req: RefreshTokenRequest):
    if not req.refresh_token:
        raise HTTPException(status_code=401, detail="Refresh token is required")
    try:
        payload = decode_refresh_token(req.refresh_token)
    except InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid or expired refresh token") from None

    async with get_app_state()["session_factory"]() as session:
        user = await session.get(User, payload["userId"])
        if user is None or not user.refresh_token_jti or user.refresh_token_jti != payload.get("jti"):
            raise HTTPException(status_code=401, detail="Invalid refresh token")
        access_token = create_access_token(user.id, user.email)
        new_refresh_token, jti = create_refresh_token(user.id, user.email)
        user.refresh_token_jti = jti
        await session.commit()

    return {"success": True, "data": {"accessToken": access_token, "refreshToken": new_refresh_token}}


@router.post("/logout")
async def logout(user: dict = Depends(get_current_user)):
    async with get_app_state()["session_factory"]() as session:
        row = await session.get(User, user["user_id"])
        if row is None:
            raise HTTPException(status_code=401, detail="User not found or not verified")
        row.refresh_token_jti = None
        await session.commit()
    log.info("user_logged_out", user_id=user["user_id"])
    return {"success": True, "message": "Logged out successfully"}
