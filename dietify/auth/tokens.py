import uuid
from datetime import UTC, datetime, timedelta

import jwt

from dietify.config import settings

JWT_ALGORITHM = "HS256"


class InvalidTokenError(Exception):
    pass


def _encode(user_id: str, email: str, token_type: str, secret: str, lifetime: timedelta, jti: str | None = None) -> str:
    now = datetime.now(UTC)
    payload = {
        "userId": user_id,
        "email": email,
        "type": token_type,
        "iat": now,
        "exp": now + lifetime,
    }
    if jti:
        payload["jti"] = jti
    return jwt.encode(payload, secret, algorithm=JWT_ALGORITHM)


def create_access_token(user_id: str, email: str) -> str:
    return _encode(user_id, email, "access", settings.jwt_access_secret,
                   timedelta(minutes=settings.access_token_expire_minutes))


def create_refresh_token(user_id: str, email: str) -> tuple[str, str]:
    """Returns (token, jti). Only the jti is persisted on the user row, so a
    refresh token stops working once a newer one is issued."""
    jti = uuid.uuid4().hex
    token = _encode(user_id, email, "refresh", settings.jwt_refresh_secret,
                    timedelta(days=settings.refresh_token_expire_days), jti=jti)
    return token, jti


def _decode(token: str, secret: str, token_type: str) -> dict:
    try:
        payload = jwt.decode(token, secret, algorithms=[JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise InvalidTokenError(f"{token_type.capitalize()} token expired") from None
    except jwt.InvalidTokenError:
        raise InvalidTokenError(f"Invalid {token_type} token") from None
    if payload.get("type") != token_type or not payload.get("userId"):
        raise InvalidTokenError(f"Invalid {token_type} token")
    return payload


def decode_access_token(token: str) -> dict:
    return _decode(token, settings.jwt_access_secret, "access")


def decode_refresh_token(token: str) -> dict:
    return _decode(token, settings.jwt_refresh_secret, "refresh")
