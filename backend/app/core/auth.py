import hmac
from uuid import UUID

import jwt
from fastapi import Header, HTTPException

from app.core.config import settings


def decode_access_token(token: str) -> UUID:
    """Validate an access token issued by the auth provider and return the user id."""
    payload = jwt.decode(
        token,
        settings.AUTH_JWT_SECRET,
        algorithms=["HS256"],
        audience=settings.AUTH_JWT_AUDIENCE,
    )
    return UUID(payload["sub"])


def get_current_user_id(authorization: str | None = Header(None)) -> UUID:
    """Extract the authenticated user id from the ``Authorization`` header."""
    if not authorization:
        raise HTTPException(status_code=401, detail="Unauthorized")

    if not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Invalid authorization header format")

    token = authorization[7:]
    if not token:
        raise HTTPException(status_code=401, detail="Access token is required")

    try:
        return decode_access_token(token)
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Access token has expired") from None
    except (jwt.InvalidTokenError, KeyError, ValueError):
        raise HTTPException(status_code=401, detail="Invalid access token") from None


def verify_cron_secret(x_cron_secret: str | None = Header(None)) -> None:
    """Guard for maintenance endpoints triggered by an external scheduler."""
    if not settings.CRON_SECRET or not x_cron_secret:
        raise HTTPException(status_code=401, detail="Unauthorized")
    if not hmac.compare_digest(settings.CRON_SECRET, x_cron_secret):
        raise HTTPException(status_code=401, detail="Unauthorized")
