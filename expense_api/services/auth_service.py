"""
Identity-provider token handling.

Users sign in with the external identity provider, which issues HS256 JWTs
signed with a secret shared with this service. Tokens are only verified
here; create_access_token exists for local tooling and tests.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import jwt, JWTError
import structlog

from expense_api.config import settings

logger = structlog.get_logger()


def _secret() -> str:
    if not settings.AUTH_JWT_SECRET:
        raise JWTError("AUTH_JWT_SECRET is not configured")
    return settings.AUTH_JWT_SECRET


# ---------- token generation ----------

def create_access_token(
    user_id: str,
    email: str,
    display_name: Optional[str] = None,
    expires_minutes: Optional[int] = None,
) -> str:
    now = datetime.now(timezone.utc)
    minutes = expires_minutes or settings.ACCESS_TOKEN_EXPIRE_MINUTES
    claims = {
        "sub": str(user_id),
        "email": email,
        "iat": now,
        "exp": now + timedelta(minutes=minutes),
        "role": "authenticated",
    }
    if settings.AUTH_JWT_AUDIENCE:
        claims["aud"] = settings.AUTH_JWT_AUDIENCE
    if display_name:
        claims["user_metadata"] = {"full_name": display_name}
    return jwt.encode(claims, _secret(), algorithm=settings.AUTH_JWT_ALGORITHM)


# ---------- token verification ----------

def verify_access_token(token: str) -> dict:
    """Decode and verify a provider JWT. Raises JWTError on failure."""
    options = {"verify_aud": bool(settings.AUTH_JWT_AUDIENCE)}
    payload = jwt.decode(
        token,
        _secret(),
        algorithms=[settings.AUTH_JWT_ALGORITHM],
        audience=settings.AUTH_JWT_AUDIENCE,
        options=options,
    )
    if not payload.get("sub"):
        raise JWTError("Token has no subject")
    return payload


def display_name_from_claims(payload: dict) -> Optional[str]:
    metadata = payload.get("user_metadata") or {}
    return metadata.get("full_name") or metadata.get("name") or payload.get("email")
