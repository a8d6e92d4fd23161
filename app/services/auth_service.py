"""Authentication utilities: session tokens and the current-user dependency.

Sessions are issued by the identity provider in front of this service as
HS256 JWTs whose ``sub`` is the user id. They arrive either in the session
cookie or as a bearer token.
"""
import logging
from datetime import datetime, timedelta, timezone

import jwt
from fastapi import HTTPException, Request

from app.config import get_settings

logger = logging.getLogger(__name__)

_ALGORITHM = "HS256"
_TOKEN_EXPIRE_DAYS = 30


# ---------------------------------------------------------------------------
# JWT session tokens
# ---------------------------------------------------------------------------

def create_session_token(user_id: str) -> str:
    """Encode a signed JWT containing the user's id."""
    settings = get_settings()
    exp = datetime.now(tz=timezone.utc) + timedelta(days=_TOKEN_EXPIRE_DAYS)
    payload = {"sub": str(user_id), "exp": exp}
    return jwt.encode(payload, settings.APP_SECRET_KEY, algorithm=_ALGORITHM)


def decode_session_token(token: str) -> str:
    """Decode a JWT and return the user id.  Raises jwt.PyJWTError on failure."""
    settings = get_settings()
    payload = jwt.decode(token, settings.APP_SECRET_KEY, algorithms=[_ALGORITHM])
    sub = payload.get("sub")
    if not sub:
        raise jwt.InvalidTokenError("Token has no subject")
    return str(sub)


# ---------------------------------------------------------------------------
# FastAPI dependency
# ---------------------------------------------------------------------------

def _extract_token(request: Request):
    settings = get_settings()
    token = request.cookies.get(settings.SESSION_COOKIE_NAME)
    if token:
        return token
    header = request.headers.get("Authorization", "")
    scheme, _, value = header.partition(" ")
    if scheme.lower() == "bearer" and value:
        return value.strip()
    return None


def get_current_user_id(request: Request) -> str:
    """Return the authenticated user id, or raise 401."""
    token = _extract_token(request)
    if not token:
        raise HTTPException(status_code=401, detail="Not authenticated")
    try:
        return decode_session_token(token)
    except jwt.PyJWTError as exc:
        logger.info("Rejected session token: %s", exc)
        raise HTTPException(status_code=401, detail="Invalid or expired session")
