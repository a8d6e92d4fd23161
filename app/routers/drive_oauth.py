"""Per-user Google Drive connection: consent URL, code exchange, revoke, status."""
import base64
import hashlib
import hmac
import json
import logging
import secrets

from fastapi import APIRouter, Depends, HTTPException

from app.config import get_settings
from app.schemas.oauth import (
    AuthorizeResponse,
    ExchangeRequest,
    ExchangeResponse,
    RevokeResponse,
    StatusResponse,
)
from app.services.auth_service import get_current_user_id
from app.services.oauth_service import DriveOAuthService, get_oauth_service

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------------------------------------------------------------------------
# State helpers (HMAC-signed, bound to the user who started the flow)
# ---------------------------------------------------------------------------

def _sign(payload: str) -> str:
    settings = get_settings()
    return hmac.new(settings.APP_SECRET_KEY.encode(), payload.encode(), hashlib.sha256).hexdigest()


def _make_state(user_id: str) -> str:
    payload = json.dumps({"user_id": user_id, "nonce": secrets.token_hex(16)})
    state_data = json.dumps({"payload": payload, "sig": _sign(payload)})
    return base64.urlsafe_b64encode(state_data.encode()).decode().rstrip("=")


def _verify_state(state: str, user_id: str) -> None:
    """Raise 400 unless *state* was issued by us to *user_id*."""
    try:
        padded = state + "=" * (-len(state) % 4)
        state_data = json.loads(base64.urlsafe_b64decode(padded).decode())
        payload: str = state_data["payload"]
        if not hmac.compare_digest(state_data["sig"], _sign(payload)):
            raise ValueError("Signature mismatch")
        if json.loads(payload)["user_id"] != user_id:
            raise ValueError("State issued to another user")
    except (KeyError, TypeError, ValueError) as exc:
        logger.warning("Rejected OAuth state for user %s: %s", user_id, exc)
        raise HTTPException(status_code=400, detail="Invalid or tampered OAuth state")


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.get("/authorize", response_model=AuthorizeResponse)
def authorize(
    oauth: DriveOAuthService = Depends(get_oauth_service),
    user_id: str = Depends(get_current_user_id),
):
    """Consent URL for connecting the current user's Drive."""
    return AuthorizeResponse(url=oauth.build_authorization_url(state=_make_state(user_id)))


@router.post("/exchange", response_model=ExchangeResponse)
def exchange(
    body: ExchangeRequest,
    oauth: DriveOAuthService = Depends(get_oauth_service),
    user_id: str = Depends(get_current_user_id),
):
    """Complete the consent flow with the authorization code Google returned."""
    if body.state:
        _verify_state(body.state, user_id)
    result = oauth.exchange_code(user_id, body.code)
    return ExchangeResponse(
        access_token=result.access_token,
        expires_at=result.expires_at,
        refresh_stored=result.refresh_stored,
    )


@router.delete("/revoke", response_model=RevokeResponse)
def revoke(
    oauth: DriveOAuthService = Depends(get_oauth_service),
    user_id: str = Depends(get_current_user_id),
):
    oauth.revoke(user_id)
    return RevokeResponse(success=True)


@router.get("/status", response_model=StatusResponse)
def status(
    oauth: DriveOAuthService = Depends(get_oauth_service),
    user_id: str = Depends(get_current_user_id),
):
    """Whether the current user's Drive credential still works.

    Each call refreshes the access token with Google (one network round trip)
    and records the validation time, so clients should not poll it.
    """
    return StatusResponse(connected=oauth.is_connected(user_id))
