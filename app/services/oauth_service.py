"""Per-user Google Drive credential lifecycle.

Each user connects their own Drive through the OAuth consent flow. Only the
refresh token is persisted (encrypted, one ``UserDriveAuth`` row per user);
access tokens are minted on demand for every remote call.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from functools import lru_cache
from typing import Optional

import httpx

from app.config import get_settings
from app.database import SessionLocal, utcnow
from app.errors import ConfigurationError, InvalidInput, NotConnected, UpstreamError
from app.models.integration import DRIVE_FILE_SCOPE, UserDriveAuth
from app.utils.encryption import decrypt, encrypt

logger = logging.getLogger(__name__)

DRIVE_SCOPES = [DRIVE_FILE_SCOPE]
TOKEN_URI = "https://oauth2.googleapis.com/token"
AUTH_URI = "https://accounts.google.com/o/oauth2/auth"
REVOKE_URI = "https://oauth2.googleapis.com/revoke"


@dataclass
class ExchangeResult:
    access_token: str
    expires_at: Optional[datetime]
    refresh_stored: bool


class DriveOAuthService:
    """Owns ``UserDriveAuth`` rows. Opens a short session per operation, so
    one instance can be shared across request handlers and worker threads."""

    def __init__(self, session_factory=SessionLocal, settings=None):
        self._session_factory = session_factory
        self._settings = settings or get_settings()

    # ------------------------------------------------------------------
    # Provider helpers
    # ------------------------------------------------------------------

    def _client_config(self) -> dict:
        s = self._settings
        if not (s.GOOGLE_DRIVE_CLIENT_ID and s.GOOGLE_DRIVE_CLIENT_SECRET and s.GOOGLE_DRIVE_REDIRECT_URI):
            raise ConfigurationError(
                "Google Drive OAuth is not configured "
                "(GOOGLE_DRIVE_CLIENT_ID / SECRET / REDIRECT_URI)"
            )
        return {
            "web": {
                "client_id": s.GOOGLE_DRIVE_CLIENT_ID,
                "client_secret": s.GOOGLE_DRIVE_CLIENT_SECRET,
                "auth_uri": AUTH_URI,
                "token_uri": TOKEN_URI,
                "redirect_uris": [s.GOOGLE_DRIVE_REDIRECT_URI],
            }
        }

    def _build_flow(self):
        """Build a google_auth_oauthlib Flow from client config."""
        from google_auth_oauthlib.flow import Flow

        # The exchange happens on a different Flow instance than the one that
        # built the URL, so a PKCE verifier could never be matched.
        flow = Flow.from_client_config(
            self._client_config(), scopes=DRIVE_SCOPES, autogenerate_code_verifier=False
        )
        flow.redirect_uri = self._settings.GOOGLE_DRIVE_REDIRECT_URI
        return flow

    def _refresh_access_token(self, refresh_token: str) -> str:
        """Mint a fresh access token from *refresh_token*."""
        from google.auth.exceptions import GoogleAuthError
        from google.auth.transport.requests import Request
        from google.oauth2.credentials import Credentials

        config = self._client_config()["web"]
        creds = Credentials(
            token=None,
            refresh_token=refresh_token,
            token_uri=TOKEN_URI,
            client_id=config["client_id"],
            client_secret=config["client_secret"],
            scopes=DRIVE_SCOPES,
        )
        try:
            creds.refresh(Request())
        except GoogleAuthError as exc:
            raise UpstreamError(f"Failed to refresh Drive access token: {exc}") from exc
        if not creds.token:
            raise UpstreamError("Failed to refresh Drive access token")
        return creds.token

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def build_authorization_url(self, state: Optional[str] = None) -> str:
        """Consent URL requesting offline access; consent is forced so a refresh token is issued."""
        flow = self._build_flow()
        kwargs = {"state": state} if state else {}
        url, _ = flow.authorization_url(
            access_type="offline",
            include_granted_scopes="true",
            prompt="consent",
            **kwargs,
        )
        return url

    def exchange_code(self, user_id: str, code: str) -> ExchangeResult:
        """Exchange an authorization code and store the refresh token encrypted."""
        if not code:
            raise InvalidInput("Missing authorization code")
        flow = self._build_flow()
        try:
            flow.fetch_token(code=code)
        except Exception as exc:
            logger.error("Drive OAuth token exchange failed for user %s: %s", user_id, exc)
            raise UpstreamError(f"Token exchange failed: {exc}") from exc
        creds = flow.credentials
        if not creds.token:
            raise UpstreamError("Failed to obtain access token from Google")

        refresh_stored = False
        with self._session_factory() as db:
            row = db.query(UserDriveAuth).filter(UserDriveAuth.user_id == user_id).first()
            if creds.refresh_token:
                if row is None:
                    row = UserDriveAuth(user_id=user_id)
                    db.add(row)
                row.encrypted_refresh_token = encrypt(creds.refresh_token)
                row.scopes = ",".join(creds.scopes or DRIVE_SCOPES)
                row.last_validated_at = utcnow()
                db.commit()
                refresh_stored = True
            elif row is None:
                # Repeat consent can omit the refresh token; nothing to store.
                logger.warning("No refresh token received for user %s", user_id)

        logger.info("Drive OAuth exchange for user %s (refresh stored: %s)", user_id, refresh_stored)
        return ExchangeResult(
            access_token=creds.token,
            expires_at=creds.expiry,
            refresh_stored=refresh_stored,
        )

    def get_access_token(self, user_id: str) -> str:
        """Return a fresh access token for *user_id*'s Drive."""
        with self._session_factory() as db:
            row = db.query(UserDriveAuth).filter(UserDriveAuth.user_id == user_id).first()
            if row is None:
                raise NotConnected("Google Drive not connected")
            refresh_token = decrypt(row.encrypted_refresh_token)

        # Network call happens outside the session.
        token = self._refresh_access_token(refresh_token)

        with self._session_factory() as db:
            row = db.query(UserDriveAuth).filter(UserDriveAuth.user_id == user_id).first()
            if row is not None:
                row.last_validated_at = utcnow()
                db.commit()
        return token

    def is_connected(self, user_id: str) -> bool:
        """True when a credential is stored and can still mint access tokens.

        This performs a live token refresh and stamps ``last_validated_at``,
        so a stored credential that Google has since revoked reads as
        disconnected.
        """
        try:
            self.get_access_token(user_id)
        except (NotConnected, UpstreamError, ConfigurationError) as exc:
            logger.info("Drive not usable for user %s: %s", user_id, exc)
            return False
        return True

    def revoke(self, user_id: str) -> None:
        """Best-effort revocation with Google, then drop the local credential."""
        with self._session_factory() as db:
            row = db.query(UserDriveAuth).filter(UserDriveAuth.user_id == user_id).first()
            if row is None:
                return
            encrypted = row.encrypted_refresh_token

        try:
            refresh_token = decrypt(encrypted)
            resp = httpx.post(
                REVOKE_URI,
                data={"token": refresh_token},
                headers={"Content-Type": "application/x-www-form-urlencoded"},
                timeout=10,
            )
            if not resp.is_success:
                logger.warning(
                    "Token revoke for user %s returned HTTP %d", user_id, resp.status_code
                )
        except Exception as exc:
            logger.warning("Token revoke failed for user %s: %s", user_id, exc)

        with self._session_factory() as db:
            db.query(UserDriveAuth).filter(UserDriveAuth.user_id == user_id).delete()
            db.commit()
        logger.info("Drive credential removed for user %s", user_id)


@lru_cache()
def get_oauth_service() -> DriveOAuthService:
    return DriveOAuthService()
