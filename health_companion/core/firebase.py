"""
Firebase Admin integration.

Initialises the Firebase Admin app once per process and wraps the
identity-provider calls the Identity Gate needs: ID-token verification
and refresh-token revocation.
"""

import threading
from typing import Optional

import firebase_admin
from firebase_admin import auth, credentials
from firebase_admin import exceptions as firebase_exceptions

from health_companion.config import settings
from health_companion.core.errors import AuthError
from health_companion.models.schemas import UserSession
from health_companion.utils.logger import get_logger

logger = get_logger("firebase")

_init_lock = threading.Lock()

# Tolerated difference between the provider's clock and ours
CLOCK_SKEW_SECONDS = 60


def get_firebase_app() -> firebase_admin.App:
    """
    Get or initialise the default Firebase Admin app.

    Uses the service-account file from ``firebase_credentials_path`` when
    set, application default credentials otherwise.
    """
    with _init_lock:
        try:
            return firebase_admin.get_app()
        except ValueError:
            pass

        if settings.firebase_credentials_path:
            cred = credentials.Certificate(settings.firebase_credentials_path)
            source = "service_account"
        else:
            cred = credentials.ApplicationDefault()
            source = "application_default"

        options = None
        if settings.firebase_project_id:
            options = {"projectId": settings.firebase_project_id}

        app = firebase_admin.initialize_app(cred, options)
        logger.info("Firebase initialized", credentials=source)
        return app


class FirebaseTokenVerifier:
    """Verifies Firebase ID tokens and revokes sessions."""

    def __init__(self, app: Optional[firebase_admin.App] = None):
        self._app = app or get_firebase_app()

    def verify(self, id_token: str) -> UserSession:
        """
        Turn an ID token into a session.

        Raises:
            AuthError: Token malformed, expired, revoked or unverifiable
        """
        try:
            claims = auth.verify_id_token(
                id_token,
                app=self._app,
                check_revoked=True,
                clock_skew_seconds=CLOCK_SKEW_SECONDS,
            )
        except (ValueError, firebase_exceptions.FirebaseError) as exc:
            raise AuthError(str(exc)) from exc

        return UserSession(
            id=claims["uid"],
            display_name=claims.get("name"),
            email=claims.get("email"),
        )

    def revoke(self, uid: str) -> None:
        """
        Revoke every refresh token of a user.

        Raises:
            AuthError: The provider rejected the revocation
        """
        try:
            auth.revoke_refresh_tokens(uid, app=self._app)
        except (ValueError, firebase_exceptions.FirebaseError) as exc:
            raise AuthError(str(exc)) from exc
