"""
Identity gate for Health Companion.

The browser runs the provider's interactive sign-in and obtains an ID
token; this gate verifies it and publishes the resulting session on a
``Signal``. Components receive the gate (or the session it resolved)
through dependency injection rather than reading a global.
"""

from typing import Callable, Optional, Protocol

from health_companion.core.errors import AuthError
from health_companion.core.signals import Signal, Unsubscribe
from health_companion.models.schemas import UserSession
from health_companion.utils.logger import get_logger

logger = get_logger("identity")


class TokenVerifier(Protocol):
    """Identity provider operations the gate relies on."""

    def verify(self, id_token: str) -> UserSession:
        ...

    def revoke(self, uid: str) -> None:
        ...


class IdentityGate:
    """
    Current-user signal plus sign-in and sign-out.

    Until ``resolve``, ``sign_in`` or ``sign_out`` runs, the signal is
    unresolved and subscribers hear nothing. After that it always holds
    either a ``UserSession`` or an explicit ``None``.
    """

    MAIN_VIEW = "/"
    SIGN_IN_VIEW = "/signin"

    def __init__(self, verifier: TokenVerifier):
        self.verifier = verifier
        self.session: Signal[Optional[UserSession]] = Signal("session")

    @property
    def current_user(self) -> Optional[UserSession]:
        return self.session.value

    @property
    def is_resolved(self) -> bool:
        return self.session.is_resolved

    def subscribe(self, callback: Callable[[Optional[UserSession]], None]) -> Unsubscribe:
        """Listen for session changes; returns the unsubscribe callable."""
        return self.session.subscribe(callback)

    def resolve(self, id_token: Optional[str]) -> Optional[UserSession]:
        """
        Settle the session from request credentials.

        A missing or rejected token resolves to ``None``.
        """
        user = None
        if id_token:
            try:
                user = self.verifier.verify(id_token)
            except AuthError as exc:
                logger.info("Credentials rejected", reason=exc.message)

        self.session.emit(user)
        return user

    def sign_in(self, id_token: str) -> str:
        """
        Start a session from a freshly issued ID token.

        Returns:
            The view to navigate to

        Raises:
            AuthError: The provider rejected the token; the session is None
        """
        try:
            user = self.verifier.verify(id_token)
        except AuthError as exc:
            logger.warning("Sign-in failed", reason=exc.message)
            self.session.emit(None)
            raise

        self.session.emit(user)
        logger.info("User signed in", owner_id=user.id)
        return self.MAIN_VIEW

    def sign_out(self) -> str:
        """
        Revoke the current session.

        Returns:
            The view to navigate to

        Raises:
            AuthError: No session, or the provider refused; the session
                is left unchanged
        """
        user = self.current_user
        if user is None:
            raise AuthError("No active session to sign out")

        try:
            self.verifier.revoke(user.id)
        except AuthError as exc:
            logger.warning("Sign-out failed", owner_id=user.id, reason=exc.message)
            raise

        self.session.emit(None)
        logger.info("User signed out", owner_id=user.id)
        return self.SIGN_IN_VIEW
