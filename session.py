import logging
from typing import Optional, Tuple

from exceptions import DecryptionError, InvalidSession, NoActiveToken, TokenInvalid
from models import AuthenticatedUser, AuthSession, utcnow_iso
from store import EncryptedNamespace
from tokens import TokenService
from utils import Validator

logger = logging.getLogger(__name__)


class SessionManager:
    """
    Binds each issued token to a server-side record under token:<session_id>.

    A session is usable only while the record exists AND its stored token
    verifies. Every successful validate/refresh rewrites the record with a
    fresh TTL (sliding expiration); the token's own expiry is never extended,
    only replaced on refresh.
    """

    def __init__(self, sessions: EncryptedNamespace, tokens: TokenService,
                 session_id_bytes: int = 32):
        self.sessions = sessions
        self.tokens = tokens
        self.session_id_bytes = session_id_bytes

    def start_session(self, user: AuthenticatedUser) -> Tuple[str, str]:
        """
        Creates a new session for an authenticated user.
        Returns (session_id, token)
        """
        session_id = Validator.generate_token(self.session_id_bytes)
        token = self.tokens.issue(user.username, session_id, user.role)

        session = AuthSession(
            session_id=session_id,
            username=user.username,
            user=user,
            token=token,
        )
        self.sessions.save(session_id, session.to_dict())

        logger.info(f"Session started for {user.username}")
        return session_id, token

    def get_session(self, session_id: str) -> Optional[AuthSession]:
        """Raw lookup. Unreadable records count as absent."""
        if not session_id:
            return None
        try:
            data = self.sessions.load(session_id)
        except DecryptionError:
            logger.error("Session record could not be decrypted, dropping it")
            self.sessions.delete(session_id)
            return None
        return AuthSession.from_dict(data) if data else None

    def session_id_from_token(self, token: str) -> Optional[str]:
        claims = self.tokens.decode_unverified(token)
        return claims.sid if claims else None

    def validate(self, token: str) -> Optional[AuthenticatedUser]:
        """
        Validates a presented token against its session record.

        1. Untrusted decode to find the session id
        2. Load the record (absent -> None)
        3. Presented token must be the session's current token
        4. Verify the STORED token; failure deletes the record
        5. Touch last_activity and restart the TTL, unless a refresh replaced
           the token in the meantime (never write a superseded token back)
        """
        session = self._current_session(token)
        if session is None:
            return None

        latest = self.get_session(session.session_id)
        if latest is None or not Validator.tokens_match(session.token, latest.token):
            return session.user

        latest.last_activity = utcnow_iso()
        self.sessions.save(latest.session_id, latest.to_dict())
        return latest.user

    def refresh(self, current_token: str) -> str:
        """
        Mint a replacement token for the same subject, session and role.
        The old token stops being honored as soon as the record is rewritten.
        """
        if not current_token:
            raise NoActiveToken()

        session = self._current_session(current_token)
        if session is None:
            raise InvalidSession()

        new_token = self.tokens.issue(session.username, session.session_id, session.user.role)
        session.token = new_token
        session.last_activity = utcnow_iso()
        self.sessions.save(session.session_id, session.to_dict())

        logger.info(f"Token refreshed for {session.username}")
        return new_token

    def end_session(self, session_id: str) -> None:
        """Idempotent delete"""
        if session_id and self.sessions.delete(session_id):
            logger.info("Session ended")

    def _current_session(self, token: str) -> Optional[AuthSession]:
        if not token:
            return None

        session_id = self.session_id_from_token(token)
        if not session_id:
            return None

        session = self.get_session(session_id)
        if session is None:
            return None

        if not Validator.tokens_match(token, session.token):
            # Superseded token - leave the session alone
            logger.info(f"Stale token presented for session of {session.username}")
            return None

        try:
            self.tokens.verify(session.token)
        except TokenInvalid:
            logger.info(f"Stored token for {session.username} no longer verifies, removing session")
            self.sessions.delete(session_id)
            return None

        return session
