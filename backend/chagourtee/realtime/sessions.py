"""Session resolution for realtime admission.

Maps the session cookie carried by a WebSocket handshake (or an HTTP
request) to a user id. Missing, malformed, unknown and expired sessions
are all treated the same: unauthenticated.
"""
import logging
from datetime import datetime
from typing import Optional

from starlette.requests import cookie_parser

from chagourtee.storage.schemas import User
from chagourtee.storage.service import ChatStore

logger = logging.getLogger(__name__)

DEFAULT_COOKIE_NAME = "chagourtee_sid"


class SessionResolver:
    """Resolves session cookies against the chat store."""

    def __init__(self, store: ChatStore, cookie_name: str = DEFAULT_COOKIE_NAME) -> None:
        self.store = store
        self.cookie_name = cookie_name

    def resolve(self, cookie_header: Optional[str]) -> Optional[int]:
        """Return the user id for a raw ``Cookie`` header, or None."""
        if not cookie_header:
            return None
        session_id = cookie_parser(cookie_header).get(self.cookie_name)
        return self.resolve_session_id(session_id)

    def resolve_session_id(self, session_id: Optional[str]) -> Optional[int]:
        """Return the user id owning ``session_id`` if it is still valid."""
        if not session_id or not session_id.strip():
            return None
        session = self.store.get_session(session_id.strip())
        if session is None:
            return None
        if session.is_expired(datetime.utcnow()):
            logger.debug("[Sessions] Session for user %s expired at %s", session.user_id, session.expires_at)
            return None
        return session.user_id

    def describe(self, user_id: int) -> Optional[User]:
        """Look up login and role for presence and typing labels."""
        return self.store.get_user(user_id)
