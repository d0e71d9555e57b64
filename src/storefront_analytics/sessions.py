"""Admin sessions for the reporting endpoint, kept as expiring store keys."""

import json
import logging
import secrets
import string
import time

from . import keys
from .coerce import from_json
from .config import DEFAULT_SESSION_TTL_SECONDS
from .store import KeyValueStore

logger = logging.getLogger(__name__)

_TOKEN_ALPHABET = string.ascii_lowercase + string.digits


class AdminSessions:
    """Creates, checks and revokes admin sessions."""

    def __init__(self, store: KeyValueStore, ttl_seconds: int = DEFAULT_SESSION_TTL_SECONDS):
        self.store = store
        self.ttl_seconds = ttl_seconds

    async def create(self) -> str:
        """Start a new admin session and return its id. Raises StoreError."""
        token = "".join(secrets.choice(_TOKEN_ALPHABET) for _ in range(24))
        session_id = f"session_{int(time.time() * 1000)}_{token}"
        payload = json.dumps({"role": "admin", "createdAt": int(time.time())})
        await self.store.set(keys.admin_session(session_id), payload, ex=self.ttl_seconds)
        return session_id

    async def is_valid(self, session_id: str | None) -> bool:
        """True if `session_id` names a live admin session."""
        if not session_id:
            return False
        try:
            raw = await self.store.get(keys.admin_session(session_id))
        except Exception as e:
            logger.error(f"Error reading admin session: {e}")
            return False

        session = from_json(raw, default={})
        return isinstance(session, dict) and session.get("role") == "admin"

    async def revoke(self, session_id: str | None) -> None:
        if not session_id:
            return
        try:
            await self.store.delete(keys.admin_session(session_id))
        except Exception as e:
            logger.error(f"Error revoking admin session: {e}")
