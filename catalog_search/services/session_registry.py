"""
Anonymous Session Registry

Tracks anonymous client sessions in process memory. Sessions are lost on
restart, which is acceptable: anonymous history is ephemeral by nature.

All access to the session table goes through one lock owned by the
registry. Request handlers refresh sessions and the lifecycle
coordinator removes them; nothing else touches the table.
"""

import logging
import threading
import uuid
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone

logger = logging.getLogger(__name__)

SESSION_TIMEOUT = timedelta(hours=12)
ANONYMOUS_PREFIX = "anonymous_"
SESSION_ID_PREFIX = "session_"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Session:
    session_id: str
    created_at: datetime
    last_activity: datetime
    refresh_count: int = 0


@dataclass(frozen=True)
class SessionResolution:
    session_id: str
    is_new: bool


def anonymous_owner_id(session_id: str) -> str:
    """Derive the owner id used to scope an anonymous session's records."""
    return f"{ANONYMOUS_PREFIX}{session_id}"


def is_anonymous_owner(owner_id: str | None) -> bool:
    return bool(owner_id) and owner_id.startswith(ANONYMOUS_PREFIX)


def session_id_from_owner(owner_id: str | None) -> str | None:
    """Inverse of :func:`anonymous_owner_id`; ``None`` for authenticated owners."""
    if not is_anonymous_owner(owner_id):
        return None
    return owner_id[len(ANONYMOUS_PREFIX):]


def mask_session_id(session_id: str) -> str:
    """Shorten a session id for log output; the full id scopes the session's records."""
    if not session_id.startswith(SESSION_ID_PREFIX):
        return f"{session_id[:8]}..."
    return f"{SESSION_ID_PREFIX}{session_id[len(SESSION_ID_PREFIX):][:8]}..."


def mask_owner_id(owner_id: str | None) -> str | None:
    """Mask anonymous owner ids for logs. Authenticated user ids pass through."""
    session_id = session_id_from_owner(owner_id)
    if session_id is None:
        return owner_id
    return f"{ANONYMOUS_PREFIX}{mask_session_id(session_id)}"


class SessionRegistry:
    """
    Mutex-guarded table of anonymous sessions.

    Features:
    - Session resolution (refresh an active id or mint a new one)
    - Activity checks against the fixed 12 hour inactivity timeout
    - Expired-session collection for the lifecycle sweep
    - Idempotent removal
    """

    def __init__(self, clock: Callable[[], datetime] = utcnow, timeout: timedelta = SESSION_TIMEOUT):
        self._clock = clock
        self._timeout = timeout
        self._sessions: dict[str, Session] = {}
        self._lock = threading.Lock()

    @property
    def timeout(self) -> timedelta:
        return self._timeout

    def _is_expired(self, session: Session, now: datetime) -> bool:
        return now - session.last_activity >= self._timeout

    def _new_session_id(self) -> str:
        # uuid4 draws from os.urandom; the loop only guards the table invariant
        while True:
            session_id = f"{SESSION_ID_PREFIX}{uuid.uuid4()}"
            if session_id not in self._sessions:
                return session_id

    def resolve(self, candidate_id: str | None = None) -> SessionResolution:
        """
        Refresh the candidate session if it is still active, otherwise register
        a fresh one.

        Args:
            candidate_id: Session id presented by the client, if any

        Returns:
            SessionResolution with the id to use and whether it was just created
        """
        with self._lock:
            now = self._clock()
            if candidate_id:
                session = self._sessions.get(candidate_id)
                if session is not None and not self._is_expired(session, now):
                    self._sessions[candidate_id] = replace(
                        session, last_activity=now, refresh_count=session.refresh_count + 1
                    )
                    return SessionResolution(session_id=candidate_id, is_new=False)

            session_id = self._new_session_id()
            self._sessions[session_id] = Session(session_id=session_id, created_at=now, last_activity=now)

        logger.info(f"Created anonymous session {mask_session_id(session_id)}")
        return SessionResolution(session_id=session_id, is_new=True)

    def is_active(self, session_id: str) -> bool:
        with self._lock:
            session = self._sessions.get(session_id)
            return session is not None and not self._is_expired(session, self._clock())

    def get(self, session_id: str) -> Session | None:
        """Return the session if it is still active."""
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None or self._is_expired(session, self._clock()):
                return None
            return session

    def contains(self, session_id: str) -> bool:
        """True if the session is registered, whether or not it has expired."""
        with self._lock:
            return session_id in self._sessions

    def collect_expired(self) -> list[str]:
        """Snapshot the ids of every registered session past the timeout."""
        with self._lock:
            now = self._clock()
            return [sid for sid, session in self._sessions.items() if self._is_expired(session, now)]

    def is_expired(self, session_id: str) -> bool:
        """True if the session is registered and past the timeout."""
        with self._lock:
            session = self._sessions.get(session_id)
            return session is not None and self._is_expired(session, self._clock())

    def remove(self, session_id: str) -> bool:
        """Delete a session entry. Removing an unknown id is a no-op."""
        with self._lock:
            removed = self._sessions.pop(session_id, None) is not None
        if removed:
            logger.debug(f"Removed anonymous session {mask_session_id(session_id)}")
        return removed

    def peek(self, session_id: str) -> Session | None:
        """Return the registered session, expired or not."""
        with self._lock:
            return self._sessions.get(session_id)

    def remove_if_expired(self, session_id: str) -> bool:
        """Remove the session only if it is still past the timeout."""
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None or not self._is_expired(session, self._clock()):
                return False
            del self._sessions[session_id]
        logger.debug(f"Removed expired session {mask_session_id(session_id)}")
        return True

    def remove_if_unchanged(self, session_id: str, seen: Session | None) -> bool:
        """
        Remove the session only if it has not been refreshed since ``seen``
        was taken with :meth:`peek`.
        """
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None or session != seen:
                return False
            del self._sessions[session_id]
        logger.debug(f"Removed anonymous session {mask_session_id(session_id)}")
        return True

    def stats(self) -> dict[str, int]:
        with self._lock:
            now = self._clock()
            active = sum(1 for s in self._sessions.values() if not self._is_expired(s, now))
            return {"active": active, "registered": len(self._sessions)}
