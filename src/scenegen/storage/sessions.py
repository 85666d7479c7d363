"""Session persistence under a fixed byte quota."""

import json
import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from pydantic import ValidationError

from ..errors import QuotaExceededError, StorageError, StorageFullError
from ..models import Session
from .backends import KeyValueStorage, SESSIONS_KEY

logger = logging.getLogger(__name__)

# Raises QuotaExceededError when the payload does not fit. Must not touch the
# committed value.
CapacityProbe = Callable[[str], None]

# Returns the candidate with at least one session removed.
EvictionPolicy = Callable[[List[Session]], List[Session]]


def evict_oldest(candidate: List[Session]) -> List[Session]:
    """Drop the oldest session (FIFO by creation order)."""
    return candidate[1:]


def serialize_sessions(sessions: List[Session]) -> str:
    return json.dumps(
        [session.model_dump(mode="json") for session in sessions],
        separators=(",", ":"),
    )


def parse_sessions(raw: str) -> List[Session]:
    data = json.loads(raw)
    if not isinstance(data, list):
        raise ValueError("Stored sessions value is not a list")
    return [Session.model_validate(item) for item in data]


@dataclass
class AppendResult:
    """Acknowledgement of a committed append."""

    sessions: List[Session]
    evicted: List[Session] = field(default_factory=list)


class BoundedSessionStore:
    """Ordered session collection that always fits its storage quota.

    ``append`` first proves that the new collection fits with a dry-run write
    in place of the committed value, and only then replaces it. When the probe
    reports a quota overflow the eviction policy trims the candidate and the
    probe runs again. The committed value is therefore always either the
    previous one or one that passed the probe.
    """

    def __init__(
        self,
        storage: KeyValueStorage,
        key: str = SESSIONS_KEY,
        probe: Optional[CapacityProbe] = None,
        eviction: EvictionPolicy = evict_oldest,
    ) -> None:
        self._storage = storage
        self._key = key
        self._probe = probe or self._check_capacity
        self._eviction = eviction
        self._lock = threading.Lock()

    def _check_capacity(self, payload: str) -> None:
        """Dry-run the payload as a replacement for the committed value."""
        self._storage.check_fits(self._key, payload)

    def list_sessions(self) -> List[Session]:
        """Return all sessions in creation order."""
        raw = self._storage.get_item(self._key)
        if not raw:
            return []
        try:
            return parse_sessions(raw)
        except (ValueError, ValidationError) as e:
            logger.error(f"Error reading stored sessions from '{self._key}': {e}")
            return []

    def get(self, session_id: str) -> Optional[Session]:
        for session in self.list_sessions():
            if session.id == session_id:
                return session
        return None

    def append(self, session: Session) -> AppendResult:
        """Persist ``session`` after the existing ones, evicting on overflow.

        Raises:
            StorageFullError: If the quota is exceeded even with the new
                session stored alone.
            StorageError: If the probe or the commit fails for another reason.
        """
        with self._lock:
            candidate = self.list_sessions() + [session]
            evicted: List[Session] = []

            while True:
                payload = serialize_sessions(candidate)
                try:
                    self._probe(payload)
                    break
                except QuotaExceededError as e:
                    if len(candidate) <= 1:
                        logger.error(f"Could not save session {session.id}: {e}")
                        raise StorageFullError(
                            f"Session {session.id} does not fit in storage on its own"
                        ) from e
                    candidate, dropped = self._evict(candidate)
                    evicted.extend(dropped)
                    if not any(s.id == session.id for s in candidate):
                        raise StorageFullError(
                            f"Eviction removed the session being saved ({session.id})"
                        ) from e
                    logger.warning(
                        f"Quota exceeded. Evicted {len(dropped)} session(s) to make space."
                    )
                except StorageError:
                    logger.exception(f"Could not save session {session.id}")
                    raise
                except Exception as e:
                    logger.exception(f"Could not save session {session.id}")
                    raise StorageError(f"Capacity probe failed: {e}") from e

            try:
                self._storage.set_item(self._key, payload)
            except QuotaExceededError as e:
                raise StorageFullError(f"Commit of session {session.id} exceeded quota") from e

            logger.info(
                f"Saved session {session.id} ({len(candidate)} stored, {len(evicted)} evicted)"
            )
            return AppendResult(sessions=candidate, evicted=evicted)

    def _evict(self, candidate: List[Session]) -> tuple[List[Session], List[Session]]:
        trimmed = self._eviction(list(candidate))
        if len(trimmed) >= len(candidate):
            raise StorageError("Eviction policy did not remove any session")
        kept_ids = {s.id for s in trimmed}
        dropped = [s for s in candidate if s.id not in kept_ids]
        return trimmed, dropped

    def remove(self, session_id: str) -> bool:
        """Delete one session. Returns False if it was not stored."""
        with self._lock:
            sessions = self.list_sessions()
            remaining = [s for s in sessions if s.id != session_id]
            if len(remaining) == len(sessions):
                return False
            self._storage.set_item(self._key, serialize_sessions(remaining))
            logger.info(f"Deleted session {session_id}")
            return True

    def search(self, term: str = "") -> List[Session]:
        """Sessions whose script contains ``term``, newest first."""
        needle = term.lower()
        matches = [s for s in self.list_sessions() if needle in s.script.lower()]
        return sorted(matches, key=lambda s: s.created_at, reverse=True)

    def recent(self, limit: int = 3) -> List[Session]:
        sessions = self.list_sessions()
        return list(reversed(sessions[-limit:])) if limit > 0 else []

    def total_images(self) -> int:
        return sum(len(session.images) for session in self.list_sessions())
