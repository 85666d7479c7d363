"""Searchable prompt history derived from saved sessions."""

import json
import logging
from typing import List, Optional

from pydantic import ValidationError

from ..errors import QuotaExceededError, StorageFullError
from ..models import PromptEntry, Session
from .backends import KeyValueStorage, PROMPT_HISTORY_KEY
from .sessions import BoundedSessionStore

logger = logging.getLogger(__name__)


def entries_for(session: Session) -> List[PromptEntry]:
    """Prompt entries for every scene of ``session`` that has a prompt."""
    return [
        PromptEntry(
            id=f"{session.id}-{scene.id}",
            text=scene.prompt,
            timestamp=session.created_at,
            session_id=session.id,
        )
        for scene in session.scenes
        if scene.prompt
    ]


class PromptHistoryIndex:
    """Append-only log of prompts, cross-referenced to session images."""

    def __init__(
        self,
        storage: KeyValueStorage,
        sessions: BoundedSessionStore,
        key: str = PROMPT_HISTORY_KEY,
    ) -> None:
        self._storage = storage
        self._sessions = sessions
        self._key = key

    def entries(self) -> List[PromptEntry]:
        """All entries in insertion order."""
        raw = self._storage.get_item(self._key)
        if not raw:
            return []
        try:
            return [PromptEntry.model_validate(item) for item in json.loads(raw)]
        except (ValueError, TypeError, ValidationError) as e:
            logger.error(f"Error reading prompt history from '{self._key}': {e}")
            return []

    def _write(self, entries: List[PromptEntry]) -> None:
        payload = json.dumps(
            [entry.model_dump(mode="json") for entry in entries],
            separators=(",", ":"),
        )
        self._storage.set_item(self._key, payload)

    def record(self, session: Session) -> List[PromptEntry]:
        """Append one entry per prompted scene of ``session``.

        When the extended history does not fit, entries of sessions that are
        no longer stored are dropped and the write is retried once.

        Raises:
            StorageFullError: If the history still does not fit.
        """
        new_entries = entries_for(session)
        if not new_entries:
            return []

        existing = self.entries()
        try:
            self._write(existing + new_entries)
        except QuotaExceededError as e:
            live_ids = {s.id for s in self._sessions.list_sessions()} | {session.id}
            pruned = [entry for entry in existing if entry.session_id in live_ids]
            if len(pruned) == len(existing):
                raise StorageFullError("Prompt history does not fit in storage") from e
            logger.warning(
                f"Prompt history over quota. Dropping {len(existing) - len(pruned)} "
                f"entries of evicted sessions."
            )
            try:
                self._write(pruned + new_entries)
            except QuotaExceededError as retry_error:
                raise StorageFullError("Prompt history does not fit in storage") from retry_error

        logger.debug(f"Recorded {len(new_entries)} prompts from session {session.id}")
        return new_entries

    def search(self, term: str = "") -> List[PromptEntry]:
        """Entries containing ``term`` (case-insensitive), newest first."""
        needle = term.lower()
        matches = [entry for entry in self.entries() if needle in entry.text.lower()]
        return sorted(matches, key=lambda entry: entry.timestamp, reverse=True)

    def image_for(self, prompt_text: str) -> Optional[str]:
        """First stored image for a prompt, scanning sessions oldest first."""
        for session in self._sessions.list_sessions():
            image = session.image_for(prompt_text)
            if image:
                return image
        return None
