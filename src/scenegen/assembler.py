"""Packages a finished run into a saved session."""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, List, Optional

from .errors import ErrorKind, Notification, NotificationLevel, StorageError, StorageFullError
from .models import GenerationConfig, PromptEntry, Scene, Session, new_session_id
from .storage import BoundedSessionStore, PromptHistoryIndex

logger = logging.getLogger(__name__)


@dataclass
class AssemblyResult:
    """What happened when a run was assembled and published."""

    session: Session
    committed: bool
    evicted: List[Session] = field(default_factory=list)
    prompts: List[PromptEntry] = field(default_factory=list)
    notification: Optional[Notification] = None


class SessionAssembler:
    """Builds the Session for a finished run and publishes it.

    The session is appended to the store first; the prompt history is only
    extended once that append has been committed.
    """

    def __init__(
        self,
        sessions: BoundedSessionStore,
        history: PromptHistoryIndex,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._sessions = sessions
        self._history = history
        self._clock = clock

    def _unique_id(self, created_at: datetime) -> str:
        base = new_session_id(created_at)
        taken = {session.id for session in self._sessions.list_sessions()}
        session_id, suffix = base, 1
        while session_id in taken:
            session_id = f"{base}-{suffix}"
            suffix += 1
        return session_id

    def build(self, config: GenerationConfig, scenes: List[Scene]) -> Session:
        created_at = self._clock()
        return Session(
            id=self._unique_id(created_at),
            created_at=created_at,
            script=config.script,
            scenes=[scene for scene in scenes if not scene.is_loading],
        )

    def assemble(self, config: GenerationConfig, scenes: List[Scene]) -> AssemblyResult:
        """Build and publish a session. Storage failures are reported, not raised."""
        session = self.build(config, scenes)

        try:
            ack = self._sessions.append(session)
        except StorageFullError as e:
            logger.error(f"Could not save new session due to storage error: {e}")
            return AssemblyResult(
                session=session,
                committed=False,
                notification=Notification.for_error(ErrorKind.STORAGE_FULL),
            )
        except StorageError as e:
            logger.error(f"Could not save new session due to storage error: {e}")
            return AssemblyResult(
                session=session,
                committed=False,
                notification=Notification(text=f"Could not save session: {e}"),
            )

        try:
            prompts = self._history.record(session)
        except StorageError as e:
            logger.error(f"Session {session.id} saved but prompt history was not updated: {e}")
            return AssemblyResult(
                session=session,
                committed=True,
                evicted=ack.evicted,
                notification=Notification(
                    text="Session saved, but the prompt history is full.",
                    level=NotificationLevel.INFO,
                ),
            )

        notification = None
        if ack.evicted:
            notification = Notification(
                text=f"Storage was full: removed {len(ack.evicted)} oldest session(s).",
                level=NotificationLevel.INFO,
            )
        return AssemblyResult(
            session=session,
            committed=True,
            evicted=ack.evicted,
            prompts=prompts,
            notification=notification,
        )
