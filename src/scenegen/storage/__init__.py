"""Capacity-bounded local persistence."""

from .backends import (
    KeyValueStorage,
    MemoryStorage,
    DirectoryStorage,
    SESSIONS_KEY,
    PROMPT_HISTORY_KEY,
    WORKSPACE_KEY,
)
from .sessions import AppendResult, BoundedSessionStore, evict_oldest
from .history import PromptHistoryIndex
from .workspace import WorkspaceStore

__all__ = [
    "KeyValueStorage",
    "MemoryStorage",
    "DirectoryStorage",
    "SESSIONS_KEY",
    "PROMPT_HISTORY_KEY",
    "WORKSPACE_KEY",
    "AppendResult",
    "BoundedSessionStore",
    "evict_oldest",
    "PromptHistoryIndex",
    "WorkspaceStore",
]
