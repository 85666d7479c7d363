"""Persistence of the unfinished workspace."""

import logging

from pydantic import ValidationError

from ..errors import StorageError
from ..models import WorkspaceDraft
from .backends import KeyValueStorage, WORKSPACE_KEY

logger = logging.getLogger(__name__)


class WorkspaceStore:
    """Loads and saves the workspace draft. Failures are logged, not raised."""

    def __init__(self, storage: KeyValueStorage, key: str = WORKSPACE_KEY) -> None:
        self._storage = storage
        self._key = key

    def load(self) -> WorkspaceDraft:
        try:
            raw = self._storage.get_item(self._key)
        except StorageError as e:
            logger.error(f"Error reading workspace draft: {e}")
            return WorkspaceDraft()
        if not raw:
            return WorkspaceDraft()
        try:
            return WorkspaceDraft.model_validate_json(raw)
        except ValidationError as e:
            logger.error(f"Error reading workspace draft: {e}")
            return WorkspaceDraft()

    def save(self, draft: WorkspaceDraft) -> bool:
        try:
            self._storage.set_item(self._key, draft.model_dump_json())
            return True
        except StorageError as e:
            logger.error(f"Error saving workspace draft: {e}")
            return False

    def clear(self) -> None:
        try:
            self._storage.remove_item(self._key)
        except StorageError as e:
            logger.error(f"Error clearing workspace draft: {e}")
