"""Error taxonomy, failure classification and user-facing messages."""

from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, Field


class ErrorKind(str, Enum):
    """Kinds of failure a generation run or a save can end in."""

    INVALID_CREDENTIAL = "invalid_credential"
    QUOTA_EXCEEDED = "quota_exceeded"
    TRANSIENT = "transient"
    BLOCKED_OR_EMPTY_OUTPUT = "blocked_or_empty_output"
    STORAGE_FULL = "storage_full"
    DECOMPOSITION_FAILURE = "decomposition_failure"


class ScenegenError(Exception):
    """Base class for errors raised by scenegen."""


class DecompositionError(ScenegenError, ValueError):
    """The script could not be turned into a usable list of prompts."""


class ImagenAPIError(ScenegenError):
    """Non-success response from the image synthesis service."""

    def __init__(self, status_code: int, body: str) -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(f"{status_code}: {body}")


class StorageError(ScenegenError):
    """A write to the local store failed."""


class QuotaExceededError(StorageError):
    """A write would take the local store past its byte quota."""

    def __init__(self, key: str, required: int, quota: int) -> None:
        self.key = key
        self.required = required
        self.quota = quota
        super().__init__(
            f"Quota exceeded writing '{key}': {required} bytes needed, quota is {quota}"
        )


class StorageFullError(StorageError):
    """Nothing more can be evicted and the value still does not fit."""


_CREDENTIAL_MARKERS = ("permission denied", "api key not valid")
_QUOTA_MARKER = "quota"


def classify(failure: Union[BaseException, str, None]) -> ErrorKind:
    """Map a raw service failure to an error kind.

    Matching is a case-insensitive substring test on the failure message.
    Always returns one of INVALID_CREDENTIAL, QUOTA_EXCEEDED or TRANSIENT.
    """
    try:
        message = str(failure or "").lower()
    except Exception:
        message = ""

    if any(marker in message for marker in _CREDENTIAL_MARKERS):
        return ErrorKind.INVALID_CREDENTIAL
    if _QUOTA_MARKER in message:
        return ErrorKind.QUOTA_EXCEEDED
    return ErrorKind.TRANSIENT


def user_message(kind: ErrorKind, detail: Optional[str] = None) -> str:
    """Return the notification text shown to the user for an error kind."""
    if kind == ErrorKind.INVALID_CREDENTIAL:
        return "The configured API key is invalid or has been blocked."
    if kind == ErrorKind.QUOTA_EXCEEDED:
        return "The API key has exceeded its quota."
    if kind == ErrorKind.BLOCKED_OR_EMPTY_OUTPUT:
        return "Generation blocked or failed."
    if kind == ErrorKind.STORAGE_FULL:
        return "Storage is full. Could not save session. Please clear some assets."
    if kind == ErrorKind.DECOMPOSITION_FAILURE:
        return "Could not generate any prompts from the script."
    if detail:
        return f"An API error occurred: {detail}"
    return "An API error occurred."


class NotificationLevel(str, Enum):
    """Severity of a global notification."""

    ERROR = "error"
    INFO = "info"
    SUCCESS = "success"


class Notification(BaseModel):
    """The single global message the UI shows above the workspace."""

    text: str = Field(..., description="Message text")
    level: NotificationLevel = Field(default=NotificationLevel.ERROR)

    @classmethod
    def for_error(cls, kind: ErrorKind, detail: Optional[str] = None) -> "Notification":
        return cls(text=user_message(kind, detail), level=NotificationLevel.ERROR)
