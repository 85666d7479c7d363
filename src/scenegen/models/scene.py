"""Scene data model."""

import base64
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from ..errors import ErrorKind

DATA_URL_PREFIX = "data:"


class SceneStatus(str, Enum):
    """Resolution status of a scene."""
    PENDING = "pending"
    LOADING = "loading"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


def to_data_url(image_bytes: bytes, mime_type: str = "image/jpeg") -> str:
    """Encode raw image bytes as a data URL image reference."""
    encoded = base64.b64encode(image_bytes).decode("ascii")
    return f"{DATA_URL_PREFIX}{mime_type};base64,{encoded}"


def decode_data_url(image: str) -> bytes:
    """Decode a data URL image reference back to raw bytes."""
    if not image.startswith(DATA_URL_PREFIX) or "," not in image:
        raise ValueError("Image reference is not a base64 data URL")
    return base64.b64decode(image.split(",", 1)[1])


class Scene(BaseModel):
    """One script-derived prompt and its resolved (or failed) image."""

    id: int = Field(..., description="Index of the scene within its session", ge=0)
    prompt: str = Field(..., description="Image generation prompt")
    image: Optional[str] = Field(None, description="Generated image as a data URL")
    status: SceneStatus = Field(default=SceneStatus.PENDING, description="Resolution status")
    error: Optional[ErrorKind] = Field(None, description="Error kind of a failed resolution")

    class Config:
        """Pydantic config."""
        frozen = False

    @property
    def is_loading(self) -> bool:
        return self.status == SceneStatus.LOADING

    def loading(self) -> "Scene":
        """Return a copy entering a new resolution attempt."""
        return self.model_copy(update={"status": SceneStatus.LOADING, "error": None})

    def succeeded(self, image: str) -> "Scene":
        return self.model_copy(
            update={"image": image, "status": SceneStatus.SUCCEEDED, "error": None}
        )

    def failed(self, error: ErrorKind) -> "Scene":
        return self.model_copy(update={"status": SceneStatus.FAILED, "error": error})
