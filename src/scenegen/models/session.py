"""Session and prompt history models."""

from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, Field

from .scene import Scene


def new_session_id(created_at: datetime) -> str:
    """Derive a session identifier from its creation instant."""
    return created_at.astimezone(timezone.utc).isoformat(timespec="microseconds")


class Session(BaseModel):
    """A completed generation run: its script plus its resolved scenes."""

    id: str = Field(..., description="Identifier derived from the creation instant")
    created_at: datetime = Field(..., description="Creation timestamp")
    script: str = Field(..., description="Source script")
    scenes: List[Scene] = Field(default_factory=list, description="Scenes in narrative order")

    class Config:
        """Pydantic config."""
        frozen = True

    @property
    def images(self) -> List[Scene]:
        """Scenes that resolved to an image."""
        return [scene for scene in self.scenes if scene.image]

    def image_for(self, prompt: str) -> Optional[str]:
        for scene in self.scenes:
            if scene.prompt == prompt and scene.image:
                return scene.image
        return None


class PromptEntry(BaseModel):
    """A prompt recorded in the searchable history."""

    id: str = Field(..., description="<session id>-<scene id>")
    text: str = Field(..., description="Prompt text")
    timestamp: datetime = Field(..., description="Creation time of the owning session")
    session_id: str = Field(..., description="Owning session")

    class Config:
        """Pydantic config."""
        frozen = True
