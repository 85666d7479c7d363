"""Workspace draft model."""

from typing import List, Optional

from pydantic import BaseModel, Field

from .generation import AspectRatio, DEFAULT_ASPECT_RATIO
from .scene import Scene


class WorkspaceDraft(BaseModel):
    """Unfinished workspace fields kept across restarts."""

    script: str = Field(default="", description="Script text")
    style: str = Field(default="", description="Style keywords")
    aspect_ratio: AspectRatio = Field(default=DEFAULT_ASPECT_RATIO)
    scene_count_hint: Optional[int] = Field(None, description="Requested scene count", gt=0)
    reference_image_path: Optional[str] = Field(None, description="Path to the reference image")
    scenes: List[Scene] = Field(default_factory=list, description="In-progress scenes")

    class Config:
        """Pydantic config."""
        frozen = False
