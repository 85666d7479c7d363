"""Generation request models."""

import mimetypes
from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field


class AspectRatio(str, Enum):
    """Aspect ratios supported by the image service."""
    SQUARE = "1:1"
    PORTRAIT_3_4 = "3:4"
    LANDSCAPE_4_3 = "4:3"
    PORTRAIT = "9:16"
    LANDSCAPE = "16:9"


DEFAULT_ASPECT_RATIO = AspectRatio.LANDSCAPE


class ReferenceImage(BaseModel):
    """An image whose style should carry over to generated scenes."""

    data: bytes = Field(..., description="Raw image bytes")
    mime_type: str = Field(default="image/jpeg", description="Image MIME type")

    @classmethod
    def from_path(cls, path: Path) -> "ReferenceImage":
        """Load a reference image from disk."""
        mime_type, _ = mimetypes.guess_type(str(path))
        with open(path, "rb") as f:
            data = f.read()
        return cls(data=data, mime_type=mime_type or "image/jpeg")


class GenerationConfig(BaseModel):
    """Input to one pipeline run. Not persisted."""

    script: str = Field(..., description="Source script")
    style_keywords: str = Field(default="", description="User-supplied style keywords")
    reference_image: Optional[ReferenceImage] = Field(
        None, description="Image to derive a style description from"
    )
    reference_style_description: Optional[str] = Field(
        None, description="Pre-computed description of the reference style"
    )
    aspect_ratio: AspectRatio = Field(default=DEFAULT_ASPECT_RATIO, description="Output aspect ratio")
    target_scene_count: Optional[int] = Field(
        None, description="Exact number of scenes (auto-detected if not set)", gt=0
    )
