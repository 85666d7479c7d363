"""Data models for the scene generator."""

from .scene import Scene, SceneStatus, to_data_url, decode_data_url
from .session import Session, PromptEntry, new_session_id
from .generation import AspectRatio, GenerationConfig, ReferenceImage
from .workspace import WorkspaceDraft

__all__ = [
    "Scene",
    "SceneStatus",
    "to_data_url",
    "decode_data_url",
    "Session",
    "PromptEntry",
    "new_session_id",
    "AspectRatio",
    "GenerationConfig",
    "ReferenceImage",
    "WorkspaceDraft",
]
