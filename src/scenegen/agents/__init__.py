"""AI agents for style analysis and script decomposition."""

from .base import BaseAgent
from .script import ScriptDecomposerAgent, DecompositionInput
from .style import StyleAnalysisAgent

__all__ = [
    "BaseAgent",
    "ScriptDecomposerAgent",
    "DecompositionInput",
    "StyleAnalysisAgent",
]
