"""Wires the pipeline, the assembler and workspace persistence together."""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

from .assembler import AssemblyResult, SessionAssembler
from .config import Config, config as default_config
from .models import GenerationConfig, Scene, WorkspaceDraft
from .pipeline import EventType, GenerationPipeline, PipelineEvent, PipelineResult, PipelineState
from .storage import (
    BoundedSessionStore,
    DirectoryStorage,
    KeyValueStorage,
    PromptHistoryIndex,
    WorkspaceStore,
)

logger = logging.getLogger(__name__)


@dataclass
class GenerationOutcome:
    """A pipeline run together with its publication, if any."""

    run: PipelineResult
    assembly: Optional[AssemblyResult] = None


class Studio:
    """Entry point the UI layer talks to.

    The workspace draft is saved on every scene update of the current run,
    so an interrupted run can be resumed with the scenes it already resolved.
    """

    def __init__(
        self,
        pipeline: GenerationPipeline,
        sessions: BoundedSessionStore,
        history: PromptHistoryIndex,
        workspace: WorkspaceStore,
        assembler: Optional[SessionAssembler] = None,
    ) -> None:
        self.pipeline = pipeline
        self.sessions = sessions
        self.history = history
        self.workspace = workspace
        self.assembler = assembler or SessionAssembler(sessions, history)
        self._active: Optional[Tuple[GenerationConfig, Optional[Path]]] = None
        pipeline.subscribe(self._on_event)

    @classmethod
    def open(
        cls,
        pipeline: GenerationPipeline,
        storage: Optional[KeyValueStorage] = None,
        settings: Optional[Config] = None,
    ) -> "Studio":
        """Create a studio over the configured local store."""
        settings = settings or default_config
        if storage is None:
            storage = DirectoryStorage(settings.storage_dir, settings.storage_quota_bytes)
        sessions = BoundedSessionStore(storage)
        history = PromptHistoryIndex(storage, sessions)
        return cls(pipeline, sessions, history, WorkspaceStore(storage))

    def resume(self) -> WorkspaceDraft:
        """Restore in-progress scenes from the saved draft."""
        draft = self.workspace.load()
        self.pipeline.restore(draft.scenes)
        return draft

    def _on_event(self, event: PipelineEvent) -> None:
        if event.type != EventType.SCENE_UPDATED or self._active is None:
            return
        if event.run_token != self.pipeline.run_token:
            return
        self._save_draft(*self._active)

    def _save_draft(self, config: GenerationConfig, reference_path: Optional[Path]) -> None:
        self.workspace.save(WorkspaceDraft(
            script=config.script,
            style=config.style_keywords,
            aspect_ratio=config.aspect_ratio,
            scene_count_hint=config.target_scene_count,
            reference_image_path=str(reference_path) if reference_path else None,
            scenes=self.pipeline.scenes,
        ))

    def generate(
        self, config: GenerationConfig, reference_path: Optional[Path] = None
    ) -> GenerationOutcome:
        """Run the pipeline and save a session when at least one scene succeeded."""
        self._active = (config, reference_path)
        run = self.pipeline.run(config)
        outcome = GenerationOutcome(run=run)

        if run.stale:
            logger.info(f"Run {run.run_token} was superseded; not saving a session")
            return outcome

        # Covers runs that abort before any scene exists. A rejected run keeps the old draft.
        if run.state != PipelineState.IDLE:
            self._save_draft(config, reference_path)
        if run.should_persist:
            outcome.assembly = self.assembler.assemble(config, run.scenes)
        return outcome

    def regenerate(
        self, scene_id: int, config: GenerationConfig, reference_path: Optional[Path] = None
    ) -> Scene:
        """Regenerate one workspace scene. Saved sessions are not changed.

        If the workspace is cleared while the call is in flight, the result
        is dropped and the cleared draft stays cleared.
        """
        self._active = (config, reference_path)
        return self.pipeline.regenerate(scene_id, config)

    def clear(self) -> None:
        self._active = None
        self.pipeline.clear()
        self.workspace.clear()

    def delete_session(self, session_id: str) -> bool:
        return self.sessions.remove(session_id)
