"""Script to scenes generation pipeline.

A run walks ``Idle -> AnalyzingReference -> DecomposingScript ->
SynthesizingScenes -> Completed | Aborted``. Scenes are synthesized one at
a time in script order. A hard service failure fails the current scene and
every scene not yet attempted, and no further calls are made for the run.

Every run, regeneration and clear works against a run token. Writes carrying
a token older than the current one are dropped, so a completion that lands
after the workspace was cleared cannot overwrite newer state.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional, Protocol

from .errors import DecompositionError, ErrorKind, Notification, NotificationLevel, classify
from .models import AspectRatio, GenerationConfig, ReferenceImage, Scene, SceneStatus, to_data_url

logger = logging.getLogger(__name__)

OUTPUT_MIME_TYPE = "image/jpeg"


class StyleAnalyzer(Protocol):
    def describe(self, image: ReferenceImage) -> str:
        ...


class ScriptDecomposer(Protocol):
    def decompose(self, script: str, target_scene_count: Optional[int] = None) -> List[str]:
        ...


class ImageSynthesizer(Protocol):
    def synthesize(self, prompt: str, aspect_ratio: AspectRatio) -> Optional[bytes]:
        ...


class PipelineState(str, Enum):
    """Pipeline-level state."""
    IDLE = "idle"
    ANALYZING_REFERENCE = "analyzing_reference"
    DECOMPOSING_SCRIPT = "decomposing_script"
    SYNTHESIZING_SCENES = "synthesizing_scenes"
    COMPLETED = "completed"
    ABORTED = "aborted"


class EventType(str, Enum):
    STATE_CHANGED = "state_changed"
    SCENE_UPDATED = "scene_updated"
    NOTIFICATION = "notification"


@dataclass
class PipelineEvent:
    """A state transition observers can render."""

    type: EventType
    run_token: int
    state: Optional[PipelineState] = None
    scene: Optional[Scene] = None
    notification: Optional[Notification] = None


Listener = Callable[[PipelineEvent], None]


@dataclass
class PipelineResult:
    """Outcome of one bulk run."""

    run_token: int
    state: PipelineState
    scenes: List[Scene] = field(default_factory=list)
    effective_style: str = ""
    error: Optional[ErrorKind] = None
    notification: Optional[Notification] = None
    events: List[PipelineEvent] = field(default_factory=list)
    stale: bool = False

    @property
    def succeeded(self) -> List[Scene]:
        return [scene for scene in self.scenes if scene.status == SceneStatus.SUCCEEDED]

    @property
    def should_persist(self) -> bool:
        """Whether the run is eligible to become a saved session."""
        return self.state == PipelineState.COMPLETED and not self.stale and bool(self.succeeded)


def combine_style(reference_description: Optional[str], keywords: str) -> str:
    """Join the reference description and the user's style keywords."""
    return f"{reference_description or ''} {keywords or ''}".strip()


def build_image_prompt(prompt: str, style: str) -> str:
    """Full prompt sent to the image service for one scene."""
    return f'An image of "{prompt}" in the style of "{style}". 4k quality.'


class GenerationPipeline:
    """Turns a script and style configuration into resolved scenes.

    The pipeline owns the in-memory scene list of the workspace. Observers
    subscribe to events and never mutate pipeline state themselves.
    """

    def __init__(
        self,
        synthesizer: ImageSynthesizer,
        decomposer: ScriptDecomposer,
        style_analyzer: Optional[StyleAnalyzer] = None,
    ) -> None:
        self._synthesizer = synthesizer
        self._decomposer = decomposer
        self._style_analyzer = style_analyzer
        self._listeners: List[Listener] = []
        self._scenes: List[Scene] = []
        self._state = PipelineState.IDLE
        self._run_token = 0

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def scenes(self) -> List[Scene]:
        return list(self._scenes)

    @property
    def run_token(self) -> int:
        return self._run_token

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register an observer. Returns a callable that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def clear(self) -> None:
        """Reset the workspace. In-flight completions become stale."""
        self._run_token += 1
        self._scenes = []
        self._state = PipelineState.IDLE
        logger.debug(f"Workspace cleared (run token {self._run_token})")
        self._emit(PipelineEvent(EventType.STATE_CHANGED, self._run_token, state=self._state))

    def restore(self, scenes: List[Scene]) -> None:
        """Load scenes saved from an earlier workspace.

        Scenes that were still loading when saved can never complete, so they
        come back as failed transient errors and can be regenerated.
        """
        self._run_token += 1
        self._scenes = [
            scene.failed(ErrorKind.TRANSIENT) if scene.is_loading else scene
            for scene in scenes
        ]
        self._state = PipelineState.IDLE

    def _is_current(self, token: int) -> bool:
        return token == self._run_token

    def _emit(self, event: PipelineEvent, journal: Optional[List[PipelineEvent]] = None) -> None:
        if journal is not None:
            journal.append(event)
        for listener in list(self._listeners):
            listener(event)

    def _transition(self, token: int, state: PipelineState, journal: List[PipelineEvent]) -> None:
        if not self._is_current(token):
            logger.debug(f"Discarding stale transition to {state.value} (run {token})")
            return
        self._state = state
        logger.debug(f"Pipeline state: {state.value}")
        self._emit(PipelineEvent(EventType.STATE_CHANGED, token, state=state), journal)

    def _notify(
        self, token: int, notification: Notification, journal: Optional[List[PipelineEvent]] = None
    ) -> None:
        if not self._is_current(token):
            return
        self._emit(PipelineEvent(EventType.NOTIFICATION, token, notification=notification), journal)

    def _write_scene(
        self, token: int, scene: Scene, journal: Optional[List[PipelineEvent]] = None
    ) -> bool:
        """Replace the scene slot with the same id, unless ``token`` is stale."""
        if not self._is_current(token):
            logger.warning(f"Discarding stale result for scene {scene.id} (run {token})")
            return False
        for index, current in enumerate(self._scenes):
            if current.id == scene.id:
                self._scenes[index] = scene
                break
        else:
            return False
        self._emit(PipelineEvent(EventType.SCENE_UPDATED, token, scene=scene), journal)
        return True

    def _resolve_style(self, config: GenerationConfig) -> str:
        """Effective style for the run. Issues the analysis call if needed."""
        reference = config.reference_style_description
        if not reference and config.reference_image is not None:
            if self._style_analyzer is None:
                raise ValueError("A reference image was given but no style analyzer is configured")
            reference = self._style_analyzer.describe(config.reference_image)
        return combine_style(reference, config.style_keywords)

    def _needs_analysis(self, config: GenerationConfig) -> bool:
        return config.reference_image is not None and not config.reference_style_description

    def _synthesize(self, scene: Scene, style: str, aspect_ratio: AspectRatio) -> Optional[str]:
        image_bytes = self._synthesizer.synthesize(build_image_prompt(scene.prompt, style), aspect_ratio)
        if not image_bytes:
            return None
        return to_data_url(image_bytes, OUTPUT_MIME_TYPE)

    def _finish(
        self,
        token: int,
        state: PipelineState,
        journal: List[PipelineEvent],
        scenes: Optional[List[Scene]] = None,
        effective_style: str = "",
        error: Optional[ErrorKind] = None,
        detail: Optional[str] = None,
    ) -> PipelineResult:
        stale = not self._is_current(token)
        notification = Notification.for_error(error, detail) if error else None
        if stale:
            state = PipelineState.ABORTED
        else:
            if notification:
                self._notify(token, notification, journal)
            self._transition(token, state, journal)
        return PipelineResult(
            run_token=token,
            state=state,
            scenes=list(scenes or []),
            effective_style=effective_style,
            error=error,
            notification=notification,
            events=journal,
            stale=stale,
        )

    def run(self, config: GenerationConfig) -> PipelineResult:
        """Run the full pipeline for one configuration.

        Never raises for service failures; they end up in the result's
        ``error`` and ``notification`` and in the scene states.
        """
        self._run_token += 1
        token = self._run_token
        journal: List[PipelineEvent] = []

        # A rejected run never leaves Idle; the existing workspace is untouched.
        if not config.script.strip():
            notification = Notification(text="Script cannot be empty.", level=NotificationLevel.ERROR)
            self._notify(token, notification, journal)
            return PipelineResult(
                run_token=token, state=PipelineState.IDLE, notification=notification, events=journal
            )

        self._scenes = []
        logger.info(f"Starting generation run {token}")

        # Style resolution
        if self._needs_analysis(config):
            self._transition(token, PipelineState.ANALYZING_REFERENCE, journal)
        try:
            effective_style = self._resolve_style(config)
        except Exception as e:
            logger.error(f"Error analyzing reference image: {e}")
            return self._finish(token, PipelineState.ABORTED, journal, error=classify(e), detail=str(e))
        if not self._is_current(token):
            return self._finish(token, PipelineState.ABORTED, journal)

        # Script decomposition
        self._transition(token, PipelineState.DECOMPOSING_SCRIPT, journal)
        try:
            prompts = self._decomposer.decompose(config.script, config.target_scene_count)
            if not isinstance(prompts, list) or not prompts:
                raise DecompositionError("Could not generate any prompts from the script.")
        except DecompositionError as e:
            logger.error(f"Error generating prompts: {e}")
            return self._finish(
                token, PipelineState.ABORTED, journal,
                effective_style=effective_style,
                error=ErrorKind.DECOMPOSITION_FAILURE, detail=str(e),
            )
        except Exception as e:
            logger.error(f"Error generating prompts: {e}")
            return self._finish(
                token, PipelineState.ABORTED, journal,
                effective_style=effective_style, error=classify(e), detail=str(e),
            )
        if not self._is_current(token):
            return self._finish(token, PipelineState.ABORTED, journal)

        # Scene materialization
        scenes = [
            Scene(id=index, prompt=prompt, status=SceneStatus.LOADING)
            for index, prompt in enumerate(prompts)
        ]
        self._scenes = list(scenes)
        for scene in scenes:
            self._emit(PipelineEvent(EventType.SCENE_UPDATED, token, scene=scene), journal)
        self._transition(token, PipelineState.SYNTHESIZING_SCENES, journal)

        # Sequential synthesis, fail-fast on hard errors
        hard_error: Optional[ErrorKind] = None
        hard_detail: Optional[str] = None
        for index, scene in enumerate(scenes):
            if not self._is_current(token):
                logger.info(f"Run {token} is stale, stopping before scene {scene.id}")
                break

            try:
                image = self._synthesize(scene, effective_style, config.aspect_ratio)
            except Exception as e:
                hard_error = classify(e)
                hard_detail = str(e)
                logger.error(f"Image generation failed for prompt: \"{scene.prompt}\": {e}")
                for later in range(index, len(scenes)):
                    if later == index or scenes[later].is_loading:
                        scenes[later] = scenes[later].failed(hard_error)
                        self._write_scene(token, scenes[later], journal)
                break

            if image is None:
                logger.warning(f"Image generation returned no images for prompt: \"{scene.prompt}\"")
                scenes[index] = scene.failed(ErrorKind.BLOCKED_OR_EMPTY_OUTPUT)
            else:
                scenes[index] = scene.succeeded(image)
            self._write_scene(token, scenes[index], journal)

        any_success = any(scene.status == SceneStatus.SUCCEEDED for scene in scenes)
        final_state = PipelineState.COMPLETED if any_success else PipelineState.ABORTED
        if hard_error is None and not any_success:
            hard_error = ErrorKind.BLOCKED_OR_EMPTY_OUTPUT

        result = self._finish(
            token, final_state, journal,
            scenes=scenes, effective_style=effective_style,
            error=hard_error, detail=hard_detail,
        )
        logger.info(
            f"Run {token} finished: {result.state.value}, "
            f"{len(result.succeeded)}/{len(scenes)} scenes succeeded"
        )
        return result

    def regenerate(self, scene_id: int, config: GenerationConfig) -> Scene:
        """Resolve one scene again using its existing prompt.

        Other scenes are left untouched and the result is not written back
        into any saved session.

        Raises:
            KeyError: If no scene with ``scene_id`` exists in the workspace.
        """
        token = self._run_token
        current = next((scene for scene in self._scenes if scene.id == scene_id), None)
        if current is None:
            raise KeyError(scene_id)

        scene = current.loading()
        self._write_scene(token, scene)
        logger.info(f"Regenerating scene {scene_id}")

        try:
            style = self._resolve_style(config)
        except Exception as e:
            logger.error(f"Error analyzing reference image for regeneration: {e}")
            kind = classify(e)
            self._notify(token, Notification.for_error(kind, str(e)))
            updated = scene.failed(kind)
            self._write_scene(token, updated)
            return updated

        try:
            image = self._synthesize(scene, style, config.aspect_ratio)
        except Exception as e:
            logger.error(f"Image regeneration failed for prompt: \"{scene.prompt}\": {e}")
            kind = classify(e)
            self._notify(token, Notification.for_error(kind, str(e)))
            updated = scene.failed(kind)
            self._write_scene(token, updated)
            return updated

        if image is None:
            logger.warning(f"Image regeneration returned no images for prompt: \"{scene.prompt}\"")
            updated = scene.failed(ErrorKind.BLOCKED_OR_EMPTY_OUTPUT)
        else:
            updated = scene.succeeded(image)
        self._write_scene(token, updated)
        return updated
