"""
Tests for GenerationPipeline.
"""

import pytest

from scenegen.errors import DecompositionError, ErrorKind
from scenegen.models import (
    AspectRatio,
    GenerationConfig,
    ReferenceImage,
    Scene,
    SceneStatus,
    decode_data_url,
)
from scenegen.pipeline import (
    EventType,
    GenerationPipeline,
    PipelineState,
    build_image_prompt,
    combine_style,
)

from .helpers import FakeDecomposer, FakeStyleAnalyzer, FakeSynthesizer

_DEFAULT = object()

PROMPTS = ["a keeper climbs stairs", "a ship on the horizon", "waves on rocks"]


def make_pipeline(prompts=_DEFAULT, outcomes=None, style=None):
    synthesizer = FakeSynthesizer(outcomes)
    decomposer = FakeDecomposer(list(PROMPTS) if prompts is _DEFAULT else prompts)
    analyzer = FakeStyleAnalyzer(style) if style is not None else FakeStyleAnalyzer()
    pipeline = GenerationPipeline(synthesizer, decomposer, analyzer)
    return pipeline, synthesizer, decomposer, analyzer


def statuses(scenes):
    return [scene.status for scene in scenes]


@pytest.fixture
def config(sample_script):
    return GenerationConfig(
        script=sample_script,
        style_keywords="watercolor",
        aspect_ratio=AspectRatio.PORTRAIT,
    )


class TestHelpers:
    """Tests for prompt helpers."""

    def test_combine_style(self):
        assert combine_style("noir", "watercolor") == "noir watercolor"
        assert combine_style(None, " watercolor ") == "watercolor"
        assert combine_style(None, "") == ""

    def test_build_image_prompt(self):
        assert build_image_prompt("a cat", "noir") == 'An image of "a cat" in the style of "noir". 4k quality.'


class TestRun:
    """Tests for a full run."""

    def test_all_scenes_succeed(self, config):
        pipeline, synthesizer, decomposer, analyzer = make_pipeline()
        result = pipeline.run(config)

        assert result.state == PipelineState.COMPLETED
        assert pipeline.state == PipelineState.COMPLETED
        assert statuses(result.scenes) == [SceneStatus.SUCCEEDED] * 3
        assert [s.id for s in result.scenes] == [0, 1, 2]
        assert [s.prompt for s in result.scenes] == PROMPTS
        assert decode_data_url(result.scenes[0].image) == b"image-1"
        assert result.error is None
        assert result.should_persist
        assert analyzer.calls == []
        assert decomposer.calls == [(config.script, None)]
        assert synthesizer.calls == [
            (build_image_prompt(p, "watercolor"), AspectRatio.PORTRAIT) for p in PROMPTS
        ]
        assert pipeline.scenes == result.scenes

    def test_target_scene_count_is_forwarded(self, config):
        pipeline, _, decomposer, _ = make_pipeline()
        pipeline.run(config.model_copy(update={"target_scene_count": 3}))
        assert decomposer.calls[0][1] == 3

    def test_blocked_scene_does_not_stop_the_run(self, config):
        pipeline, synthesizer, _, _ = make_pipeline(outcomes=[b"one", None, b"three"])
        result = pipeline.run(config)

        assert statuses(result.scenes) == [
            SceneStatus.SUCCEEDED, SceneStatus.FAILED, SceneStatus.SUCCEEDED
        ]
        assert result.scenes[1].error == ErrorKind.BLOCKED_OR_EMPTY_OUTPUT
        assert result.scenes[1].image is None
        assert result.state == PipelineState.COMPLETED
        assert len(synthesizer.calls) == 3
        assert result.should_persist

    @pytest.mark.parametrize("count,failing", [(5, 3), (3, 2), (2, 1), (4, 4)])
    def test_fail_fast(self, config, count, failing):
        prompts = [f"prompt {i}" for i in range(count)]
        outcomes = [b"ok"] * (failing - 1) + [RuntimeError("500 Internal error")]
        pipeline, synthesizer, _, _ = make_pipeline(prompts=prompts, outcomes=outcomes)

        result = pipeline.run(config)

        assert len(synthesizer.calls) == failing
        for scene in result.scenes[:failing - 1]:
            assert scene.status == SceneStatus.SUCCEEDED
            assert scene.image is not None
        for scene in result.scenes[failing - 1:]:
            assert scene.status == SceneStatus.FAILED
            assert scene.error == ErrorKind.TRANSIENT
        assert result.error == ErrorKind.TRANSIENT
        assert result.notification.text == "An API error occurred: 500 Internal error"
        expected = PipelineState.COMPLETED if failing > 1 else PipelineState.ABORTED
        assert result.state == expected

    def test_fail_fast_keeps_blocked_scene_error(self, config):
        pipeline, _, _, _ = make_pipeline(outcomes=[None, RuntimeError("Quota exceeded")])
        result = pipeline.run(config)

        assert [s.error for s in result.scenes] == [
            ErrorKind.BLOCKED_OR_EMPTY_OUTPUT,
            ErrorKind.QUOTA_EXCEEDED,
            ErrorKind.QUOTA_EXCEEDED,
        ]
        assert result.state == PipelineState.ABORTED
        assert not result.should_persist

    def test_nothing_succeeds(self, config):
        pipeline, _, _, _ = make_pipeline(outcomes=[None, None, None])
        result = pipeline.run(config)

        assert result.state == PipelineState.ABORTED
        assert result.error == ErrorKind.BLOCKED_OR_EMPTY_OUTPUT
        assert not result.should_persist
        assert len(pipeline.scenes) == 3

    def test_empty_script_is_rejected(self):
        pipeline, synthesizer, decomposer, _ = make_pipeline()
        result = pipeline.run(GenerationConfig(script="   "))

        assert result.notification.text == "Script cannot be empty."
        assert result.state == PipelineState.IDLE
        assert decomposer.calls == []
        assert synthesizer.calls == []

    def test_empty_script_after_a_completed_run(self, config):
        pipeline, synthesizer, _, _ = make_pipeline()
        pipeline.run(config)
        scenes = pipeline.scenes
        calls = len(synthesizer.calls)

        result = pipeline.run(GenerationConfig(script=""))

        assert result.state == PipelineState.IDLE
        assert result.scenes == []
        assert pipeline.scenes == scenes
        assert len(synthesizer.calls) == calls


class TestStyleResolution:
    """Reference image analysis."""

    def test_reference_description_is_prepended(self, config):
        pipeline, synthesizer, _, analyzer = make_pipeline(style="ink wash, muted")
        image = ReferenceImage(data=b"png", mime_type="image/png")
        result = pipeline.run(config.model_copy(update={"reference_image": image}))

        assert analyzer.calls == [image]
        assert result.effective_style == "ink wash, muted watercolor"
        assert synthesizer.calls[0][0] == build_image_prompt(PROMPTS[0], "ink wash, muted watercolor")

    def test_precomputed_description_skips_analysis(self, config):
        pipeline, _, _, analyzer = make_pipeline()
        image = ReferenceImage(data=b"png")
        result = pipeline.run(config.model_copy(update={
            "reference_image": image,
            "reference_style_description": "pastel",
        }))

        assert analyzer.calls == []
        assert result.effective_style == "pastel watercolor"

    def test_analysis_failure_aborts_before_any_scene(self, config):
        pipeline, synthesizer, decomposer, _ = make_pipeline(
            style=RuntimeError("400 API key not valid")
        )
        result = pipeline.run(config.model_copy(update={"reference_image": ReferenceImage(data=b"x")}))

        assert result.state == PipelineState.ABORTED
        assert result.error == ErrorKind.INVALID_CREDENTIAL
        assert result.scenes == []
        assert decomposer.calls == []
        assert synthesizer.calls == []

    def test_state_sequence(self, config):
        pipeline, _, _, _ = make_pipeline()
        result = pipeline.run(config.model_copy(update={"reference_image": ReferenceImage(data=b"x")}))

        states = [e.state for e in result.events if e.type == EventType.STATE_CHANGED]
        assert states == [
            PipelineState.ANALYZING_REFERENCE,
            PipelineState.DECOMPOSING_SCRIPT,
            PipelineState.SYNTHESIZING_SCENES,
            PipelineState.COMPLETED,
        ]


class TestDecomposition:
    """Decomposition failures."""

    @pytest.mark.parametrize("prompts", [[], None, "not a list"])
    def test_unusable_result(self, config, prompts):
        pipeline, synthesizer, _, _ = make_pipeline(prompts=prompts)
        result = pipeline.run(config)

        assert result.state == PipelineState.ABORTED
        assert result.error == ErrorKind.DECOMPOSITION_FAILURE
        assert result.notification.text == "Could not generate any prompts from the script."
        assert synthesizer.calls == []

    def test_decomposition_error(self, config):
        pipeline, _, _, _ = make_pipeline(prompts=DecompositionError("bad json"))
        assert pipeline.run(config).error == ErrorKind.DECOMPOSITION_FAILURE

    def test_service_error_is_classified(self, config):
        pipeline, synthesizer, _, _ = make_pipeline(prompts=RuntimeError("PERMISSION DENIED"))
        result = pipeline.run(config)

        assert result.error == ErrorKind.INVALID_CREDENTIAL
        assert result.notification.text == "The configured API key is invalid or has been blocked."
        assert synthesizer.calls == []


class TestObservers:
    """Event delivery and stale completions."""

    def test_listener_sees_every_scene_resolution(self, config):
        pipeline, _, _, _ = make_pipeline(outcomes=[b"1", None, b"3"])
        seen = []
        pipeline.subscribe(lambda e: seen.append(e) if e.type == EventType.SCENE_UPDATED else None)

        pipeline.run(config)

        resolved = [e.scene for e in seen if e.scene.status != SceneStatus.LOADING]
        assert [s.id for s in resolved] == [0, 1, 2]
        loading = [e.scene for e in seen if e.scene.status == SceneStatus.LOADING]
        assert [s.id for s in loading] == [0, 1, 2]

    def test_unsubscribe(self, config):
        pipeline, _, _, _ = make_pipeline()
        seen = []
        unsubscribe = pipeline.subscribe(seen.append)
        unsubscribe()
        pipeline.run(config)
        assert seen == []

    def test_clear_during_run_discards_later_writes(self, config):
        pipeline, synthesizer, _, _ = make_pipeline()

        def clear_after_first(event):
            if event.type == EventType.SCENE_UPDATED and event.scene.status == SceneStatus.SUCCEEDED:
                pipeline.clear()

        pipeline.subscribe(clear_after_first)
        result = pipeline.run(config)

        assert result.stale
        assert result.state == PipelineState.ABORTED
        assert not result.should_persist
        assert len(synthesizer.calls) == 1
        assert pipeline.scenes == []
        assert pipeline.state == PipelineState.IDLE


class TestRegenerate:
    """Independent single-scene regeneration."""

    def test_regenerates_only_one_scene(self, config):
        pipeline, synthesizer, decomposer, _ = make_pipeline(outcomes=[b"1", None, b"3"])
        before = pipeline.run(config).scenes

        updated = pipeline.regenerate(1, config)

        assert updated.status == SceneStatus.SUCCEEDED
        assert updated.prompt == before[1].prompt
        assert updated.error is None
        after = pipeline.scenes
        assert after[0] == before[0]
        assert after[2] == before[2]
        assert after[1] == updated
        assert len(decomposer.calls) == 1
        assert synthesizer.calls[-1][0] == build_image_prompt(before[1].prompt, "watercolor")

    def test_regeneration_failure_is_scene_local(self, config):
        pipeline, synthesizer, _, _ = make_pipeline()
        before = pipeline.run(config).scenes
        synthesizer.outcomes = [RuntimeError("quota exhausted")]

        updated = pipeline.regenerate(0, config)

        assert updated.status == SceneStatus.FAILED
        assert updated.error == ErrorKind.QUOTA_EXCEEDED
        assert updated.image == before[0].image
        assert pipeline.scenes[1:] == before[1:]

    def test_regeneration_blocked(self, config):
        pipeline, synthesizer, _, _ = make_pipeline()
        pipeline.run(config)
        synthesizer.outcomes = [None]

        assert pipeline.regenerate(2, config).error == ErrorKind.BLOCKED_OR_EMPTY_OUTPUT

    def test_regeneration_reanalyzes_reference(self, config):
        pipeline, _, _, analyzer = make_pipeline()
        with_reference = config.model_copy(update={"reference_image": ReferenceImage(data=b"x")})
        pipeline.run(with_reference)

        pipeline.regenerate(0, with_reference)

        assert len(analyzer.calls) == 2

    def test_regeneration_analysis_failure(self, config):
        pipeline, synthesizer, _, analyzer = make_pipeline()
        pipeline.run(config)
        analyzer.result = RuntimeError("permission denied")
        calls = len(synthesizer.calls)

        updated = pipeline.regenerate(
            0, config.model_copy(update={"reference_image": ReferenceImage(data=b"x")})
        )

        assert updated.error == ErrorKind.INVALID_CREDENTIAL
        assert len(synthesizer.calls) == calls

    def test_unknown_scene(self, config):
        pipeline, _, _, _ = make_pipeline()
        pipeline.run(config)
        with pytest.raises(KeyError):
            pipeline.regenerate(99, config)

    def test_cleared_workspace_has_no_scenes(self, config):
        pipeline, _, _, _ = make_pipeline()
        pipeline.run(config)
        pipeline.clear()
        with pytest.raises(KeyError):
            pipeline.regenerate(0, config)

    def test_restore_turns_loading_scenes_into_failures(self, config):
        pipeline, _, _, _ = make_pipeline()
        pipeline.restore([
            Scene(id=0, prompt="a", status=SceneStatus.SUCCEEDED, image="data:image/jpeg;base64,AA=="),
            Scene(id=1, prompt="b", status=SceneStatus.LOADING),
        ])

        assert statuses(pipeline.scenes) == [SceneStatus.SUCCEEDED, SceneStatus.FAILED]
        assert pipeline.regenerate(1, config).status == SceneStatus.SUCCEEDED
