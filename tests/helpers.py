"""Fakes and builders shared by the tests."""

import json
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from scenegen.errors import QuotaExceededError
from scenegen.models import Scene, SceneStatus, Session, new_session_id, to_data_url

BASE_TIME = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeSynthesizer:
    """Image synthesizer returning scripted outcomes in call order.

    Each outcome is image bytes, None (blocked), an exception to raise or a
    callable whose return value is used.
    Once the script runs out every call succeeds.
    """

    def __init__(self, outcomes: Optional[list] = None) -> None:
        self.outcomes = list(outcomes or [])
        self.calls: List[tuple] = []

    def synthesize(self, prompt, aspect_ratio):
        self.calls.append((prompt, aspect_ratio))
        outcome = self.outcomes.pop(0) if self.outcomes else f"image-{len(self.calls)}".encode()
        if callable(outcome):
            outcome = outcome()
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


class FakeDecomposer:
    def __init__(self, result) -> None:
        self.result = result
        self.calls: List[tuple] = []

    def decompose(self, script, target_scene_count=None):
        self.calls.append((script, target_scene_count))
        if isinstance(self.result, BaseException):
            raise self.result
        return self.result


class FakeStyleAnalyzer:
    def __init__(self, result="moody noir, deep shadows") -> None:
        self.result = result
        self.calls = []

    def describe(self, image):
        self.calls.append(image)
        if isinstance(self.result, BaseException):
            raise self.result
        return self.result


class CountingProbe:
    """Capacity probe that only admits up to ``max_sessions`` sessions."""

    def __init__(self, max_sessions: int) -> None:
        self.max_sessions = max_sessions
        self.sizes: List[int] = []

    def __call__(self, payload: str) -> None:
        count = len(json.loads(payload))
        self.sizes.append(count)
        if count > self.max_sessions:
            raise QuotaExceededError("probe", count, self.max_sessions)


def make_session(index: int, prompts=("a lighthouse at dusk",), with_images=True, script=None) -> Session:
    """Session created ``index`` minutes after BASE_TIME."""
    created_at = BASE_TIME + timedelta(minutes=index)
    scenes = [
        Scene(
            id=i,
            prompt=prompt,
            image=to_data_url(f"s{index}-{i}".encode()) if with_images else None,
            status=SceneStatus.SUCCEEDED if with_images else SceneStatus.FAILED,
        )
        for i, prompt in enumerate(prompts)
    ]
    return Session(
        id=new_session_id(created_at),
        created_at=created_at,
        script=script if script is not None else f"Script number {index}",
        scenes=scenes,
    )


