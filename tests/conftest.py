"""Shared fixtures for mall-captcha tests."""

from typing import Optional

import pytest

from mall_captcha.config import CaptchaSettings
from mall_captcha.engine import CaptchaEngine
from mall_captcha.kv import MemoryKeyValueStore
from mall_captcha.store import ChallengeStore
from mall_captcha.types import Point, PuzzleArtifact


class FakeClock:
    """Manually advanced clock, in seconds."""

    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class StaticPuzzleGenerator:
    """Generator returning puzzles with a chosen solution point."""

    def __init__(self, solution: Point = Point(100, 50), error: Optional[Exception] = None):
        self.solution = solution
        self.error = error
        self.calls = 0

    async def generate(self) -> PuzzleArtifact:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return PuzzleArtifact(
            solution=self.solution,
            master_image="bWFzdGVy",
            tile_image="dGlsZQ==",
            tile_width=62,
            tile_height=62,
            tile_x=6,
            tile_y=self.solution.y,
        )

    async def close(self) -> None:
        pass


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def kv(clock: FakeClock) -> MemoryKeyValueStore:
    return MemoryKeyValueStore(clock=clock)


@pytest.fixture
def store(kv: MemoryKeyValueStore, clock: FakeClock) -> ChallengeStore:
    return ChallengeStore(kv, clock=clock)


@pytest.fixture
def generator() -> StaticPuzzleGenerator:
    return StaticPuzzleGenerator()


@pytest.fixture
def settings() -> CaptchaSettings:
    return CaptchaSettings()


@pytest.fixture
def engine(
    generator: StaticPuzzleGenerator, store: ChallengeStore, settings: CaptchaSettings
) -> CaptchaEngine:
    return CaptchaEngine(generator, store, settings)
