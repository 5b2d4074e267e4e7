"""Pytest configuration and fixtures for faceage tests."""

from __future__ import annotations

from typing import Callable

import numpy as np
import pytest

from faceage.common.events import EventBus
from faceage.config import Config, EstimationConfig
from faceage.estimation import AgeEstimator, BoundingBox, DetectedFace, HeadPose, LandmarkRegion


def pytest_addoption(parser: pytest.Parser) -> None:
    """Add custom command line options."""
    parser.addoption(
        "--slow",
        action="store_true",
        default=False,
        help="Run slow tests",
    )


def pytest_configure(config: pytest.Config) -> None:
    """Configure test markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "slow: Slow running tests")


def pytest_collection_modifyitems(
    config: pytest.Config, items: list[pytest.Item]
) -> None:
    """Skip slow tests unless --slow flag is set."""
    if not config.getoption("--slow"):
        skip_slow = pytest.mark.skip(reason="Need --slow option to run")
        for item in items:
            if "slow" in item.keywords:
                item.add_marker(skip_slow)


# Landmarks whose every feature sits at its reference proportion:
# eye spacing 0.25, face length 0.4, flat jaw, nose spans summing to 0.15,
# inner/outer lip ratio 0.7 and brows 0.1 above the eyes.
REFERENCE_LANDMARKS: dict[LandmarkRegion, list[tuple[float, float]]] = {
    LandmarkRegion.LEFT_EYE: [(0.35, 0.6), (0.40, 0.6)],
    LandmarkRegion.RIGHT_EYE: [(0.60, 0.6), (0.65, 0.6)],
    LandmarkRegion.LEFT_EYEBROW: [(0.35, 0.7), (0.40, 0.7)],
    LandmarkRegion.RIGHT_EYEBROW: [(0.60, 0.7), (0.65, 0.7)],
    LandmarkRegion.NOSE: [(0.45, 0.45), (0.55, 0.50)],
    LandmarkRegion.NOSE_CREST: [(0.50, 0.55), (0.50, 0.50)],
    LandmarkRegion.OUTER_LIPS: [(0.40, 0.25), (0.50, 0.35), (0.60, 0.25)],
    LandmarkRegion.INNER_LIPS: [(0.42, 0.265), (0.50, 0.335), (0.58, 0.265)],
    LandmarkRegion.FACE_CONTOUR: [
        (0.20, 0.6),
        (0.26, 0.4),
        (0.32, 0.2),
        (0.38, 0.2),
        (0.44, 0.2),
        (0.50, 0.2),
        (0.56, 0.2),
        (0.62, 0.2),
        (0.68, 0.2),
        (0.74, 0.4),
        (0.80, 0.6),
    ],
}

FaceFactory = Callable[..., DetectedFace]


@pytest.fixture
def make_face() -> FaceFactory:
    """Build faces from the reference landmarks.

    Keyword args:
        quality: Capture quality (default 1.0).
        drop: Regions to leave out.
        replace: Region -> points overrides.
        landmarks: False for a face without landmarks.
    """

    def factory(
        quality: float | None = 1.0,
        drop: tuple[LandmarkRegion, ...] = (),
        replace: dict[LandmarkRegion, list[tuple[float, float]]] | None = None,
        landmarks: bool = True,
        bbox: BoundingBox | None = None,
        pose: HeadPose | None = None,
    ) -> DetectedFace:
        regions = None
        if landmarks:
            regions = {k: v for k, v in REFERENCE_LANDMARKS.items() if k not in drop}
            regions.update(replace or {})
        return DetectedFace(
            bounding_box=bbox or BoundingBox(x=0.25, y=0.25, width=0.5, height=0.5),
            confidence=0.95,
            landmarks=regions,
            pose=pose,
            quality=quality,
        )

    return factory


@pytest.fixture
def reference_face(make_face: FaceFactory) -> DetectedFace:
    return make_face()


@pytest.fixture
def config() -> Config:
    """Get test configuration."""
    cfg = Config()
    cfg.device.mode = "development"
    cfg.device.log_level = "DEBUG"
    cfg.estimation = EstimationConfig(strategy="landmark")
    return cfg


@pytest.fixture
def estimator(config: Config) -> AgeEstimator:
    """Landmark-heuristic estimator."""
    return AgeEstimator(config.estimation)


@pytest.fixture
def event_bus() -> EventBus:
    """Fresh event bus for each test."""
    return EventBus()


@pytest.fixture
def analysis_service(config: Config, event_bus: EventBus):
    """Create Face Analysis service for testing."""
    from faceage.analysis import FaceAnalysisService

    return FaceAnalysisService(config, event_bus=event_bus)


@pytest.fixture
def frame_image() -> np.ndarray:
    """640x480 RGB frame."""
    rng = np.random.default_rng(7)
    return rng.integers(0, 256, size=(480, 640, 3), dtype=np.uint8)


@pytest.fixture
def random_faces() -> list[DetectedFace]:
    """Faces with random landmark subsets and point clouds in [0, 1]."""
    rng = np.random.default_rng(1234)
    regions = list(LandmarkRegion)
    faces = []
    for _ in range(200):
        chosen = [r for r in regions if rng.random() < 0.7]
        landmarks = {
            r: rng.random((int(rng.integers(0, 20)), 2)) for r in chosen
        }
        quality = None if rng.random() < 0.2 else float(rng.random())
        faces.append(
            DetectedFace(
                bounding_box=BoundingBox(0.1, 0.1, 0.5, 0.5),
                confidence=float(rng.random()),
                landmarks=landmarks,
                quality=quality,
            )
        )
    return faces
