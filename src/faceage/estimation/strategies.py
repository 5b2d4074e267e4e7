"""Age estimation strategies.

An estimator holds exactly one strategy, chosen when it is built:

- ``LandmarkStrategy``: facial-proportion heuristic, with a quality-only
  fallback for faces without landmarks. This is the reference behavior.
- ``LearnedModelStrategy``: a trained regressor over the same feature vector.
  It supersedes the heuristic whenever a model artifact loads.
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Protocol

import numpy as np

from faceage.common.logging import get_logger
from faceage.config import EstimationConfig
from faceage.estimation.features import (
    BASE_AGE,
    AgeFeatures,
    extract_features,
    face_quality,
)
from faceage.estimation.types import DetectedFace, EstimationMethod

MIN_AGE = 5.0
MAX_AGE = 90.0
MIN_CONFIDENCE = 0.3
MAX_CONFIDENCE = 1.0
RANGE_FLOOR = 0
RANGE_CEILING = 100
FALLBACK_CONFIDENCE = 0.3
FALLBACK_MARGIN = 15
FALLBACK_QUALITY_SCALE = 15.0
MODEL_FEATURES = len(fields(AgeFeatures))

logger = get_logger("faceage.estimation")


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def round_half_away(value: float) -> int:
    """Round to the nearest integer, halves away from zero."""
    return int(math.copysign(math.floor(abs(value) + 0.5), value))


def clamp_range_bound(value: int) -> int:
    return max(RANGE_FLOOR, min(RANGE_CEILING, value))


def calculate_age_range(age: float, confidence: float) -> tuple[int, int]:
    """Symmetric range that narrows from 10 to 5 years as confidence rises."""
    margin = 10.0 - confidence * 5.0
    low = clamp_range_bound(round_half_away(age - margin))
    high = clamp_range_bound(round_half_away(age + margin))
    return low, high


def calculate_confidence(features: AgeFeatures, quality: float) -> float:
    return clamp((quality + features.completeness) / 2.0, MIN_CONFIDENCE, MAX_CONFIDENCE)


@dataclass(frozen=True)
class StrategyOutput:
    """Raw estimate before timing and image are attached."""

    estimated_age: float
    confidence: float
    age_range_low: int
    age_range_high: int
    method: EstimationMethod


class EstimationStrategy(ABC):
    """Turns one detected face into an age estimate."""

    name: str = "abstract"

    @abstractmethod
    def estimate(self, face: DetectedFace) -> StrategyOutput:
        """Estimate age. Implementations must not raise."""


class LandmarkStrategy(EstimationStrategy):
    """Weighted facial-proportion heuristic."""

    name = "landmark"

    def estimate(self, face: DetectedFace) -> StrategyOutput:
        quality = face_quality(face)
        if not face.has_landmarks:
            return self.fallback(quality)

        features = extract_features(face)
        age = clamp(BASE_AGE + features.weighted_sum(), MIN_AGE, MAX_AGE)
        confidence = calculate_confidence(features, quality)
        low, high = calculate_age_range(age, confidence)

        return StrategyOutput(
            estimated_age=age,
            confidence=confidence,
            age_range_low=low,
            age_range_high=high,
            method=EstimationMethod.LANDMARKS,
        )

    @staticmethod
    def fallback(quality: float) -> StrategyOutput:
        """Quality-only estimate for faces without landmarks."""
        age = BASE_AGE + (1.0 - quality) * FALLBACK_QUALITY_SCALE
        center = int(age)
        logger.debug("fallback_estimation", quality=quality, estimated_age=age)

        return StrategyOutput(
            estimated_age=age,
            confidence=FALLBACK_CONFIDENCE,
            age_range_low=clamp_range_bound(center - FALLBACK_MARGIN),
            age_range_high=clamp_range_bound(center + FALLBACK_MARGIN),
            method=EstimationMethod.FALLBACK,
        )


class AgeModel(Protocol):
    """A trained age regressor.

    ``predict`` takes the fixed-order feature vector from
    ``AgeFeatures.to_vector`` and returns ``(age, error)``.
    """

    def predict(self, features: np.ndarray) -> tuple[float, float]: ...


class LinearAgeModel:
    """Linear regressor stored as a numpy ``.npz`` archive.

    The archive holds ``weights`` with shape (2, n_features) and ``bias`` with
    shape (2,). Row 0 predicts age, row 1 predicts the expected error.
    """

    def __init__(self, weights: np.ndarray, bias: np.ndarray) -> None:
        weights = np.asarray(weights, dtype=np.float64)
        bias = np.asarray(bias, dtype=np.float64)
        if weights.ndim != 2 or weights.shape[0] != 2:
            raise ValueError(f"weights must have shape (2, n), got {weights.shape}")
        if bias.shape != (2,):
            raise ValueError(f"bias must have shape (2,), got {bias.shape}")
        self.weights = weights
        self.bias = bias

    @property
    def n_features(self) -> int:
        return self.weights.shape[1]

    @classmethod
    def from_file(cls, path: Path | str) -> LinearAgeModel:
        archive = np.load(Path(path), allow_pickle=False)
        if not isinstance(archive, np.lib.npyio.NpzFile):
            raise ValueError(f"{path} is not an .npz archive")
        with archive:
            return cls(archive["weights"], archive["bias"])

    def save(self, path: Path | str) -> None:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "wb") as f:
            np.savez(f, weights=self.weights, bias=self.bias)

    def predict(self, features: np.ndarray) -> tuple[float, float]:
        if features.shape != (self.n_features,):
            raise ValueError(
                f"expected {self.n_features} features, got {features.shape[0]}"
            )
        age, error = self.weights @ features + self.bias
        return float(age), float(error)


def load_age_model(path: Path | str | None) -> LinearAgeModel | None:
    """Load a bundled model artifact.

    Returns None when there is no usable model; never raises.
    """
    if not path:
        return None

    path = Path(path)
    if not path.exists():
        logger.debug("age_model_not_found", path=str(path))
        return None

    try:
        model = LinearAgeModel.from_file(path)
        if model.n_features != MODEL_FEATURES:
            raise ValueError(
                f"model expects {model.n_features} features, extractor produces {MODEL_FEATURES}"
            )
    except Exception as e:
        logger.warning("age_model_load_failed", path=str(path), error=str(e))
        return None

    logger.info("age_model_loaded", path=str(path), n_features=model.n_features)
    return model


class LearnedModelStrategy(EstimationStrategy):
    """Estimates with a trained model, degrading to the heuristic per call."""

    name = "model"

    def __init__(self, model: AgeModel, fallback: EstimationStrategy | None = None) -> None:
        self.model = model
        self.fallback = fallback or LandmarkStrategy()

    def estimate(self, face: DetectedFace) -> StrategyOutput:
        features = extract_features(face)
        try:
            age, error = self.model.predict(features.to_vector())
            if not (math.isfinite(age) and math.isfinite(error)):
                raise ValueError(f"non-finite model output ({age}, {error})")
        except Exception as e:
            logger.warning("model_inference_failed", face_id=face.face_id, error=str(e))
            return self.fallback.estimate(face)

        confidence = clamp(1.0 - abs(error), 0.0, 1.0)
        low, high = calculate_age_range(age, confidence)

        return StrategyOutput(
            estimated_age=age,
            confidence=confidence,
            age_range_low=low,
            age_range_high=high,
            method=EstimationMethod.MODEL,
        )


def select_strategy(
    config: EstimationConfig,
    model: AgeModel | None = None,
) -> EstimationStrategy:
    """Pick the strategy for an estimator.

    ``landmark`` always uses the heuristic. ``auto`` and ``model`` use the
    learned model when one is given or loads from ``config.model_path``.
    A ``model`` request with no loadable artifact degrades to the heuristic.
    """
    if config.strategy == "landmark":
        return LandmarkStrategy()

    if model is None:
        model = load_age_model(config.model_path)

    if model is None:
        if config.strategy == "model":
            logger.warning("age_model_unavailable", path=config.model_path)
        return LandmarkStrategy()

    return LearnedModelStrategy(model)
