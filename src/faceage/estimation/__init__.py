"""Landmark-based facial age estimation."""

from faceage.estimation.estimator import AgeEstimator
from faceage.estimation.features import AgeFeatures, extract_features
from faceage.estimation.strategies import (
    EstimationStrategy,
    LandmarkStrategy,
    LearnedModelStrategy,
    LinearAgeModel,
    load_age_model,
    select_strategy,
)
from faceage.estimation.types import (
    REQUIRED_REGIONS,
    AgeEstimationResult,
    AgeGroup,
    BoundingBox,
    DetectedFace,
    EstimationMethod,
    HeadPose,
    LandmarkRegion,
)

__all__ = [
    "AgeEstimator",
    "AgeFeatures",
    "extract_features",
    "EstimationStrategy",
    "LandmarkStrategy",
    "LearnedModelStrategy",
    "LinearAgeModel",
    "load_age_model",
    "select_strategy",
    "REQUIRED_REGIONS",
    "AgeEstimationResult",
    "AgeGroup",
    "BoundingBox",
    "DetectedFace",
    "EstimationMethod",
    "HeadPose",
    "LandmarkRegion",
]
