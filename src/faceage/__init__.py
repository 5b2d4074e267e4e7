"""faceage - facial age estimation for wearable camera companions."""

__version__ = "0.1.0"
__author__ = "faceage Team"

from faceage.config import Config, load_config
from faceage.estimation import AgeEstimationResult, AgeEstimator, DetectedFace

__all__ = [
    "Config",
    "load_config",
    "AgeEstimator",
    "AgeEstimationResult",
    "DetectedFace",
    "__version__",
]
