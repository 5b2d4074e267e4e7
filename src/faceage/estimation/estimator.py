"""Age estimator."""

from __future__ import annotations

import asyncio
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Sequence

from faceage.common.logging import get_logger
from faceage.config import EstimationConfig
from faceage.estimation.features import face_quality
from faceage.estimation.strategies import (
    AgeModel,
    EstimationStrategy,
    LandmarkStrategy,
    StrategyOutput,
    select_strategy,
)
from faceage.estimation.types import AgeEstimationResult, DetectedFace


class AgeEstimator:
    """Estimates age for detected faces.

    ``estimate`` never raises. Incomplete input lowers the confidence and
    widens the range instead; callers read those to judge reliability.

    The estimator is immutable after construction and safe to share between
    threads. The only shared resource is the read-only model handle.
    """

    def __init__(
        self,
        config: EstimationConfig | None = None,
        strategy: EstimationStrategy | None = None,
        model: AgeModel | None = None,
    ) -> None:
        """Initialize the estimator.

        Args:
            config: Estimation settings. Defaults are used if None.
            strategy: Explicit strategy. Selected from config if None.
            model: Pre-loaded model for strategy selection, instead of
                loading ``config.model_path``.
        """
        self.config = config or EstimationConfig()
        self.strategy = strategy or select_strategy(self.config, model)
        self.logger = get_logger("age_estimator", strategy=self.strategy.name)

    def with_configuration(self, config: EstimationConfig) -> AgeEstimator:
        """Build a new estimator with different settings."""
        return AgeEstimator(config)

    def estimate(self, face: DetectedFace, face_image: Any = None) -> AgeEstimationResult:
        """Estimate age for one face.

        Args:
            face: Face from the detector.
            face_image: Cropped face image to attach to the result.

        Returns:
            Best-effort estimate.
        """
        start_time = time.perf_counter()

        try:
            output = self.strategy.estimate(face)
        except Exception as e:
            self.logger.exception("strategy_failed", face_id=face.face_id, error=str(e))
            output = LandmarkStrategy.fallback(face_quality(face))

        result = self._build_result(output, face_image, time.perf_counter() - start_time)
        self.logger.debug(
            "age_estimated",
            face_id=face.face_id,
            estimated_age=round(result.estimated_age, 2),
            confidence=round(result.confidence, 3),
            method=result.method.value,
        )
        return result

    def estimate_many(
        self,
        faces: Sequence[DetectedFace],
        face_images: Sequence[Any] | None = None,
        max_workers: int = 4,
    ) -> list[AgeEstimationResult]:
        """Estimate all faces of one frame in parallel.

        Results are returned in the order of ``faces``.
        """
        if not faces:
            return []
        images = list(face_images) if face_images is not None else [None] * len(faces)
        if len(images) != len(faces):
            raise ValueError("face_images must match faces one to one")

        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            return list(pool.map(self.estimate, faces, images))

    async def estimate_async(
        self, face: DetectedFace, face_image: Any = None
    ) -> AgeEstimationResult:
        """Estimate off the event loop."""
        return await asyncio.to_thread(self.estimate, face, face_image)

    def is_reliable(self, result: AgeEstimationResult) -> bool:
        """Whether a result meets the configured confidence threshold."""
        return result.confidence >= self.config.confidence_threshold

    @staticmethod
    def _build_result(
        output: StrategyOutput, face_image: Any, processing_time: float
    ) -> AgeEstimationResult:
        return AgeEstimationResult(
            estimated_age=output.estimated_age,
            confidence=output.confidence,
            age_range_low=output.age_range_low,
            age_range_high=output.age_range_high,
            method=output.method,
            face_image=face_image,
            processing_time=processing_time,
        )
