"""Face analysis service: runs age estimation over every face in a frame."""

from __future__ import annotations

import asyncio
import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Sequence

import numpy as np

from faceage.analysis.imaging import extract_face_image, make_thumbnail
from faceage.analysis.records import ScanRecord, SessionStats
from faceage.common.events import Event, EventBus, get_event_bus
from faceage.common.logging import get_logger, setup_logging
from faceage.config import Config, load_config
from faceage.estimation.estimator import AgeEstimator
from faceage.estimation.types import AgeEstimationResult, AgeGroup, DetectedFace


class AnalysisState(Enum):
    """Analysis state enum."""

    IDLE = "idle"
    ANALYZING = "analyzing"
    PAUSED = "paused"
    ERROR = "error"


@dataclass
class FaceAnalysisResult:
    """A detected face together with its age estimate."""

    face: DetectedFace
    age_estimation: AgeEstimationResult | None
    face_image: np.ndarray | None = None
    timestamp: float = field(default_factory=time.time)

    @property
    def has_age_estimation(self) -> bool:
        return self.age_estimation is not None

    @property
    def display_age(self) -> str:
        if self.age_estimation is None:
            return "N/A"
        return f"{self.age_estimation.estimated_age:.0f}"

    @property
    def display_age_range(self) -> str:
        if self.age_estimation is None:
            return "Unknown"
        return self.age_estimation.age_range_string

    @property
    def display_confidence(self) -> str:
        if self.age_estimation is None:
            return "0%"
        return self.age_estimation.confidence_percentage

    @property
    def age_group(self) -> AgeGroup | None:
        if self.age_estimation is None:
            return None
        return self.age_estimation.age_group


class FaceAnalysisService:
    """Face analysis service.

    Responsibilities:
    - Cropping and estimating every detected face of a frame
    - Live analysis state (idle / analyzing / paused)
    - Rolling processing-time statistics
    - Publishing results and scan records on the event bus

    Events:
    - ``analysis.face_scan``: one per estimated face, data is a scan record
    - ``analysis.results``: one per processed frame
    """

    def __init__(
        self,
        config: Config | None = None,
        estimator: AgeEstimator | None = None,
        event_bus: EventBus | None = None,
    ) -> None:
        self.config = config or load_config()

        setup_logging(
            level=self.config.device.log_level,
            json_output=self.config.device.mode == "production",
            service_name="face_analysis",
        )
        self.logger = get_logger("face_analysis", service="face_analysis")

        self.estimator = estimator or AgeEstimator(self.config.estimation)
        self._event_bus = event_bus or get_event_bus()

        self._state = AnalysisState.IDLE
        self._is_processing = False
        self._processing_times: deque[float] = deque(maxlen=self.config.analysis.stats_window)
        self._scan_records: list[ScanRecord] = []

        self.current_results: list[FaceAnalysisResult] = []
        self.latest_result: FaceAnalysisResult | None = None
        self.total_faces_analyzed = 0

    @property
    def state(self) -> AnalysisState:
        return self._state

    @property
    def is_processing(self) -> bool:
        return self._is_processing

    @property
    def average_processing_time(self) -> float:
        if not self._processing_times:
            return 0.0
        return sum(self._processing_times) / len(self._processing_times)

    @property
    def scan_records(self) -> list[ScanRecord]:
        return list(self._scan_records)

    # Analysis control

    def start(self) -> None:
        """Start live analysis and begin a new session."""
        self._state = AnalysisState.ANALYZING
        self.current_results = []
        self._scan_records = []
        self.logger.info("analysis_started", strategy=self.estimator.strategy.name)

    def pause(self) -> None:
        self._state = AnalysisState.PAUSED
        self.logger.info("analysis_paused")

    def resume(self) -> None:
        if self._state == AnalysisState.PAUSED:
            self._state = AnalysisState.ANALYZING
            self.logger.info("analysis_resumed")

    def stop(self) -> None:
        self._state = AnalysisState.IDLE
        self.current_results = []
        self.logger.info("analysis_stopped", total_faces=self.total_faces_analyzed)

    # Frame processing

    async def process_frame(
        self,
        faces: Sequence[DetectedFace],
        image: np.ndarray | None = None,
    ) -> list[FaceAnalysisResult] | None:
        """Process one live frame.

        Frames that arrive while not analyzing, or while a previous frame is
        still being processed, are dropped and None is returned.

        Args:
            faces: Faces the detector found in the frame.
            image: Frame pixels as an (H, W, C) array, used for face crops.

        Returns:
            Results for the frame, or None if the frame was dropped.
        """
        if self._state != AnalysisState.ANALYZING or self._is_processing:
            return None

        self._is_processing = True
        start_time = time.perf_counter()

        try:
            results = await self._analyze(faces, image)
            if not results:
                self.current_results = []
                return []

            for result in results:
                if result.age_estimation is not None:
                    await self._publish_scan(result)

            self._record_processing_time(time.perf_counter() - start_time)
            self.current_results = results
            self.latest_result = results[0]
            self.total_faces_analyzed += len(results)

            await self._event_bus.publish(
                Event(
                    topic="analysis.results",
                    data={
                        "face_count": len(results),
                        "estimated_ages": [
                            r.age_estimation.estimated_age
                            for r in results
                            if r.age_estimation is not None
                        ],
                        "processing_time": self.average_processing_time,
                    },
                    source="face_analysis",
                )
            )
            return results

        except Exception as e:
            self._state = AnalysisState.ERROR
            self.logger.exception("frame_processing_failed", error=str(e))
            raise
        finally:
            self._is_processing = False

    async def analyze_faces(
        self,
        faces: Sequence[DetectedFace],
        image: np.ndarray | None = None,
    ) -> list[FaceAnalysisResult]:
        """Analyze a single still image, independent of the live state.

        Args:
            faces: Faces the detector found in the image.
            image: Image pixels as an (H, W, C) array, used for face crops.

        Returns:
            One result per face, up to ``analysis.max_faces``.
        """
        start_time = time.perf_counter()
        results = await self._analyze(faces, image)
        if results:
            self._record_processing_time(time.perf_counter() - start_time)
        return results

    async def _analyze(
        self,
        faces: Sequence[DetectedFace],
        image: np.ndarray | None,
    ) -> list[FaceAnalysisResult]:
        faces = list(faces)[: self.config.analysis.max_faces]
        if not faces:
            return []

        crops: list[np.ndarray | None] = [
            extract_face_image(image, face.bounding_box, self.config.analysis.face_padding)
            if image is not None
            else None
            for face in faces
        ]

        async def estimate(face: DetectedFace, crop: np.ndarray | None) -> AgeEstimationResult | None:
            # A frame was given but the face lies outside it
            if image is not None and crop is None:
                self.logger.debug("face_crop_empty", face_id=face.face_id)
                return None
            return await self.estimator.estimate_async(face, crop)

        estimations = await asyncio.gather(
            *[estimate(face, crop) for face, crop in zip(faces, crops)]
        )

        return [
            FaceAnalysisResult(face=face, age_estimation=estimation, face_image=crop)
            for face, estimation, crop in zip(faces, estimations, crops)
        ]

    async def _publish_scan(self, result: FaceAnalysisResult) -> None:
        thumbnail = make_thumbnail(
            result.face_image,
            size=self.config.analysis.thumbnail_size,
            quality=self.config.analysis.thumbnail_quality,
        )
        record = ScanRecord.from_estimation(result.face, result.age_estimation, thumbnail)
        self._scan_records.append(record)

        await self._event_bus.publish(
            Event(topic="analysis.face_scan", data=record.to_dict(), source="face_analysis")
        )

    def _record_processing_time(self, seconds: float) -> None:
        self._processing_times.append(seconds)

    def get_session_stats(self) -> SessionStats:
        """Statistics over the scans of the current session."""
        return SessionStats.from_records(self._scan_records)

    def get_status(self) -> dict[str, Any]:
        """Get analysis status."""
        return {
            "state": self._state.value,
            "is_processing": self._is_processing,
            "strategy": self.estimator.strategy.name,
            "total_faces_analyzed": self.total_faces_analyzed,
            "current_face_count": len(self.current_results),
            "average_processing_ms": round(self.average_processing_time * 1000, 2),
            "session_scans": len(self._scan_records),
        }
