"""Scan records handed to the persistence layer."""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from typing import Iterable

from faceage.estimation.features import DEFAULT_QUALITY
from faceage.estimation.types import AgeEstimationResult, DetectedFace


@dataclass(frozen=True)
class ScanRecord:
    """One estimated face, flattened for storage."""

    estimated_age: float
    age_confidence: float
    age_range_low: int
    age_range_high: int
    face_confidence: float
    face_bounds_x: float
    face_bounds_y: float
    face_bounds_width: float
    face_bounds_height: float
    face_yaw: float = 0.0
    face_pitch: float = 0.0
    face_roll: float = 0.0
    face_quality: float = DEFAULT_QUALITY
    thumbnail_data: bytes | None = None
    scan_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: float = field(default_factory=time.time)

    @classmethod
    def from_estimation(
        cls,
        face: DetectedFace,
        result: AgeEstimationResult,
        thumbnail_data: bytes | None = None,
    ) -> ScanRecord:
        pose = face.pose
        return cls(
            estimated_age=result.estimated_age,
            age_confidence=result.confidence,
            age_range_low=result.age_range_low,
            age_range_high=result.age_range_high,
            face_confidence=face.confidence,
            face_bounds_x=face.bounding_box.x,
            face_bounds_y=face.bounding_box.y,
            face_bounds_width=face.bounding_box.width,
            face_bounds_height=face.bounding_box.height,
            face_yaw=(pose.yaw or 0.0) if pose else 0.0,
            face_pitch=(pose.pitch or 0.0) if pose else 0.0,
            face_roll=(pose.roll or 0.0) if pose else 0.0,
            face_quality=DEFAULT_QUALITY if face.quality is None else face.quality,
            thumbnail_data=thumbnail_data,
        )

    @property
    def estimated_age_string(self) -> str:
        return f"{self.estimated_age:.0f}"

    @property
    def age_range_string(self) -> str:
        return f"{self.age_range_low}-{self.age_range_high}"

    @property
    def confidence_percentage(self) -> str:
        return f"{self.age_confidence * 100:.0f}%"

    @property
    def face_quality_description(self) -> str:
        if self.face_quality >= 0.8:
            return "Excellent"
        if self.face_quality >= 0.6:
            return "Good"
        if self.face_quality >= 0.4:
            return "Fair"
        return "Poor"

    def to_dict(self) -> dict:
        """Plain-dict form for events; thumbnail reported by size only."""
        return {
            "scan_id": self.scan_id,
            "timestamp": self.timestamp,
            "estimated_age": self.estimated_age,
            "age_confidence": self.age_confidence,
            "age_range": [self.age_range_low, self.age_range_high],
            "face_confidence": self.face_confidence,
            "face_bounds": [
                self.face_bounds_x,
                self.face_bounds_y,
                self.face_bounds_width,
                self.face_bounds_height,
            ],
            "pose": [self.face_yaw, self.face_pitch, self.face_roll],
            "face_quality": self.face_quality,
            "thumbnail_bytes": len(self.thumbnail_data) if self.thumbnail_data else 0,
        }


@dataclass(frozen=True)
class SessionStats:
    """Summary over a session's scans."""

    total_scans: int = 0
    average_age: float = 0.0
    min_age: float = 0.0
    max_age: float = 0.0
    average_confidence: float = 0.0

    @classmethod
    def from_records(cls, records: Iterable[ScanRecord]) -> SessionStats:
        records = list(records)
        if not records:
            return cls()

        ages = [r.estimated_age for r in records]
        confidences = [r.age_confidence for r in records]
        return cls(
            total_scans=len(records),
            average_age=sum(ages) / len(ages),
            min_age=min(ages),
            max_age=max(ages),
            average_confidence=sum(confidences) / len(confidences),
        )
