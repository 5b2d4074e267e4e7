"""Face and age estimation data types."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping, Sequence

import numpy as np


class LandmarkRegion(str, Enum):
    """Named landmark regions supplied by the face detector."""

    LEFT_EYE = "left_eye"
    RIGHT_EYE = "right_eye"
    NOSE = "nose"
    NOSE_CREST = "nose_crest"
    OUTER_LIPS = "outer_lips"
    INNER_LIPS = "inner_lips"
    FACE_CONTOUR = "face_contour"
    LEFT_EYEBROW = "left_eyebrow"
    RIGHT_EYEBROW = "right_eyebrow"


# Regions counted for landmark completeness
REQUIRED_REGIONS: tuple[LandmarkRegion, ...] = (
    LandmarkRegion.LEFT_EYE,
    LandmarkRegion.RIGHT_EYE,
    LandmarkRegion.NOSE,
    LandmarkRegion.OUTER_LIPS,
    LandmarkRegion.FACE_CONTOUR,
)


@dataclass(frozen=True)
class BoundingBox:
    """Normalized face bounding box, origin at the bottom-left of the image."""

    x: float
    y: float
    width: float
    height: float

    def to_pixels(self, image_width: int, image_height: int) -> tuple[float, float, float, float]:
        """Convert to a top-left-origin pixel rect (x, y, width, height)."""
        return (
            self.x * image_width,
            (1 - self.y - self.height) * image_height,
            self.width * image_width,
            self.height * image_height,
        )

    def to_dict(self) -> dict:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}


@dataclass(frozen=True)
class HeadPose:
    """Head pose angles in radians."""

    yaw: float | None = None
    pitch: float | None = None
    roll: float | None = None


def _freeze_points(points: Sequence[Sequence[float]] | np.ndarray) -> np.ndarray:
    arr = np.array(points, dtype=np.float64).reshape(-1, 2)
    arr.setflags(write=False)
    return arr


@dataclass(frozen=True, eq=False)
class DetectedFace:
    """A face as reported by the upstream face detector.

    ``landmarks`` maps each available region to an ordered (N, 2) array of
    normalized points. A region the detector did not report is simply not a
    key. ``landmarks=None`` and an empty mapping both mean "no landmarks".
    """

    bounding_box: BoundingBox
    confidence: float = 1.0
    landmarks: Mapping[LandmarkRegion, np.ndarray] | None = None
    pose: HeadPose | None = None
    quality: float | None = None
    face_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def __post_init__(self) -> None:
        if self.landmarks is not None:
            frozen = {
                LandmarkRegion(region): _freeze_points(points)
                for region, points in self.landmarks.items()
            }
            object.__setattr__(self, "landmarks", MappingProxyType(frozen))

    @property
    def has_landmarks(self) -> bool:
        return bool(self.landmarks)

    @property
    def has_good_quality(self) -> bool:
        if self.quality is None:
            return False
        return self.quality >= 0.5

    @property
    def is_facing_camera(self) -> bool:
        if self.pose is None or self.pose.yaw is None:
            return True
        return abs(self.pose.yaw) < 0.3

    def region(self, name: LandmarkRegion) -> np.ndarray | None:
        """Get the points for a landmark region, or None if not reported."""
        if not self.landmarks:
            return None
        return self.landmarks.get(name)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> DetectedFace:
        """Build a face from its plain-dict (JSON) form.

        Raises:
            ValueError: On a non-object face, an unknown landmark region name,
                or a malformed bbox or landmarks field.
        """
        if not isinstance(data, Mapping):
            raise ValueError(f"expected a face object, got {type(data).__name__}")

        bbox = data.get("bounding_box") or data.get("bbox")
        if not isinstance(bbox, Mapping):
            raise ValueError("face is missing a bounding_box object")

        landmarks = data.get("landmarks")
        if landmarks is not None:
            if not isinstance(landmarks, Mapping):
                raise ValueError("landmarks must be an object of region name to points")
            try:
                landmarks = {LandmarkRegion(name): pts for name, pts in landmarks.items()}
            except ValueError as e:
                raise ValueError(f"unknown landmark region: {e}") from e

        pose_data = data.get("pose")
        pose = HeadPose(**pose_data) if pose_data else None

        kwargs: dict[str, Any] = {}
        if data.get("face_id"):
            kwargs["face_id"] = str(data["face_id"])

        return cls(
            bounding_box=BoundingBox(
                x=float(bbox["x"]),
                y=float(bbox["y"]),
                width=float(bbox["width"]),
                height=float(bbox["height"]),
            ),
            confidence=float(data.get("confidence", 1.0)),
            landmarks=landmarks,
            pose=pose,
            quality=None if data.get("quality") is None else float(data["quality"]),
            **kwargs,
        )

    def to_dict(self) -> dict:
        landmarks = None
        if self.landmarks is not None:
            landmarks = {r.value: pts.tolist() for r, pts in self.landmarks.items()}
        pose = None
        if self.pose is not None:
            pose = {"yaw": self.pose.yaw, "pitch": self.pose.pitch, "roll": self.pose.roll}
        return {
            "face_id": self.face_id,
            "bounding_box": self.bounding_box.to_dict(),
            "confidence": self.confidence,
            "landmarks": landmarks,
            "pose": pose,
            "quality": self.quality,
        }


class AgeGroup(Enum):
    """Coarse age bracket used for display."""

    CHILD = ("Child (0-12)", "green")
    TEEN = ("Teen (13-19)", "blue")
    YOUNG_ADULT = ("Young Adult (20-35)", "purple")
    ADULT = ("Adult (36-55)", "orange")
    SENIOR = ("Senior (56+)", "red")

    def __init__(self, label: str, color: str) -> None:
        self.label = label
        self.color = color

    @classmethod
    def from_age(cls, age: float) -> AgeGroup:
        if age < 13:
            return cls.CHILD
        if age < 20:
            return cls.TEEN
        if age < 36:
            return cls.YOUNG_ADULT
        if age < 56:
            return cls.ADULT
        return cls.SENIOR


class EstimationMethod(str, Enum):
    """Which path produced an estimate."""

    LANDMARKS = "landmarks"
    FALLBACK = "fallback"
    MODEL = "model"


@dataclass(frozen=True, eq=False)
class AgeEstimationResult:
    """Age estimate for a single face."""

    estimated_age: float
    confidence: float
    age_range_low: int
    age_range_high: int
    method: EstimationMethod
    face_image: Any = None
    processing_time: float = 0.0
    result_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    @property
    def age_range_string(self) -> str:
        return f"{self.age_range_low}-{self.age_range_high}"

    @property
    def confidence_percentage(self) -> str:
        return f"{self.confidence * 100:.0f}%"

    @property
    def age_group(self) -> AgeGroup:
        return AgeGroup.from_age(self.estimated_age)

    def to_dict(self) -> dict:
        return {
            "estimated_age": round(float(self.estimated_age), 2),
            "confidence": round(float(self.confidence), 3),
            "age_range": [self.age_range_low, self.age_range_high],
            "age_group": self.age_group.label,
            "method": self.method.value,
            "processing_time_ms": round(self.processing_time * 1000, 2),
        }
