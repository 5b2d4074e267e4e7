"""Facial-proportion features used by the landmark age heuristic.

All geometry runs in the detector's normalized coordinate space. Every
feature is offset from a reference proportion so that a face at the
reference values contributes roughly zero, then scaled into "years".
"""

from __future__ import annotations

import math
from dataclasses import dataclass, fields

import numpy as np

from faceage.estimation.types import REQUIRED_REGIONS, DetectedFace, LandmarkRegion

BASE_AGE = 30.0
DEFAULT_QUALITY = 0.5
MIN_DENOMINATOR = 0.001
MIN_CONTOUR_POINTS = 10

# Per-feature weights applied to the scaled contributions
FEATURE_WEIGHTS: dict[str, float] = {
    "eye_spacing": -0.15,
    "face_length": 0.12,
    "jawline": 0.18,
    "nose": 0.10,
    "lips": 0.07,
    "brows": 0.08,
    "skin_texture": 0.25,
}

HORIZONTAL = 0
VERTICAL = 1


def region_center(points: np.ndarray | None) -> np.ndarray | None:
    """Centroid of a region, or None for a missing or empty region."""
    if points is None or len(points) == 0:
        return None
    return points.mean(axis=0)


def region_span(points: np.ndarray | None, axis: int) -> float:
    """Extent of a region along one axis (0 = x, 1 = y)."""
    if points is None or len(points) == 0:
        return 0.0
    values = points[:, axis]
    return float(values.max() - values.min())


def eye_spacing_score(left_eye: np.ndarray, right_eye: np.ndarray) -> float:
    left = region_center(left_eye)
    right = region_center(right_eye)
    if left is None or right is None:
        return 0.0
    spacing = abs(float(right[0]) - float(left[0]))
    return (spacing - 0.25) * 100


def face_length_score(contour: np.ndarray) -> float:
    if len(contour) < MIN_CONTOUR_POINTS:
        return 0.0
    return (region_span(contour, VERTICAL) - 0.4) * 50


def jawline_score(contour: np.ndarray) -> float:
    """Average chin-to-jaw angle.

    Indexes the contour by proportional position, so it assumes the detector's
    point count and winding order: chin at the middle point, jaw points at the
    quarter and three-quarter positions.
    """
    if len(contour) < MIN_CONTOUR_POINTS:
        return 0.0

    mid = len(contour) // 2
    chin_x, chin_y = (float(v) for v in contour[mid])
    left_x, left_y = (float(v) for v in contour[mid // 2])
    right_x, right_y = (float(v) for v in contour[mid + mid // 2])

    left_angle = math.atan2(chin_y - left_y, chin_x - left_x)
    right_angle = math.atan2(chin_y - right_y, right_x - chin_x)
    return (left_angle + right_angle) / 2 * 20


def nose_score(nose: np.ndarray, nose_crest: np.ndarray) -> float:
    if len(nose) == 0 or len(nose_crest) == 0:
        return 0.0
    length = region_span(nose, VERTICAL)
    width = region_span(nose, HORIZONTAL)
    return (length + width - 0.15) * 80


def lips_score(outer_lips: np.ndarray, inner_lips: np.ndarray) -> float:
    outer_height = region_span(outer_lips, VERTICAL)
    inner_height = region_span(inner_lips, VERTICAL)
    ratio = inner_height / max(outer_height, MIN_DENOMINATOR)
    return (0.7 - ratio) * 40


def brows_score(
    left_brow: np.ndarray,
    right_brow: np.ndarray,
    left_eye: np.ndarray,
    right_eye: np.ndarray,
) -> float:
    centers = [region_center(r) for r in (left_brow, right_brow, left_eye, right_eye)]
    if any(c is None for c in centers):
        return 0.0
    left_brow_c, right_brow_c, left_eye_c, right_eye_c = centers
    left_distance = float(left_brow_c[1]) - float(left_eye_c[1])
    right_distance = float(right_brow_c[1]) - float(right_eye_c[1])
    return (0.1 - (left_distance + right_distance) / 2) * 100


def skin_texture_score(quality: float) -> float:
    # Lower capture quality stands in for texture and wrinkles
    return (1.0 - quality) * 30


def landmark_completeness(face: DetectedFace) -> float:
    """Fraction of the required regions the detector reported."""
    if not face.landmarks:
        return 0.0
    present = sum(1 for region in REQUIRED_REGIONS if region in face.landmarks)
    return present / len(REQUIRED_REGIONS)


@dataclass(frozen=True)
class AgeFeatures:
    """Scaled feature contributions for one face.

    A feature whose regions were not reported is None and is left out of the
    weighted sum.
    """

    eye_spacing: float | None
    face_length: float | None
    jawline: float | None
    nose: float | None
    lips: float | None
    brows: float | None
    skin_texture: float
    completeness: float

    def weighted_sum(self) -> float:
        total = 0.0
        for name, weight in FEATURE_WEIGHTS.items():
            value = getattr(self, name)
            if value is not None:
                total += value * weight
        return total

    def to_vector(self) -> np.ndarray:
        """Fixed-order vector for learned models; missing features become 0."""
        return np.array(
            [0.0 if getattr(self, f.name) is None else getattr(self, f.name) for f in fields(self)],
            dtype=np.float64,
        )


def face_quality(face: DetectedFace) -> float:
    return DEFAULT_QUALITY if face.quality is None else float(face.quality)


def extract_features(face: DetectedFace) -> AgeFeatures:
    """Compute every available feature contribution for a face."""
    r = face.region
    left_eye = r(LandmarkRegion.LEFT_EYE)
    right_eye = r(LandmarkRegion.RIGHT_EYE)
    contour = r(LandmarkRegion.FACE_CONTOUR)
    nose = r(LandmarkRegion.NOSE)
    nose_crest = r(LandmarkRegion.NOSE_CREST)
    outer_lips = r(LandmarkRegion.OUTER_LIPS)
    inner_lips = r(LandmarkRegion.INNER_LIPS)
    left_brow = r(LandmarkRegion.LEFT_EYEBROW)
    right_brow = r(LandmarkRegion.RIGHT_EYEBROW)

    have_eyes = left_eye is not None and right_eye is not None
    have_brows = left_brow is not None and right_brow is not None

    return AgeFeatures(
        eye_spacing=eye_spacing_score(left_eye, right_eye) if have_eyes else None,
        face_length=face_length_score(contour) if contour is not None else None,
        jawline=jawline_score(contour) if contour is not None else None,
        nose=(
            nose_score(nose, nose_crest)
            if nose is not None and nose_crest is not None
            else None
        ),
        lips=(
            lips_score(outer_lips, inner_lips)
            if outer_lips is not None and inner_lips is not None
            else None
        ),
        brows=(
            brows_score(left_brow, right_brow, left_eye, right_eye)
            if have_brows and have_eyes
            else None
        ),
        skin_texture=skin_texture_score(face_quality(face)),
        completeness=landmark_completeness(face),
    )
