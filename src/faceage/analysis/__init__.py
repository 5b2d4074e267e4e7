"""Face analysis: per-frame age estimation, crops and scan records."""

from faceage.analysis.imaging import extract_face_image, make_thumbnail
from faceage.analysis.records import ScanRecord, SessionStats
from faceage.analysis.service import AnalysisState, FaceAnalysisResult, FaceAnalysisService

__all__ = [
    "extract_face_image",
    "make_thumbnail",
    "ScanRecord",
    "SessionStats",
    "AnalysisState",
    "FaceAnalysisResult",
    "FaceAnalysisService",
]
