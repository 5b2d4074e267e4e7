"""Tests for the face analysis service."""

import asyncio
import io

import numpy as np
import pytest
from PIL import Image

from faceage.analysis import (
    AnalysisState,
    FaceAnalysisResult,
    FaceAnalysisService,
    ScanRecord,
    SessionStats,
    extract_face_image,
    make_thumbnail,
)
from faceage.common.events import Event
from faceage.config import AnalysisConfig
from faceage.estimation import AgeEstimator, BoundingBox, EstimationMethod, HeadPose


class TestImaging:
    """Tests for cropping and thumbnails."""

    def test_extract_with_padding(self):
        image = np.zeros((128, 256, 3), dtype=np.uint8)
        # Pixel rect x=64, y=48, w=128, h=32
        bbox = BoundingBox(x=0.25, y=0.375, width=0.5, height=0.25)

        crop = extract_face_image(image, bbox, padding=0.125)
        # x: 64 - 16 .. 192 + 16, y: 48 - 4 .. 80 + 4
        assert crop.shape == (40, 160, 3)

    def test_extract_clips_to_image(self):
        image = np.zeros((128, 128, 3), dtype=np.uint8)
        bbox = BoundingBox(x=0.75, y=0.0, width=0.5, height=0.25)

        crop = extract_face_image(image, bbox, padding=0.0)
        assert crop.shape == (32, 32, 3)

    def test_extract_uses_bottom_left_origin(self):
        image = np.zeros((100, 100), dtype=np.uint8)
        image[:50] = 255  # top half white
        top_face = BoundingBox(x=0.2, y=0.6, width=0.2, height=0.2)
        bottom_face = BoundingBox(x=0.2, y=0.1, width=0.2, height=0.2)

        assert extract_face_image(image, top_face, padding=0.0).min() == 255
        assert extract_face_image(image, bottom_face, padding=0.0).max() == 0

    def test_extract_outside_image(self):
        image = np.zeros((100, 100, 3), dtype=np.uint8)
        assert extract_face_image(image, BoundingBox(1.5, 0.2, 0.2, 0.2), padding=0.3) is None

    def test_extract_returns_copy(self, frame_image):
        crop = extract_face_image(frame_image, BoundingBox(0.1, 0.1, 0.2, 0.2))
        crop[:] = 0
        assert frame_image.any()

    def test_thumbnail(self, frame_image):
        data = make_thumbnail(frame_image[:100, :80], size=150, quality=70)

        image = Image.open(io.BytesIO(data))
        assert image.format == "JPEG"
        assert image.size == (150, 150)

    def test_thumbnail_grayscale(self):
        data = make_thumbnail(np.full((40, 40), 128, dtype=np.uint8), size=32)
        assert Image.open(io.BytesIO(data)).size == (32, 32)

    def test_thumbnail_single_channel(self):
        data = make_thumbnail(np.full((40, 40, 1), 200, dtype=np.uint8), size=32)
        assert Image.open(io.BytesIO(data)).size == (32, 32)

    def test_thumbnail_float_frame_is_scaled(self):
        data = make_thumbnail(np.full((40, 40, 3), 0.5, dtype=np.float32), size=32)

        pixels = np.asarray(Image.open(io.BytesIO(data)))
        assert abs(int(pixels.mean()) - 128) <= 3

    def test_thumbnail_none(self):
        assert make_thumbnail(None) is None
        assert make_thumbnail(np.zeros((0, 0, 3), dtype=np.uint8)) is None


class TestScanRecord:
    """Tests for scan records."""

    def test_from_estimation(self, estimator, make_face):
        face = make_face(quality=0.85, pose=HeadPose(yaw=0.1, pitch=None, roll=-0.2))
        result = estimator.estimate(face)
        record = ScanRecord.from_estimation(face, result, b"jpeg")

        assert record.estimated_age == result.estimated_age
        assert record.age_confidence == result.confidence
        assert record.age_range_string == result.age_range_string
        assert record.face_confidence == 0.95
        assert record.face_bounds_width == 0.5
        assert (record.face_yaw, record.face_pitch, record.face_roll) == (0.1, 0.0, -0.2)
        assert record.face_quality == 0.85
        assert record.face_quality_description == "Excellent"
        assert record.thumbnail_data == b"jpeg"
        assert record.to_dict()["thumbnail_bytes"] == 4

    def test_defaults_without_pose_or_quality(self, estimator, make_face):
        face = make_face(quality=None, landmarks=False)
        record = ScanRecord.from_estimation(face, estimator.estimate(face))

        assert (record.face_yaw, record.face_pitch, record.face_roll) == (0.0, 0.0, 0.0)
        assert record.face_quality == 0.5
        assert record.face_quality_description == "Fair"
        assert record.estimated_age_string == "38"
        assert record.confidence_percentage == "30%"

    @pytest.mark.parametrize(
        "quality, description",
        [(0.95, "Excellent"), (0.8, "Excellent"), (0.7, "Good"), (0.4, "Fair"), (0.1, "Poor")],
    )
    def test_quality_description(self, estimator, make_face, quality, description):
        face = make_face(quality=quality)
        record = ScanRecord.from_estimation(face, estimator.estimate(face))
        assert record.face_quality_description == description


class TestSessionStats:
    """Tests for session statistics."""

    def test_empty(self):
        stats = SessionStats.from_records([])
        assert stats.total_scans == 0
        assert stats.average_age == 0.0

    def test_aggregates(self, estimator, make_face):
        faces = [make_face(quality=q, landmarks=False) for q in (1.0, 0.0)]
        records = [ScanRecord.from_estimation(f, estimator.estimate(f)) for f in faces]
        stats = SessionStats.from_records(records)

        assert stats.total_scans == 2
        assert stats.average_age == pytest.approx(37.5)
        assert stats.min_age == 30.0
        assert stats.max_age == 45.0
        assert stats.average_confidence == pytest.approx(0.3)


class TestFaceAnalysisResult:
    """Tests for result display helpers."""

    def test_without_estimation(self, reference_face):
        result = FaceAnalysisResult(face=reference_face, age_estimation=None)

        assert not result.has_age_estimation
        assert result.display_age == "N/A"
        assert result.display_age_range == "Unknown"
        assert result.display_confidence == "0%"
        assert result.age_group is None

    def test_with_estimation(self, estimator, reference_face):
        result = FaceAnalysisResult(
            face=reference_face, age_estimation=estimator.estimate(reference_face)
        )

        assert result.display_age == "30"
        assert result.display_age_range == "25-35"
        assert result.display_confidence == "100%"
        assert result.age_group.label == "Young Adult (20-35)"


class TestAnalysisState:
    """Tests for the analysis state machine."""

    def test_transitions(self, analysis_service: FaceAnalysisService):
        assert analysis_service.state == AnalysisState.IDLE

        analysis_service.resume()
        assert analysis_service.state == AnalysisState.IDLE

        analysis_service.start()
        assert analysis_service.state == AnalysisState.ANALYZING

        analysis_service.pause()
        assert analysis_service.state == AnalysisState.PAUSED

        analysis_service.resume()
        assert analysis_service.state == AnalysisState.ANALYZING

        analysis_service.stop()
        assert analysis_service.state == AnalysisState.IDLE

    @pytest.mark.asyncio
    async def test_frame_dropped_unless_analyzing(self, analysis_service, reference_face):
        assert await analysis_service.process_frame([reference_face]) is None

        analysis_service.start()
        analysis_service.pause()
        assert await analysis_service.process_frame([reference_face]) is None
        assert analysis_service.total_faces_analyzed == 0


class TestFrameProcessing:
    """Tests for live frame processing."""

    @pytest.mark.asyncio
    async def test_process_frame(self, analysis_service, event_bus, make_face, frame_image):
        scans: list[Event] = []
        frames: list[Event] = []

        async def on_scan(event: Event):
            scans.append(event)

        async def on_results(event: Event):
            frames.append(event)

        event_bus.subscribe("analysis.face_scan", on_scan)
        event_bus.subscribe("analysis.results", on_results)

        faces = [make_face(), make_face(quality=0.0, landmarks=False)]
        analysis_service.start()
        results = await analysis_service.process_frame(faces, frame_image)

        assert len(results) == 2
        assert results[0].face_image is not None
        assert results[0].age_estimation.face_image is results[0].face_image
        assert results[1].age_estimation.method == EstimationMethod.FALLBACK

        assert analysis_service.latest_result is results[0]
        assert analysis_service.current_results == results
        assert analysis_service.total_faces_analyzed == 2
        assert analysis_service.average_processing_time > 0

        assert len(scans) == 2
        assert scans[0].data["thumbnail_bytes"] > 0
        assert len(frames) == 1
        assert frames[0].data["face_count"] == 2
        assert len(analysis_service.scan_records) == 2

    @pytest.mark.asyncio
    async def test_process_frame_without_image(self, analysis_service, reference_face):
        analysis_service.start()
        results = await analysis_service.process_frame([reference_face])

        assert results[0].face_image is None
        assert results[0].age_estimation is not None
        assert analysis_service.scan_records[0].thumbnail_data is None

    @pytest.mark.asyncio
    async def test_float_single_channel_frame(self, analysis_service, reference_face):
        frame = np.full((120, 160, 1), 0.25, dtype=np.float64)

        analysis_service.start()
        results = await analysis_service.process_frame([reference_face], frame)

        assert analysis_service.state == AnalysisState.ANALYZING
        assert results[0].has_age_estimation
        assert analysis_service.scan_records[0].thumbnail_data

    @pytest.mark.asyncio
    async def test_face_outside_frame_is_not_estimated(
        self, analysis_service, event_bus, make_face, frame_image
    ):
        scans: list[Event] = []

        async def on_scan(event: Event):
            scans.append(event)

        event_bus.subscribe("analysis.face_scan", on_scan)
        outside = make_face(bbox=BoundingBox(x=2.0, y=2.0, width=0.1, height=0.1))

        analysis_service.start()
        results = await analysis_service.process_frame([outside], frame_image)

        assert len(results) == 1
        assert not results[0].has_age_estimation
        assert scans == []

    @pytest.mark.asyncio
    async def test_empty_frame_clears_results(self, analysis_service, reference_face):
        analysis_service.start()
        await analysis_service.process_frame([reference_face])
        assert analysis_service.current_results

        assert await analysis_service.process_frame([]) == []
        assert analysis_service.current_results == []
        assert analysis_service.total_faces_analyzed == 1

    @pytest.mark.asyncio
    async def test_overlapping_frames_are_dropped(self, analysis_service, reference_face):
        analysis_service.start()

        first, second = await asyncio.gather(
            analysis_service.process_frame([reference_face]),
            analysis_service.process_frame([reference_face]),
        )

        assert first is not None
        assert second is None
        assert not analysis_service.is_processing

    @pytest.mark.asyncio
    async def test_start_begins_new_session(self, analysis_service, reference_face):
        analysis_service.start()
        await analysis_service.process_frame([reference_face])
        assert analysis_service.get_session_stats().total_scans == 1

        analysis_service.start()
        assert analysis_service.get_session_stats().total_scans == 0


class TestAnalyzeFaces:
    """Tests for still-image analysis."""

    @pytest.mark.asyncio
    async def test_works_while_idle(self, analysis_service, reference_face):
        results = await analysis_service.analyze_faces([reference_face])

        assert len(results) == 1
        assert results[0].age_estimation.estimated_age == pytest.approx(30.0, abs=1e-6)
        assert analysis_service.total_faces_analyzed == 0

    @pytest.mark.asyncio
    async def test_max_faces(self, config, event_bus, make_face):
        config.analysis = AnalysisConfig(max_faces=2)
        service = FaceAnalysisService(config, event_bus=event_bus)

        results = await service.analyze_faces([make_face() for _ in range(5)])
        assert len(results) == 2

    @pytest.mark.asyncio
    async def test_stats_window(self, config, event_bus, reference_face):
        config.analysis = AnalysisConfig(stats_window=3)
        service = FaceAnalysisService(config, event_bus=event_bus)

        for _ in range(5):
            await service.analyze_faces([reference_face])

        assert len(service._processing_times) == 3

    @pytest.mark.asyncio
    async def test_empty_input(self, analysis_service):
        assert await analysis_service.analyze_faces([]) == []
        assert analysis_service.average_processing_time == 0.0


class TestStatus:
    """Tests for service status."""

    def test_get_status(self, analysis_service):
        status = analysis_service.get_status()

        assert status["state"] == "idle"
        assert status["strategy"] == "landmark"
        assert status["total_faces_analyzed"] == 0

    def test_custom_estimator(self, config, event_bus):
        estimator = AgeEstimator(config.estimation)
        service = FaceAnalysisService(config, estimator=estimator, event_bus=event_bus)
        assert service.estimator is estimator
