"""
Tests for the face detection service.
"""

import sys
from unittest.mock import MagicMock, patch

import numpy as np
import pytest

from faceguard.services.detection_service import FaceDetectionService


class TestFaceDetectionService:
    """Test cases for FaceDetectionService."""

    @pytest.fixture
    def mock_backend(self):
        """Create a mock face_recognition module."""
        backend = MagicMock()
        backend.face_locations.return_value = [(10, 60, 60, 10)]
        backend.face_encodings.return_value = [np.full(128, 0.1)]
        return backend

    @pytest.fixture
    def detection_service(self, mock_backend):
        with patch.dict(sys.modules, {"face_recognition": mock_backend}):
            service = FaceDetectionService(model="hog", upsample_times=1, num_jitters=1)
            service.load()
        return service

    @pytest.fixture
    def frame(self):
        return np.zeros((120, 160, 3), dtype=np.uint8)

    def test_init(self):
        service = FaceDetectionService()

        assert service.model == "hog"
        assert service.descriptor_dimension == 128
        assert not service.is_loaded

    def test_load_failure(self):
        with patch.dict(sys.modules, {"face_recognition": None}):
            service = FaceDetectionService()

            with pytest.raises(RuntimeError, match="Model loading failed"):
                service.load()

        assert not service.is_loaded

    def test_detect_returns_descriptor(self, detection_service, mock_backend, frame):
        descriptor = detection_service.detect(frame)

        assert descriptor.shape == (128,)
        assert descriptor.dtype == np.float64
        mock_backend.face_locations.assert_called_once_with(frame, number_of_times_to_upsample=1, model="hog")
        mock_backend.face_encodings.assert_called_once_with(
            frame, known_face_locations=[(10, 60, 60, 10)], num_jitters=1
        )

    def test_detect_no_face(self, detection_service, mock_backend, frame):
        mock_backend.face_locations.return_value = []

        assert detection_service.detect(frame) is None
        mock_backend.face_encodings.assert_not_called()

    def test_detect_no_encoding(self, detection_service, mock_backend, frame):
        mock_backend.face_encodings.return_value = []

        assert detection_service.detect(frame) is None

    def test_largest_face_is_used(self, detection_service, mock_backend, frame):
        small = (0, 20, 20, 0)
        large = (30, 130, 110, 50)
        mock_backend.face_locations.return_value = [small, large]

        detection_service.detect(frame)

        _, kwargs = mock_backend.face_encodings.call_args
        assert kwargs["known_face_locations"] == [large]

    def test_unexpected_dimension(self, detection_service, mock_backend, frame):
        mock_backend.face_encodings.return_value = [np.zeros(64)]

        with pytest.raises(RuntimeError, match="Unexpected descriptor dimension"):
            detection_service.detect(frame)

    @pytest.mark.asyncio
    async def test_detect_async(self, detection_service, frame):
        descriptor = await detection_service.detect_async(frame)

        assert descriptor.shape == (128,)

    def test_models_loaded(self, detection_service):
        assert detection_service.models_loaded() == {
            "faceDetector": True,
            "faceLandmark": True,
            "faceRecognition": True
        }

    def test_models_not_loaded(self):
        assert FaceDetectionService().models_loaded() == {
            "faceDetector": False,
            "faceLandmark": False,
            "faceRecognition": False
        }

    def test_get_model_info(self, detection_service):
        info = detection_service.get_model_info()

        assert info["model_loaded"] is True
        assert info["descriptor_dimension"] == 128
        assert info["library"] == "face_recognition"
