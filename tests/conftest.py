"""Shared fixtures for the test suite."""

import base64
import io
from unittest.mock import AsyncMock, MagicMock

import numpy as np
import pytest
from PIL import Image

from faceguard.clients.descriptor_store import DescriptorStore
from faceguard.services.access_service import AccessControlService


@pytest.fixture
def sample_image() -> str:
    """A small JPEG frame encoded as a browser data URL."""
    buffer = io.BytesIO()
    Image.new("RGB", (32, 24), color=(120, 90, 60)).save(buffer, format="JPEG")
    return "data:image/jpeg;base64," + base64.b64encode(buffer.getvalue()).decode()


@pytest.fixture
def zero_descriptor() -> np.ndarray:
    return np.zeros(128)


@pytest.fixture
def mock_detector(zero_descriptor):
    """Detector that always finds the all-zero descriptor."""
    detector = MagicMock()
    detector.detect_async = AsyncMock(return_value=zero_descriptor)
    detector.models_loaded.return_value = {
        "faceDetector": True,
        "faceLandmark": True,
        "faceRecognition": True
    }
    return detector


@pytest.fixture
def mock_notifier():
    notifier = MagicMock()
    notifier.publish_user_registered = AsyncMock(return_value=0)
    notifier.publish_user_deleted = AsyncMock(return_value=0)
    notifier.publish_access_attempt = AsyncMock(return_value=0)
    notifier.publish_capture_requested = AsyncMock(return_value=0)
    return notifier


@pytest.fixture
def store(tmp_path):
    return DescriptorStore(tmp_path / "users.json", descriptor_dimension=128)


@pytest.fixture
def access_service(store, mock_detector, mock_notifier):
    return AccessControlService(store=store, detector=mock_detector, notifier=mock_notifier, threshold=0.45)
