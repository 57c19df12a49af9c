"""
Face detection and descriptor extraction using the dlib based face_recognition library.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Tuple

import numpy as np

logger = logging.getLogger(__name__)

# (top, right, bottom, left) as returned by face_recognition
FaceLocation = Tuple[int, int, int, int]


def _face_area(location: FaceLocation) -> int:
    top, right, bottom, left = location
    return max(0, bottom - top) * max(0, right - left)


class FaceDetectionService:
    """Service for detecting a single face and extracting its 128-d descriptor."""

    def __init__(
        self,
        model: str = "hog",
        upsample_times: int = 1,
        num_jitters: int = 1,
        descriptor_dimension: int = 128
    ):
        """
        Initialize the detection service.

        Args:
            model: Detector used by face_recognition, "hog" (CPU) or "cnn"
            upsample_times: How many times to upsample the frame when looking for faces
            num_jitters: Re-sampling count when computing the descriptor
            descriptor_dimension: Expected descriptor length
        """
        self.model = model
        self.upsample_times = upsample_times
        self.num_jitters = num_jitters
        self.descriptor_dimension = descriptor_dimension
        self._backend: Optional[Any] = None
        self._model_loaded = False

    def _load_model(self) -> None:
        """Import face_recognition, which loads the dlib models from disk."""
        if self._model_loaded:
            return

        try:
            logger.info("Loading face_recognition models...")
            import face_recognition
            self._backend = face_recognition
            self._model_loaded = True
            logger.info("Face recognition models loaded successfully")

        except Exception as e:
            logger.error(f"Failed to load face_recognition models: {e}")
            raise RuntimeError(f"Model loading failed: {e}")

    def load(self) -> None:
        """Load the detection models eagerly (called at application startup)."""
        self._load_model()

    @property
    def is_loaded(self) -> bool:
        return self._model_loaded

    def _select_face(self, locations: List[FaceLocation]) -> FaceLocation:
        """Pick the largest detected face."""
        if len(locations) > 1:
            logger.info(f"Detected {len(locations)} faces, using the largest one")
        return max(locations, key=_face_area)

    def detect(self, image: np.ndarray) -> Optional[np.ndarray]:
        """
        Detect the best face in an RGB frame and extract its descriptor.

        Args:
            image: RGB image array of shape (H, W, 3)

        Returns:
            numpy.ndarray descriptor, or None if no face was found

        Raises:
            RuntimeError: If model loading fails or the descriptor has the wrong size
        """
        self._load_model()

        locations = self._backend.face_locations(
            image,
            number_of_times_to_upsample=self.upsample_times,
            model=self.model
        )
        if not locations:
            logger.info("No face detected in frame")
            return None

        best_location = self._select_face(locations)
        encodings = self._backend.face_encodings(
            image,
            known_face_locations=[best_location],
            num_jitters=self.num_jitters
        )
        if not encodings:
            logger.info("Face found but no descriptor could be extracted")
            return None

        descriptor = np.asarray(encodings[0], dtype=np.float64)
        if descriptor.shape != (self.descriptor_dimension,):
            raise RuntimeError(
                f"Unexpected descriptor dimension: {descriptor.shape}, expected {self.descriptor_dimension}"
            )

        logger.debug(f"Extracted descriptor for face at {best_location}")
        return descriptor

    async def detect_async(self, image: np.ndarray) -> Optional[np.ndarray]:
        """Run `detect` in a worker thread so the event loop stays responsive."""
        return await asyncio.to_thread(self.detect, image)

    def models_loaded(self) -> Dict[str, bool]:
        """Report which detector components are available."""
        api = getattr(self._backend, "api", None)
        return {
            "faceDetector": self._model_loaded and getattr(api, "face_detector", None) is not None,
            "faceLandmark": self._model_loaded and getattr(api, "pose_predictor_5_point", None) is not None,
            "faceRecognition": self._model_loaded and getattr(api, "face_encoder", None) is not None
        }

    def get_model_info(self) -> dict:
        """
        Get information about the loaded model.

        Returns:
            dict: Model information including status and configuration
        """
        return {
            "model_loaded": self._model_loaded,
            "detector": self.model,
            "upsample_times": self.upsample_times,
            "num_jitters": self.num_jitters,
            "descriptor_dimension": self.descriptor_dimension,
            "library": "face_recognition"
        }
