"""
Access-control service for face registration and verification workflows.

This module provides the core business logic for:
- User registration: face detection, descriptor extraction and storage
- Face verification: nearest-neighbour matching against registered users
- Real-time notification of registrations and access attempts
"""

import asyncio
import logging
from typing import List, Optional
from uuid import uuid4

from ..clients.descriptor_store import DescriptorStore
from ..exceptions import EmptyRegistryError, NoFaceDetectedError, ValidationError
from ..models.internal_models import UserRecord, VerificationOutcome
from ..utils.image_utils import image_from_base64
from .detection_service import FaceDetectionService
from .matcher import DEFAULT_THRESHOLD, match
from .notifier import EventBroadcaster

logger = logging.getLogger(__name__)

DENIED_MESSAGE = "Face not recognized"


def _is_blank(value: Optional[str]) -> bool:
    return value is None or not str(value).strip()


class AccessControlService:
    """
    Core access-control service handling registration and verification.

    Collaborators are passed in explicitly; the service itself holds no state
    beyond references to them.
    """

    def __init__(
        self,
        store: DescriptorStore,
        detector: FaceDetectionService,
        notifier: EventBroadcaster,
        threshold: float = DEFAULT_THRESHOLD
    ):
        """
        Initialize access-control service.

        Args:
            store: Descriptor registry shared by all workflows
            detector: Face detection and descriptor extraction backend
            notifier: Event fan-out for connected observers
            threshold: Maximum descriptor distance accepted as a match
        """
        self.store = store
        self.detector = detector
        self.notifier = notifier
        self.threshold = threshold

        logger.info(f"Access control service initialized with recognition threshold: {self.threshold}")

    async def _extract_descriptor(self, image: str):
        """Decode a captured frame and extract the face descriptor."""
        frame = await asyncio.to_thread(image_from_base64, image)
        descriptor = await self.detector.detect_async(frame)
        if descriptor is None:
            raise NoFaceDetectedError("Could not detect a face in the provided image")
        return descriptor

    def _new_user_id(self) -> str:
        user_id = uuid4().hex
        while user_id in self.store:
            logger.warning(f"Generated user id {user_id} collides with an existing user, regenerating")
            user_id = uuid4().hex
        return user_id

    async def register(self, name: Optional[str], image: Optional[str]) -> UserRecord:
        """
        Register a new user from a captured frame.

        Complete registration workflow:
        1. Validate that name and image are present
        2. Decode the frame and extract the face descriptor
        3. Store the new record under a freshly generated id
        4. Notify observers (id and name only)

        Registering the same name twice creates two distinct users.

        Args:
            name: Display name for the user
            image: Base64 encoded frame (raw or data URL)

        Returns:
            The stored UserRecord

        Raises:
            ValidationError: If name or image is missing, or the image can't be decoded
            NoFaceDetectedError: If no face is found in the frame
            StorageError: If the registry can't be persisted
        """
        missing = [field for field, value in (("name", name), ("image", image)) if _is_blank(value)]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}", fields=missing)

        name = name.strip()
        logger.info(f"Starting registration for user: {name}")

        descriptor = await self._extract_descriptor(image)

        record = UserRecord(id=self._new_user_id(), name=name, descriptor=descriptor)
        await self.store.put(record)
        logger.info(f"Registered user {record.name} (ID: {record.id})")

        await self.notifier.publish_user_registered(record.to_public())
        return record

    async def verify(self, image: Optional[str]) -> VerificationOutcome:
        """
        Verify a captured face against every registered user.

        A rejected match is a normal outcome and is returned, not raised.

        Args:
            image: Base64 encoded frame (raw or data URL)

        Returns:
            VerificationOutcome with the decision, distance and display confidence

        Raises:
            ValidationError: If the image is missing or can't be decoded
            NoFaceDetectedError: If no face is found in the frame
            EmptyRegistryError: If no users are registered
        """
        if _is_blank(image):
            raise ValidationError("Missing required fields: image", fields=["image"])

        logger.info("Starting face verification")
        descriptor = await self._extract_descriptor(image)

        outcome = match(descriptor, self.store.all(), self.threshold)
        if outcome is None:
            raise EmptyRegistryError("No users are registered in the system")

        if outcome.matched:
            logger.info(f"Access granted to {outcome.user.name} (distance={outcome.distance:.4f})")
            await self.notifier.publish_access_attempt(
                True,
                f"Access granted to {outcome.user.name}",
                outcome.user.to_public()
            )
        else:
            logger.info(f"Access denied (distance={outcome.distance:.4f}, threshold={self.threshold})")
            await self.notifier.publish_access_attempt(False, f"Access denied: {DENIED_MESSAGE}")

        return outcome

    def list_users(self) -> List[UserRecord]:
        """Return every registered user."""
        return self.store.all()

    async def delete_user(self, user_id: str) -> UserRecord:
        """
        Remove a registered user and notify observers.

        Raises:
            UserNotFoundError: If the id isn't registered
            StorageError: If the registry can't be persisted
        """
        record = await self.store.delete(user_id)
        logger.info(f"Deleted user {record.name} (ID: {record.id})")
        await self.notifier.publish_user_deleted(record.to_public())
        return record
