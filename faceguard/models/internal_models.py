"""Internal data models for the face access-control service."""

from dataclasses import dataclass
from typing import Any, Dict, Optional

import numpy as np


@dataclass(frozen=True)
class UserRecord:
    """Registered user with the face descriptor captured at registration."""

    id: str  # Primary key - generated at registration
    name: str
    descriptor: np.ndarray  # 128-dimensional face descriptor

    def __post_init__(self):
        """Freeze the descriptor so stored records stay immutable."""
        descriptor = np.asarray(self.descriptor, dtype=np.float64)
        if descriptor.ndim != 1 or descriptor.shape[0] == 0:
            raise ValueError(f"Descriptor must be a non-empty vector, got shape {descriptor.shape}")
        if not np.isfinite(descriptor).all():
            raise ValueError("Descriptor contains NaN or infinite values")
        descriptor.setflags(write=False)
        object.__setattr__(self, "descriptor", descriptor)

    def to_storage(self) -> Dict[str, Any]:
        """Serialize to the durable `{name, descriptor}` layout."""
        return {
            "name": self.name,
            "descriptor": self.descriptor.tolist()
        }

    def to_public(self) -> Dict[str, str]:
        """Identity fields safe to return or broadcast (no descriptor)."""
        return {"id": self.id, "name": self.name}


@dataclass
class VerificationOutcome:
    """Result of matching a probe descriptor against the registry."""

    matched: bool
    distance: float
    confidence: float
    user: Optional[UserRecord] = None

    def __post_init__(self):
        """Validate distance and confidence ranges after initialization."""
        if self.distance < 0.0:
            raise ValueError(f"Distance must be non-negative, got {self.distance}")
        if not (0.0 <= self.confidence <= 1.0):
            raise ValueError(f"Confidence must be between 0.0 and 1.0, got {self.confidence}")
        if self.matched and self.user is None:
            raise ValueError("A matched outcome must reference a user")
