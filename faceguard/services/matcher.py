"""
Nearest-neighbour matching of face descriptors.

Every registered descriptor is scanned on each request; registries are small
(single site) so no index is kept. Ties go to the first record in iteration
order.
"""

import logging
from typing import Iterable, Optional

import numpy as np

from ..models.internal_models import UserRecord, VerificationOutcome

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 0.45


def euclidean_distance(descriptor1: np.ndarray, descriptor2: np.ndarray) -> float:
    """
    Compute the Euclidean distance between two descriptors.

    Raises:
        ValueError: If the descriptors have different shapes
    """
    descriptor1 = np.asarray(descriptor1, dtype=np.float64)
    descriptor2 = np.asarray(descriptor2, dtype=np.float64)
    if descriptor1.shape != descriptor2.shape:
        raise ValueError(f"Descriptor dimensions don't match: {descriptor1.shape} vs {descriptor2.shape}")
    return float(np.linalg.norm(descriptor1 - descriptor2))


def compute_confidence(distance: float, threshold: float, matched: bool) -> float:
    """
    Display confidence for a match decision.

    This is a presentation heuristic only and plays no part in accepting or
    rejecting a match.
    """
    if matched:
        return max(0.0, 1.0 - distance / threshold)
    if distance > 1.0:
        return 0.0
    return max(0.0, 1.0 - distance)


def match(
    probe: np.ndarray,
    candidates: Iterable[UserRecord],
    threshold: float = DEFAULT_THRESHOLD
) -> Optional[VerificationOutcome]:
    """
    Find the closest registered descriptor and apply the threshold.

    Args:
        probe: Descriptor extracted from the captured frame
        candidates: Registered users to scan
        threshold: Maximum distance accepted as a match

    Returns:
        VerificationOutcome, or None if there are no candidates

    Raises:
        ValueError: If the threshold isn't positive, the probe is not finite or a
            descriptor length differs
    """
    if threshold <= 0.0:
        raise ValueError(f"Threshold must be greater than 0.0, got: {threshold}")

    probe = np.asarray(probe, dtype=np.float64)
    if not np.isfinite(probe).all():
        raise ValueError("Probe descriptor contains NaN or infinite values")
    best: Optional[UserRecord] = None
    min_distance = float("inf")

    for candidate in candidates:
        distance = euclidean_distance(probe, candidate.descriptor)
        if distance < min_distance:
            min_distance = distance
            best = candidate

    if best is None:
        return None

    matched = min_distance <= threshold
    confidence = compute_confidence(min_distance, threshold, matched)

    logger.info(
        f"Minimum distance found: {min_distance:.4f} for user {best.name} (ID: {best.id}), "
        f"threshold={threshold}, match={matched}"
    )

    return VerificationOutcome(
        matched=matched,
        distance=min_distance,
        confidence=confidence,
        user=best if matched else None
    )
