"""
Debounced capture trigger shared by the hardware button and the UI.
"""

import logging
import threading
import time
from typing import Callable, Optional, Tuple

logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


class TriggerGate:
    """
    Process-wide capture trigger with a cooldown window.

    Holds the timestamp (epoch milliseconds) of the last accepted trigger.
    Calls arriving inside the cooldown collapse into the previous trigger;
    pollers detect a new capture request when `peek()` increases.
    """

    def __init__(self, cooldown_ms: int = 3000, clock: Optional[Callable[[], int]] = None):
        """
        Initialize the trigger gate.

        Args:
            cooldown_ms: Minimum time between two accepted triggers
            clock: Millisecond clock, defaults to wall-clock time
        """
        self.cooldown_ms = cooldown_ms
        self._clock = clock or _now_ms
        self._last_fired = 0
        self._lock = threading.Lock()

    def fire(self) -> int:
        """
        Request a capture.

        Returns:
            The new timestamp when the trigger is accepted, otherwise the
            timestamp of the previously accepted trigger
        """
        timestamp, _ = self.try_fire()
        return timestamp

    def try_fire(self) -> Tuple[int, bool]:
        """
        Request a capture and report whether it was accepted.

        Returns:
            Tuple of (timestamp, accepted)
        """
        with self._lock:
            now = self._clock()
            if now - self._last_fired < self.cooldown_ms:
                logger.debug(
                    f"Trigger debounced: {now - self._last_fired}ms since last trigger "
                    f"(cooldown {self.cooldown_ms}ms)"
                )
                return self._last_fired, False

            self._last_fired = now
            logger.info(f"Trigger accepted at {self._last_fired}")
            return self._last_fired, True

    def peek(self) -> int:
        """Return the last accepted trigger timestamp without changing it."""
        with self._lock:
            return self._last_fired
