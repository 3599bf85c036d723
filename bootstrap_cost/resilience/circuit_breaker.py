"""
Circuit breaker for pricing catalog downloads.
After repeated fetch failures for one catalog, further fetches fail fast for a
cool-down period instead of waiting on the timeout again for every resource.
"""
from enum import Enum
from datetime import datetime
import logging
from typing import Callable, Dict, Optional

logger = logging.getLogger(__name__)


FAILURE_THRESHOLD = 3  # Consecutive failures before opening
OPEN_STATE_DURATION = 60  # Seconds OPEN before a trial request is allowed


class CircuitState(Enum):
    """Circuit breaker states."""
    CLOSED = "closed"  # Fetches pass through
    OPEN = "open"  # Failing fast
    HALF_OPEN = "half_open"  # One trial fetch in flight


class CircuitBreaker:
    """
    Per-catalog circuit breaker.

    Transitions:
    - CLOSED -> OPEN: after `failure_threshold` consecutive failures
    - OPEN -> HALF_OPEN: once `open_duration` seconds have passed
    - HALF_OPEN -> CLOSED: trial fetch succeeded
    - HALF_OPEN -> OPEN: trial fetch failed or was abandoned
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = FAILURE_THRESHOLD,
        open_duration: int = OPEN_STATE_DURATION,
        clock: Callable[[], datetime] = datetime.now
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.open_duration = open_duration
        self._clock = clock

        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.opened_at: Optional[datetime] = None
        self._trial_in_flight = False

    def allow_request(self) -> bool:
        """
        Returns:
            True if a fetch may proceed, False while the circuit is open
        """
        if self.state == CircuitState.OPEN:
            elapsed = (self._clock() - self.opened_at).total_seconds() if self.opened_at else 0
            if elapsed < self.open_duration:
                return False
            logger.warning(f"Circuit breaker for {self.name}: OPEN -> HALF_OPEN (testing recovery)")
            self.state = CircuitState.HALF_OPEN
            self._trial_in_flight = False

        if self.state == CircuitState.HALF_OPEN:
            if self._trial_in_flight:
                return False
            self._trial_in_flight = True
            return True

        return True

    def record_success(self) -> None:
        if self.state == CircuitState.HALF_OPEN:
            logger.warning(f"Circuit breaker for {self.name}: HALF_OPEN -> CLOSED (catalog recovered)")
        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.opened_at = None
        self._trial_in_flight = False

    def record_failure(self) -> None:
        self.failure_count += 1

        if self.state == CircuitState.HALF_OPEN:
            logger.warning(f"Circuit breaker for {self.name}: HALF_OPEN -> OPEN (catalog still failing)")
            self._open()
        elif self.state == CircuitState.CLOSED and self.failure_count >= self.failure_threshold:
            logger.warning(
                f"Circuit breaker for {self.name}: "
                f"CLOSED -> OPEN ({self.failure_count} consecutive failures)"
            )
            self._open()

    def release_trial(self) -> None:
        """
        Abandon a trial fetch that ended without an outcome (cancelled).

        The circuit goes back to OPEN with its original `opened_at`, so the
        next request after the open period gets a fresh trial.
        """
        if self.state != CircuitState.HALF_OPEN or not self._trial_in_flight:
            return
        logger.warning(f"Circuit breaker for {self.name}: HALF_OPEN -> OPEN (trial fetch abandoned)")
        self.state = CircuitState.OPEN
        self._trial_in_flight = False

    def _open(self) -> None:
        self.state = CircuitState.OPEN
        self.opened_at = self._clock()
        self._trial_in_flight = False


# One breaker per catalog name, shared process-wide
_circuit_breakers: Dict[str, CircuitBreaker] = {}


def get_circuit_breaker(name: str) -> CircuitBreaker:
    """
    Get or create the circuit breaker for a catalog.

    Args:
        name: Catalog name, e.g. "aws_pricing:AmazonEC2"
    """
    if name not in _circuit_breakers:
        _circuit_breakers[name] = CircuitBreaker(name)
    return _circuit_breakers[name]


def reset_circuit_breakers() -> None:
    """Forget all breaker state."""
    _circuit_breakers.clear()
