"""
Per-source circuit breaker.

Consecutive failures of one source for one identity open the breaker for a
cooldown period; while open, the orchestrator skips that connector instead
of calling a source that keeps refusing.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, Optional, Tuple

import structlog

from unified_dashboard.clock import Clock, utcnow
from unified_dashboard.errors import SourceCoolingDown

logger = structlog.get_logger(__name__)


@dataclass
class BreakerState:
    failures: int = 0
    open_until: Optional[datetime] = None


class CircuitBreaker:
    """
    Failure counter keyed by (identity key, source).

    Example:
        breaker.check(identity.key, "orders")   # raises SourceCoolingDown
        breaker.record_failure(identity.key, "orders")
    """

    def __init__(
        self,
        failure_threshold: int = 3,
        cooldown: timedelta = timedelta(minutes=15),
        clock: Clock = utcnow,
    ):
        if failure_threshold < 1:
            raise ValueError("failure_threshold must be at least 1")
        self.failure_threshold = failure_threshold
        self.cooldown = cooldown
        self._clock = clock
        self._states: Dict[Tuple[str, str], BreakerState] = {}

    def state(self, identity_key: str, source: str) -> BreakerState:
        return self._states.get((identity_key, source), BreakerState())

    def is_open(self, identity_key: str, source: str) -> bool:
        open_until = self.state(identity_key, source).open_until
        return open_until is not None and self._clock() < open_until

    def check(self, identity_key: str, source: str) -> None:
        """
        Raise if the source is cooling down.

        Once the cooldown has elapsed the next call goes through; another
        failure reopens the breaker straight away.

        Raises:
            SourceCoolingDown: While the breaker is open
        """
        state = self.state(identity_key, source)
        if state.open_until is not None and self._clock() < state.open_until:
            raise SourceCoolingDown(source, state.open_until)

    def record_success(self, identity_key: str, source: str) -> None:
        if self._states.pop((identity_key, source), None) is not None:
            logger.info("Circuit closed", identity=identity_key, source=source)

    def record_failure(self, identity_key: str, source: str) -> None:
        state = self._states.setdefault((identity_key, source), BreakerState())
        state.failures += 1
        if state.failures >= self.failure_threshold:
            state.open_until = self._clock() + self.cooldown
            logger.warning(
                "Circuit opened",
                identity=identity_key,
                source=source,
                failures=state.failures,
                open_until=state.open_until.isoformat(),
            )

    def reset(self, identity_key: Optional[str] = None) -> None:
        """Clear breaker state for one identity, or for everyone"""
        if identity_key is None:
            self._states.clear()
            return
        for key in [key for key in self._states if key[0] == identity_key]:
            del self._states[key]
