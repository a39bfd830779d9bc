"""
Capacity gate for running containers.

Counts running builds per constraint and admits a new one only below the
constraint's limit. The default constraint is bounded by the host-wide
container cap; every other constraint gets a small fixed cap so auxiliary
pools (e.g. matrix configurations) neither starve nor get starved.

One gate instance is shared by all builds of the process. Every
check-then-increment happens under a single lock.

Example::

    gate = CapacityGate(container_cap=4, default_constraint="default")
    gate.admit("default", subject="my-job#12")   # blocks with backoff while full
    try:
        run_build()
    finally:
        gate.release("default")
"""

import logging
import threading
from typing import Dict, Iterator, Optional

from . import constants
from .exceptions import BuildAbortedError

logger = logging.getLogger(__name__)


def retry_delays(base: int = constants.BASE_RETRY_DELAY, cap: int = constants.MAX_RETRY_DELAY) -> Iterator[int]:
    """Exponential backoff in milliseconds: base, 2*base, 4*base, ... capped at `cap`, forever."""
    delay = min(base, cap)
    while True:
        yield delay
        delay = min(delay * 2, cap)


class CapacityGate:
    """Admission control over the number of running containers, per constraint."""

    def __init__(
        self,
        container_cap: int = constants.DEFAULT_CONTAINER_CAP,
        default_constraint: str = constants.DEFAULT_CONSTRAINT,
        auxiliary_cap: int = constants.AUXILIARY_CONSTRAINT_CAP,
        base_retry_delay: int = constants.BASE_RETRY_DELAY,
        max_retry_delay: int = constants.MAX_RETRY_DELAY,
    ):
        self._lock = threading.Lock()
        self._counts: Dict[str, int] = {}
        self.container_cap = container_cap
        self.default_constraint = default_constraint
        self.auxiliary_cap = auxiliary_cap
        self.base_retry_delay = base_retry_delay
        self.max_retry_delay = max_retry_delay

    def get_count(self, constraint: str) -> int:
        with self._lock:
            return self._counts.get(constraint, 0)

    def get_limit(self, constraint: str) -> int:
        if constraint == self.default_constraint:
            return self.container_cap
        return self.auxiliary_cap

    def try_admit(self, constraint: str) -> bool:
        """Reserve one slot if the constraint is under its limit. Never blocks on capacity."""
        with self._lock:
            count = self._counts.get(constraint, 0)
            if count >= self.get_limit(constraint):
                return False
            self._counts[constraint] = count + 1
            return True

    def release(self, constraint: str) -> int:
        """Give one slot back. Extra releases leave the count at zero."""
        with self._lock:
            count = max(self._counts.get(constraint, 0) - 1, 0)
            self._counts[constraint] = count
            return count

    def admit(
        self,
        constraint: str,
        subject: str = "",
        cancel_event: Optional[threading.Event] = None,
    ) -> int:
        """
        Block until a slot for `constraint` is reserved.

        Waits with exponential backoff between attempts and never gives up.
        Setting `cancel_event` aborts the wait without touching the counts.

        Args:
            constraint: Capacity key to admit against.
            subject: What is being admitted, for the logs.
            cancel_event: Event interrupting the wait when set.
        Returns:
            The number of failed attempts before admission.
        Raises:
            BuildAbortedError: If `cancel_event` was set while waiting.
        """
        waiter = cancel_event or threading.Event()
        attempts = 0
        for delay in retry_delays(self.base_retry_delay, self.max_retry_delay):
            if waiter.is_set():
                raise BuildAbortedError(f"Aborted while waiting for a '{constraint}' slot for {subject}")
            if self.try_admit(constraint):
                logger.debug(
                    f"Docker capping limit NOT reached with {self.get_count(constraint)}/{self.get_limit(constraint)} "
                    f"container(s) for {subject}: launching."
                )
                return attempts
            attempts += 1
            logger.info(
                f"Docker capping limit reached with {self.get_count(constraint)}/{self.get_limit(constraint)} "
                f"container(s) on '{constraint}' for {subject}: postponing launch by {delay} ms."
            )
            if waiter.wait(delay / 1000.0):
                raise BuildAbortedError(f"Aborted while waiting for a '{constraint}' slot for {subject}")
