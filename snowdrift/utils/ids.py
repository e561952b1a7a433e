"""A module for handling unique ID generation.

This module provides:
- wall_clock: a function returning wall-clock milliseconds
- GeneratorStatus: an enum of states a Generator can be in
- GeneratorState: a dataclass of everything a Generator mutates
- Generator: a class that spits out unique, time-ordered IDs
"""

import logging
from dataclasses import dataclass
from enum import Enum
from threading import Event, Lock
from time import monotonic, time
from typing import Callable

from ..constants import DEFAULT_EPOCH, MAX_DATACENTER_ID, MAX_SEQUENCE, MAX_WORKER_ID
from .errors import ClockRegressionFatal, GeneratorClosed
from .layout import IdParts, pack, unpack


def wall_clock() -> int:
    """Returns the wall clock in milliseconds."""
    return int(time() * 1000)


class GeneratorStatus(Enum):
    """What a Generator is currently doing."""

    IDLE = "idle"  # no identity assigned yet
    GENERATING = "generating"
    WAITING_OUT_DRIFT = "waiting_out_drift"


@dataclass
class GeneratorState:
    """Mutable state of a single Generator. Only touched under its lock."""

    worker_id: int
    datacenter_id: int
    last_timestamp: int = -1
    sequence: int = 0


class Generator:
    """A class that spits out unique IDs for one allocated worker identity.

    Calls are serialized by a lock. Each call computes the new timestamp and
    sequence in locals and commits them only once an ID is ready, so a failed
    call leaves the state exactly as it found it.
    """

    def __init__(
            self,
            worker_id: int,
            datacenter_id: int,
            epoch: int = DEFAULT_EPOCH,
            regression_threshold: int = 5,
            regression_checks: int = 3,
            spin_limit: float = 1.0,
            clock: Callable[[], int] | None = None,
    ):
        """Sets the identity and clock handling parameters.

        Args:
            worker_id (int): Worker ID in [0;31]
            datacenter_id (int): Datacenter ID in [0;31]
            epoch (int): Custom epoch in Unix milliseconds
            regression_threshold (int): The largest clock regression in ms that is waited out
            regression_checks (int): How many times to re-check a regressed clock before failing
            spin_limit (float): Seconds to spin at most for the next millisecond on sequence rollover
            clock (Callable[[], int]): Source of wall-clock milliseconds, ``wall_clock`` by default

        Raises:
            TypeError: If any of arguments are of wrong type
            ValueError: If any of arguments are out of range
        """
        for name, value, maximum in (
                ("worker_id", worker_id, MAX_WORKER_ID),
                ("datacenter_id", datacenter_id, MAX_DATACENTER_ID),
        ):
            if not isinstance(value, int):
                raise TypeError(f"{name} must be an integer")
            if not 0 <= value <= maximum:
                raise ValueError(f"{name} must be inside [0;{maximum}]")
        if not isinstance(epoch, int) or not isinstance(regression_threshold, int):
            raise TypeError("epoch and regression_threshold must be integers")
        if not isinstance(regression_checks, int):
            raise TypeError("regression_checks must be an integer")
        if epoch < 0:
            raise ValueError("epoch cannot be negative")
        if regression_threshold < 0:
            raise ValueError("regression_threshold cannot be negative")
        if regression_checks < 1:
            raise ValueError("regression_checks must be at least 1")
        if spin_limit <= 0:
            raise ValueError("spin_limit must be positive")

        self.state = GeneratorState(worker_id=worker_id, datacenter_id=datacenter_id)
        self.epoch = epoch
        self.regression_threshold = regression_threshold
        self.regression_checks = regression_checks
        self.spin_limit = spin_limit
        self.clock = clock or wall_clock
        self.status = GeneratorStatus.GENERATING
        self.lock = Lock()
        self._closed = Event()
        self.logger = logging.getLogger(__name__)

    @property
    def worker_id(self) -> int:
        return self.state.worker_id

    @property
    def datacenter_id(self) -> int:
        return self.state.datacenter_id

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def next_id(self) -> int:
        """Generates a 64-bit Snowflake ID.

        Returns:
            int: The ID, larger than any ID this generator returned before

        Raises:
            ClockRegressionFatal: If the clock went back and could not be waited out
            GeneratorClosed: If the generator was closed
            ValueError: If the clock reads earlier than the epoch or past the 41-bit range
        """
        with self.lock:
            if self._closed.is_set():
                raise GeneratorClosed("Generator is closed")
            timestamp, sequence = self._advance()
            identifier = pack(
                timestamp - self.epoch,
                self.state.datacenter_id,
                self.state.worker_id,
                sequence,
            )
            self.state.last_timestamp = timestamp
            self.state.sequence = sequence
            return identifier

    def decode(self, identifier: int) -> IdParts:
        """Splits an ID into its fields."""
        return unpack(identifier)

    def close(self) -> None:
        """Interrupts any waiting call and refuses further ones."""
        if not self._closed.is_set():
            self._closed.set()
            self.logger.info("Generator closed")

    def _advance(self) -> tuple[int, int]:
        last = self.state.last_timestamp
        timestamp = self.clock()
        if timestamp < last:
            timestamp = self._wait_out_regression(timestamp, last)
        if timestamp == last:
            sequence = (self.state.sequence + 1) & MAX_SEQUENCE
            if sequence == 0:
                timestamp = self._spin_next_millis(last)
        else:
            sequence = 0
        return timestamp, sequence

    def _wait_out_regression(self, timestamp: int, last: int) -> int:
        """Sleeps through a small clock regression and returns the recovered time."""
        offset = last - timestamp
        if offset > self.regression_threshold:
            self.logger.error(
                f"Clock moved backwards by {offset}ms, over the {self.regression_threshold}ms threshold"
            )
            raise ClockRegressionFatal(
                f"Clock moved backwards by {offset}ms. Refusing to generate id",
                last,
                timestamp,
            )
        self.logger.warning(f"Clock moved backwards by {offset}ms, waiting it out")
        self.status = GeneratorStatus.WAITING_OUT_DRIFT
        try:
            for _ in range(self.regression_checks):
                delay = min(last - timestamp, self.regression_threshold) + 1
                if self._closed.wait(delay / 1000):
                    raise GeneratorClosed("Generator closed while waiting out clock regression")
                timestamp = self.clock()
                if timestamp >= last:
                    return timestamp
        finally:
            self.status = GeneratorStatus.GENERATING
        self.logger.error(
            f"Clock still {last - timestamp}ms behind after {self.regression_checks} checks"
        )
        raise ClockRegressionFatal(
            f"Clock did not recover from a {offset}ms regression. Refusing to generate id",
            last,
            timestamp,
        )

    def _spin_next_millis(self, last: int) -> int:
        """Busy-waits until the clock passes ``last``."""
        deadline = monotonic() + self.spin_limit
        timestamp = self.clock()
        while timestamp <= last:
            if self._closed.is_set():
                raise GeneratorClosed("Generator closed while waiting for the next millisecond")
            if monotonic() > deadline:
                raise ClockRegressionFatal(
                    f"Clock did not advance past {last} within {self.spin_limit}s",
                    last,
                    timestamp,
                )
            timestamp = self.clock()
        return timestamp
