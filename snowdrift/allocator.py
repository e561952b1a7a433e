"""Assigns this process a worker identity no other live process holds.

This module provides:
- AllocationRecord: a dataclass describing the registration node this process owns
- identity_from_suffix: a function mapping a sequential suffix to (worker_id, datacenter_id)
- WorkerIdentityAllocator: a class that registers with a Coordinator once at startup
"""

import logging
import posixpath
from dataclasses import dataclass
from time import sleep
from typing import Callable

from .constants import (
    DEFAULT_NODE_PREFIX,
    DEFAULT_ROOT_PATH,
    IDENTITY_SPACE,
    MAX_DATACENTER_ID,
    MAX_WORKER_ID,
)
from .coordination import Coordinator
from .utils.errors import AllocationExhausted, CoordinationUnavailable


@dataclass(frozen=True)
class AllocationRecord:
    """The ephemeral node backing an allocated identity."""

    path: str
    suffix: int
    worker_id: int
    datacenter_id: int


def identity_from_suffix(suffix: int) -> tuple[int, int]:
    """Derives ``(worker_id, datacenter_id)`` from a sequential node suffix."""
    if not isinstance(suffix, int):
        raise TypeError("suffix must be an integer")
    if suffix < 0:
        raise ValueError("suffix cannot be negative")
    worker_id = suffix % (MAX_WORKER_ID + 1)
    datacenter_id = (suffix // (MAX_WORKER_ID + 1)) % (MAX_DATACENTER_ID + 1)
    return worker_id, datacenter_id


class WorkerIdentityAllocator:
    """Registers an ephemeral sequential node and turns its suffix into an identity.

    Single use: the first successful ``allocate`` fixes the identity for the
    lifetime of the process, and the identity is released only when the
    coordinator session ends, either by ``close`` or by session expiry.
    """

    def __init__(
            self,
            coordinator: Coordinator,
            root_path: str = DEFAULT_ROOT_PATH,
            node_prefix: str = DEFAULT_NODE_PREFIX,
            retries: int = 3,
            backoff_base: float = 1.0,
            backoff_max: float = 8.0,
            sleeper: Callable[[float], None] = sleep,
    ):
        """Sets the registration location and the startup retry budget.

        Args:
            coordinator (Coordinator): The session to register through
            root_path (str): Persistent parent path of all registrations
            node_prefix (str): Name prefix of each registration node
            retries (int): How many times to retry after the first failed attempt
            backoff_base (float): Seconds to wait before the first retry, doubled for each next one
            backoff_max (float): The longest wait between two attempts
            sleeper (Callable[[float], None]): The function used to wait between attempts

        Raises:
            TypeError: If retries is not an integer
            ValueError: If paths are malformed or retry values are negative
        """
        if not root_path.startswith("/") or root_path == "/":
            raise ValueError("root_path must be an absolute, non-root path")
        if not node_prefix or "/" in node_prefix:
            raise ValueError("node_prefix must be a non-empty node name")
        if not isinstance(retries, int):
            raise TypeError("retries must be an integer")
        if retries < 0 or backoff_base < 0 or backoff_max < 0:
            raise ValueError("retry budget cannot be negative")
        self.coordinator = coordinator
        self.root_path = root_path.rstrip("/")
        self.node_prefix = node_prefix
        self.retries = retries
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max
        self.sleeper = sleeper
        self.record: AllocationRecord | None = None
        self.closed = False
        self.logger = logging.getLogger(__name__)

    def allocate(self) -> tuple[int, int]:
        """Obtains a unique identity, retrying while the coordinator is unreachable.

        Returns:
            tuple[int, int]: ``(worker_id, datacenter_id)``, both in [0;31]

        Raises:
            CoordinationUnavailable: If every attempt failed to reach the coordinator
            AllocationExhausted: If the identity could collide with a live worker
        """
        if self.record is not None:
            return self.record.worker_id, self.record.datacenter_id
        if self.closed:
            raise RuntimeError("Allocator is closed")

        attempts = self.retries + 1
        record = None
        for attempt in range(attempts):
            try:
                # a node created on an earlier attempt is kept, only the listing is retried
                if record is None:
                    record = self._register()
                self._check_unique(record)
                break
            except CoordinationUnavailable as e:
                if attempt == attempts - 1:
                    self.logger.error(f"Coordinator unreachable after {attempts} attempts: {e}")
                    self.close()
                    raise CoordinationUnavailable(
                        f"Coordinator unreachable after {attempts} attempts"
                    ) from e
                delay = min(self.backoff_base * 2 ** attempt, self.backoff_max)
                self.logger.warning(
                    f"Coordinator unreachable ({e}), retrying in {delay:.2f}s "
                    f"[{attempt + 1}/{attempts}]"
                )
                self.sleeper(delay)

        self.record = record
        self.logger.info(
            f"Registered {self.record.path}: worker_id={self.record.worker_id}, "
            f"datacenter_id={self.record.datacenter_id}"
        )
        return self.record.worker_id, self.record.datacenter_id

    def close(self) -> None:
        """Ends the session so the identity can be reused immediately."""
        if self.closed:
            return
        self.closed = True
        self.coordinator.close()
        if self.record is not None:
            self.logger.info(f"Released {self.record.path}")

    def _register(self) -> AllocationRecord:
        self.coordinator.ensure_path(self.root_path)
        path = self.coordinator.create_sequential_ephemeral(self.root_path, self.node_prefix)
        suffix = self._suffix_of(posixpath.basename(path))
        worker_id, datacenter_id = identity_from_suffix(suffix)
        return AllocationRecord(path, suffix, worker_id, datacenter_id)

    def _suffix_of(self, name: str) -> int:
        if not name.startswith(self.node_prefix):
            raise ValueError(f"Unexpected registration node {name!r}")
        suffix = name[len(self.node_prefix):]
        if not suffix.isdigit():
            raise ValueError(f"Registration node {name!r} has no numeric suffix")
        return int(suffix)

    def _check_unique(self, record: AllocationRecord) -> None:
        """Fails if another live registration maps onto the same identity."""
        own = posixpath.basename(record.path)
        siblings = [
            name for name in self.coordinator.children(self.root_path)
            if name != own and name.startswith(self.node_prefix)
        ]
        if len(siblings) + 1 > IDENTITY_SPACE:
            self._give_up(f"{len(siblings) + 1} live workers exceed the {IDENTITY_SPACE} identities")
        for name in siblings:
            try:
                suffix = self._suffix_of(name)
            except ValueError:
                continue
            if suffix % IDENTITY_SPACE == record.suffix % IDENTITY_SPACE:
                self._give_up(f"{name} already holds the identity of {own}")

    def _give_up(self, reason: str) -> None:
        self.logger.error(f"Identity allocation failed: {reason}")
        self.close()
        raise AllocationExhausted(reason)
