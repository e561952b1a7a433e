"""Talks to the coordination service that hands out worker registrations.

This module provides:
- Coordinator: a protocol of the few namespace operations allocation needs
- KazooCoordinator: a ZooKeeper-backed Coordinator
- MemoryNamespace: an in-process namespace shared by MemoryCoordinator sessions
- MemoryCoordinator: a Coordinator living entirely in process memory
- build_coordinator: a function that picks a Coordinator from configuration
"""

import logging
import posixpath
from itertools import count
from threading import Lock
from typing import Protocol

from kazoo.client import KazooClient
from kazoo.exceptions import ConnectionLoss, NoNodeError, SessionExpiredError
from kazoo.handlers.threading import KazooTimeoutError

from .utils.errors import CoordinationUnavailable


class Coordinator(Protocol):
    """A session with a hierarchical namespace service.

    Implementations must assign sequential suffixes atomically and in
    increasing order per parent path, and must delete ephemeral nodes as soon
    as the session that created them ends. Failing to reach the service is
    reported as ``CoordinationUnavailable``.
    """

    def ensure_path(self, path: str) -> None:
        ...

    def create_sequential_ephemeral(self, parent_path: str, prefix: str) -> str:
        ...

    def children(self, path: str) -> list[str]:
        ...

    def close(self) -> None:
        ...


class KazooCoordinator:
    """A ZooKeeper session managed by kazoo."""

    def __init__(self, hosts: str, session_timeout: float = 10.0, connect_timeout: float = 15.0):
        """Prepares a client without connecting yet.

        Args:
            hosts (str): Comma-separated ``host:port`` list of the ensemble
            session_timeout (float): Seconds before ZooKeeper expires a silent session
            connect_timeout (float): Seconds to wait for a connection on each attempt
        """
        self.hosts = hosts
        self.connect_timeout = connect_timeout
        self.client = KazooClient(hosts=hosts, timeout=session_timeout)
        self.logger = logging.getLogger(__name__)

    def _connect(self) -> None:
        if self.client.connected:
            return
        try:
            self.client.start(timeout=self.connect_timeout)
        except KazooTimeoutError as e:
            raise CoordinationUnavailable(f"Could not connect to ZooKeeper at {self.hosts}") from e
        self.logger.info(f"Connected to ZooKeeper at {self.hosts}")

    def ensure_path(self, path: str) -> None:
        self._connect()
        try:
            self.client.ensure_path(path)
        except (ConnectionLoss, SessionExpiredError) as e:
            raise CoordinationUnavailable(f"Lost ZooKeeper while ensuring {path}") from e

    def create_sequential_ephemeral(self, parent_path: str, prefix: str) -> str:
        self._connect()
        try:
            return self.client.create(
                posixpath.join(parent_path, prefix), b"", ephemeral=True, sequence=True
            )
        except (ConnectionLoss, SessionExpiredError) as e:
            raise CoordinationUnavailable(f"Lost ZooKeeper while registering under {parent_path}") from e

    def children(self, path: str) -> list[str]:
        self._connect()
        try:
            return self.client.get_children(path)
        except (ConnectionLoss, SessionExpiredError) as e:
            raise CoordinationUnavailable(f"Lost ZooKeeper while listing {path}") from e

    def close(self) -> None:
        """Ends the session, which drops its ephemeral nodes right away."""
        self.client.stop()
        self.client.close()


class MemoryNamespace:
    """A namespace that sessions of one process share, mimicking ZooKeeper nodes."""

    def __init__(self):
        self.lock = Lock()
        self.nodes: dict[str, int | None] = {"/": None}
        self.counters: dict[str, int] = {}
        self.session_ids = count(1)

    def __contains__(self, path: str) -> bool:
        with self.lock:
            return path in self.nodes

    def session(self) -> "MemoryCoordinator":
        """Opens a new session on this namespace."""
        return MemoryCoordinator(self)


class MemoryCoordinator:
    """A session on a MemoryNamespace. Ephemeral nodes die with it."""

    def __init__(self, namespace: MemoryNamespace | None = None):
        self.namespace = namespace or MemoryNamespace()
        self.session_id = next(self.namespace.session_ids)
        self.closed = False

    def _check_open(self) -> None:
        if self.closed:
            raise CoordinationUnavailable("Session is closed")

    def ensure_path(self, path: str) -> None:
        self._check_open()
        with self.namespace.lock:
            current = ""
            for part in path.strip("/").split("/"):
                current = f"{current}/{part}"
                self.namespace.nodes.setdefault(current, None)

    def create_sequential_ephemeral(self, parent_path: str, prefix: str) -> str:
        self._check_open()
        with self.namespace.lock:
            if parent_path not in self.namespace.nodes:
                raise NoNodeError(parent_path)
            suffix = self.namespace.counters.get(parent_path, 0)
            self.namespace.counters[parent_path] = suffix + 1
            path = posixpath.join(parent_path, f"{prefix}{suffix:010d}")
            self.namespace.nodes[path] = self.session_id
            return path

    def children(self, path: str) -> list[str]:
        self._check_open()
        with self.namespace.lock:
            if path not in self.namespace.nodes:
                raise NoNodeError(path)
            return [
                posixpath.basename(node)
                for node in self.namespace.nodes
                if node != path and posixpath.dirname(node) == path
            ]

    def close(self) -> None:
        with self.namespace.lock:
            owned = [path for path, owner in self.namespace.nodes.items() if owner == self.session_id]
            for path in owned:
                del self.namespace.nodes[path]
        self.closed = True


def build_coordinator(config) -> Coordinator:
    """Makes a Coordinator out of a Flask config object or a dict.

    Raises:
        ValueError: If ``COORDINATOR`` names an unknown backend
    """
    backend = config["COORDINATOR"]
    match backend:
        case "zookeeper":
            return KazooCoordinator(
                hosts=config["ZK_HOSTS"],
                session_timeout=config["ZK_SESSION_TIMEOUT"],
                connect_timeout=config["ZK_CONNECT_TIMEOUT"],
            )
        case "memory":
            return MemoryCoordinator()
        case _:
            raise ValueError(f"Unknown coordinator backend {backend!r}")
