from abc import ABC
from abc import abstractmethod
from pathlib import Path
from threading import Lock

from loguru import logger
from pydantic import ValidationError

from hostvisor.errors import ConfigurationError
from hostvisor.errors import HostAlreadyExistsError
from hostvisor.errors import HostNotFoundError
from hostvisor.hosts.data_types import Host
from hostvisor.primitives import HostId
from hostvisor.utils.file_utils import atomic_write


class HostStoreInterface(ABC):
    """Persistence for host records.

    Every write replaces a whole value, so a concurrent reader sees either the old record or
    the new one. The store serializes writers within a process; nothing above it needs to.
    """

    @abstractmethod
    def find_by_id(self, host_id: HostId) -> Host:
        """Return the host with this ID. Raises HostNotFoundError if there is none."""

    @abstractmethod
    def insert(self, host: Host) -> None:
        """Add a new host. Raises HostAlreadyExistsError if the ID is taken."""

    @abstractmethod
    def save(self, host: Host) -> None:
        """Insert or replace the host record."""

    @abstractmethod
    def set_secret(self, host_id: HostId, secret: str) -> Host:
        """Replace the host's secret and return the updated record."""

    @abstractmethod
    def clear(self) -> None:
        """Remove every host record."""


class InMemoryHostStore(HostStoreInterface):
    def __init__(self) -> None:
        self._hosts: dict[HostId, Host] = {}
        self._lock = Lock()

    def find_by_id(self, host_id: HostId) -> Host:
        with self._lock:
            try:
                return self._hosts[host_id]
            except KeyError:
                raise HostNotFoundError(host_id) from None

    def insert(self, host: Host) -> None:
        with self._lock:
            if host.id in self._hosts:
                raise HostAlreadyExistsError(host.id)
            self._hosts[host.id] = host

    def save(self, host: Host) -> None:
        with self._lock:
            self._hosts[host.id] = host

    def set_secret(self, host_id: HostId, secret: str) -> Host:
        with self._lock:
            if host_id not in self._hosts:
                raise HostNotFoundError(host_id)
            updated = self._hosts[host_id].with_updates(secret=secret)
            self._hosts[host_id] = updated
            return updated

    def clear(self) -> None:
        with self._lock:
            self._hosts.clear()


class DirectoryHostStore(HostStoreInterface):
    """Stores each host as <root>/<host_id>.json."""

    def __init__(self, root: Path) -> None:
        self.root = root
        self._lock = Lock()

    def _path_for(self, host_id: HostId) -> Path:
        if "/" in host_id or host_id.startswith("."):
            raise ConfigurationError("id", f"host ID {host_id!r} cannot be used as a file name")
        return self.root / f"{host_id}.json"

    def _read(self, host_id: HostId) -> Host:
        path = self._path_for(host_id)
        try:
            raw = path.read_text()
        except FileNotFoundError:
            raise HostNotFoundError(host_id) from None
        try:
            return Host.model_validate_json(raw)
        except ValidationError as e:
            raise ConfigurationError("host", f"stored record {path} is invalid: {e}") from e

    def _write(self, host: Host) -> None:
        atomic_write(self._path_for(host.id), host.model_dump_json(indent=2))

    def find_by_id(self, host_id: HostId) -> Host:
        with self._lock:
            return self._read(host_id)

    def insert(self, host: Host) -> None:
        with self._lock:
            if self._path_for(host.id).exists():
                raise HostAlreadyExistsError(host.id)
            self._write(host)

    def save(self, host: Host) -> None:
        with self._lock:
            self._write(host)

    def set_secret(self, host_id: HostId, secret: str) -> Host:
        with self._lock:
            updated = self._read(host_id).with_updates(secret=secret)
            self._write(updated)
            return updated

    def clear(self) -> None:
        with self._lock:
            if not self.root.exists():
                return
            for path in self.root.glob("*.json"):
                logger.trace("Removing host record {}", path)
                path.unlink(missing_ok=True)
