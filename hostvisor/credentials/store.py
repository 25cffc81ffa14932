from abc import ABC
from abc import abstractmethod
from pathlib import Path
from threading import Lock

from hostvisor.credentials.data_types import Credentials
from hostvisor.errors import ConfigurationError
from hostvisor.errors import CredentialsNotFoundError
from hostvisor.utils.file_utils import atomic_write


class CredentialsStoreInterface(ABC):
    """Persistence for credentials, keyed by name (a host ID, or the domain name for the authority)."""

    @abstractmethod
    def find_by_id(self, name: str) -> Credentials:
        """Return the credentials stored under name. Raises CredentialsNotFoundError if there are none."""

    @abstractmethod
    def save(self, name: str, credentials: Credentials) -> None:
        """Store credentials under name, replacing any previous value."""

    @abstractmethod
    def clear(self) -> None:
        """Remove all stored credentials, including the authority."""

    def contains(self, name: str) -> bool:
        try:
            self.find_by_id(name)
        except CredentialsNotFoundError:
            return False
        return True


class InMemoryCredentialsStore(CredentialsStoreInterface):
    def __init__(self) -> None:
        self._credentials: dict[str, Credentials] = {}
        self._lock = Lock()

    def find_by_id(self, name: str) -> Credentials:
        with self._lock:
            try:
                return self._credentials[name]
            except KeyError:
                raise CredentialsNotFoundError(name) from None

    def save(self, name: str, credentials: Credentials) -> None:
        credentials.validate_complete()
        with self._lock:
            self._credentials[name] = credentials

    def clear(self) -> None:
        with self._lock:
            self._credentials.clear()


class DirectoryCredentialsStore(CredentialsStoreInterface):
    """Stores each credential set as <root>/<name>.creds.json, readable only by the owner."""

    def __init__(self, root: Path) -> None:
        self.root = root
        self._lock = Lock()

    def _path_for(self, name: str) -> Path:
        if not name or "/" in name or name.startswith("."):
            raise ConfigurationError("credentials_name", f"{name!r} cannot be used as a file name")
        return self.root / f"{name}.creds.json"

    def find_by_id(self, name: str) -> Credentials:
        path = self._path_for(name)
        with self._lock:
            try:
                data = path.read_bytes()
            except FileNotFoundError:
                raise CredentialsNotFoundError(name) from None
        return Credentials.from_export(data)

    def save(self, name: str, credentials: Credentials) -> None:
        exported = credentials.export().decode("utf-8")
        with self._lock:
            atomic_write(self._path_for(name), exported, new_file_mode=0o600)

    def clear(self) -> None:
        with self._lock:
            if not self.root.exists():
                return
            for path in self.root.glob("*.creds.json"):
                path.unlink(missing_ok=True)
