import signal
from abc import ABC
from abc import abstractmethod
from types import TracebackType
from typing import Self

from hostvisor.context import OperationContext
from hostvisor.credentials.data_types import Credentials
from hostvisor.jasper.data_types import CreateOptions
from hostvisor.jasper.data_types import ProcessFilter
from hostvisor.jasper.data_types import ProcessInfo


class RemoteProcessInterface(ABC):
    """A handle to one process in a remote supervisor's process table.

    Every method that talks to the host takes the caller's OperationContext and raises
    CancellationError when it is done, ConnectivityError when the channel fails.
    """

    @property
    @abstractmethod
    def id(self) -> str: ...

    @abstractmethod
    def info(self, ctx: OperationContext) -> ProcessInfo:
        """Fetch a fresh snapshot of the process."""

    @abstractmethod
    def get_tags(self, ctx: OperationContext) -> list[str]: ...

    @abstractmethod
    def signal(self, ctx: OperationContext, sig: signal.Signals) -> None:
        """Deliver sig to the process. Signalling a process that has already exited is not an error."""

    @abstractmethod
    def wait(self, ctx: OperationContext) -> int:
        """Block until the process exits and return its exit code."""

    @abstractmethod
    def get_output(self, ctx: OperationContext) -> str:
        """Return captured output. Empty unless the process was created with capture_output."""


class RemoteProcessManagerInterface(ABC):
    """A live client to a host's process supervisor."""

    @abstractmethod
    def create_process(self, ctx: OperationContext, options: CreateOptions) -> RemoteProcessInterface:
        """Launch a process. Returns once the supervisor has acknowledged creation; does not wait for exit.

        Raises ExecutionError if the supervisor refuses to create it.
        """

    @abstractmethod
    def list_processes(self, ctx: OperationContext, process_filter: ProcessFilter) -> list[RemoteProcessInterface]: ...

    @abstractmethod
    def group(self, ctx: OperationContext, tag: str) -> list[RemoteProcessInterface]:
        """Return every process carrying tag, whatever its state."""

    @abstractmethod
    def close(self) -> None:
        """Release the underlying connection. Idempotent."""

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.close()


class RpcDialerInterface(ABC):
    """Opens the remote-procedure channel to a host's supervisor service."""

    @abstractmethod
    def dial(
        self,
        ctx: OperationContext,
        address: str,
        port: int,
        credentials: Credentials,
    ) -> RemoteProcessManagerInterface:
        """Connect and verify the service answers. Raises ConnectivityError if nothing usable is listening."""
