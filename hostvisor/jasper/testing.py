"""In-memory stand-ins for a host's process supervisor, for tests that need a process table."""

import signal
from threading import Lock

from hostvisor.context import OperationContext
from hostvisor.credentials.data_types import Credentials
from hostvisor.errors import ConnectivityError
from hostvisor.errors import ExecutionError
from hostvisor.jasper.data_types import CreateOptions
from hostvisor.jasper.data_types import ProcessFilter
from hostvisor.jasper.data_types import ProcessInfo
from hostvisor.jasper.interfaces import RemoteProcessInterface
from hostvisor.jasper.interfaces import RemoteProcessManagerInterface
from hostvisor.jasper.interfaces import RpcDialerInterface


class MockProcess(RemoteProcessInterface):
    """A process whose state is set directly by the test. Signals are recorded, not acted on."""

    def __init__(self, process_info: ProcessInfo, output: str = "") -> None:
        self.process_info = process_info
        self.output = output
        self.signals: list[signal.Signals] = []

    @property
    def id(self) -> str:
        return self.process_info.id

    def info(self, ctx: OperationContext) -> ProcessInfo:
        ctx.raise_if_done()
        return self.process_info

    def get_tags(self, ctx: OperationContext) -> list[str]:
        ctx.raise_if_done()
        return list(self.process_info.options.tags)

    def signal(self, ctx: OperationContext, sig: signal.Signals) -> None:
        ctx.raise_if_done()
        self.signals.append(sig)

    def wait(self, ctx: OperationContext) -> int:
        ctx.raise_if_done()
        self.process_info = self.process_info.with_updates(is_running=False, complete=True)
        return self.process_info.exit_code

    def get_output(self, ctx: OperationContext) -> str:
        ctx.raise_if_done()
        return self.output if self.process_info.options.capture_output else ""


class MockProcessManager(RemoteProcessManagerInterface):
    """Holds a process table in memory and records the name of every call made against it.

    Set fail_create to make create_process refuse. Processes created through the interface
    start running, exit with next_exit_code when waited on, and report next_output.
    """

    def __init__(self, host_id: str = "") -> None:
        self.host_id = host_id
        self.processes: list[MockProcess] = []
        self.calls: list[str] = []
        self.fail_create = False
        self.next_exit_code = 0
        self.next_output = ""
        self.is_closed = False
        self._lock = Lock()

    def add_process(self, options: CreateOptions, is_running: bool = True, exit_code: int = 0) -> MockProcess:
        """Seed the table with a process, as if it had been created earlier."""
        with self._lock:
            process_info = ProcessInfo(
                id=f"proc-{len(self.processes) + 1}",
                host_id=self.host_id,
                pid=1000 + len(self.processes),
                options=options,
                is_running=is_running,
                complete=not is_running,
                successful=not is_running and exit_code == 0,
                exit_code=exit_code,
            )
            process = MockProcess(process_info)
            self.processes.append(process)
        return process

    def create_process(self, ctx: OperationContext, options: CreateOptions) -> RemoteProcessInterface:
        ctx.raise_if_done()
        self.calls.append("create_process")
        if self.fail_create:
            raise ExecutionError(f"could not create process {options.args}", output="create refused")
        process = self.add_process(options, exit_code=self.next_exit_code)
        process.output = self.next_output
        return process

    def list_processes(self, ctx: OperationContext, process_filter: ProcessFilter) -> list[RemoteProcessInterface]:
        ctx.raise_if_done()
        self.calls.append("list_processes")
        with self._lock:
            return [p for p in self.processes if p.process_info.matches(process_filter)]

    def group(self, ctx: OperationContext, tag: str) -> list[RemoteProcessInterface]:
        ctx.raise_if_done()
        self.calls.append("group")
        with self._lock:
            return [p for p in self.processes if tag in p.process_info.options.tags]

    def close(self) -> None:
        self.is_closed = True


class MockRpcDialer(RpcDialerInterface):
    """Dials only the services a test has started; everything else is refused."""

    def __init__(self) -> None:
        self._services: dict[tuple[str, int], RemoteProcessManagerInterface] = {}
        self.dialed: list[tuple[str, int, Credentials]] = []

    def start_service(self, address: str, port: int, manager: RemoteProcessManagerInterface) -> None:
        self._services[(address, port)] = manager

    def stop_service(self, address: str, port: int) -> None:
        self._services.pop((address, port), None)

    def dial(
        self,
        ctx: OperationContext,
        address: str,
        port: int,
        credentials: Credentials,
    ) -> RemoteProcessManagerInterface:
        ctx.raise_if_done()
        credentials.validate_complete()
        self.dialed.append((address, port, credentials))
        try:
            return self._services[(address, port)]
        except KeyError:
            raise ConnectivityError(address, port, "connection refused") from None
