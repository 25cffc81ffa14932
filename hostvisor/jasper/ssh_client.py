import json
import math
import signal
from pathlib import Path
from typing import Any

from loguru import logger
from paramiko import SSHException
from pydantic import ValidationError
from pyinfra.api import Host as PyinfraHost
from pyinfra.api import State as PyinfraState
from pyinfra.api.command import StringCommand
from pyinfra.api.exceptions import ConnectError as PyinfraConnectError
from pyinfra.api.inventory import Inventory

from hostvisor.common.logging import log_span
from hostvisor.config.data_types import HostJasperConfig
from hostvisor.context import OperationContext
from hostvisor.errors import CancellationError
from hostvisor.errors import ConnectivityError
from hostvisor.errors import ExecutionError
from hostvisor.hosts.data_types import Host
from hostvisor.hosts.scripts import build_local_jasper_client_request
from hostvisor.jasper.data_types import CreateOptions
from hostvisor.jasper.data_types import ProcessFilter
from hostvisor.jasper.data_types import ProcessInfo
from hostvisor.jasper.interfaces import RemoteProcessInterface
from hostvisor.jasper.interfaces import RemoteProcessManagerInterface


def create_pyinfra_host(address: str, user: str, key_file: Path, port: int = 22) -> PyinfraHost:
    """Create a pyinfra host with an SSH connector. Nothing connects until the first command."""
    host_data: dict[str, Any] = {
        "ssh_user": user,
        "ssh_port": port,
        "ssh_key": str(key_file),
    }
    names_data = ([(address, host_data)], {})
    inventory = Inventory(names_data)
    state = PyinfraState(inventory=inventory)

    pyinfra_host = inventory.get_host(address)
    pyinfra_host.init(state)
    return pyinfra_host


class SshRemoteProcess(RemoteProcessInterface):
    def __init__(self, manager: "SshRemoteProcessManager", process_info: ProcessInfo) -> None:
        self._manager = manager
        self._info = process_info

    @property
    def id(self) -> str:
        return self._info.id

    def info(self, ctx: OperationContext) -> ProcessInfo:
        self._info = self._manager.parse_info(self._manager.run_client(ctx, "info", {"id": self.id}))
        return self._info

    def get_tags(self, ctx: OperationContext) -> list[str]:
        return list(self._manager.run_client(ctx, "get-tags", {"id": self.id}) or [])

    def signal(self, ctx: OperationContext, sig: signal.Signals) -> None:
        self._manager.run_client(ctx, "signal", {"id": self.id, "signal": int(sig)})

    def wait(self, ctx: OperationContext) -> int:
        return self._manager.parse_exit_code(self._manager.run_client(ctx, "wait", {"id": self.id}))

    def get_output(self, ctx: OperationContext) -> str:
        return "\n".join(self._manager.run_client(ctx, "logs", {"id": self.id}) or [])


class SshRemoteProcessManager(RemoteProcessManagerInterface):
    """Controls a host's supervisor by running its CLI over SSH against the host-local service.

    Each call is one SSH command: the supervisor binary in client mode, with the request as JSON
    on stdin and the response as JSON on stdout.
    """

    def __init__(self, host: Host, config: HostJasperConfig, pyinfra_host: PyinfraHost) -> None:
        self.host = host
        self.config = config
        self.pyinfra_host = pyinfra_host

    @classmethod
    def build(cls, host: Host, config: HostJasperConfig, key_file: Path) -> "SshRemoteProcessManager":
        return cls(host, config, create_pyinfra_host(host.host, host.user, key_file))

    def _ensure_connected(self) -> None:
        if not self.pyinfra_host.connected:
            self.pyinfra_host.connect(raise_exceptions=True)

    def run_client(self, ctx: OperationContext, sub_command: str, payload: Any) -> Any:
        """Run one client request on the host and decode its JSON output (None if there is none)."""
        ctx.raise_if_done()
        command = build_local_jasper_client_request(self.host, self.config, sub_command, payload)
        remaining = ctx.remaining_seconds()
        timeout = None if remaining is None else max(1, math.ceil(remaining))
        with log_span("Running client request {} on {}", sub_command, self.host.id):
            try:
                self._ensure_connected()
                success, output = self.pyinfra_host.run_shell_command(StringCommand(command), _timeout=timeout)
            except (PyinfraConnectError, SSHException, EOFError, OSError) as e:
                if ctx.is_done():
                    raise CancellationError(
                        f"client request {sub_command} on {self.host.id} ran past the deadline"
                    ) from e
                raise ConnectivityError(self.host.host, None, f"ssh failed: {e}") from e
        ctx.raise_if_done()

        if not success:
            raise ExecutionError(f"client request {sub_command} failed on host {self.host.id}", output=output.stderr)
        stdout = output.stdout.strip()
        if not stdout:
            return None
        try:
            return json.loads(stdout)
        except ValueError as e:
            raise ExecutionError(
                f"client request {sub_command} on host {self.host.id} returned malformed output", output=stdout
            ) from e

    def parse_info(self, data: Any) -> ProcessInfo:
        try:
            return ProcessInfo.model_validate(data)
        except ValidationError as e:
            raise ExecutionError(f"host {self.host.id} returned malformed process info", output=str(data)) from e

    def parse_exit_code(self, data: Any) -> int:
        if not isinstance(data, dict) or "exit_code" not in data:
            raise ExecutionError(f"host {self.host.id} returned no exit code", output=str(data))
        try:
            return int(data["exit_code"])
        except (TypeError, ValueError) as e:
            raise ExecutionError(f"host {self.host.id} returned a malformed exit code", output=str(data)) from e

    def _wrap_all(self, data: Any) -> list[RemoteProcessInterface]:
        return [SshRemoteProcess(self, self.parse_info(item)) for item in data or []]

    def create_process(self, ctx: OperationContext, options: CreateOptions) -> RemoteProcessInterface:
        process = SshRemoteProcess(self, self.parse_info(self.run_client(ctx, "create-process", options)))
        logger.debug("Created process {} on {} over ssh", process.id, self.host.id)
        return process

    def list_processes(self, ctx: OperationContext, process_filter: ProcessFilter) -> list[RemoteProcessInterface]:
        return self._wrap_all(self.run_client(ctx, "list", {"filter": process_filter.value}))

    def group(self, ctx: OperationContext, tag: str) -> list[RemoteProcessInterface]:
        return self._wrap_all(self.run_client(ctx, "group", {"tag": tag}))

    def close(self) -> None:
        if self.pyinfra_host.connected:
            logger.trace("Disconnecting pyinfra host {}", self.host.id)
            self.pyinfra_host.disconnect()
