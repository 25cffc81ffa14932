"""JSON-over-HTTPS client for a host's process-supervision service.

The service is served under /jasper/v1 with mutual TLS: the host presents a certificate
issued by the domain's credentials authority, and the control plane presents its own
client certificate from the same authority.
"""

import signal
import ssl
import tempfile
from pathlib import Path
from typing import Any
from typing import Final

import httpx
from loguru import logger
from pydantic import ValidationError

from hostvisor.common.logging import log_span
from hostvisor.context import OperationContext
from hostvisor.credentials.data_types import Credentials
from hostvisor.errors import CancellationError
from hostvisor.errors import ConfigurationError
from hostvisor.errors import ConnectivityError
from hostvisor.errors import ExecutionError
from hostvisor.jasper.data_types import CreateOptions
from hostvisor.jasper.data_types import ProcessFilter
from hostvisor.jasper.data_types import ProcessInfo
from hostvisor.jasper.interfaces import RemoteProcessInterface
from hostvisor.jasper.interfaces import RemoteProcessManagerInterface
from hostvisor.jasper.interfaces import RpcDialerInterface

API_PREFIX: Final[str] = "/jasper/v1"

# Used only when the caller's context has no deadline.
_DEFAULT_TIMEOUT_SECONDS: Final[float] = 30.0


def build_client_ssl_context(credentials: Credentials) -> ssl.SSLContext:
    """Build a TLS context that presents our client certificate and trusts only our CA.

    Host certificates are named after host IDs rather than addresses, so hostname checking
    is off; the peer must still chain to the authority.
    """
    credentials.validate_complete()
    try:
        ssl_context = ssl.create_default_context(ssl.Purpose.SERVER_AUTH, cadata=credentials.ca_cert.decode("ascii"))
    except (ssl.SSLError, ValueError) as e:
        raise ConfigurationError("ca_cert", "CA certificate is not valid PEM") from e
    ssl_context.check_hostname = False
    ssl_context.verify_mode = ssl.CERT_REQUIRED
    # load_cert_chain only reads from files.
    with tempfile.TemporaryDirectory(prefix="hostvisor-tls-") as tmp_dir:
        cert_path = Path(tmp_dir) / "cert.pem"
        key_path = Path(tmp_dir) / "key.pem"
        cert_path.write_bytes(credentials.cert)
        key_path.touch(mode=0o600)
        key_path.write_bytes(credentials.key.get_secret_value())
        try:
            ssl_context.load_cert_chain(certfile=cert_path, keyfile=key_path)
        except ssl.SSLError as e:
            raise ConfigurationError("credentials", f"certificate or key is unusable: {e.reason}") from e
    return ssl_context


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text
    if isinstance(body, dict) and "error" in body:
        return str(body["error"])
    return response.text


class HttpRemoteProcess(RemoteProcessInterface):
    def __init__(self, manager: "HttpRemoteProcessManager", process_info: ProcessInfo) -> None:
        self._manager = manager
        self._info = process_info

    @property
    def id(self) -> str:
        return self._info.id

    def info(self, ctx: OperationContext) -> ProcessInfo:
        self._info = ProcessInfo.model_validate(self._manager.request(ctx, "GET", f"/process/{self.id}"))
        return self._info

    def get_tags(self, ctx: OperationContext) -> list[str]:
        return list(self._manager.request(ctx, "GET", f"/process/{self.id}/tags") or [])

    def signal(self, ctx: OperationContext, sig: signal.Signals) -> None:
        self._manager.request(ctx, "PATCH", f"/process/{self.id}/signal/{int(sig)}")

    def wait(self, ctx: OperationContext) -> int:
        result = self._manager.request(ctx, "GET", f"/process/{self.id}/wait")
        return self._manager.parse_exit_code(result)

    def get_output(self, ctx: OperationContext) -> str:
        lines = self._manager.request(ctx, "GET", f"/process/{self.id}/logs")
        return "\n".join(lines or [])


class HttpRemoteProcessManager(RemoteProcessManagerInterface):
    """Process-table operations over an already configured httpx client."""

    def __init__(self, address: str, port: int, client: httpx.Client) -> None:
        self.address = address
        self.port = port
        self._client = client

    def request(self, ctx: OperationContext, method: str, path: str, json: Any = None) -> Any:
        """Issue one call and decode its JSON body (None when the body is empty).

        Transport failures become ConnectivityError, or CancellationError when the context ran
        out while the call was in flight. Error statuses become ExecutionError.
        """
        ctx.raise_if_done()
        remaining = ctx.remaining_seconds()
        timeout = self._client.timeout if remaining is None else httpx.Timeout(remaining)
        with log_span("{} {}{}", method, API_PREFIX, path, address=self.address):
            try:
                response = self._client.request(method, path, json=json, timeout=timeout)
            except httpx.TimeoutException as e:
                if ctx.is_done():
                    raise CancellationError(f"{method} {path} on {self.address} ran past the deadline") from e
                raise ConnectivityError(self.address, self.port, f"timed out: {e}") from e
            except httpx.HTTPError as e:
                raise ConnectivityError(self.address, self.port, str(e) or type(e).__name__) from e
        ctx.raise_if_done()

        if response.is_error:
            raise ExecutionError(
                f"{method} {path} failed with status {response.status_code}",
                output=_error_detail(response),
            )
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise ConnectivityError(self.address, self.port, "service returned a malformed response") from e

    def probe(self, ctx: OperationContext) -> None:
        """Check that a supervisor service is answering at all."""
        self.request(ctx, "GET", "/")

    def parse_exit_code(self, data: Any) -> int:
        try:
            return int(data["exit_code"])
        except (TypeError, KeyError, ValueError) as e:
            raise ConnectivityError(self.address, self.port, "service returned a malformed response") from e

    def _wrap_all(self, data: Any) -> list[RemoteProcessInterface]:
        try:
            infos = [ProcessInfo.model_validate(item) for item in data or []]
        except ValidationError as e:
            raise ConnectivityError(self.address, self.port, "service returned malformed process info") from e
        return [HttpRemoteProcess(self, info) for info in infos]

    def create_process(self, ctx: OperationContext, options: CreateOptions) -> RemoteProcessInterface:
        data = self.request(ctx, "POST", "/create", json=options.model_dump(mode="json"))
        process = self._wrap_all([data])[0]
        logger.debug("Created process {} on {} with tags {}", process.id, self.address, options.tags)
        return process

    def list_processes(self, ctx: OperationContext, process_filter: ProcessFilter) -> list[RemoteProcessInterface]:
        return self._wrap_all(self.request(ctx, "GET", f"/list/{process_filter.value}"))

    def group(self, ctx: OperationContext, tag: str) -> list[RemoteProcessInterface]:
        return self._wrap_all(self.request(ctx, "GET", f"/list/group/{tag}"))

    def close(self) -> None:
        self._client.close()


class HttpRpcDialer(RpcDialerInterface):
    """Dials hosts over HTTPS. A transport can be injected so tests never touch the network."""

    def __init__(self, transport: httpx.BaseTransport | None = None) -> None:
        self._transport = transport

    def dial(
        self,
        ctx: OperationContext,
        address: str,
        port: int,
        credentials: Credentials,
    ) -> RemoteProcessManagerInterface:
        ctx.raise_if_done()
        ssl_context = build_client_ssl_context(credentials)
        client = httpx.Client(
            base_url=f"https://{address}:{port}{API_PREFIX}",
            verify=ssl_context,
            timeout=_DEFAULT_TIMEOUT_SECONDS,
            transport=self._transport,
        )
        manager = HttpRemoteProcessManager(address, port, client)
        try:
            with log_span("Dialing process supervisor at {}:{}", address, port):
                manager.probe(ctx)
        except ExecutionError as e:
            manager.close()
            raise ConnectivityError(address, port, f"service is not healthy: {e.output or e.message}") from e
        except (ConnectivityError, CancellationError):
            manager.close()
            raise
        return manager
