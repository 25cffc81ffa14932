import json
import signal
import ssl
from collections.abc import Callable

import httpx
import pytest

from hostvisor.context import OperationContext
from hostvisor.credentials.authority import client_credentials_name
from hostvisor.credentials.data_types import Credentials
from hostvisor.credentials.store import InMemoryCredentialsStore
from hostvisor.errors import CancellationError
from hostvisor.errors import ConfigurationError
from hostvisor.errors import ConnectivityError
from hostvisor.errors import ExecutionError
from hostvisor.errors import IncompleteCredentialsError
from hostvisor.jasper.data_types import CreateOptions
from hostvisor.jasper.data_types import ProcessFilter
from hostvisor.jasper.http_client import API_PREFIX
from hostvisor.jasper.http_client import HttpRemoteProcessManager
from hostvisor.jasper.http_client import HttpRpcDialer
from hostvisor.jasper.http_client import build_client_ssl_context
from hostvisor.utils.testing import TEST_DOMAIN_NAME
from hostvisor.utils.testing import TEST_JASPER_PORT
from hostvisor.utils.testing import find_free_port

Handler = Callable[[httpx.Request], httpx.Response]


def _process_json(process_id: str = "p1", tags: list[str] | None = None, is_running: bool = True) -> dict:
    return {
        "id": process_id,
        "host_id": "h1",
        "pid": 42,
        "options": {"args": ["sleep", "10"], "tags": tags or []},
        "is_running": is_running,
    }


def _manager(handler: Handler) -> HttpRemoteProcessManager:
    client = httpx.Client(
        base_url=f"https://localhost:{TEST_JASPER_PORT}{API_PREFIX}",
        transport=httpx.MockTransport(handler),
    )
    return HttpRemoteProcessManager("localhost", TEST_JASPER_PORT, client)


@pytest.fixture
def client_creds(credentials_store: InMemoryCredentialsStore) -> Credentials:
    return credentials_store.find_by_id(client_credentials_name(TEST_DOMAIN_NAME))


# === TLS context ===


def test_ssl_context_requires_peer_certificate(client_creds: Credentials) -> None:
    ssl_context = build_client_ssl_context(client_creds)

    assert ssl_context.verify_mode == ssl.CERT_REQUIRED
    assert not ssl_context.check_hostname


def test_ssl_context_rejects_incomplete_credentials(client_creds: Credentials) -> None:
    with pytest.raises(IncompleteCredentialsError):
        build_client_ssl_context(client_creds.with_updates(cert=b""))


def test_ssl_context_rejects_garbage_ca(client_creds: Credentials) -> None:
    with pytest.raises(ConfigurationError) as exc_info:
        build_client_ssl_context(client_creds.with_updates(ca_cert=b"not a certificate"))
    assert exc_info.value.field_name == "ca_cert"


# === Requests ===


def test_create_process_posts_options() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=_process_json(tags=["t"]))

    manager = _manager(handler)
    options = CreateOptions(args=["sleep", "10"], tags=["t"], environment={"A": "b"})

    process = manager.create_process(OperationContext.build_root(), options)

    assert process.id == "p1"
    [request] = seen
    assert request.method == "POST"
    assert request.url.path == f"{API_PREFIX}/create"
    assert json.loads(request.content) == options.model_dump(mode="json")


def test_list_processes_uses_filter_in_path() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == f"{API_PREFIX}/list/running"
        return httpx.Response(200, json=[_process_json("p1"), _process_json("p2")])

    processes = _manager(handler).list_processes(OperationContext.build_root(), ProcessFilter.RUNNING)

    assert [p.id for p in processes] == ["p1", "p2"]


def test_group_lists_by_tag() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == f"{API_PREFIX}/list/group/agent-monitor"
        return httpx.Response(200, json=[])

    assert _manager(handler).group(OperationContext.build_root(), "agent-monitor") == []


def test_process_calls_hit_process_endpoints() -> None:
    requests: list[tuple[str, str]] = []
    responses = {
        f"{API_PREFIX}/process/p1": _process_json(is_running=False),
        f"{API_PREFIX}/process/p1/tags": ["agent-monitor"],
        f"{API_PREFIX}/process/p1/wait": {"exit_code": 7},
        f"{API_PREFIX}/process/p1/logs": ["line one", "line two"],
    }

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append((request.method, request.url.path))
        if request.method == "PATCH":
            return httpx.Response(200)
        if request.url.path.endswith("/list/all"):
            return httpx.Response(200, json=[_process_json()])
        return httpx.Response(200, json=responses[request.url.path])

    ctx = OperationContext.build_root()
    [process] = _manager(handler).list_processes(ctx, ProcessFilter.ALL)

    assert process.get_tags(ctx) == ["agent-monitor"]
    assert not process.info(ctx).is_running
    process.signal(ctx, signal.SIGTERM)
    assert process.wait(ctx) == 7
    assert process.get_output(ctx) == "line one\nline two"
    assert ("PATCH", f"{API_PREFIX}/process/p1/signal/{int(signal.SIGTERM)}") in requests


def test_error_status_becomes_execution_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"error": "no such executable"})

    with pytest.raises(ExecutionError) as exc_info:
        _manager(handler).create_process(OperationContext.build_root(), CreateOptions(args=["nope"]))
    assert exc_info.value.output == "no such executable"


def test_malformed_body_becomes_connectivity_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"<html>proxy page</html>")

    with pytest.raises(ConnectivityError):
        _manager(handler).list_processes(OperationContext.build_root(), ProcessFilter.ALL)


def test_malformed_process_info_becomes_connectivity_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=[{"unexpected": True}])

    with pytest.raises(ConnectivityError):
        _manager(handler).list_processes(OperationContext.build_root(), ProcessFilter.ALL)


def test_transport_failure_becomes_connectivity_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection reset", request=request)

    with pytest.raises(ConnectivityError) as exc_info:
        _manager(handler).probe(OperationContext.build_root())
    assert exc_info.value.port == TEST_JASPER_PORT


def test_timeout_with_live_context_is_connectivity_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    with pytest.raises(ConnectivityError):
        _manager(handler).probe(OperationContext.build_root(timeout_seconds=60.0))


def test_timeout_after_cancellation_is_cancellation_error() -> None:
    ctx = OperationContext.build_root()

    def handler(request: httpx.Request) -> httpx.Response:
        ctx.cancel()
        raise httpx.ReadTimeout("slow", request=request)

    with pytest.raises(CancellationError):
        _manager(handler).probe(ctx)


def test_cancelled_context_sends_nothing() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200)

    ctx = OperationContext.build_root()
    ctx.cancel()

    with pytest.raises(CancellationError):
        _manager(handler).probe(ctx)
    assert seen == []



def test_empty_process_bodies_read_as_empty() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/list/all"):
            return httpx.Response(200, json=[_process_json()])
        return httpx.Response(204)

    ctx = OperationContext.build_root()
    [process] = _manager(handler).list_processes(ctx, ProcessFilter.ALL)

    assert process.get_tags(ctx) == []
    assert process.get_output(ctx) == ""


@pytest.mark.parametrize("body", [b"", b"{}", b"[]", b'{"exit_code": "done"}'])
def test_wait_without_exit_code_is_connectivity_error(body: bytes) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/list/all"):
            return httpx.Response(200, json=[_process_json()])
        return httpx.Response(200, content=body)

    ctx = OperationContext.build_root()
    [process] = _manager(handler).list_processes(ctx, ProcessFilter.ALL)

    with pytest.raises(ConnectivityError) as exc_info:
        process.wait(ctx)
    assert exc_info.value.reason == "service returned a malformed response"


def test_success_after_cancellation_is_cancellation_error() -> None:
    ctx = OperationContext.build_root()

    def handler(request: httpx.Request) -> httpx.Response:
        ctx.cancel()
        return httpx.Response(200, json=[])

    with pytest.raises(CancellationError):
        _manager(handler).list_processes(ctx, ProcessFilter.ALL)


# === Dialing ===


def test_dial_probes_service(client_creds: Credentials) -> None:
    seen: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(str(request.url))
        return httpx.Response(200, json={})

    dialer = HttpRpcDialer(transport=httpx.MockTransport(handler))

    manager = dialer.dial(OperationContext.build_root(), "10.0.0.1", TEST_JASPER_PORT, client_creds)

    with manager:
        assert seen == [f"https://10.0.0.1:{TEST_JASPER_PORT}{API_PREFIX}/"]


def test_dial_unhealthy_service_is_connectivity_error(client_creds: Credentials) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, text="starting up")

    dialer = HttpRpcDialer(transport=httpx.MockTransport(handler))

    with pytest.raises(ConnectivityError) as exc_info:
        dialer.dial(OperationContext.build_root(), "10.0.0.1", TEST_JASPER_PORT, client_creds)
    assert "starting up" in exc_info.value.reason


def test_dial_closed_port_is_connectivity_error(client_creds: Credentials) -> None:
    port = find_free_port()

    with pytest.raises(ConnectivityError) as exc_info:
        HttpRpcDialer().dial(OperationContext.build_root(timeout_seconds=10.0), "127.0.0.1", port, client_creds)
    assert (exc_info.value.address, exc_info.value.port) == ("127.0.0.1", port)


def test_dial_with_cancelled_context(client_creds: Credentials) -> None:
    ctx = OperationContext.build_root()
    ctx.cancel()

    with pytest.raises(CancellationError):
        HttpRpcDialer().dial(ctx, "127.0.0.1", find_free_port(), client_creds)
