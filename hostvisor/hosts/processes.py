import posixpath
import secrets
import signal

from loguru import logger
from pydantic import Field

from hostvisor.common.frozen_model import FrozenModel
from hostvisor.common.logging import log_call
from hostvisor.common.logging import log_span
from hostvisor.common.pure import pure
from hostvisor.config.data_types import HostvisorContext
from hostvisor.config.data_types import Settings
from hostvisor.context import OperationContext
from hostvisor.errors import ExecutionError
from hostvisor.hosts.client import get_jasper_client
from hostvisor.hosts.data_types import Host
from hostvisor.hosts.scripts import build_local_jasper_client_request
from hostvisor.hosts.scripts import client_url
from hostvisor.jasper.data_types import CreateOptions
from hostvisor.jasper.data_types import ProcessFilter
from hostvisor.primitives import AGENT_MONITOR_TAG

_SECRET_NUM_BYTES = 16


class AgentMonitorRequest(FrozenModel):
    """A ready-to-run agent monitor launch, plus the host record as it was persisted."""

    host: Host = Field(description="The host with its secret set")
    command: str = Field(description="Command that asks the host's supervisor to start the agent monitor")


# === Running processes ===


@log_call
def run_jasper_process(
    host: Host,
    hostvisor_ctx: HostvisorContext,
    op_ctx: OperationContext,
    options: CreateOptions,
) -> str:
    """Run a process on the host to completion and return its captured output.

    Raises ExecutionError, carrying the output, if it exits non-zero.
    """
    with get_jasper_client(host, hostvisor_ctx, op_ctx) as client:
        with log_span("Running {} on host {}", options.args, host.id):
            process = client.create_process(op_ctx, options.with_updates(capture_output=True))
            exit_code = process.wait(op_ctx)
            output = process.get_output(op_ctx)
    if exit_code != 0:
        raise ExecutionError(f"process {options.args} failed on host {host.id}", output=output, exit_code=exit_code)
    return output


@log_call
def start_jasper_process(
    host: Host,
    hostvisor_ctx: HostvisorContext,
    op_ctx: OperationContext,
    options: CreateOptions,
) -> str:
    """Start a process on the host without waiting for it, returning its ID in the supervisor."""
    with get_jasper_client(host, hostvisor_ctx, op_ctx) as client:
        process = client.create_process(op_ctx, options)
    logger.debug("Started process {} on host {}", process.id, host.id)
    return process.id


# === Agent monitor ===


@pure
def build_agent_env(settings: Settings) -> dict[str, str]:
    """The environment handed to the agent monitor. Only what the agent needs is copied."""
    env = {
        "API_SERVER_URL": settings.api_url,
        "UI_SERVER_URL": settings.ui.url,
        "CLIENT_BINARIES_DIR": settings.client_binaries_dir,
        "LOGKEEPER_URL": settings.logger_config.logkeeper_url,
        "S3_KEY": settings.providers.aws.s3_key,
        "S3_SECRET": settings.providers.aws.s3_secret.get_secret_value(),
        "S3_BUCKET": settings.providers.aws.bucket,
        "GRIP_SPLUNK_SERVER_URL": settings.splunk.server_url,
        "GRIP_SPLUNK_CLIENT_TOKEN": settings.splunk.token.get_secret_value(),
    }
    if settings.splunk.channel:
        env["GRIP_SPLUNK_CHANNEL"] = settings.splunk.channel
    sumo_endpoint = settings.credentials.get("sumologic")
    if sumo_endpoint:
        env["GRIP_SUMO_ENDPOINT"] = sumo_endpoint
    return env


@pure
def agent_monitor_options(host: Host, settings: Settings) -> CreateOptions:
    """How the host's supervisor should launch the agent monitor for this host."""
    distro = host.distro
    binary = distro.binary_name(settings.client_binary_name)
    client_dir = distro.client_dir or distro.home_dir
    args = [
        posixpath.join(distro.home_dir, binary),
        "agent",
        f"--api_server={settings.api_url}",
        f"--host_id={host.id}",
        f"--host_secret={host.secret}",
        f"--log_prefix={posixpath.join(distro.work_dir, 'agent')}",
        f"--working_directory={distro.work_dir}",
        f"--logkeeper_url={settings.logger_config.logkeeper_url}",
        "--cleanup",
        "monitor",
        f"--client_url={client_url(host, settings)}",
        f"--client_path={posixpath.join(client_dir, binary)}",
    ]
    return CreateOptions(
        args=args,
        environment=build_agent_env(settings),
        tags=[AGENT_MONITOR_TAG],
    )


@log_call
def start_agent_monitor_request(host: Host, hostvisor_ctx: HostvisorContext) -> AgentMonitorRequest:
    """Prepare the command that starts the agent monitor on the host.

    The host's secret is generated here if it has none, and is persisted before the command is
    built so that the agent can authenticate as soon as it starts. An existing secret is kept.
    """
    secret = host.secret or secrets.token_hex(_SECRET_NUM_BYTES)
    updated_host = hostvisor_ctx.host_store.set_secret(host.id, secret)
    options = agent_monitor_options(updated_host, hostvisor_ctx.settings)
    command = build_local_jasper_client_request(
        updated_host, hostvisor_ctx.settings.host_jasper, "create-process", options
    )
    return AgentMonitorRequest(host=updated_host, command=command)


@log_call
def stop_agent_monitor(host: Host, hostvisor_ctx: HostvisorContext, op_ctx: OperationContext) -> int:
    """Send SIGTERM to every running agent monitor on the host and return how many were signalled.

    Legacy-communication hosts have no supervisor, so nothing is contacted and 0 is returned.
    Finding no agent monitor is not an error.
    """
    if host.distro.legacy_communication:
        logger.debug("Host {} uses legacy communication; no agent monitor to stop", host.id)
        return 0

    num_signalled = 0
    with get_jasper_client(host, hostvisor_ctx, op_ctx) as client:
        for process in client.list_processes(op_ctx, ProcessFilter.ALL):
            if AGENT_MONITOR_TAG not in process.get_tags(op_ctx):
                continue
            if not process.info(op_ctx).is_running:
                continue
            process.signal(op_ctx, signal.SIGTERM)
            num_signalled += 1
    logger.debug("Signalled {} agent monitor(s) on host {}", num_signalled, host.id)
    return num_signalled
