"""Acquiring a live client to a host's process supervisor.

Which channel to use is decided by the (bootstrap method, communication method) pair on the
host's distro. Every pair is listed in _STRATEGIES, so adding a method without deciding what it
means for client acquisition fails the exhaustiveness test instead of silently falling through.
"""

from enum import auto
from typing import Final

from loguru import logger

from hostvisor.common.enums import UpperCaseStrEnum
from hostvisor.common.logging import log_call
from hostvisor.common.pure import pure
from hostvisor.config.data_types import HostvisorContext
from hostvisor.context import OperationContext
from hostvisor.credentials.authority import client_credentials
from hostvisor.errors import ConfigurationError
from hostvisor.errors import LegacyHostUnsupportedError
from hostvisor.hosts.data_types import Distro
from hostvisor.hosts.data_types import Host
from hostvisor.jasper.interfaces import RemoteProcessManagerInterface
from hostvisor.jasper.ssh_client import SshRemoteProcessManager
from hostvisor.primitives import BootstrapMethod
from hostvisor.primitives import CommunicationMethod


class ClientStrategy(UpperCaseStrEnum):
    """What client acquisition does for a given method pair."""

    # No supervisor channel exists on the host.
    LEGACY_UNSUPPORTED = auto()
    # The pair is contradictory; the host record must be fixed.
    INVALID = auto()
    SSH = auto()
    RPC = auto()


_STRATEGIES: Final[dict[tuple[BootstrapMethod, CommunicationMethod], ClientStrategy]] = {
    (BootstrapMethod.LEGACY_SSH, CommunicationMethod.LEGACY_SSH): ClientStrategy.LEGACY_UNSUPPORTED,
    (BootstrapMethod.LEGACY_SSH, CommunicationMethod.SSH): ClientStrategy.INVALID,
    (BootstrapMethod.LEGACY_SSH, CommunicationMethod.RPC): ClientStrategy.INVALID,
    (BootstrapMethod.SSH, CommunicationMethod.LEGACY_SSH): ClientStrategy.LEGACY_UNSUPPORTED,
    (BootstrapMethod.SSH, CommunicationMethod.SSH): ClientStrategy.SSH,
    (BootstrapMethod.SSH, CommunicationMethod.RPC): ClientStrategy.RPC,
    (BootstrapMethod.USER_DATA, CommunicationMethod.LEGACY_SSH): ClientStrategy.LEGACY_UNSUPPORTED,
    (BootstrapMethod.USER_DATA, CommunicationMethod.SSH): ClientStrategy.SSH,
    (BootstrapMethod.USER_DATA, CommunicationMethod.RPC): ClientStrategy.RPC,
    (BootstrapMethod.PRECONFIGURED_IMAGE, CommunicationMethod.LEGACY_SSH): ClientStrategy.LEGACY_UNSUPPORTED,
    (BootstrapMethod.PRECONFIGURED_IMAGE, CommunicationMethod.SSH): ClientStrategy.SSH,
    (BootstrapMethod.PRECONFIGURED_IMAGE, CommunicationMethod.RPC): ClientStrategy.RPC,
}


@pure
def client_strategy(distro: Distro) -> ClientStrategy:
    try:
        return _STRATEGIES[(distro.bootstrap_method, distro.communication_method)]
    except KeyError:
        raise ConfigurationError(
            "communication_method",
            f"no client strategy for bootstrap method {distro.bootstrap_method} "
            f"with communication method {distro.communication_method}",
        ) from None


def _ssh_client(host: Host, hostvisor_ctx: HostvisorContext) -> RemoteProcessManagerInterface:
    key_name = host.distro.ssh_key
    if not key_name:
        raise ConfigurationError("ssh_key", f"host {host.id} uses ssh communication but its distro has no SSH key")
    key_file = hostvisor_ctx.settings.keys.get(key_name)
    if key_file is None:
        raise ConfigurationError("ssh_key", f"SSH key {key_name!r} is not configured in settings")
    if not host.host:
        raise ConfigurationError("host", f"host {host.id} has no network address")
    if not host.user:
        raise ConfigurationError("user", f"host {host.id} has no login user")
    return SshRemoteProcessManager.build(host, hostvisor_ctx.settings.host_jasper, key_file)


def _rpc_client(
    host: Host,
    hostvisor_ctx: HostvisorContext,
    op_ctx: OperationContext,
) -> RemoteProcessManagerInterface:
    if not host.host:
        raise ConfigurationError("host", f"host {host.id} has no network address")
    settings = hostvisor_ctx.settings
    credentials = client_credentials(hostvisor_ctx.credentials_store, settings.domain_name)
    return hostvisor_ctx.rpc_dialer.dial(op_ctx, host.host, settings.host_jasper.port, credentials)


@log_call
def get_jasper_client(
    host: Host,
    hostvisor_ctx: HostvisorContext,
    op_ctx: OperationContext,
) -> RemoteProcessManagerInterface:
    """Return a client to the host's process supervisor.

    Raises LegacyHostUnsupportedError for legacy-communication hosts, ConfigurationError when the
    host record lacks what its channel needs, and ConnectivityError when an RPC service cannot be
    reached. Nothing is retried; the caller's op_ctx bounds the dial.
    """
    op_ctx.raise_if_done()
    strategy = client_strategy(host.distro)
    logger.trace("Client strategy for host {} is {}", host.id, strategy)
    match strategy:
        case ClientStrategy.LEGACY_UNSUPPORTED:
            raise LegacyHostUnsupportedError(host.id)
        case ClientStrategy.INVALID:
            raise ConfigurationError(
                "bootstrap_method",
                f"host {host.id} is bootstrapped with {host.distro.bootstrap_method} "
                f"but communicates over {host.distro.communication_method}",
            )
        case ClientStrategy.SSH:
            return _ssh_client(host, hostvisor_ctx)
        case ClientStrategy.RPC:
            return _rpc_client(host, hostvisor_ctx, op_ctx)
