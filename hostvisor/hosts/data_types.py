from collections.abc import Iterator
from typing import Any
from typing import Final

from pydantic import Field
from pydantic import SecretStr

from hostvisor.common.frozen_model import FrozenModel
from hostvisor.common.pure import pure
from hostvisor.primitives import Arch
from hostvisor.primitives import BootstrapMethod
from hostvisor.primitives import CommunicationMethod
from hostvisor.primitives import HostId

# === Platform traits ===


class PlatformTraits(FrozenModel):
    """OS-specific formatting used when generating commands and scripts for a host."""

    executable_suffix: str = Field(description="Appended to binary names ('' or '.exe')")
    elevation_prefix: str = Field(description="Prepended to privileged commands ('sudo ' or '')")
    script_header: str = Field(description="First line of a bootstrap script")
    script_footer: str | None = Field(description="Last line of a bootstrap script, if any")
    line_separator: str = Field(description="Separator between script lines")
    bootstrap_path: str | None = Field(
        description="PATH to prefix onto bootstrap commands when the execution context does not provide one",
    )
    writes_credentials_in_bootstrap: bool = Field(
        description="Whether the bootstrap script itself drops the channel credentials onto the host",
    )


_POSIX_TRAITS: Final[PlatformTraits] = PlatformTraits(
    executable_suffix="",
    elevation_prefix="sudo ",
    script_header="#!/bin/bash",
    script_footer=None,
    line_separator="\n",
    bootstrap_path=None,
    writes_credentials_in_bootstrap=False,
)

# User-data on Windows runs under PowerShell; the bash commands run through cygwin, whose
# tools live in /bin and are not on the PATH PowerShell hands down.
_WINDOWS_TRAITS: Final[PlatformTraits] = PlatformTraits(
    executable_suffix=".exe",
    elevation_prefix="",
    script_header="<powershell>",
    script_footer="</powershell>",
    line_separator="\r\n",
    bootstrap_path="/bin",
    writes_credentials_in_bootstrap=True,
)


@pure
def get_platform_traits(arch: Arch) -> PlatformTraits:
    return _WINDOWS_TRAITS if arch.is_windows else _POSIX_TRAITS


# === Host record ===


class Distro(FrozenModel):
    """Distro configuration copied onto a host when it is created."""

    id: str = Field(default="", description="Name of the distro template this was copied from")
    arch: Arch = Field(default=Arch.LINUX_AMD64)
    bootstrap_method: BootstrapMethod = Field(default=BootstrapMethod.LEGACY_SSH)
    communication_method: CommunicationMethod = Field(default=CommunicationMethod.LEGACY_SSH)
    user: str = Field(default="", description="Login user on the host")
    work_dir: str = Field(default="", description="Directory agents run tasks in")
    curator_dir: str = Field(default="", description="Install directory for the process-supervision binary")
    client_dir: str = Field(
        default="", description="Where the agent monitor keeps the client binary; defaults to the home directory"
    )
    jasper_credentials_path: str = Field(default="", description="Where the host keeps its channel credentials")
    ssh_key: str = Field(default="", description="Name of the SSH key used to reach the host")
    setup: str = Field(default="", description="Free-text setup script; may contain ${name} placeholders")

    @property
    def is_windows(self) -> bool:
        return self.arch.is_windows

    @property
    def traits(self) -> PlatformTraits:
        return get_platform_traits(self.arch)

    @property
    def home_dir(self) -> str:
        if self.user == "root":
            return "/root"
        return f"/home/{self.user}"

    def binary_name(self, base_name: str) -> str:
        return base_name + self.traits.executable_suffix

    @property
    def legacy_bootstrap(self) -> bool:
        return self.bootstrap_method == BootstrapMethod.LEGACY_SSH

    @property
    def legacy_communication(self) -> bool:
        return self.communication_method == CommunicationMethod.LEGACY_SSH


class ProvisionOptions(FrozenModel):
    """Options recorded when a host is provisioned on behalf of a user."""

    owner_id: str = Field(default="", description="User that requested the host")
    task_id: str = Field(default="", description="Task whose data should be fetched onto the host")
    fetch_artifacts: bool = Field(default=True, description="Also download the task's artifacts alongside its source")


class SpawnOptions(FrozenModel):
    """Options recorded when a host is spawned for a task run."""

    spawned_by_task: bool = Field(default=False)
    task_execution_number: int = Field(default=0)


class OwnerCredentials(FrozenModel):
    """The login identity written onto an interactively spawned host."""

    user_id: str
    api_key: SecretStr


class Host(FrozenModel):
    """A provisioned machine. Fields here are the ones the control plane reads and writes."""

    id: HostId
    host: str = Field(default="", description="Network address; empty until the cloud provider assigns one")
    user: str = Field(default="", description="Login user for SSH")
    distro: Distro = Field(default_factory=Distro)
    secret: str = Field(default="", description="Shared secret the agent presents on callbacks")
    jasper_credentials_id: str = Field(default="", description="Name the host's channel credentials are stored under")
    provision_options: ProvisionOptions | None = None
    spawn_options: SpawnOptions = Field(default_factory=SpawnOptions)

    def __repr_args__(self) -> Iterator[tuple[str | None, Any]]:
        # The secret authenticates agent callbacks; keep it out of logs.
        for name, value in super().__repr_args__():
            yield name, ("**********" if name == "secret" and value else value)

    @property
    def credentials_name(self) -> str:
        return self.jasper_credentials_id or str(self.id)
