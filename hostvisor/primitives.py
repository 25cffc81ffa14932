from enum import auto
from typing import Final

from hostvisor.common.enums import KebabCaseStrEnum
from hostvisor.common.primitives import NonEmptyStr

# === Enums ===


class Arch(KebabCaseStrEnum):
    """CPU architecture variant of a distro, as <os>_<arch>."""

    DARWIN_AMD64 = "darwin_amd64"
    LINUX_386 = "linux_386"
    LINUX_AMD64 = "linux_amd64"
    LINUX_ARM64 = "linux_arm64"
    LINUX_PPC64LE = "linux_ppc64le"
    LINUX_S390X = "linux_s390x"
    WINDOWS_386 = "windows_386"
    WINDOWS_AMD64 = "windows_amd64"

    @property
    def os_name(self) -> str:
        return self.value.split("_", 1)[0]

    @property
    def cpu_name(self) -> str:
        return self.value.split("_", 1)[1]

    @property
    def is_windows(self) -> bool:
        return self.os_name == "windows"


class BootstrapMethod(KebabCaseStrEnum):
    """How the process-supervision agent is initially installed on a host."""

    LEGACY_SSH = auto()
    SSH = auto()
    USER_DATA = auto()
    PRECONFIGURED_IMAGE = auto()


class CommunicationMethod(KebabCaseStrEnum):
    """The channel used to control a host after it has been bootstrapped."""

    LEGACY_SSH = auto()
    SSH = auto()
    RPC = auto()


class InitSystem(KebabCaseStrEnum):
    """Init system detected on a Linux host."""

    SYSTEMD = auto()
    SYSV = auto()
    UPSTART = auto()


# === ID Types ===


class HostId(NonEmptyStr):
    """Unique identifier for a host record."""


class ProcessTag(NonEmptyStr):
    """Opaque label attached to a remote process at creation time."""


AGENT_MONITOR_TAG: Final[ProcessTag] = ProcessTag("agent-monitor")

# Default retry policy embedded into generated curl invocations.
CURL_DEFAULT_NUM_RETRIES: Final[int] = 10
CURL_DEFAULT_MAX_SECS: Final[int] = 100
