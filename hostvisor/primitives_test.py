import pytest

from hostvisor.primitives import Arch
from hostvisor.primitives import BootstrapMethod
from hostvisor.primitives import CommunicationMethod
from hostvisor.primitives import HostId


@pytest.mark.parametrize(
    ("arch", "os_name", "cpu_name", "is_windows"),
    [
        (Arch.LINUX_AMD64, "linux", "amd64", False),
        (Arch.LINUX_PPC64LE, "linux", "ppc64le", False),
        (Arch.WINDOWS_386, "windows", "386", True),
        (Arch.DARWIN_AMD64, "darwin", "amd64", False),
    ],
)
def test_arch_parts(arch: Arch, os_name: str, cpu_name: str, is_windows: bool) -> None:
    assert arch.os_name == os_name
    assert arch.cpu_name == cpu_name
    assert arch.is_windows == is_windows


def test_method_values_are_kebab_case() -> None:
    assert BootstrapMethod.LEGACY_SSH.value == "legacy-ssh"
    assert BootstrapMethod.USER_DATA.value == "user-data"
    assert BootstrapMethod.PRECONFIGURED_IMAGE.value == "preconfigured-image"
    assert CommunicationMethod("rpc") is CommunicationMethod.RPC


def test_host_id_cannot_be_blank() -> None:
    with pytest.raises(ValueError):
        HostId(" ")
