"""Shell command and script generation for hosts.

Everything here is pure: each function returns the exact text that will later be executed on
the host (over SSH, through user data, or by the agent). Nothing is run, read or written.
The output formats are consumed verbatim by remote shells and by the process-supervision
binary's CLI, so changes here change the wire contract.
"""

import json
import posixpath
from typing import Any
from typing import Final

from pydantic import BaseModel

from hostvisor.common.pure import pure
from hostvisor.config.data_types import HostJasperConfig
from hostvisor.config.data_types import Settings
from hostvisor.credentials.data_types import Credentials
from hostvisor.errors import ConfigurationError
from hostvisor.hosts.data_types import Host
from hostvisor.hosts.data_types import OwnerCredentials
from hostvisor.hosts.expansions import expand

TEARDOWN_SCRIPT_NAME: Final[str] = "teardown.sh"
SPAWN_HOST_BIN_DIR_NAME: Final[str] = "cli_bin"

_INIT_SYSTEM_DETECTION: Final[str] = (
    "if [ -d /run/systemd/system ]; then echo 'systemd'; "
    "elif /sbin/init --version 2>/dev/null | grep -q upstart; then echo 'upstart'; "
    "else echo 'sysv'; fi"
)


@pure
def single_quote(value: str) -> str:
    """Wrap value in single quotes for a POSIX shell, escaping embedded single quotes."""
    return "'" + value.replace("'", "'\"'\"'") + "'"


@pure
def _compact_json(payload: Any) -> str:
    if isinstance(payload, BaseModel):
        return payload.model_dump_json()
    return json.dumps(payload, separators=(",", ":"))


# === Client binary ===


@pure
def client_url(host: Host, settings: Settings) -> str:
    """Where the host downloads the command-line client from."""
    return "/".join(
        [
            settings.ui.url,
            settings.client_binaries_dir,
            host.distro.arch.value,
            host.distro.binary_name(settings.client_binary_name),
        ]
    )


@pure
def curl_command(host: Host, settings: Settings) -> str:
    """Download the client into the login user's home directory and make it executable."""
    return _curl_command(host, settings, retry_args="")


@pure
def curl_command_with_retry(host: Host, settings: Settings, num_retries: int, max_retry_seconds: int) -> str:
    return _curl_command(host, settings, retry_args=f" --retry {num_retries} --retry-max-time {max_retry_seconds}")


@pure
def _curl_command(host: Host, settings: Settings, retry_args: str) -> str:
    binary = host.distro.binary_name(settings.client_binary_name)
    return (
        f"cd {host.distro.home_dir} && "
        f"curl -LO {single_quote(client_url(host, settings))}{retry_args} && "
        f"chmod +x {binary}"
    )


# === Process-supervision binary ===


@pure
def jasper_download_file_name(host: Host, config: HostJasperConfig) -> str:
    """The archive base name: <download name>-<os>-<cpu>-<version>."""
    arch = host.distro.arch
    return f"{config.download_file_name}-{arch.os_name}-{arch.cpu_name}-{config.version}"


@pure
def jasper_binary_file_path(host: Host, config: HostJasperConfig) -> str:
    return posixpath.join(host.distro.curator_dir, host.distro.binary_name(config.binary_name))


@pure
def fetch_jasper_commands(host: Host, config: HostJasperConfig) -> list[str]:
    """The five steps that install the supervisor binary, in the order they must run."""
    archive = f"{jasper_download_file_name(host, config)}.tar.gz"
    archive_url = f"{config.url}/{archive}"
    binary = host.distro.binary_name(config.binary_name)
    return [
        f'cd "{host.distro.curator_dir}"',
        f"curl -LO {single_quote(archive_url)} "
        f"--retry {config.curl_num_retries} --retry-max-time {config.curl_max_seconds}",
        f"tar xzf {single_quote(archive)}",
        f"chmod +x {single_quote(binary)}",
        f"rm -f {single_quote(archive)}",
    ]


@pure
def fetch_jasper_command(host: Host, config: HostJasperConfig) -> str:
    return " && ".join(fetch_jasper_commands(host, config))


@pure
def path_prefixed_command(command: str, path: str) -> str:
    return f"PATH={path} {command}"


@pure
def fetch_jasper_command_with_path(host: Host, config: HostJasperConfig, path: str) -> str:
    """Like fetch_jasper_command, for shells whose PATH lacks the tools the steps use."""
    return " && ".join(path_prefixed_command(command, path) for command in fetch_jasper_commands(host, config))


@pure
def write_jasper_credentials_file_command(host: Host, credentials: Credentials) -> str:
    """A here-document that writes the exported credentials to the distro's credentials path."""
    path = host.distro.jasper_credentials_path
    if not path:
        raise ConfigurationError("jasper_credentials_path", f"distro for host {host.id} has no credentials path")
    exported = credentials.export().decode("utf-8")
    return f"cat > {single_quote(path)} <<EOF\n{exported}\nEOF"


@pure
def force_reinstall_jasper_command(host: Host, config: HostJasperConfig) -> str:
    """Stop any running supervisor and reinstall it as an RPC service on all interfaces."""
    return (
        f"{host.distro.traits.elevation_prefix}{jasper_binary_file_path(host, config)} "
        f"jasper service force-reinstall rpc --host=0.0.0.0 --port={config.port} "
        f"--creds_path={host.distro.jasper_credentials_path} --user={host.distro.user}"
    )


@pure
def bootstrap_script(
    host: Host,
    config: HostJasperConfig,
    credentials: Credentials,
    pre_commands: list[str],
    post_commands: list[str],
) -> str:
    """The complete script handed to the host to install and start the supervisor.

    Runs pre_commands, the fetch steps, (where the platform needs it) the credentials write,
    the service reinstall, then post_commands, wrapped in the platform's script header/footer.
    """
    traits = host.distro.traits
    if traits.bootstrap_path is None:
        fetch_command = fetch_jasper_command(host, config)
    else:
        fetch_command = fetch_jasper_command_with_path(host, config, traits.bootstrap_path)

    lines = [traits.script_header, *pre_commands, fetch_command]
    if traits.writes_credentials_in_bootstrap:
        lines.append(write_jasper_credentials_file_command(host, credentials))
    lines.append(force_reinstall_jasper_command(host, config))
    lines.extend(post_commands)
    if traits.script_footer is not None:
        lines.append(traits.script_footer)
    return traits.line_separator.join(lines)


@pure
def build_local_jasper_client_request(host: Host, config: HostJasperConfig, sub_command: str, payload: Any) -> str:
    """A command that runs the supervisor's own CLI on the host as a client of its local service.

    The payload is passed as JSON on stdin through a quoted here-document, so the remote shell
    copies it verbatim with no parameter, command or backslash substitution.
    """
    return (
        f"{jasper_binary_file_path(host, config)} jasper client {sub_command} "
        f"--service=rpc --port={config.port} --creds_path={host.distro.jasper_credentials_path} "
        f"<<'EOF'\n{_compact_json(payload)}\nEOF"
    )


# === Distro setup and teardown ===


@pure
def setup_script_commands(host: Host, settings: Settings) -> str:
    """The distro's setup script with placeholders expanded, or '' when there is nothing to run."""
    if host.spawn_options.spawned_by_task or not host.distro.setup:
        return ""
    return expand(host.distro.setup, settings.expansions, field_name="distro.setup")


@pure
def init_system_command() -> str:
    """A POSIX shell snippet that prints the host's init system: systemd, upstart or sysv."""
    return _INIT_SYSTEM_DETECTION


@pure
def teardown_command_over_ssh() -> str:
    return f"chmod +x {TEARDOWN_SCRIPT_NAME} && sh {TEARDOWN_SCRIPT_NAME}"


# === Spawn hosts ===


@pure
def _spawn_host_paths(host: Host, settings: Settings) -> tuple[str, str, str]:
    home_dir = host.distro.home_dir
    bin_dir = posixpath.join(home_dir, SPAWN_HOST_BIN_DIR_NAME)
    config_path = posixpath.join(bin_dir, f".{settings.client_binary_name}.yml")
    binary_path = posixpath.join(home_dir, host.distro.binary_name(settings.client_binary_name))
    return bin_dir, config_path, binary_path


@pure
def spawn_host_setup_command(host: Host, settings: Settings, owner: OwnerCredentials) -> str:
    """Set up an interactively spawned host for its owner.

    Writes the owner's login file next to a copy of the client, puts that directory on the
    login PATH, and, when the host was spawned from a task, fetches that task's data.
    """
    bin_dir, config_path, binary_path = _spawn_host_paths(host, settings)
    login_file = _compact_json(
        {
            "api_key": owner.api_key.get_secret_value(),
            "api_server_host": f"{settings.api_url}/api",
            "ui_server_host": settings.ui.url,
            "user": owner.user_id,
        }
    )
    path_line = single_quote(f"PATH=${{PATH}}:{bin_dir}")
    home_dir = host.distro.home_dir
    command = " && ".join(
        [
            f"mkdir -m 777 -p {bin_dir}",
            f"echo {single_quote(login_file)} > {config_path}",
            f"cp {binary_path} {bin_dir}",
            f"(echo {path_line} >> {home_dir}/.profile || true; echo {path_line} >> {home_dir}/.bash_profile || true)",
        ]
    )
    fetch_command = spawn_host_fetch_command(host, settings)
    if fetch_command:
        command += " && " + fetch_command
    return command


@pure
def spawn_host_fetch_command(host: Host, settings: Settings) -> str:
    """Fetch the originating task's source (and artifacts) into the work dir, or '' if there is no task."""
    options = host.provision_options
    if options is None or not options.task_id:
        return ""
    _, config_path, binary_path = _spawn_host_paths(host, settings)
    artifacts_flag = " --artifacts" if options.fetch_artifacts else ""
    return (
        f"{binary_path} -c {config_path} fetch -t {options.task_id} --source{artifacts_flag} "
        f"--dir={single_quote(host.distro.work_dir)}"
    )
