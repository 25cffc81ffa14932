from pathlib import Path


class BaseHostvisorError(Exception):
    """Base exception for all hostvisor errors.

    Subclasses can provide a user_help_text attribute with additional context to help
    the operator understand and resolve the error. format_message() appends it.
    """

    user_help_text: str | None = None

    def format_message(self) -> str:
        if self.user_help_text:
            return str(self) + "  [" + self.user_help_text + "]"
        return str(self)


# === Configuration ===


class ConfigurationError(BaseHostvisorError):
    """Persisted host or settings state is missing or invalid. Not retriable: the state must be fixed."""

    def __init__(self, field_name: str, message: str) -> None:
        self.field_name = field_name
        super().__init__(f"{field_name}: {message}")


class ConfigParseError(ConfigurationError):
    """A settings file could not be read or failed validation."""

    user_help_text = "Check the settings file syntax and field names."

    def __init__(self, path: Path, message: str) -> None:
        self.path = path
        super().__init__("settings", f"cannot load {path}: {message}")


class IncompleteCredentialsError(ConfigurationError):
    """Credentials are missing one of their CA certificate, certificate or key."""

    def __init__(self, missing_part: str) -> None:
        self.missing_part = missing_part
        super().__init__(missing_part, "credentials are incomplete")


class LegacyHostUnsupportedError(ConfigurationError):
    """Legacy-SSH hosts have no process-supervision channel."""

    user_help_text = "Switch the distro's communication method to 'ssh' or 'rpc'."

    def __init__(self, host_id: str) -> None:
        self.host_id = host_id
        super().__init__("communication_method", f"legacy host {host_id} is unsupported")


# === Connectivity ===


class ConnectivityError(BaseHostvisorError):
    """The remote channel could not be reached or failed mid-call. Retriable by the caller with backoff."""

    def __init__(self, address: str, port: int | None, reason: str) -> None:
        self.address = address
        self.port = port
        self.reason = reason
        target = address if port is None else f"{address}:{port}"
        super().__init__(f"cannot reach {target}: {reason}")


class CancellationError(BaseHostvisorError):
    """The operation context was cancelled or its deadline expired."""


# === Templating ===


class TemplatingError(BaseHostvisorError, ValueError):
    """A ${...} expansion was unterminated or referenced an unknown name."""

    def __init__(self, field_name: str, message: str) -> None:
        self.field_name = field_name
        super().__init__(f"{field_name}: {message}")


# === Execution ===


class ExecutionError(BaseHostvisorError):
    """A remote process could not be created, or it ran and failed."""

    def __init__(self, message: str, output: str = "", exit_code: int | None = None) -> None:
        self.message = message
        self.output = output
        self.exit_code = exit_code
        super().__init__(self._format())

    def _format(self) -> str:
        msg = self.message
        if self.exit_code is not None:
            msg += f" (exit code {self.exit_code})"
        if self.output:
            output = self.output
            if len(output) > 8000:
                output = output[:4000] + "\n... OUTPUT TRUNCATED ...\n" + output[-4000:]
            msg += f"\noutput:\n{output}"
        return msg


# === Lookups ===


class HostNotFoundError(BaseHostvisorError):
    """No host record with this ID exists."""

    def __init__(self, host_id: str) -> None:
        self.host_id = host_id
        super().__init__(f"Host not found: {host_id}")


class HostAlreadyExistsError(BaseHostvisorError):
    """A host record with this ID already exists."""

    def __init__(self, host_id: str) -> None:
        self.host_id = host_id
        super().__init__(f"Host already exists: {host_id}")


class CredentialsNotFoundError(BaseHostvisorError):
    """No credentials are stored under this name."""

    user_help_text = "Bootstrap the credentials authority and (re)issue the host's credentials."

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Credentials not found: {name}")
