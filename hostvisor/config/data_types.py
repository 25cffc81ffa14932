from pathlib import Path
from typing import Final

from pydantic import ConfigDict
from pydantic import Field
from pydantic import SecretStr

from hostvisor.common.frozen_model import FrozenModel
from hostvisor.common.primitives import NonNegativeInt
from hostvisor.common.primitives import PortNumber
from hostvisor.credentials.store import CredentialsStoreInterface
from hostvisor.hosts.store import HostStoreInterface
from hostvisor.jasper.interfaces import RpcDialerInterface
from hostvisor.primitives import CURL_DEFAULT_MAX_SECS
from hostvisor.primitives import CURL_DEFAULT_NUM_RETRIES

DEFAULT_JASPER_PORT: Final[int] = 2385


class HostJasperConfig(FrozenModel):
    """Where to download the process-supervision binary from, and how hosts expose its service."""

    binary_name: str = Field(default="jasper_cli", description="Name of the supervisor binary inside the archive")
    download_file_name: str = Field(default="curator", description="Archive name prefix, before -<os>-<arch>-<version>")
    url: str = Field(default="", description="Base URL the archive is downloaded from")
    version: str = Field(default="", description="Version string embedded in the archive name")
    port: PortNumber = Field(default=PortNumber(DEFAULT_JASPER_PORT), description="Port the RPC service binds on hosts")
    curl_num_retries: NonNegativeInt = Field(
        default=NonNegativeInt(CURL_DEFAULT_NUM_RETRIES),
        description="Value for curl --retry in generated download commands",
    )
    curl_max_seconds: NonNegativeInt = Field(
        default=NonNegativeInt(CURL_DEFAULT_MAX_SECS),
        description="Value for curl --retry-max-time in generated download commands",
    )


class UIConfig(FrozenModel):
    url: str = Field(default="", description="Base URL of the web UI (also serves client binaries)")


class LoggerConfig(FrozenModel):
    logkeeper_url: str = Field(default="", description="Log-shipping endpoint handed to agents")


class AWSConfig(FrozenModel):
    s3_key: str = Field(default="", description="Object storage access key handed to agents")
    s3_secret: SecretStr = Field(default=SecretStr(""), description="Object storage secret handed to agents")
    bucket: str = Field(default="", description="Object storage bucket handed to agents")


class CloudProviders(FrozenModel):
    aws: AWSConfig = Field(default_factory=AWSConfig)


class SplunkConnectionInfo(FrozenModel):
    """Telemetry endpoint that agents ship structured logs to."""

    server_url: str = Field(default="")
    token: SecretStr = Field(default=SecretStr(""))
    channel: str = Field(default="")


class Settings(FrozenModel):
    """Static configuration for the control plane."""

    api_url: str = Field(default="", description="Base URL of the REST API agents call back to")
    domain_name: str = Field(default="hostvisor", description="Identity of the control plane in issued certificates")
    client_binaries_dir: str = Field(default="clients", description="Path under the UI URL holding client binaries")
    client_binary_name: str = Field(default="evergreen", description="Name of the command-line client binary")
    ui: UIConfig = Field(default_factory=UIConfig)
    logger_config: LoggerConfig = Field(default_factory=LoggerConfig)
    providers: CloudProviders = Field(default_factory=CloudProviders)
    splunk: SplunkConnectionInfo = Field(default_factory=SplunkConnectionInfo)
    credentials: dict[str, str] = Field(
        default_factory=dict,
        description="Third-party endpoints keyed by service name (e.g. 'sumologic')",
    )
    host_jasper: HostJasperConfig = Field(default_factory=HostJasperConfig)
    expansions: dict[str, str] = Field(default_factory=dict, description="Values for ${name} in distro setup scripts")
    keys: dict[str, Path] = Field(default_factory=dict, description="SSH key name -> private key file")
    log_level: str = Field(default="INFO")


class HostvisorContext(FrozenModel):
    """Everything an operation needs besides the host and an OperationContext."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    settings: Settings
    host_store: HostStoreInterface
    credentials_store: CredentialsStoreInterface
    rpc_dialer: RpcDialerInterface
