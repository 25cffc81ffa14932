"""Shared pytest fixtures for hostvisor tests."""

from pathlib import Path

import pytest
from pydantic import SecretStr

from hostvisor.config.data_types import AWSConfig
from hostvisor.config.data_types import CloudProviders
from hostvisor.config.data_types import HostJasperConfig
from hostvisor.config.data_types import HostvisorContext
from hostvisor.config.data_types import LoggerConfig
from hostvisor.config.data_types import Settings
from hostvisor.config.data_types import SplunkConnectionInfo
from hostvisor.config.data_types import UIConfig
from hostvisor.context import OperationContext
from hostvisor.credentials.authority import bootstrap_credentials_authority
from hostvisor.credentials.authority import client_credentials
from hostvisor.credentials.authority import client_credentials_name
from hostvisor.credentials.data_types import Credentials
from hostvisor.credentials.store import InMemoryCredentialsStore
from hostvisor.hosts.store import InMemoryHostStore
from hostvisor.jasper.testing import MockProcessManager
from hostvisor.jasper.testing import MockRpcDialer
from hostvisor.utils.testing import TEST_DOMAIN_NAME
from hostvisor.utils.testing import TEST_JASPER_PORT
from hostvisor.utils.testing import TEST_SSH_KEY_NAME


@pytest.fixture(scope="session")
def _issued_credentials() -> dict[str, Credentials]:
    """Generate the authority and client credentials once; RSA key generation is slow."""
    store = InMemoryCredentialsStore()
    authority = bootstrap_credentials_authority(store, TEST_DOMAIN_NAME)
    client = client_credentials(store, TEST_DOMAIN_NAME)
    return {TEST_DOMAIN_NAME: authority, client_credentials_name(TEST_DOMAIN_NAME): client}


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        api_url="www.example0.com",
        domain_name=TEST_DOMAIN_NAME,
        client_binaries_dir="clients",
        ui=UIConfig(url="www.example2.com"),
        logger_config=LoggerConfig(logkeeper_url="www.example1.com"),
        providers=CloudProviders(aws=AWSConfig(s3_key="key", s3_secret=SecretStr("secret"), bucket="bucket")),
        splunk=SplunkConnectionInfo(server_url="www.example3.com", token=SecretStr("token")),
        host_jasper=HostJasperConfig(
            binary_name="binary",
            download_file_name="download_file",
            url="www.example.com",
            version="abc123",
            port=TEST_JASPER_PORT,
        ),
        keys={TEST_SSH_KEY_NAME: tmp_path / "id_rsa"},
    )


@pytest.fixture
def credentials_store(_issued_credentials: dict[str, Credentials]) -> InMemoryCredentialsStore:
    store = InMemoryCredentialsStore()
    for name, credentials in _issued_credentials.items():
        store.save(name, credentials)
    return store


@pytest.fixture
def host_store() -> InMemoryHostStore:
    return InMemoryHostStore()


@pytest.fixture
def rpc_dialer() -> MockRpcDialer:
    return MockRpcDialer()


@pytest.fixture
def hostvisor_ctx(
    settings: Settings,
    host_store: InMemoryHostStore,
    credentials_store: InMemoryCredentialsStore,
    rpc_dialer: MockRpcDialer,
) -> HostvisorContext:
    return HostvisorContext(
        settings=settings,
        host_store=host_store,
        credentials_store=credentials_store,
        rpc_dialer=rpc_dialer,
    )


@pytest.fixture
def op_ctx() -> OperationContext:
    return OperationContext.build_root(timeout_seconds=5.0)


@pytest.fixture
def mock_manager() -> MockProcessManager:
    return MockProcessManager()
