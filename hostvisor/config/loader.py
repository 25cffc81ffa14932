import os
import tomllib
from collections.abc import Mapping
from pathlib import Path
from typing import Any
from typing import Final

from loguru import logger
from pydantic import ValidationError

from hostvisor.common.logging import setup_logging
from hostvisor.config.data_types import HostvisorContext
from hostvisor.config.data_types import Settings
from hostvisor.credentials.store import DirectoryCredentialsStore
from hostvisor.errors import ConfigParseError
from hostvisor.hosts.store import DirectoryHostStore
from hostvisor.jasper.http_client import HttpRpcDialer

_ENV_PREFIX: Final[str] = "HOSTVISOR_"

# Separates nesting levels in an override name, e.g. HOSTVISOR_HOST_JASPER__PORT.
_ENV_NESTING_SEPARATOR: Final[str] = "__"


def _load_toml(path: Path) -> dict[str, Any]:
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except OSError as e:
        raise ConfigParseError(path, e.strerror or str(e)) from e
    except tomllib.TOMLDecodeError as e:
        raise ConfigParseError(path, str(e)) from e


def _parse_env_overrides(environ: Mapping[str, str]) -> list[tuple[list[str], str]]:
    """Collect HOSTVISOR_* variables as (key path, value) pairs.

    Names are lowercased and split on double underscores:

        HOSTVISOR_API_URL=https://api            -> ["api_url"]
        HOSTVISOR_HOST_JASPER__PORT=2386         -> ["host_jasper", "port"]
        HOSTVISOR_PROVIDERS__AWS__BUCKET=builds  -> ["providers", "aws", "bucket"]

    Values stay strings; pydantic coerces them when the settings are validated.
    """
    overrides = []
    for env_key, env_value in sorted(environ.items()):
        if not env_key.startswith(_ENV_PREFIX):
            continue
        key_path = [part.lower() for part in env_key[len(_ENV_PREFIX) :].split(_ENV_NESTING_SEPARATOR)]
        if not all(key_path):
            continue
        overrides.append((key_path, env_value))
    return overrides


def _apply_override(raw: dict[str, Any], key_path: list[str], value: str, path: Path) -> None:
    section = raw
    for key in key_path[:-1]:
        section = section.setdefault(key, {})
        if not isinstance(section, dict):
            raise ConfigParseError(path, f"cannot override {'.'.join(key_path)}: {key} is not a table")
    section[key_path[-1]] = value


def load_settings(path: Path, environ: Mapping[str, str] = os.environ) -> Settings:
    """Load settings from a TOML file, then apply HOSTVISOR_<SECTION>__<FIELD> environment overrides.

    Raises ConfigParseError naming the file if it cannot be read, is not valid TOML, or does not
    validate as Settings.
    """
    raw = _load_toml(path)
    for key_path, value in _parse_env_overrides(environ):
        logger.debug("Overriding setting {} from the environment", ".".join(key_path))
        _apply_override(raw, key_path, value, path)
    try:
        return Settings.model_validate(raw)
    except ValidationError as e:
        raise ConfigParseError(path, str(e)) from e


def build_hostvisor_context(settings: Settings, state_dir: Path) -> HostvisorContext:
    """Assemble the production context: file-backed stores under state_dir and the HTTPS dialer.

    Also configures logging at the settings' level.
    """
    setup_logging(settings.log_level)
    logger.debug("Using state directory {}", state_dir)
    return HostvisorContext(
        settings=settings,
        host_store=DirectoryHostStore(state_dir / "hosts"),
        credentials_store=DirectoryCredentialsStore(state_dir / "credentials"),
        rpc_dialer=HttpRpcDialer(),
    )
