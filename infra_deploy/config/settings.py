"""
Configuration system using Pydantic for type-safe settings management.

Settings cover the catalog server, the scheduler and the enforcement
transports. Every section has usable defaults, so the CLI runs without a
configuration file; one can be supplied as YAML, and any field can be
overridden with ``INFRA_DEPLOY_*`` environment variables (nested fields use
``__``, e.g. ``INFRA_DEPLOY_SERVER__HOST``).
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from infra_deploy.enums import TransportType
from infra_deploy.exceptions import ConfigurationError


class ServerConfig(BaseModel):
    """Catalog compilation server."""

    host: str = Field(default="puppet", description="Hostname of the compile server")
    port: int = Field(default=8140, ge=1, le=65535, description="Server port")
    scheme: Literal["http", "https"] = Field(default="https", description="URL scheme")
    timeout: float = Field(default=30.0, gt=0, description="HTTP timeout in seconds")
    verify_ssl: bool = Field(default=True, description="Verify the server certificate")
    ca_cert: str | None = Field(default=None, description="CA bundle used to verify the server")
    client_cert: str | None = Field(default=None, description="Client certificate presented to the server")
    client_key: str | None = Field(default=None, description="Private key for the client certificate")

    @property
    def base_url(self) -> str:
        return f"{self.scheme}://{self.host}:{self.port}"


class SchedulerConfig(BaseModel):
    """Run loop behaviour."""

    poll_interval: float = Field(default=5.0, gt=0, description="Seconds between checks for finished nodes")
    enforce_timeout: float | None = Field(default=None, gt=0, description="Per-node enforcement limit in seconds")
    deadline: float | None = Field(default=None, gt=0, description="Whole-run limit in seconds")


class SSHConfig(BaseModel):
    """Direct SSH transport."""

    user: str = Field(default="root", description="Remote user")
    key_path: str | None = Field(default=None, description="Private key passed to ssh -i")
    host_map_path: str | None = Field(default=None, description="YAML mapping of certnames to addresses")
    command: str = Field(default="puppet agent -t", description="Enforcement command run on the node")
    timeout: float | None = Field(default=None, gt=0, description="Seconds before the ssh process is killed")
    success_codes: list[int] = Field(default_factory=lambda: [0], description="Exit codes counted as success")


class MCOConfig(BaseModel):
    """MCollective transport."""

    command: str = Field(default="mco", description="mco executable")
    discovery_timeout: float = Field(default=120.0, gt=0, description="Wait for an in-progress run to finish")
    run_timeout: float = Field(default=600.0, gt=0, description="Wait for the triggered run to finish")
    delay: float = Field(default=5.0, gt=0, description="Seconds between status polls")
    settle_delay: float = Field(default=5.0, ge=0, description="Pause after triggering a run")


class TransportConfig(BaseModel):
    """Which transport to use and how each is configured."""

    type: TransportType = Field(default=TransportType.MCO, description="Enforcement transport")
    ssh: SSHConfig = Field(default_factory=SSHConfig)
    mco: MCOConfig = Field(default_factory=MCOConfig)


class DeploySettings(BaseSettings):
    """Main infra-deploy settings."""

    model_config = SettingsConfigDict(
        env_prefix="INFRA_DEPLOY_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    environment: str = Field(default="production", description="Environment to deploy")
    server: ServerConfig = Field(default_factory=ServerConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    transport: TransportConfig = Field(default_factory=TransportConfig)

    @classmethod
    def from_yaml(cls, config_path: str) -> DeploySettings:
        """Load settings from a YAML file with environment variable interpolation.

        Supports ``${VAR_NAME}`` and ``${VAR_NAME:-default}``.

        Raises:
            ConfigurationError: If the file is missing, unreadable or invalid.
        """
        config_file = Path(config_path)
        if not config_file.exists():
            raise ConfigurationError(f"Configuration file not found: {config_path}")

        try:
            yaml_content = config_file.read_text()
        except OSError as e:
            raise ConfigurationError(f"Cannot read configuration file: {config_path}") from e

        try:
            yaml_content = cls._interpolate_env_vars(yaml_content)
        except ValueError as e:
            raise ConfigurationError(f"Invalid environment variable reference in config: {e}") from e

        try:
            config_dict = yaml.safe_load(yaml_content)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML syntax in {config_path}: {e}") from e

        if config_dict is None:
            config_dict = {}
        if not isinstance(config_dict, dict):
            raise ConfigurationError("Configuration must be a YAML object, not a list or scalar")

        try:
            return cls(**config_dict)
        except Exception as e:
            raise ConfigurationError(f"Failed to validate configuration: {e}") from e

    @staticmethod
    def _interpolate_env_vars(content: str) -> str:
        """Replace ``${VAR}`` placeholders, leaving YAML comment lines untouched.

        Raises:
            ValueError: If a variable without a default is not set.
        """
        pattern = re.compile(r"\$\{([A-Z_][A-Z0-9_]*)(?::-([^}]*))?\}")

        def replace_var(match: re.Match[str]) -> str:
            var_name = match.group(1)
            default_value = match.group(2)
            value = os.getenv(var_name)

            if value is not None:
                return value
            if default_value is not None:
                return default_value
            raise ValueError(f"Environment variable {var_name} is not set")

        def process_line(line: str) -> str:
            if line.lstrip().startswith("#"):
                return line
            return pattern.sub(replace_var, line)

        return "\n".join(process_line(line) for line in content.split("\n"))


def load_host_map(path: str | Path) -> dict[str, str]:
    """Load a certname to connect-address mapping from YAML.

    Raises:
        ConfigurationError: If the file is missing or not a flat mapping.
    """
    map_file = Path(path).expanduser()
    if not map_file.exists():
        raise ConfigurationError(f"Hostname mapping file not found: {path}")

    try:
        data = yaml.safe_load(map_file.read_text())
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Cannot read hostname mapping {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Hostname mapping {path} must be a YAML object")

    return {str(certname): str(address) for certname, address in data.items()}
