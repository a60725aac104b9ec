"""Configuration for infra-deploy.

Key Components:
    - DeploySettings: main settings container with YAML loading support
    - ServerConfig: catalog compile server
    - SchedulerConfig: run loop timing
    - TransportConfig: transport selection with SSH and MCollective sections

Example:
    >>> from infra_deploy.config import DeploySettings
    >>> settings = DeploySettings.from_yaml("infra-deploy.yaml")
    >>> settings.server.base_url
    'https://puppet:8140'
"""

from infra_deploy.config.settings import (
    DeploySettings,
    MCOConfig,
    SchedulerConfig,
    ServerConfig,
    SSHConfig,
    TransportConfig,
    load_host_map,
)

__all__ = [
    "DeploySettings",
    "MCOConfig",
    "SSHConfig",
    "SchedulerConfig",
    "ServerConfig",
    "TransportConfig",
    "load_host_map",
]
