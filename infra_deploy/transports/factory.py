"""Factory for enforcement transports."""

from pathlib import Path

import structlog

from infra_deploy.config.settings import DeploySettings, load_host_map
from infra_deploy.enums import TransportType
from infra_deploy.exceptions import ConfigurationError
from infra_deploy.transports.base import Transport
from infra_deploy.transports.mco import MCollectiveTransport
from infra_deploy.transports.ssh import SSHTransport

log = structlog.get_logger(__name__)


def create_transport(
    settings: DeploySettings,
    transport_type: TransportType | str | None = None,
    host_map_path: str | None = None,
    key_path: str | None = None,
) -> Transport:
    """Create the configured transport.

    Command-line values override the settings file.

    Args:
        settings: Loaded settings.
        transport_type: Transport to use instead of ``settings.transport.type``.
        host_map_path: Certname mapping file for the SSH transport.
        key_path: SSH private key.

    Raises:
        ConfigurationError: If the transport is unknown or its mapping file
            cannot be read.
    """
    try:
        selected = TransportType(transport_type or settings.transport.type)
    except ValueError as e:
        raise ConfigurationError(f"Unknown transport: {transport_type}") from e

    if selected == TransportType.SSH:
        ssh = settings.transport.ssh
        map_path = host_map_path or ssh.host_map_path
        key = key_path or ssh.key_path
        host_map = load_host_map(map_path) if map_path else {}
        log.info("transport_created", transport="ssh", mapped_hosts=len(host_map), key=bool(key))
        return SSHTransport(
            user=ssh.user,
            key=str(Path(key).expanduser()) if key else None,
            host_map=host_map,
            command=ssh.command,
            timeout=ssh.timeout,
            success_codes=ssh.success_codes,
        )

    mco = settings.transport.mco
    log.info("transport_created", transport="mco")
    return MCollectiveTransport(
        discovery_timeout=mco.discovery_timeout,
        run_timeout=mco.run_timeout,
        delay=mco.delay,
        settle_delay=mco.settle_delay,
        mco_command=mco.command,
    )
