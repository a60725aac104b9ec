"""Enforcement transports.

Key Components:
    - Transport: abstract base, usable as the scheduler's callback
    - SSHTransport: run the agent over ssh
    - MCollectiveTransport: trigger and poll runs through the mco puppet agent
    - create_transport: build the transport selected by settings or CLI
"""

from infra_deploy.transports.base import Transport
from infra_deploy.transports.factory import create_transport
from infra_deploy.transports.mco import MCollectiveTransport
from infra_deploy.transports.ssh import SSHTransport

__all__ = [
    "MCollectiveTransport",
    "SSHTransport",
    "Transport",
    "create_transport",
]
