"""Enumerations for node run states and transport types."""

from enum import Enum


class NodeState(str, Enum):
    """Lifecycle of a node within one scheduling run.

    The happy path is PENDING -> READY -> RUNNING -> COMPLETED. A node with
    nothing to consume starts at READY.
    """

    PENDING = "pending"
    READY = "ready"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    STARVED = "starved"
    CANCELLED = "cancelled"

    def __str__(self) -> str:
        return self.value

    @property
    def is_terminal(self) -> bool:
        """Check if the node can no longer change state in this run."""
        return self in (
            NodeState.COMPLETED,
            NodeState.FAILED,
            NodeState.STARVED,
            NodeState.CANCELLED,
        )


class TransportType(str, Enum):
    """Enforcement transports supported by infra-deploy.

    - mco: MCollective ``puppet`` RPC agent (default)
    - ssh: direct ``puppet agent -t`` over SSH
    """

    MCO = "mco"
    SSH = "ssh"

    def __str__(self) -> str:
        return self.value
