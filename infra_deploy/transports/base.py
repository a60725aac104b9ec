"""
Abstract base class for enforcement transports.

A transport brings one node's configuration into compliance and reports
success as a boolean. Instances are awaitable callables, so they can be
passed directly as the scheduler's enforcement callback::

    report = await Scheduler().run(relations, Execute(SSHTransport(user="root")))

Transports may raise TransportError (or TransportTimeoutError) when the
remote side cannot be driven; the scheduler records that as a failure of the
node.
"""

from abc import ABC, abstractmethod

from infra_deploy.models.catalog import NodeRelation


class Transport(ABC):
    """Enforce Puppet configuration on a single node."""

    name: str = "transport"

    @abstractmethod
    async def enforce(self, node: str, relation: NodeRelation) -> bool:
        """Run Puppet on a node and wait for the result.

        Args:
            node: Certname of the node.
            relation: What the node produces and consumes, for transports
                that want to log or pass it on.

        Returns:
            True if the run applied cleanly.

        Raises:
            TransportError: If the node could not be reached or driven.
            TransportTimeoutError: If the run did not settle in time.
        """
        pass

    async def __call__(self, node: str, relation: NodeRelation) -> bool:
        return await self.enforce(node, relation)
