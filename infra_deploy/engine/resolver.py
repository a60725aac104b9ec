"""
Dependency resolution over node relations.

The resolver holds, for every node that has not started yet, the multiset of
resource tags it is still waiting on. Completed producers clear tags through
:meth:`DependencyResolver.satisfy`; a node with nothing left to wait on is
ready to be promoted.

Tag matching is presence-based, not count-based: one occurrence of a
produced tag clears every occurrence of that tag on every waiting node. Two
consumers of ``Sql[prod]`` are both unblocked by a single producer, and a node
consuming ``Sql[prod]`` twice needs it produced only once. Deployment plans
depend on this behaviour, so it must not be turned into exact multiset
subtraction.
"""

from collections.abc import Iterable, Mapping

from infra_deploy.models.catalog import NodeRelation, ResourceTag


class DependencyResolver:
    """Track outstanding requirements for nodes that have not been promoted.

    Example:
        >>> resolver = DependencyResolver({
        ...     "db": NodeRelation(produces=["sql"]),
        ...     "web": NodeRelation(consumes=["sql"]),
        ... })
        >>> resolver.ready_nodes()
        ['db']
        >>> relation = resolver.promote("db")
        >>> resolver.satisfy(relation.produces)
        ['web']
        >>> resolver.ready_nodes()
        ['web']
    """

    def __init__(self, relations: Mapping[str, NodeRelation]) -> None:
        # Private copies; the caller's relations are never mutated.
        self._pending: dict[str, NodeRelation] = {node: relation.copy() for node, relation in relations.items()}

    def ready_nodes(self) -> list[str]:
        """Pending nodes with nothing left to consume, in lexicographic order."""
        return sorted(node for node, relation in self._pending.items() if not relation.consumes)

    def pending_nodes(self) -> list[str]:
        """Nodes still waiting on at least one tag, in lexicographic order."""
        return sorted(node for node, relation in self._pending.items() if relation.consumes)

    def has_pending(self) -> bool:
        return bool(self._pending)

    def is_pending(self, node: str) -> bool:
        return node in self._pending

    def outstanding(self, node: str) -> list[ResourceTag]:
        """Tags a pending node is still waiting on."""
        return list(self._pending[node].consumes)

    def promote(self, node: str) -> NodeRelation | None:
        """Take a node out of the pending table.

        Returns:
            The node's relation, or None when the node was already promoted.
        """
        return self._pending.pop(node, None)

    def satisfy(self, produced: Iterable[ResourceTag]) -> list[str]:
        """Clear produced tags from every pending node.

        Args:
            produced: Tags produced by a completed node. Quantities are
                ignored; any presence clears all matching occurrences.

        Returns:
            Nodes whose requirements shrank, in lexicographic order.
        """
        available = set(produced)
        if not available:
            return []

        changed = []
        for node, relation in self._pending.items():
            remaining = [tag for tag in relation.consumes if tag not in available]
            if len(remaining) != len(relation.consumes):
                relation.consumes = remaining
                changed.append(node)
        return sorted(changed)

    def drain(self) -> dict[str, NodeRelation]:
        """Remove and return every node still pending."""
        pending, self._pending = self._pending, {}
        return pending
