"""
Run reports for deployment walks.

The scheduler hands its final state table to :func:`build_report`, which
takes a snapshot that no longer shares anything with the scheduler. The
render helpers turn a report into the text printed by the CLI.
"""

import json
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from infra_deploy.enums import NodeState
from infra_deploy.models.catalog import Catalog, NodeRelation, ResourceTag


@dataclass(frozen=True)
class NodeOutcome:
    """Final state of one node.

    Attributes:
        node: Node certname.
        state: Terminal state reached in the run.
        produces: For failed nodes, the production that never reached
            waiting nodes. Empty otherwise.
        consumes: For starved or cancelled nodes, the requirements that were
            still outstanding. Empty otherwise.
        error: Error text when the enforcement raised.
    """

    node: str
    state: NodeState
    produces: tuple[ResourceTag, ...] = ()
    consumes: tuple[ResourceTag, ...] = ()
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "node": self.node,
            "state": self.state.value,
            "produces": list(self.produces),
            "consumes": list(self.consumes),
            "error": self.error,
        }


@dataclass(frozen=True)
class RunReport:
    """Summary of a scheduling run.

    Attributes:
        outcomes: Node name to outcome, in node table order.
        rounds: Nodes dispatched in each loop iteration, in dispatch order.
        dry_run: True when no enforcement was performed.
        elapsed: Wall-clock duration of the run in seconds.
    """

    outcomes: dict[str, NodeOutcome] = field(default_factory=dict)
    rounds: tuple[tuple[str, ...], ...] = ()
    dry_run: bool = False
    elapsed: float = 0.0

    def _with_state(self, state: NodeState) -> list[NodeOutcome]:
        return [outcome for outcome in self.outcomes.values() if outcome.state == state]

    @property
    def completed(self) -> list[NodeOutcome]:
        return self._with_state(NodeState.COMPLETED)

    @property
    def failed(self) -> list[NodeOutcome]:
        return self._with_state(NodeState.FAILED)

    @property
    def starved(self) -> list[NodeOutcome]:
        return self._with_state(NodeState.STARVED)

    @property
    def cancelled(self) -> list[NodeOutcome]:
        return self._with_state(NodeState.CANCELLED)

    @property
    def is_empty(self) -> bool:
        """True when the catalog had nothing to deploy."""
        return not self.outcomes

    @property
    def succeeded(self) -> bool:
        """True when every node completed."""
        return all(outcome.state == NodeState.COMPLETED for outcome in self.outcomes.values())

    def state_of(self, node: str) -> NodeState:
        return self.outcomes[node].state

    def to_dict(self) -> dict[str, Any]:
        return {
            "dry_run": self.dry_run,
            "elapsed": self.elapsed,
            "rounds": [list(round_) for round_ in self.rounds],
            "nodes": [outcome.to_dict() for outcome in self.outcomes.values()],
        }


def build_report(
    states: Mapping[str, NodeState],
    relations: Mapping[str, NodeRelation],
    residual_consumes: Mapping[str, Sequence[ResourceTag]] | None = None,
    errors: Mapping[str, str] | None = None,
    rounds: Sequence[Sequence[str]] = (),
    dry_run: bool = False,
    elapsed: float = 0.0,
) -> RunReport:
    """Snapshot the scheduler's final tables into a RunReport.

    Args:
        states: Final state per node.
        relations: Relations as aggregated from the catalog.
        residual_consumes: Outstanding requirements of nodes that never
            started.
        errors: Error text per node whose enforcement raised.
        rounds: Nodes dispatched in each loop iteration.
        dry_run: Whether the run was a dry walk.
        elapsed: Run duration in seconds.

    Raises:
        ValueError: If a node is left in a non-terminal state.
    """
    unsettled = sorted(node for node, state in states.items() if not state.is_terminal)
    if unsettled:
        raise ValueError(f"Nodes still in progress: {', '.join(unsettled)}")

    residual_consumes = residual_consumes or {}
    errors = errors or {}

    outcomes = {}
    for node, state in states.items():
        produces: tuple[ResourceTag, ...] = ()
        consumes: tuple[ResourceTag, ...] = ()
        if state == NodeState.FAILED:
            produces = tuple(relations[node].produces)
        elif state in (NodeState.STARVED, NodeState.CANCELLED):
            consumes = tuple(residual_consumes.get(node, ()))

        outcomes[node] = NodeOutcome(
            node=node,
            state=state,
            produces=produces,
            consumes=consumes,
            error=errors.get(node),
        )

    return RunReport(
        outcomes=outcomes,
        rounds=tuple(tuple(round_) for round_ in rounds),
        dry_run=dry_run,
        elapsed=elapsed,
    )


def _tags(tags: Sequence[ResourceTag]) -> str:
    return json.dumps(list(tags))


def render_applications(catalog: Catalog) -> str:
    """Render the component to node table for every application."""
    lines = ["", "Applications:"]
    for app in catalog.applications.values():
        lines.append(f"  {app.name}:")
        lines.append(f"    {'Component':>20} {'Node':>30}")
        lines.append("-" * 55)
        for component in app.components.values():
            lines.append(f"    {component.name:>20} {component.node:>30}")
    lines.append("")
    return "\n".join(lines)


def render_plan(report: RunReport, relations: Mapping[str, NodeRelation]) -> str:
    """Render the runlist computed by a dry walk."""
    lines = ["Runlist: "]
    for round_ in report.rounds:
        for node in round_:
            lines.append(f" * {node} producing {_tags(relations[node].produces)}")
    lines.append(render_report(report))
    return "\n".join(lines)


def render_report(report: RunReport) -> str:
    """Render succeeded, failed and starved buckets."""
    lines = []

    if report.completed and not report.dry_run:
        lines.append("")
        lines.append("Completed nodes:")
        lines.extend(f" * {outcome.node}" for outcome in report.completed)

    if report.failed:
        lines.append("")
        lines.append("Node failures:")
        for outcome in report.failed:
            lines.append(f" * {outcome.node}: ")
            lines.append(f"    produces: {_tags(outcome.produces)}")
            if outcome.error:
                lines.append(f"    error: {outcome.error}")

    if report.starved:
        lines.append("")
        lines.append("Skipped due to failed requirements:")
        for outcome in report.starved:
            lines.append(f" * {outcome.node}: ")
            lines.append(f"    consumes: {_tags(outcome.consumes)}")

    if report.cancelled:
        lines.append("")
        lines.append("Cancelled before completion:")
        for outcome in report.cancelled:
            lines.append(f" * {outcome.node}")

    lines.append("")
    return "\n".join(lines)
