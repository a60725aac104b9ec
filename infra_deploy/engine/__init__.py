"""Deployment scheduling engine.

Key Components:
    - DependencyResolver: outstanding requirements per waiting node
    - Scheduler: mark-and-sweep concurrent run loop
    - DryRun / Execute: explicit run modes
    - RunReport: final node states with diagnostics

Example:
    >>> from infra_deploy.engine import Execute, Scheduler
    >>> report = await Scheduler().run(catalog.node_relations(), Execute(transport))
    >>> report.succeeded
    True
"""

from infra_deploy.engine.report import NodeOutcome, RunReport, build_report
from infra_deploy.engine.resolver import DependencyResolver
from infra_deploy.engine.scheduler import DryRun, Enforcer, Execute, RunMode, Scheduler, mode_for

__all__ = [
    "DependencyResolver",
    "DryRun",
    "Enforcer",
    "Execute",
    "NodeOutcome",
    "RunMode",
    "RunReport",
    "Scheduler",
    "build_report",
    "mode_for",
]
