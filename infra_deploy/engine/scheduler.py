"""
Dependency-driven concurrent enforcement of infrastructure nodes.

This module walks a node table using a mark-and-sweep loop:

    1. Promote every node that is no longer waiting on any resource tag.
    2. Stop when nothing is active; nodes still waiting are starved.
    3. Dispatch each newly active node to its own asyncio task.
    4. Reap finished tasks. Successful nodes clear the tags they produce
       from waiting nodes; failed nodes do not, which starves everything
       downstream of them.
    5. Wait (at most ``poll_interval`` seconds) for further completions.

Architecture:
    The coordinator coroutine in :meth:`Scheduler.run` is the only writer of
    the state table and the resolver. Units of work only return an
    ``(ok, failure)`` tuple through their task result, so no locking is
    needed. Any exception raised by an enforcement callback (including
    transport timeouts) is converted into a failure of that node; it never
    aborts the run.

Modes:
    - DryRun: every node succeeds immediately without side effects. Used to
      compute and print the deployment plan.
    - Execute: every node is enforced exactly once through the callback.

Ordering:
    Nodes that become ready in the same iteration are dispatched in
    lexicographic order. There is no cap on concurrent nodes; fan-out is
    bounded by the size of one environment.

Example:
    >>> scheduler = Scheduler(poll_interval=5.0)
    >>> report = await scheduler.run(catalog.node_relations(), Execute(transport))
    >>> [outcome.node for outcome in report.starved]
    ['web01.example.com']
"""

import asyncio
import inspect
import time
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import Any, Union

import structlog

from infra_deploy.engine.report import RunReport, build_report
from infra_deploy.engine.resolver import DependencyResolver
from infra_deploy.enums import NodeState
from infra_deploy.exceptions import NodeEnforcementFailure
from infra_deploy.models.catalog import NodeRelation

log = structlog.get_logger(__name__)

Enforcer = Callable[[str, NodeRelation], Union[Awaitable[bool], bool]]
"""Enforce one node and report success.

Coroutine functions (and objects with an async ``__call__``) are awaited on
the event loop. Plain blocking callables are run in a worker thread.

A worker thread cannot be interrupted: when the run is cancelled or an
``enforce_timeout`` expires, the node is reported as cancelled or failed but
the blocking call keeps going until it returns, and ``asyncio.run`` waits for
it on shutdown. Use a coroutine when enforcement must stop on cancellation.
"""


@dataclass(frozen=True)
class DryRun:
    """Walk the plan without enforcing anything."""


@dataclass(frozen=True)
class Execute:
    """Enforce each node through ``enforce``.

    ``on_dispatch`` is called with the node name, on the coordinator, just
    before its enforcement starts.
    """

    enforce: Enforcer
    on_dispatch: Callable[[str], None] | None = None


RunMode = Union[DryRun, Execute]
_Result = tuple[bool, NodeEnforcementFailure | None]


def mode_for(enforce: Enforcer | None) -> RunMode:
    """Pick the run mode for an optional enforcement callback."""
    return DryRun() if enforce is None else Execute(enforce)


def _is_async(enforce: Enforcer) -> bool:
    return inspect.iscoroutinefunction(enforce) or inspect.iscoroutinefunction(getattr(enforce, "__call__", None))


def _failure(node: str, message: str, cause: BaseException) -> NodeEnforcementFailure:
    failure = NodeEnforcementFailure(message, node=node)
    failure.__cause__ = cause
    return failure


class Scheduler:
    """Run nodes concurrently as their dependencies become satisfied.

    Attributes:
        poll_interval: Longest time in seconds the coordinator waits for a
            completion before re-checking cancellation.
        enforce_timeout: Optional per-node limit in seconds. A node whose
            enforcement exceeds it is failed.
    """

    def __init__(self, poll_interval: float = 5.0, enforce_timeout: float | None = None) -> None:
        self.poll_interval = poll_interval
        self.enforce_timeout = enforce_timeout

    async def run(
        self,
        relations: Mapping[str, NodeRelation],
        mode: RunMode | None = None,
        *,
        deadline: float | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> RunReport:
        """Walk the node table until no further progress is possible.

        Args:
            relations: Node name to aggregated relation. Not mutated.
            mode: DryRun (default) or Execute.
            deadline: Seconds from the start of the run after which
                dispatching stops and unfinished nodes are cancelled.
            cancel_event: Setting this event cancels the run the same way.

        Returns:
            RunReport with a terminal state for every node.
        """
        mode = mode or DryRun()
        dry_run = isinstance(mode, DryRun)
        started = time.monotonic()

        resolver = DependencyResolver(relations)
        states = {
            node: NodeState.PENDING if relation.consumes else NodeState.READY for node, relation in relations.items()
        }
        active: dict[str, NodeRelation] = {}
        in_flight: dict[str, asyncio.Task[_Result]] = {}
        errors: dict[str, str] = {}
        residual: dict[str, list[str]] = {}
        rounds: list[list[str]] = []

        log.info("run_started", nodes=len(relations), dry_run=dry_run, deadline=deadline)

        while True:
            for node in resolver.ready_nodes():
                relation = resolver.promote(node)
                if relation is None:
                    continue
                active[node] = relation
                states[node] = NodeState.READY

            if not active:
                starved = resolver.drain()
                for node, relation in starved.items():
                    states[node] = NodeState.STARVED
                    residual[node] = list(relation.consumes)
                if starved:
                    log.warning("nodes_starved", nodes=sorted(starved))
                break

            if self._should_cancel(started, deadline, cancel_event):
                await self._cancel(in_flight)
                for node in active:
                    states[node] = NodeState.CANCELLED
                for node, relation in resolver.drain().items():
                    states[node] = NodeState.CANCELLED
                    residual[node] = list(relation.consumes)
                cancelled = sorted(n for n, s in states.items() if s == NodeState.CANCELLED)
                log.warning("run_cancelled", cancelled=cancelled)
                break

            dispatch = [node for node in active if node not in in_flight]

            if isinstance(mode, DryRun):
                for node in dispatch:
                    log.debug("node_planned", node=node, produces=active[node].produces)
                    states[node] = NodeState.COMPLETED
                    resolver.satisfy(active.pop(node).produces)
                rounds.append(dispatch)
                continue

            for node in dispatch:
                states[node] = NodeState.RUNNING
                if mode.on_dispatch is not None:
                    mode.on_dispatch(node)
                in_flight[node] = asyncio.create_task(
                    self._enforce_node(mode.enforce, node, active[node].copy()),
                    name=f"enforce:{node}",
                )
            if dispatch:
                rounds.append(dispatch)

            done, _ = await asyncio.wait(
                in_flight.values(),
                timeout=self._wait_timeout(started, deadline),
                return_when=asyncio.FIRST_COMPLETED,
            )

            for node in sorted(n for n, task in in_flight.items() if task in done):
                ok, error = in_flight.pop(node).result()
                relation = active.pop(node)
                if ok:
                    states[node] = NodeState.COMPLETED
                    unblocked = resolver.satisfy(relation.produces)
                    log.info("node_completed", node=node, produces=relation.produces, unblocked=unblocked)
                else:
                    states[node] = NodeState.FAILED
                    if error:
                        errors[node] = error.message
                    log.error("node_failed", node=node, produces=relation.produces, error=error)

        elapsed = time.monotonic() - started
        report = build_report(
            states,
            relations,
            residual_consumes=residual,
            errors=errors,
            rounds=rounds,
            dry_run=dry_run,
            elapsed=elapsed,
        )

        log.info(
            "run_finished",
            completed=len(report.completed),
            failed=len(report.failed),
            starved=len(report.starved),
            cancelled=len(report.cancelled),
            elapsed=round(elapsed, 3),
        )
        return report

    async def _enforce_node(self, enforce: Enforcer, node: str, relation: NodeRelation) -> _Result:
        """Enforce a single node. Never raises, except on cancellation."""
        log.info("node_dispatched", node=node, consumes=relation.consumes, threaded=not _is_async(enforce))

        try:
            if _is_async(enforce):
                call: Awaitable[Any] = enforce(node, relation)  # type: ignore[assignment]
            else:
                call = asyncio.to_thread(enforce, node, relation)

            if self.enforce_timeout is not None:
                result = await asyncio.wait_for(call, timeout=self.enforce_timeout)
            else:
                result = await call
            if inspect.isawaitable(result):
                result = await result

        except TimeoutError as e:
            log.error("node_timeout", node=node, timeout=self.enforce_timeout)
            if self.enforce_timeout is None:
                return False, _failure(node, str(e) or "Enforcement timed out", e)
            return False, _failure(node, f"Enforcement timed out after {self.enforce_timeout}s", e)

        except Exception as e:
            log.error("node_exception", node=node, error=str(e), exc_info=True)
            return False, _failure(node, str(e) or type(e).__name__, e)

        return bool(result), None

    def _should_cancel(self, started: float, deadline: float | None, cancel_event: asyncio.Event | None) -> bool:
        if cancel_event is not None and cancel_event.is_set():
            return True
        return deadline is not None and time.monotonic() - started >= deadline

    def _wait_timeout(self, started: float, deadline: float | None) -> float:
        if deadline is None:
            return self.poll_interval
        remaining = deadline - (time.monotonic() - started)
        return max(0.0, min(self.poll_interval, remaining))

    async def _cancel(self, in_flight: dict[str, asyncio.Task[_Result]]) -> None:
        # Cancelling a to_thread task only stops the await; the thread itself runs on.
        for task in in_flight.values():
            task.cancel()
        await asyncio.gather(*in_flight.values(), return_exceptions=True)
        in_flight.clear()
