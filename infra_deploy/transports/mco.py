"""
MCollective transport using the ``puppet`` RPC agent.

Each enforcement goes through these steps:

    1. Wait for any Puppet run already in progress on the node to finish
       (bounded by ``discovery_timeout``).
    2. Trigger a single run with ``runonce`` and remember when.
    3. Wait for that run to finish (bounded by ``run_timeout``).
    4. Read ``last_run_summary``: the node succeeded if no resources failed
       and the last run is not older than the trigger. An older run means
       ours died without writing a report.

Agents are driven through ``mco rpc puppet <action> -I <node> -j``, which
prints one JSON object per responding node.
"""

import asyncio
import json
import time
from typing import Any

import structlog

from infra_deploy.exceptions import TransportError, TransportTimeoutError
from infra_deploy.models.catalog import NodeRelation
from infra_deploy.transports.base import Transport
from infra_deploy.utils.async_subprocess import run_command

log = structlog.get_logger(__name__)


class MCollectiveTransport(Transport):
    """Enforce nodes through the MCollective ``puppet`` agent."""

    name = "mco"

    def __init__(
        self,
        discovery_timeout: float = 120.0,
        run_timeout: float = 600.0,
        delay: float = 5.0,
        settle_delay: float = 5.0,
        mco_command: str = "mco",
    ) -> None:
        self.discovery_timeout = discovery_timeout
        self.run_timeout = run_timeout
        self.delay = delay
        self.settle_delay = settle_delay
        self.mco_command = mco_command

    async def rpc(self, node: str, action: str) -> list[dict[str, Any]]:
        """Call a puppet agent action on one node.

        Returns:
            One response per replying node, each with a ``data`` mapping.

        Raises:
            TransportError: If mco fails, prints invalid JSON or gets no reply.
        """
        args = [self.mco_command, "rpc", "puppet", action, "-I", node, "-j"]
        try:
            stdout, stderr, returncode = await run_command(*args, check=False)
        except OSError as e:
            raise TransportError(f"Cannot run {self.mco_command}: {e}", node=node) from e

        if returncode != 0:
            raise TransportError(f"mco {action} failed with exit code {returncode}: {stderr.strip()}", node=node)

        try:
            responses = json.loads(stdout or "[]")
        except json.JSONDecodeError as e:
            raise TransportError(f"mco {action} returned invalid JSON", node=node) from e

        if isinstance(responses, dict):
            responses = [responses]
        if not responses:
            raise TransportError(f"No response from node for {action}", node=node)

        return [{**response, "data": response.get("data") or {}} for response in responses]

    async def wait_until_idle(self, node: str, timeout: float) -> None:
        """Poll ``status`` until the node is no longer applying a catalog.

        Raises:
            TransportTimeoutError: If the node is still applying after timeout.
        """
        waited = 0.0
        while True:
            responses = await self.rpc(node, "status")
            if not any(response["data"].get("applying") for response in responses):
                return

            waited += self.delay
            if waited > timeout:
                raise TransportTimeoutError(
                    "Timed out waiting for Puppet run to finish", node=node, timeout_seconds=timeout
                )

            log.debug("mco_waiting", node=node, waited=waited, timeout=timeout)
            await asyncio.sleep(self.delay)

    async def enforce(self, node: str, relation: NodeRelation) -> bool:
        log.info("mco_enforce_started", node=node)

        await self.wait_until_idle(node, self.discovery_timeout)
        await self.rpc(node, "runonce")
        # Timestamps are assumed to be within a few seconds across the fleet.
        started = int(time.time())
        await asyncio.sleep(self.settle_delay)
        await self.wait_until_idle(node, self.run_timeout)

        failures = 0
        for response in await self.rpc(node, "last_run_summary"):
            data = response["data"]
            failures += int(data.get("failed_resources") or 0)
            if int(data.get("lastrun") or 0) < started:
                failures += 1

        if failures:
            log.error("mco_enforce_failed", node=node, failures=failures)
            return False

        log.info("mco_enforce_finished", node=node)
        return True
