"""Direct SSH transport: run ``puppet agent -t`` on the node over ssh."""

import shlex
from collections.abc import Iterable, Mapping

import structlog

from infra_deploy.exceptions import TransportError, TransportTimeoutError
from infra_deploy.models.catalog import NodeRelation
from infra_deploy.transports.base import Transport
from infra_deploy.utils.async_subprocess import run_command

log = structlog.get_logger(__name__)


class SSHTransport(Transport):
    """Enforce nodes by running the agent through the system ``ssh`` client.

    Example:
        >>> transport = SSHTransport(key="~/.ssh/deploy.pem", host_map={"db01.prod": "10.0.0.5"})
        >>> await transport.enforce("db01.prod", relation)
        True
    """

    name = "ssh"

    def __init__(
        self,
        user: str = "root",
        key: str | None = None,
        host_map: Mapping[str, str] | None = None,
        command: str = "puppet agent -t",
        timeout: float | None = None,
        success_codes: Iterable[int] = (0,),
        ssh_command: str = "ssh",
    ) -> None:
        """Initialize the SSH transport.

        Args:
            user: Remote user to log in as.
            key: Private key file passed with -i.
            host_map: Certname to connect-address mapping. Nodes not listed
                are connected to by certname.
            command: Command run on the node.
            timeout: Seconds before the ssh process is killed.
            success_codes: Exit codes counted as a successful run.
            ssh_command: ssh executable.
        """
        self.user = user
        self.key = key
        self.host_map = dict(host_map or {})
        self.command = command
        self.timeout = timeout
        self.success_codes = frozenset(success_codes)
        self.ssh_command = ssh_command

    def address_for(self, node: str) -> str:
        return self.host_map.get(node, node)

    def build_command(self, node: str) -> list[str]:
        args = [self.ssh_command, "-o", "BatchMode=yes"]
        if self.key:
            args.extend(["-i", self.key])
        args.append(f"{self.user}@{self.address_for(node)}")
        args.extend(shlex.split(self.command))
        return args

    async def enforce(self, node: str, relation: NodeRelation) -> bool:
        args = self.build_command(node)
        log.info("ssh_enforce_started", node=node, address=self.address_for(node))

        try:
            _, stderr, returncode = await run_command(*args, check=False, timeout=self.timeout)
        except TimeoutError as e:
            raise TransportTimeoutError("Timed out waiting for Puppet run", node=node, timeout_seconds=self.timeout) from e
        except OSError as e:
            raise TransportError(f"Cannot run {self.ssh_command}: {e}", node=node) from e

        success = returncode in self.success_codes
        if success:
            log.info("ssh_enforce_finished", node=node, returncode=returncode)
        else:
            log.error("ssh_enforce_failed", node=node, returncode=returncode, stderr=stderr.strip()[-2000:])
        return success
