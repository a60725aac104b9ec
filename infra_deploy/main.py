"""CLI entry point for infra-deploy."""

import asyncio
import sys

import click
import structlog

from infra_deploy.catalog.client import CatalogClient, load_catalog_file
from infra_deploy.config.settings import DeploySettings
from infra_deploy.engine.report import RunReport, render_applications, render_plan, render_report
from infra_deploy.engine.scheduler import DryRun, Execute, Scheduler
from infra_deploy.enums import TransportType
from infra_deploy.exceptions import ConfigurationError, InfraDeployError
from infra_deploy.models.catalog import Catalog
from infra_deploy.transports.factory import create_transport
from infra_deploy.utils.logging_config import configure_logging

log = structlog.get_logger(__name__)

EXIT_INCOMPLETE = 2


@click.group()
@click.option("--config", default=None, help="Path to configuration file")
@click.option("--log-level", default="WARNING", help="Logging level")
@click.option("--json-logs/--console-logs", default=True, help="Log format written to stderr")
@click.pass_context
def cli(ctx: click.Context, config: str | None, log_level: str, json_logs: bool) -> None:
    """infra-deploy: display or deploy an application infrastructure.

    Determines dependencies and a run order from the environment catalog,
    then runs nodes concurrently as their requirements are met, skipping any
    node whose dependencies failed.
    """
    configure_logging(log_level, json_output=json_logs)

    try:
        settings = DeploySettings.from_yaml(config) if config else DeploySettings()
    except ConfigurationError as e:
        click.echo(f"Error: {e.message}", err=True)
        log.debug("config_error", exc_info=True)
        sys.exit(1)
    except Exception as e:
        click.echo(f"Unexpected error loading configuration: {e}", err=True)
        log.error("config_error_unexpected", exc_info=True)
        sys.exit(1)

    ctx.obj = {"settings": settings}


@cli.command()
@click.option("--environment", "-e", default=None, help="Environment to describe")
@click.option("--catalog-file", type=click.Path(dir_okay=False), help="Read the catalog from a JSON file")
@click.pass_context
def describe(ctx: click.Context, environment: str | None, catalog_file: str | None) -> None:
    """Describe the infrastructure and deployment plan."""
    settings = ctx.obj["settings"]
    try:
        asyncio.run(_describe(settings, environment or settings.environment, catalog_file))
    except InfraDeployError as e:
        click.echo(f"Error: {e}", err=True)
        log.debug("describe_error", exc_info=True)
        sys.exit(1)
    except KeyboardInterrupt:
        click.echo("\nInterrupted by user", err=True)
        sys.exit(130)


@cli.command()
@click.option("--environment", "-e", default=None, help="Environment to deploy")
@click.option("--catalog-file", type=click.Path(dir_okay=False), help="Read the catalog from a JSON file")
@click.option(
    "--transport",
    "-t",
    type=click.Choice([t.value for t in TransportType]),
    default=None,
    help="Which transport backend (ssh/mco) to use. Defaults to 'mco'.",
)
@click.option(
    "--map",
    "-m",
    "host_map",
    type=click.Path(dir_okay=False),
    help="YAML mapping from certnames to hostnames. Only used for the SSH transport.",
)
@click.option("--key", "-k", type=click.Path(dir_okay=False), help="Which key to use for the SSH transport.")
@click.option(
    "--deadline",
    type=click.FloatRange(min=0),
    default=None,
    help="Cancel nodes still unfinished after this many seconds",
)
@click.pass_context
def deploy(
    ctx: click.Context,
    environment: str | None,
    catalog_file: str | None,
    transport: str | None,
    host_map: str | None,
    key: str | None,
    deadline: float | None,
) -> None:
    """Deploy an infrastructure.

    Exits 0 when every node completed, and 2 when any node failed, was
    skipped for failed requirements, or was cancelled.
    """
    settings = ctx.obj["settings"]
    try:
        report = asyncio.run(
            _deploy(
                settings,
                environment or settings.environment,
                catalog_file,
                transport,
                host_map,
                key,
                deadline,
            )
        )
    except InfraDeployError as e:
        click.echo(f"Error: {e}", err=True)
        log.debug("deploy_error", exc_info=True)
        sys.exit(1)
    except KeyboardInterrupt:
        click.echo("\nInterrupted by user", err=True)
        sys.exit(130)

    if report is not None and not report.succeeded:
        sys.exit(EXIT_INCOMPLETE)


async def _load_catalog(settings: DeploySettings, environment: str, catalog_file: str | None) -> Catalog:
    if catalog_file:
        return load_catalog_file(catalog_file, environment=environment)

    async with CatalogClient.from_config(settings.server) as client:
        return await client.fetch(environment)


async def _describe(settings: DeploySettings, environment: str, catalog_file: str | None) -> None:
    catalog = await _load_catalog(settings, environment, catalog_file)
    if catalog.is_empty:
        click.echo("Warning: Empty environment catalog", err=True)
        return

    click.echo(render_applications(catalog))

    relations = catalog.node_relations()
    report = await Scheduler().run(relations, DryRun())
    click.echo(render_plan(report, relations))


async def _deploy(
    settings: DeploySettings,
    environment: str,
    catalog_file: str | None,
    transport_type: str | None,
    host_map: str | None,
    key: str | None,
    deadline: float | None,
) -> RunReport | None:
    catalog = await _load_catalog(settings, environment, catalog_file)
    if catalog.is_empty:
        click.echo("Warning: Empty environment catalog", err=True)
        return None

    transport = create_transport(settings, transport_type, host_map_path=host_map, key_path=key)
    scheduler = Scheduler(
        poll_interval=settings.scheduler.poll_interval,
        enforce_timeout=settings.scheduler.enforce_timeout,
    )

    click.echo(f"Deploying {len(catalog.node_relations())} nodes in {environment} via {transport.name}...")
    report = await scheduler.run(
        catalog.node_relations(),
        Execute(transport, on_dispatch=_announce_dispatch),
        deadline=deadline if deadline is not None else settings.scheduler.deadline,
    )
    click.echo(render_report(report))
    return report


def _announce_dispatch(node: str) -> None:
    click.echo(f"Enforcing configuration on {node}...")


if __name__ == "__main__":
    cli()
