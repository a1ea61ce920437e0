"""
snapmetrics entry point. Each subcommand is one agent plugin and runs a
single collection pass.

Usage:
    snapmetrics ec2-cpucredit                          Discover instance, print values
    snapmetrics ec2-cpucredit --region ap-northeast-1 --instance-id i-0abc
    snapmetrics postgres --host db.internal --username monitor
    snapmetrics postgres --format table                Human-readable snapshot

Set MACKEREL_AGENT_PLUGIN_META=1 to print graph definitions instead.
"""

from __future__ import annotations

import logging
import sys

import click
from sqlalchemy import create_engine

from snapmetrics import __version__
from snapmetrics.collector.base import MetricsCollector
from snapmetrics.collector.cpu_credit import CPU_CREDIT_GRAPHS, CPUCreditCollector
from snapmetrics.collector.instance_metadata import InstanceMetadataClient
from snapmetrics.collector.postgres import POSTGRES_GRAPHS, PostgresCollector
from snapmetrics.config import (
    AwsCredentials,
    PostgresSettings,
    meta_mode_requested,
    resolve_identity,
)
from snapmetrics.dashboard.terminal import print_snapshot
from snapmetrics.errors import NoDataError, SnapshotError
from snapmetrics.graphs import GraphRegistry
from snapmetrics.plugin import PluginHost, output_definitions
from snapmetrics.storage.snapshot_cache import SnapshotCache


log = logging.getLogger("snapmetrics")

EXIT_NO_DATA = 2

_format_option = click.option(
    "--format", "output_format", type=click.Choice(["agent", "table"]), default="agent",
    help="agent (plugin protocol) or table (Rich view of raw values)",
)


@click.group()
@click.version_option(version=__version__, prog_name="snapmetrics")
@click.option("--verbose", is_flag=True, default=False, help="Enable debug logging")
def cli(verbose: bool):
    """snapmetrics - snapshot collectors for monitoring-agent plugins."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stderr,
    )


def _run(collector: MetricsCollector, tempfile: str, output_format: str):
    """Run one pass and map snapshot errors to exit codes."""
    try:
        if output_format == "table":
            print_snapshot(collector.collect(), collector.graphs(), title=collector.name())
            return

        cache = SnapshotCache(tempfile)
        try:
            PluginHost(collector, cache=cache).output_values(click.echo)
        finally:
            cache.close()
    except NoDataError as exc:
        click.echo(f"{collector.name()}: {exc}", err=True)
        raise SystemExit(EXIT_NO_DATA)
    except SnapshotError as exc:
        log.debug("Collection failed", exc_info=True)
        click.echo(f"{collector.name()}: {exc}", err=True)
        raise SystemExit(1)
    finally:
        collector.close()


def _definitions_only(registry: GraphRegistry, output_format: str) -> bool:
    # Graph metadata is static, so don't touch AWS or the database for it
    if output_format == "agent" and meta_mode_requested():
        output_definitions(registry, click.echo)
        return True
    return False


@cli.command("ec2-cpucredit")
@click.option("--region", default="", help="AWS region")
@click.option("--instance-id", default="", help="EC2 instance ID")
@click.option("--access-key-id", default="", help="AWS access key ID")
@click.option("--secret-access-key", default="", help="AWS secret access key")
@click.option("--tempfile", default="/tmp/snapmetrics-ec2-cpucredit.db",
              help="Cache file for the previous snapshot")
@_format_option
def ec2_cpucredit(region: str, instance_id: str, access_key_id: str,
                  secret_access_key: str, tempfile: str, output_format: str):
    """EC2 CPU credit usage and balance from CloudWatch."""
    if _definitions_only(CPU_CREDIT_GRAPHS, output_format):
        return

    def discover():
        imds = InstanceMetadataClient()
        try:
            return imds.identity()
        finally:
            imds.close()

    try:
        identity = resolve_identity(region, instance_id, discover)
    except SnapshotError as exc:
        click.echo(f"could not determine instance identity: {exc}", err=True)
        raise SystemExit(1)

    credentials = AwsCredentials(
        access_key_id=access_key_id,
        secret_access_key=secret_access_key,
    )
    _run(CPUCreditCollector(identity, credentials), tempfile, output_format)


@cli.command("postgres")
@click.option("--host", default=None, help="Database host (PGHOST)")
@click.option("--port", default=None, type=int, help="Database port (PGPORT)")
@click.option("--username", default=None, help="Database user (PGUSER)")
@click.option("--password", default=None, help="Database password (PGPASSWORD)")
@click.option("--database", default=None, help="Database to connect to (PGDATABASE)")
@click.option("--sslmode", default=None, help="libpq sslmode (PGSSLMODE)")
@click.option("--tempfile", default="/tmp/snapmetrics-postgres.db",
              help="Cache file for the previous snapshot")
@_format_option
def postgres(host, port, username, password, database, sslmode, tempfile: str,
             output_format: str):
    """PostgreSQL connection counts and pg_stat_database counters."""
    if _definitions_only(POSTGRES_GRAPHS, output_format):
        return

    settings = PostgresSettings.from_env(
        host=host, port=port, user=username, password=password,
        database=database, sslmode=sslmode,
    )
    engine = create_engine(settings.url())
    _run(PostgresCollector(engine), tempfile, output_format)


if __name__ == "__main__":
    cli()
