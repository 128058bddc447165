"""Lambda@Edge association operator CLI (edge-operator).

Usage:
    edge-operator prepare                 # Patch the compiled template in place
    edge-operator prepare -o out.json     # Write the patched template elsewhere
    edge-operator reconcile               # Converge CloudFront distributions
    edge-operator reconcile --dry-run     # Show what would change
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import click

from .config import (
    DEFAULT_DEPLOY_POLL_INTERVAL_SECONDS,
    DEFAULT_PROGRESS_INTERVAL_SECONDS,
    DEFAULT_REGION,
    DEFAULT_SERVICE_FILE,
    DEFAULT_TEMPLATE_FILE,
    Config,
    ConfigurationError,
)
from .main import run_prepare, run_reconcile, setup_logging


@click.group()
@click.option(
    "--service-file",
    type=click.Path(path_type=Path),
    default=DEFAULT_SERVICE_FILE,
    envvar="EDGE_SERVICE_FILE",
    show_default=True,
    help="Service declaration YAML.",
)
@click.option(
    "--template-file",
    type=click.Path(path_type=Path),
    default=DEFAULT_TEMPLATE_FILE,
    envvar="EDGE_TEMPLATE_FILE",
    show_default=True,
    help="Compiled CloudFormation template JSON.",
)
@click.option("--stage", envvar="EDGE_STAGE", help="Override the provider stage.")
@click.option("--stack-name", envvar="EDGE_STACK_NAME", help="Override the stack name.")
@click.option("--region", envvar="AWS_REGION", default=DEFAULT_REGION, show_default=True)
@click.option("--profile", envvar="AWS_PROFILE", help="AWS credentials profile.")
@click.option(
    "--json-logs/--text-logs",
    default=True,
    envvar="JSON_LOGS",
    show_default=True,
    help="Emit structured JSON logs or plain text.",
)
@click.pass_context
def cli(
    ctx: click.Context,
    service_file: Path,
    template_file: Path,
    stage: str | None,
    stack_name: str | None,
    region: str,
    profile: str | None,
    json_logs: bool,
) -> None:
    """Attach Lambda@Edge functions to CloudFront distributions."""
    ctx.ensure_object(dict)
    ctx.obj.update(
        service_file=service_file,
        template_file=template_file,
        stage=stage,
        stack_name=stack_name,
        region=region,
        profile=profile,
        json_logs=json_logs,
    )
    setup_logging(json_logs)


def _build_config(ctx: click.Context, **overrides: object) -> Config:
    try:
        return Config(**ctx.obj, **overrides)
    except ConfigurationError as e:
        raise click.ClickException(str(e)) from e


@cli.command()
@click.option(
    "-o",
    "--output",
    type=click.Path(path_type=Path),
    help="Write the prepared template here instead of in place.",
)
@click.pass_context
def prepare(ctx: click.Context, output: Path | None) -> None:
    """Validate associations and patch the template for Lambda@Edge."""
    config = _build_config(ctx)
    ctx.exit(run_prepare(config, output))


@cli.command()
@click.option(
    "--dry-run",
    is_flag=True,
    envvar="DRY_RUN",
    help="Compute changes without updating distributions.",
)
@click.option(
    "--poll-interval",
    type=click.IntRange(min=5, max=600),
    default=DEFAULT_DEPLOY_POLL_INTERVAL_SECONDS,
    envvar="DEPLOY_POLL_INTERVAL",
    show_default=True,
    help="Seconds between distribution status polls.",
)
@click.option(
    "--progress-interval",
    type=click.FloatRange(min=0, min_open=True),
    default=DEFAULT_PROGRESS_INTERVAL_SECONDS,
    envvar="PROGRESS_INTERVAL",
    show_default=True,
    help="Seconds between progress dots while waiting.",
)
@click.pass_context
def reconcile(
    ctx: click.Context, dry_run: bool, poll_interval: int, progress_interval: float
) -> None:
    """Converge CloudFront distributions to the declared associations."""
    config = _build_config(
        ctx,
        dry_run=dry_run,
        deploy_poll_interval_seconds=poll_interval,
        progress_interval_seconds=progress_interval,
    )
    ctx.exit(asyncio.run(run_reconcile(config)))


if __name__ == "__main__":
    cli()
