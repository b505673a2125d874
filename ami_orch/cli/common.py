"""Helpers shared by the CLI commands."""

import os
import sys
from typing import Optional

from rich.console import Console
from rich.table import Table

from ami_orch.core.models import StepOutcome, TeardownReport

console = Console()


def get_config(region: Optional[str] = None, **overrides):
    """Config from AMI_* environment variables, with CLI flags taking precedence."""
    from ami_orch.config import OrchestrationConfig

    return OrchestrationConfig.from_env(aws_region=region, **overrides)


def get_aws_context(region: Optional[str]):
    """AWS context for region (default: AMI_REGION or the boto3 default chain)."""
    from ami_orch.core.aws import AwsContext
    from ami_orch.errors import ProviderUnavailable

    try:
        return AwsContext(region=region or os.environ.get("AMI_REGION") or None)
    except ProviderUnavailable as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)


def get_image_manager(ctx):
    from ami_orch.io.ec2 import EC2Client
    from ami_orch.orch.images import ImageLifecycleManager

    return ImageLifecycleManager(EC2Client(ctx.region, client=ctx.client("ec2")))


def get_export_destination(ctx):
    from ami_orch.io.iam import IAMClient
    from ami_orch.io.s3 import S3Client
    from ami_orch.orch.export import ExportDestination

    return ExportDestination(
        get_config(ctx.region),
        ctx,
        S3Client(ctx.region, client=ctx.client("s3")),
        IAMClient(ctx.region, client=ctx.client("iam")),
    )


OUTCOME_STYLE = {
    StepOutcome.SUCCEEDED: "green",
    StepOutcome.SKIPPED: "dim",
    StepOutcome.FAILED: "red",
}


def print_teardown_report(report: TeardownReport) -> None:
    table = Table(title="Teardown")
    table.add_column("Step", style="cyan")
    table.add_column("Outcome")
    table.add_column("Detail", style="dim")

    for step in report.steps:
        style = OUTCOME_STYLE[step.outcome]
        table.add_row(step.name, f"[{style}]{step.outcome.value}[/{style}]", step.detail)

    console.print(table)
