"""
AMI Teardown CLI - Remove resources left behind by an interrupted build.

Usage:
  ami-orch teardown --role amibuilder-role-1a2b3c4d --profile kraftkit-role-1a2b3c4d \
      --orders-url https://sqs... --results-url https://sqs... --instance-id i-0123...
"""

import sys
from typing import Optional

import click

from ami_orch.cli.common import console, get_aws_context, get_config, print_teardown_report


@click.command()
@click.option('--role', help='IAM role name')
@click.option('--profile', help='Instance profile name')
@click.option('--orders-url', help='Orders queue URL')
@click.option('--results-url', help='Results queue URL')
@click.option('--instance-id', help='Build instance id')
@click.option('--region', help='AWS region (default: from AMI_REGION env or AWS config)')
def teardown(
    role: Optional[str],
    profile: Optional[str],
    orders_url: Optional[str],
    results_url: Optional[str],
    instance_id: Optional[str],
    region: Optional[str],
):
    """Tear down a (partial) set of build resources.

    Steps whose resource is not given are skipped; resources that are
    already gone are reported as skipped. Exits 1 if any step failed.
    """
    from ami_orch.core.models import ProvisionedResourceSet
    from ami_orch.io.ec2 import EC2Client
    from ami_orch.io.iam import IAMClient
    from ami_orch.io.sqs import SQSClient
    from ami_orch.orch.teardown import TeardownReaper

    if not any((role, profile, orders_url, results_url, instance_id)):
        console.print("[red]Error:[/red] Nothing to tear down; pass at least one resource")
        sys.exit(1)

    resources = ProvisionedResourceSet(
        role_name=role,
        instance_profile_name=profile,
        role_in_profile=bool(role and profile),
        orders_queue_url=orders_url,
        results_queue_url=results_url,
        instance_id=instance_id,
    )

    ctx = get_aws_context(region)
    reaper = TeardownReaper(
        get_config(ctx.region),
        IAMClient(ctx.region, client=ctx.client("iam")),
        SQSClient(ctx.region, client=ctx.client("sqs")),
        EC2Client(ctx.region, client=ctx.client("ec2")),
    )
    report = reaper.teardown(resources)
    print_teardown_report(report)

    if not report.ok:
        sys.exit(1)
