"""
AMI Build CLI - Build an AMI from a unikernel image.

Usage:
  ami-orch build org/app --os linux --arch x86_64
  ami-orch build org/app --platform "OS: linux, Architecture: x86_64"
  ami-orch build org/app --os linux --arch x86_64 --shared-names

Environment variables:
  AMI_REGION, AMI_REGISTRY, AMI_BASE_IMAGE_ID, AMI_KEY_NAME,
  AMI_INSTANCE_TYPE, AMI_WORKER_URL, AMI_RESULT_MAX_POLLS
"""

import sys

import click

from ami_orch.cli.common import console, get_aws_context, get_config, print_teardown_report


@click.command()
@click.argument('image')
@click.option('--os', 'os_name', help='Target OS (e.g. linux)')
@click.option('--arch', help='Target architecture (e.g. x86_64)')
@click.option('--platform', 'platform_choice', help='Platform as "OS: <os>, Architecture: <arch>"')
@click.option('--tag-value', help='Value of the tag put on the build instance (default: my-ami)')
@click.option('--run-id', help='Suffix for queue/role/profile names (default: random)')
@click.option('--shared-names', is_flag=True, help='Use the fixed Orders/Results queue and role names')
@click.option('--grant-user-permissions', is_flag=True, help='Attach the orchestrator policy to the calling IAM user first')
@click.option('--region', help='AWS region (default: from AMI_REGION env or AWS config)')
def build(image, os_name, arch, platform_choice, tag_value, run_id, shared_names, grant_user_permissions, region):
    """Build an AMI for IMAGE on a transient worker instance.

    Provisions a role, instance profile, queues and an instance, sends the
    build order, waits for the AMI id, and tears everything down.
    """
    from ami_orch.errors import NotFoundError
    from ami_orch.orch.pipeline import BuildPipeline
    from ami_orch.orch.platforms import parse_platform_choice

    if platform_choice:
        if os_name or arch:
            console.print("[red]Error:[/red] Cannot specify both --platform and --os/--arch")
            sys.exit(1)
        try:
            os_name, arch = parse_platform_choice(platform_choice)
        except ValueError as e:
            console.print(f"[red]Error:[/red] {e}")
            sys.exit(1)

    if not os_name or not arch:
        console.print("[red]Error:[/red] Must specify --os and --arch (or --platform)")
        sys.exit(1)

    if shared_names and run_id:
        console.print("[red]Error:[/red] Cannot specify both --run-id and --shared-names")
        sys.exit(1)

    cfg = get_config(region, tag_value=tag_value)
    if not shared_names:
        cfg = cfg.for_run(run_id)

    ctx = get_aws_context(cfg.aws_region)
    pipeline = BuildPipeline.from_context(cfg, ctx)

    console.print(f"Building AMI for [cyan]{image}[/cyan] ({os_name}/{arch}) in [cyan]{ctx.region}[/cyan]")
    if cfg.run_id:
        console.print(f"[dim]Run id: {cfg.run_id}[/dim]")

    try:
        outcome = pipeline.run(image, os_name, arch, grant_user_permissions=grant_user_permissions)
    except NotFoundError as e:
        console.print(f"[red]Error:[/red] {e}")
        if pipeline.last_teardown is not None:
            print_teardown_report(pipeline.last_teardown)
        sys.exit(1)
    except Exception:
        if pipeline.last_teardown is not None:
            print_teardown_report(pipeline.last_teardown)
        raise

    print_teardown_report(outcome.teardown)
    console.print(f"[green]✓[/green] AMI ID: [bold]{outcome.ami_id}[/bold] ({outcome.elapsed_seconds:.0f}s)")
    if not outcome.teardown.ok:
        console.print("[yellow]Some resources could not be removed; see 'ami-orch teardown --help'[/yellow]")
