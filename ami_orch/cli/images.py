"""
AMI Images CLI - Inspect, delete and export AMIs.

Usage:
  ami-orch images show <ami-id-or-name>
  ami-orch images delete <ami-id-or-name>
  ami-orch images export <ami-id> --bucket my-bucket [--prefix exports/] [--prepare]
  ami-orch images export-status <export-task-id>
  ami-orch images fetch my-bucket exports/export-ami-0123.raw ./disk.raw
  ami-orch images purge my-bucket exports/
"""

import sys
from pathlib import Path
from typing import Optional

import click
from rich.table import Table

from ami_orch.cli.common import console, get_aws_context, get_export_destination, get_image_manager


@click.group()
def images():
    """Manage AMIs (show, delete, export)."""
    pass


@images.command("show")
@click.argument("id_or_name")
@click.option('--region', help='AWS region (default: from AMI_REGION env or AWS config)')
def show_image(id_or_name: str, region: Optional[str]):
    """Show an AMI and the snapshots it references."""
    from ami_orch.errors import NotFoundError

    ctx = get_aws_context(region)
    manager = get_image_manager(ctx)
    try:
        record = manager.describe_image(id_or_name)
    except NotFoundError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)

    table = Table(title=f"AMI {record.image_id}")
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("ID", record.image_id)
    table.add_row("Name", record.name or "-")
    table.add_row("State", record.state)
    table.add_row("Snapshots", ", ".join(record.snapshot_ids) or "-")
    console.print(table)


@images.command("delete")
@click.argument("id_or_name")
@click.option('--keep-snapshots', is_flag=True, help='Deregister only, leave the snapshots in place')
@click.option('--region', help='AWS region (default: from AMI_REGION env or AWS config)')
def delete_image(id_or_name: str, keep_snapshots: bool, region: Optional[str]):
    """Deregister an AMI (by id or name) and delete its snapshots."""
    from ami_orch.errors import NotFoundError

    ctx = get_aws_context(region)
    manager = get_image_manager(ctx)
    try:
        snapshot_ids = manager.deregister(id_or_name)
    except NotFoundError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)
    console.print(f"[green]✓[/green] Deregistered AMI {id_or_name}")

    if keep_snapshots:
        if snapshot_ids:
            console.print(f"[dim]Kept snapshots: {', '.join(snapshot_ids)}[/dim]")
        return

    manager.delete_snapshots(snapshot_ids)
    console.print(f"[green]✓[/green] Deleted {len(snapshot_ids)} snapshot(s)")


@images.command("export")
@click.argument("image_id")
@click.option('--bucket', required=True, help='Destination S3 bucket')
@click.option('--prefix', help='Key prefix inside the bucket')
@click.option('--format', 'disk_format', type=click.Choice(['RAW', 'VMDK', 'VHD']), default='RAW', show_default=True)
@click.option('--prepare', is_flag=True, help='Create the bucket and the vmimport role first')
@click.option('--region', help='AWS region (default: from AMI_REGION env or AWS config)')
def export_image(image_id: str, bucket: str, prefix: Optional[str], disk_format: str, prepare: bool, region: Optional[str]):
    """Start exporting an AMI to S3 and print the export task id."""
    ctx = get_aws_context(region)
    manager = get_image_manager(ctx)
    if not manager.is_known_image(image_id):
        console.print(f"[red]Error:[/red] No image found with id or name: {image_id}")
        sys.exit(1)

    if prepare:
        console.print(f"Preparing export destination [cyan]s3://{bucket}[/cyan]...")
        get_export_destination(ctx).prepare(bucket)

    task_id = manager.export(image_id, bucket, prefix=prefix, disk_format=disk_format)
    console.print(f"[green]✓[/green] Export task: [bold]{task_id}[/bold]")
    console.print(f"[dim]Use 'ami-orch images export-status {task_id}' to follow it[/dim]")


@images.command("export-status")
@click.argument("task_id")
@click.option('--region', help='AWS region (default: from AMI_REGION env or AWS config)')
def export_status(task_id: str, region: Optional[str]):
    """Show the current status of an export task."""
    from ami_orch.errors import NotFoundError

    ctx = get_aws_context(region)
    manager = get_image_manager(ctx)
    try:
        status = manager.poll_export_status(task_id)
    except NotFoundError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)

    console.print(f"Export Task ID: [cyan]{status.task_id}[/cyan]")
    console.print(f"Status: [bold]{status.status}[/bold]")
    if status.progress:
        console.print(f"Progress: {status.progress}%")
    if status.status_message:
        console.print(f"Status Message: {status.status_message}")
    if status.s3_bucket:
        console.print(f"Destination: s3://{status.s3_bucket}/{status.s3_prefix or ''}")


@images.command("fetch")
@click.argument("bucket")
@click.argument("key")
@click.argument("path", type=click.Path(dir_okay=False, path_type=Path))
@click.option('--region', help='AWS region (default: from AMI_REGION env or AWS config)')
def fetch_export(bucket: str, key: str, path: Path, region: Optional[str]):
    """Download an exported disk image from S3."""
    ctx = get_aws_context(region)
    local_path = get_export_destination(ctx).fetch(bucket, key, path)
    console.print(f"[green]✓[/green] Downloaded to {local_path}")


@images.command("purge")
@click.argument("bucket")
@click.argument("prefix")
@click.option('--region', help='AWS region (default: from AMI_REGION env or AWS config)')
def purge_exports(bucket: str, prefix: str, region: Optional[str]):
    """Delete every exported object under PREFIX in BUCKET."""
    ctx = get_aws_context(region)
    count = get_export_destination(ctx).cleanup(bucket, prefix)
    console.print(f"[green]✓[/green] Deleted {count} object(s) under s3://{bucket}/{prefix}")
