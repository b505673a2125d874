"""
AMI Platforms CLI - Platform selection helpers.

Usage:
  ami-orch platforms parse "OS: linux, Architecture: x86_64"
  ami-orch platforms list index.json --ref org/app:latest --arch x86_64 --feature kvm
"""

import json
import sys
from pathlib import Path
from typing import Optional, Tuple

import click

from ami_orch.cli.common import console


@click.group()
def platforms():
    """Platform selection helpers."""
    pass


@platforms.command("parse")
@click.argument("choice")
def parse(choice: str):
    """Split a platform choice string into OS and architecture."""
    from ami_orch.orch.platforms import parse_platform_choice

    try:
        os_name, arch = parse_platform_choice(choice)
    except ValueError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)

    console.print(f"os={os_name} arch={arch}")


@platforms.command("list")
@click.argument("index_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option('--ref', required=True, help='Image reference the index belongs to')
@click.option('--os', 'os_name', default="", help='Only platforms for this OS')
@click.option('--arch', default="", help='Only platforms for this architecture')
@click.option('--feature', 'features', multiple=True, help='Required OS feature (repeatable)')
def list_platforms(index_file: Path, ref: str, os_name: str, arch: str, features: Tuple[str, ...]):
    """List the platform choices of an OCI image index that match the filters."""
    from ami_orch.orch.platforms import PlatformQuery, load_index_descriptors, select_compatible

    try:
        descriptors = load_index_descriptors(json.loads(index_file.read_text()))
    except ValueError as e:
        console.print(f"[red]Error:[/red] {index_file}: {e}")
        sys.exit(1)

    query: Optional[PlatformQuery] = None
    if os_name or arch or features:
        query = PlatformQuery(os=os_name, architecture=arch, features=tuple(features))

    matches = select_compatible(ref, descriptors, query)
    if not matches:
        console.print("[yellow]No compatible platforms[/yellow]")
        sys.exit(1)

    for choice in sorted({m.choice for m in matches.values()}):
        console.print(choice, markup=False)
