#!/usr/bin/env python3
"""
AMI Orchestration CLI - Main entry point.

Commands:
  ami-orch build      - Build an AMI on a transient worker instance
  ami-orch images     - Manage AMIs (show, delete, export, export-status)
  ami-orch teardown   - Clean up resources left behind by a run
  ami-orch platforms  - Platform selection helpers
"""

import logging
import os
import sys

import click
from dotenv import load_dotenv
from rich.logging import RichHandler

from ami_orch import __version__
from ami_orch.cli.common import console

# Load environment variables from .env file if present
load_dotenv()


def setup_logging(verbose: bool = False) -> None:
    """Configure logging with rich handler."""
    level = logging.DEBUG if verbose else logging.INFO

    logging.basicConfig(
        level=logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
        force=True,
    )
    logging.getLogger("ami_orch").setLevel(level)


@click.group()
@click.version_option(version=__version__)
@click.option('-v', '--verbose', is_flag=True, help='Enable verbose logging')
@click.option('--json-logs', is_flag=True, help='Emit JSON log lines instead of rich output')
@click.pass_context
def cli(ctx, verbose, json_logs):
    """AMI Orchestration - build and manage AMIs through a transient AWS worker."""
    ctx.ensure_object(dict)
    ctx.obj['verbose'] = verbose
    if json_logs or os.environ.get('AMI_LOG_FORMAT', '').lower() == 'json':
        from ami_orch.logging_setup import setup_logging as setup_json_logging
        setup_json_logging(verbose)
    else:
        setup_logging(verbose)


# Import subcommands
from ami_orch.cli.build import build
from ami_orch.cli.images import images
from ami_orch.cli.platforms import platforms
from ami_orch.cli.teardown import teardown

cli.add_command(build)
cli.add_command(images)
cli.add_command(teardown)
cli.add_command(platforms)


def main():
    """Main entry point."""
    try:
        cli(obj={})
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/yellow]")
        sys.exit(130)
    except Exception as e:
        console.print(f"[red]Error:[/red] {e}")
        if '--verbose' in sys.argv or '-v' in sys.argv:
            raise
        sys.exit(1)


if __name__ == '__main__':
    main()
