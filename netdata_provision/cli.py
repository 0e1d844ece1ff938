"""CLI interface for the Netdata provisioning tool."""
from pathlib import Path
from typing import Optional

import sh
import typer

from . import utils
from . import steps
from .settings import Settings, ALL_CHECKPOINTS
from .ubuntu import Host


def setup(
    dry_run: bool = typer.Option(False, "--dry-run", help="Preview changes without applying them"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Trace every external command"),
    remediate_all: bool = typer.Option(
        False, "--remediate-all",
        help="Try the permission fix at every service check, not only after install",
    ),
    skip_stress_ng: bool = typer.Option(False, "--skip-stress-ng", help="Do not install stress-ng"),
    poll_timeout: float = typer.Option(
        30.0, "--poll-timeout", min=0, help="Seconds to wait for the service to become active",
    ),
    configs_dir: Optional[Path] = typer.Option(
        None, "--configs-dir", help="Directory holding apps_groups.conf and python.d/apps.conf",
    ),
):
    """Install Netdata on Ubuntu and configure alerts and process monitoring."""
    utils.setup_logging(verbose)

    if not utils.is_root():
        typer.echo("❗ Please run as root or with sudo")
        raise typer.Exit(1)

    overrides = dict(
        dry_run=dry_run,
        install_stress_tools=not skip_stress_ng,
        poll_timeout=poll_timeout,
    )
    if remediate_all:
        overrides["remediate_at"] = ALL_CHECKPOINTS
    if configs_dir is not None:
        overrides["configs_source_dir"] = configs_dir
    settings = Settings(**overrides)

    try:
        steps.provision_netdata(settings, Host.local(dry_run))
    except utils.ProvisioningError as e:
        typer.echo(f"❗ {e}")
        raise typer.Exit(1)
    except sh.ErrorReturnCode as e:
        typer.echo(f"❗ Command failed: {e.full_cmd}")
        raise typer.Exit(1)
    typer.echo("✅ Netdata provisioning complete!")


app = typer.Typer(
    name="netdata-provision",
    help="Netdata installation and setup tool for Ubuntu.",
    add_completion=False,
    invoke_without_command=True,
    callback=setup,
)


if __name__ == "__main__":
    app()
