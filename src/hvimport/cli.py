"""CLI entry point for hvimport."""

from __future__ import annotations

import asyncio
import json
import sys
import time
import uuid
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from hvimport import __version__
from hvimport.config import AppConfig, ImportOptions
from hvimport.errors import HvImportError, ValidationError
from hvimport.pipeline.bundle import ExportBundle
from hvimport.pipeline.report import BatchResult, ImportReport
from hvimport.utils.logging import set_log_level

console = Console()


def load_config(config_path: str | None) -> AppConfig:
    """Load configuration from file or environment."""
    try:
        if config_path:
            return AppConfig.from_yaml(config_path)
        return AppConfig.from_env_and_args()
    except Exception as e:
        console.print(f"[red]Error loading config: {e}[/red]")
        console.print("Provide a --config file or set HYPERV_* environment variables.")
        sys.exit(1)


def connect_service(config: AppConfig):
    """Open a WinRM session to the host and wrap it as a HostService."""
    from hvimport.hyperv.client import HyperVClient
    from hvimport.hyperv.service import HyperVHostService

    client = HyperVClient(config.hyperv)
    try:
        with console.status(f"[bold green]Connecting to {config.hyperv.host}..."):
            client.connect()
    except HvImportError as e:
        console.print(f"[red]{e.message}[/red]")
        sys.exit(1)
    return HyperVHostService(client)


@click.group()
@click.version_option(version=__version__, prog_name="hvimport")
@click.option("--log-level", type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
              default="INFO", help="Logging verbosity")
def main(log_level: str):
    """Restore configuration-only Hyper-V exports into a host's inventory.

    Bundles are copied into the host's VM data directory and imported in
    place: disks are expected to already sit at their original paths.
    """
    set_log_level(log_level)


@main.command("import")
@click.argument("paths", nargs=-1, required=True, type=click.Path())
@click.option("--config", "config_path", type=click.Path(exists=True), help="Configuration file")
@click.option("--dry-run", is_flag=True, default=False, help="Simulate without copying or importing")
@click.option("--yes", "-y", is_flag=True, default=False, help="Do not ask for confirmation")
@click.option("--workers", type=click.IntRange(1, 16), help="Bundles imported concurrently")
@click.option("--poll-interval", type=click.FloatRange(min=0.1), help="Seconds between job polls")
@click.option("--enforce-networks/--advisory-networks", default=None,
              help="Fail bundles whose networks are not configured on the host")
@click.option("--output", "-o", type=click.Path(), help="Write results as JSON")
@click.option("--report", "report_path", type=click.Path(), help="Write a Markdown report")
def import_bundles(paths: tuple[str, ...], config_path: str | None, dry_run: bool, yes: bool,
                   workers: int | None, poll_interval: float | None, enforce_networks: bool | None,
                   output: str | None, report_path: str | None):
    """Import one or more configuration-only export bundles."""
    config = load_config(config_path).with_options(
        max_workers=workers,
        poll_interval=poll_interval,
        enforce_network_match=enforce_networks,
        simulate=True if dry_run else None,
    )
    opts = config.options

    from hvimport.hyperv.client import require_local_host
    try:
        require_local_host(config.hyperv)
    except HvImportError as e:
        console.print(f"[red]{e.kind.value}: {e.message}[/red]")
        sys.exit(1)

    rejected: dict[int, ImportReport] = {}
    eligible: list[str] = []
    for i, path in enumerate(paths):
        try:
            ExportBundle.from_path(path, opts.descriptor_name, opts.config_dir_name)
            eligible.append(path)
        except ValidationError as e:
            console.print(f"[red]✗ {e.message}[/red]")
            rejected[i] = ImportReport.rejected(path, e.to_record(), "Rejected before import")

    if opts.simulate:
        console.print("[yellow]DRY RUN — No changes will be made[/yellow]")
    elif eligible and not yes:
        click.confirm(
            f"Copy and import {len(eligible)} bundle(s) into {config.hyperv.host}?",
            abort=True,
        )

    if eligible:
        from hvimport.pipeline.batch import BatchImporter
        from hvimport.pipeline.dashboard import RichDashboard

        importer = BatchImporter(connect_service(config), opts)
        with RichDashboard(console) as dashboard:
            importer.set_progress_callback(dashboard)
            result = asyncio.run(importer.run(eligible))
    else:
        result = BatchResult(batch_id=str(uuid.uuid4())[:8], simulated=opts.simulate, started_at=time.time())
        result.completed_at = time.time()

    imported = iter(result.reports)
    result.reports = [rejected[i] if i in rejected else next(imported) for i in range(len(paths))]

    _print_result(result)

    if output:
        result.save(Path(output))
        console.print(f"[green]Results saved to {output}[/green]")
    if report_path:
        from hvimport.pipeline.report import generate_report
        generate_report(result, Path(report_path))

    if result.failed or result.cancelled:
        sys.exit(1)


@main.command()
@click.argument("paths", nargs=-1, required=True, type=click.Path())
@click.option("--config", "config_path", type=click.Path(exists=True), help="Configuration file")
def check(paths: tuple[str, ...], config_path: str | None):
    """Check that bundles have a settings descriptor and configuration directory."""
    descriptor, config_dir = "config.xml", "Virtual Machines"
    if config_path:
        try:
            opts = ImportOptions.from_yaml(config_path)
        except Exception as e:
            console.print(f"[red]Error loading config: {e}[/red]")
            sys.exit(1)
        descriptor, config_dir = opts.descriptor_name, opts.config_dir_name

    table = Table(title="Export bundles")
    table.add_column("Bundle", style="cyan", no_wrap=True)
    table.add_column(descriptor, justify="center")
    table.add_column(config_dir, justify="center")
    table.add_column("Eligible", justify="center")

    all_ok = True
    for path in paths:
        bundle = ExportBundle.inspect(path, descriptor, config_dir)
        all_ok = all_ok and bundle.eligible
        table.add_row(
            str(bundle.source_path),
            "✅" if bundle.has_descriptor else "❌",
            "✅" if bundle.has_config_dir else "❌",
            "[green]yes[/green]" if bundle.eligible else "[red]no[/red]",
        )

    console.print(table)
    if not all_ok:
        sys.exit(1)


@main.command()
@click.option("--config", "config_path", type=click.Path(exists=True), help="Configuration file")
def defaults(config_path: str | None):
    """Show the host's default VM data and virtual hard disk paths."""
    config = load_config(config_path)
    service = connect_service(config)
    try:
        host_defaults = service.get_storage_defaults()
    except HvImportError as e:
        console.print(f"[red]{e.message}[/red]")
        sys.exit(1)

    console.print(f"\n[bold]Host: {config.hyperv.host}[/bold]")
    console.print(f"  VM data root:      {host_defaults.vm_data_root or '[red](not set)[/red]'}")
    console.print(f"  Virtual hard disks: {host_defaults.vhd_path or '[red](not set)[/red]'}")
    console.print(f"  Bundles stage to:  "
                  f"{Path(host_defaults.vm_data_root) / config.options.vm_data_segment / '<bundle name>'}")


@main.command()
@click.option("--config", "config_path", type=click.Path(exists=True), help="Configuration file")
def networks(config_path: str | None):
    """List the virtual switches configured on the host."""
    config = load_config(config_path)
    service = connect_service(config)
    try:
        names = service.list_configured_networks()
    except HvImportError as e:
        console.print(f"[red]{e.message}[/red]")
        sys.exit(1)

    table = Table(title=f"Virtual switches — {config.hyperv.host}")
    table.add_column("Name", style="cyan")
    for name in sorted(names):
        table.add_row(name)
    console.print(table)
    console.print(f"\n[dim]Total: {len(names)} switch(es)[/dim]")


@main.command()
@click.argument("results", type=click.Path(exists=True))
@click.option("--format", "fmt", type=click.Choice(["table", "markdown", "json"]), default="table")
def report(results: str, fmt: str):
    """Render a results file written by 'import --output'."""
    result = BatchResult.load(Path(results))

    if fmt == "json":
        console.print_json(json.dumps(result.to_dict(), default=str))
    elif fmt == "markdown":
        from hvimport.pipeline.report import generate_report
        click.echo(generate_report(result))
    else:
        _print_result(result)


def _print_result(result: BatchResult) -> None:
    from hvimport.pipeline.dashboard import results_table

    console.print(results_table(result))
    console.print(
        f"\n[green]{len(result.succeeded)} succeeded[/green], "
        f"[yellow]{len(result.warnings)} warning(s)[/yellow], "
        f"[red]{len(result.failed)} failed[/red], "
        f"[dim]{len(result.cancelled)} cancelled[/dim]"
    )
    for r in result.warnings:
        for path in r.resources_missing:
            console.print(f"  [yellow]⚠️  {r.bundle_name}: reattach '{path}' manually[/yellow]")


if __name__ == "__main__":
    main()
