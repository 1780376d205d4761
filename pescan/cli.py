"""
pescan CLI -- PE Import Scanner Command-Line Interface
=======================================================

Click-based CLI.  Scans a PE sample's import table against the MalAPI
categories and prints the suspect imports per category, optionally with
each API's summary, DLL and documentation link.

Usage:
    pescan sample.exe                          # Names only, as tables
    pescan sample.exe -A                       # With every detail column
    pescan sample.exe -l -d -f json            # JSON with DLL and links
    pescan sample.exe -f csv -o out/           # One CSV file per category
    pescan sample.exe -u -t 8                  # Refresh reference data first
    pescan --clear-cache                       # Drop the cached data

Exit status is 0 on success, 1 on any fatal error and 130 when
interrupted.

References:
    - Click Documentation: https://click.palletsprojects.com/
    - MalAPI.io. https://malapi.io
"""

from __future__ import annotations

import sys
from contextlib import ExitStack
from pathlib import Path
from typing import Optional

import click
from rich.progress import Progress, TaskID

from shared.config import PescanConfig
from shared.console import ScanConsole
from shared.logger import ScanLogger, configure_logging

from pescan import __version__
from pescan.core.engine import PescanEngine
from pescan.core.errors import (
    CacheError,
    CacheUnavailableError,
    OutputError,
    PescanError,
    SampleError,
    SampleReadError,
)
from pescan.core.models import DetailKind, ScanReport
from pescan.output.console import ScanConsoleOutput
from pescan.output.report import DOCUMENT_FORMATS, ScanReportGenerator

logger = ScanLogger("cli")

FORMATS: tuple[str, ...] = ("txt",) + DOCUMENT_FORMATS + ("csv",)


class _FetchProgress:
    """Progress callback that opens a progress bar on the first detail page.

    Cache hits never call it, so nothing is drawn when no fetch happens.
    """

    def __init__(self, console: ScanConsole) -> None:
        self._console = console
        self._stack = ExitStack()
        self._bar: Optional[tuple[Progress, TaskID]] = None

    def __call__(self, completed: int, total: int, name: str) -> None:
        if self._bar is None:
            self._bar = self._stack.enter_context(
                self._console.progress("Fetching MalAPI details", total=total)
            )
        progress, task = self._bar
        progress.update(task, completed=completed, description=name)

    def close(self) -> None:
        self._stack.close()
        self._bar = None


@click.command(
    name="pescan",
    help=(
        "PESCAN -- PE Import Scanner\n\n"
        "Matches the imported API names of a Windows PE sample against the "
        "MalAPI.io categories and reports the suspect imports per category."
    ),
)
@click.argument("sample", type=click.Path(dir_okay=False), required=False)
@click.option("-i", "--info", is_flag=True, help="Show a summary of each API.")
@click.option("-l", "--library", is_flag=True, help="Show the DLL exporting each API.")
@click.option(
    "-d", "--documentation", is_flag=True, help="Show a link to each API's documentation."
)
@click.option("-A", "--all", "all_details", is_flag=True, help="Show every detail column.")
@click.option(
    "-u", "--update", is_flag=True, help="Refresh the MalAPI reference data before scanning."
)
@click.option(
    "-t", "--threads",
    type=click.IntRange(min=1),
    default=None,
    help="Detail pages fetched concurrently on refresh [default: 4].",
)
@click.option(
    "-w", "--width",
    type=click.IntRange(min=20),
    default=None,
    help="Width of text output tables [default: 80].",
)
@click.option(
    "-f", "--format",
    "output_format",
    type=click.Choice(FORMATS, case_sensitive=False),
    default=None,
    help="Output format [default: txt].",
)
@click.option(
    "-o", "--output",
    type=click.Path(),
    default=None,
    help="Output file, or directory for CSV output.",
)
@click.option(
    "-v", "--verbose",
    count=True,
    help="Increase log verbosity (-v info, -vv debug).",
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="Path to a pescan configuration file (TOML).",
)
@click.option(
    "--clear-cache", is_flag=True, help="Delete the cached reference data and exit."
)
@click.version_option(__version__, prog_name="pescan")
def main(
    sample: Optional[str],
    info: bool,
    library: bool,
    documentation: bool,
    all_details: bool,
    update: bool,
    threads: Optional[int],
    width: Optional[int],
    output_format: Optional[str],
    output: Optional[str],
    verbose: int,
    config_path: Optional[str],
    clear_cache: bool,
) -> None:
    """pescan entry point."""
    status = ScanConsole()

    try:
        config = PescanConfig.load(config_path)
    except (OSError, ValueError) as exc:
        status.error(f"invalid configuration: {exc}")
        sys.exit(1)

    _setup_logging(config, verbose)

    if threads is not None:
        config.fetch.max_concurrency = threads
    width = width or config.output.width
    output_format = (output_format or config.output.format).lower()
    if output_format not in FORMATS:
        status.error(f"unsupported output format in configuration: {output_format!r}")
        sys.exit(1)

    progress = _FetchProgress(status)
    engine = PescanEngine(config, progress=progress)

    if clear_cache:
        _clear_cache(engine, status)
        if sample is None:
            return

    if sample is None:
        raise click.UsageError("Missing argument 'SAMPLE'.")

    details = _requested_details(info, library, documentation, all_details)

    try:
        report = engine.scan(sample, details=details, force_refresh=update)
    except SampleReadError as exc:
        status.error(str(exc))
        sys.exit(1)
    except SampleError as exc:
        status.error(f"{sample} is not a valid PE file: {exc}")
        sys.exit(1)
    except CacheUnavailableError as exc:
        status.error(
            f"{exc}. Connect to the network and run again to fetch the "
            "MalAPI reference data."
        )
        sys.exit(1)
    except PescanError as exc:
        status.error(str(exc))
        sys.exit(1)
    except KeyboardInterrupt:
        status.warning("Interrupted by user")
        sys.exit(130)
    finally:
        progress.close()

    if report.stale:
        when = report.fetched_at.isoformat() if report.fetched_at else "an earlier run"
        status.warning(
            f"Could not refresh the MalAPI reference data; using cached data from {when}"
        )

    try:
        _output_results(report, output_format, output, width)
    except OutputError as exc:
        status.error(str(exc))
        sys.exit(1)

    logger.info(
        "%d suspect imports out of %d imported names",
        report.suspect_count, report.total_imports,
        sample=sample,
    )


# ===================================================================== #
#  Helpers
# ===================================================================== #

def _setup_logging(config: PescanConfig, verbose: int) -> None:
    level = config.global_settings.log_level
    if config.global_settings.debug or verbose >= 2:
        level = "DEBUG"
    elif verbose == 1:
        level = "INFO"
    configure_logging(
        log_level=level,
        log_file=config.global_settings.log_file or None,
        json_logs=config.global_settings.log_json,
    )


def _requested_details(
    info: bool, library: bool, documentation: bool, all_details: bool
) -> set[DetailKind]:
    if all_details:
        return {DetailKind.ALL}
    flags = {
        DetailKind.DESCRIPTION: info,
        DetailKind.LIBRARY: library,
        DetailKind.DOCUMENTATION: documentation,
    }
    return {kind for kind, enabled in flags.items() if enabled}


def _clear_cache(engine: PescanEngine, status: ScanConsole) -> None:
    try:
        removed = engine.cache.clear()
    except CacheError as exc:
        status.error(str(exc))
        sys.exit(1)
    if removed:
        status.success(f"Removed cached data at {engine.cache.path}")
    else:
        status.info(f"No cached data at {engine.cache.path}")


def _output_results(
    report: ScanReport,
    output_format: str,
    output_path: Optional[str],
    width: int,
) -> None:
    """Render *report* to stdout or to *output_path*.

    Raises:
        OutputError: If the destination cannot be written.
    """
    generator = ScanReportGenerator()
    destination = Path(output_path) if output_path else None

    if output_format == "txt":
        if destination is None:
            ScanConsoleOutput(ScanConsole(width=width)).display(report)
            return
        try:
            with destination.open("w", encoding="utf-8") as fh:
                ScanConsoleOutput(ScanConsole(width=width, file=fh)).display(report)
        except OSError as exc:
            raise OutputError(f"cannot write {destination}: {exc}") from exc
        return

    if output_format == "csv":
        if destination is None:
            click.echo(generator.render_csv(report), nl=False)
        else:
            generator.write_csv_directory(report, destination)
        return

    if destination is None:
        click.echo(generator.render(report, output_format), nl=False)
    else:
        generator.write(report, output_format, destination)


if __name__ == "__main__":
    main()
