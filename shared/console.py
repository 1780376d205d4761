"""
pescan Console Interface
=========================

Thin wrapper around two Rich consoles sharing one theme: rendered results
on stdout, coloured status lines and the fetch progress bar on stderr.

References:
    - Rich library: https://github.com/Textualize/rich
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import IO, Any, Iterator

from rich.console import Console
from rich.markup import escape
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
)
from rich.theme import Theme

_PESCAN_THEME = Theme(
    {
        "pescan.header": "bold bright_cyan",
        "pescan.success": "bold green",
        "pescan.warning": "bold yellow",
        "pescan.error": "bold red",
        "pescan.info": "bold bright_blue",
    }
)

# style -> marker printed in front of status messages
_MARKERS: dict[str, str] = {
    "pescan.success": "[✔]",
    "pescan.warning": "[⚠] WARNING:",
    "pescan.error": "[✘] ERROR:",
    "pescan.info": "[ℹ]",
}


class ScanConsole:
    """Results on stdout, status messages and progress on stderr.

    Keeping status off stdout lets ``pescan -f json sample.exe | jq``
    work unchanged.

    Args:
        width: Fixed width for rendered results; ``None`` auto-detects.
        file:  Where results go instead of stdout.
    """

    def __init__(
        self,
        *,
        width: int | None = None,
        file: IO[str] | None = None,
    ) -> None:
        common: dict[str, Any] = {"theme": _PESCAN_THEME, "highlight": False}
        self._console = Console(width=width, file=file, **common)
        self._status = Console(stderr=True, **common)

    @property
    def rich(self) -> Console:
        return self._console

    def print(self, *renderables: Any, **kwargs: Any) -> None:
        self._console.print(*renderables, **kwargs)

    def section(self, title: str) -> None:
        """``Title:`` line in front of a category's results."""
        self._console.print(f"[pescan.header]{escape(title)}:[/pescan.header]")

    # ------------------------------------------------------------------ #
    #  Status messages (stderr)
    # ------------------------------------------------------------------ #

    def _announce(self, style: str, message: str) -> None:
        marker = escape(_MARKERS[style])
        self._status.print(f"[{style}]{marker}[/{style}] {escape(message)}", soft_wrap=True)

    def success(self, message: str) -> None:
        self._announce("pescan.success", message)

    def warning(self, message: str) -> None:
        self._announce("pescan.warning", message)

    def error(self, message: str) -> None:
        self._announce("pescan.error", message)

    def info(self, message: str) -> None:
        self._announce("pescan.info", message)

    @contextmanager
    def progress(
        self,
        description: str = "Fetching",
        total: float | None = None,
    ) -> Iterator[tuple[Progress, TaskID]]:
        """Transient progress bar on stderr, yielding ``(progress, task_id)``."""
        bar = Progress(
            SpinnerColumn(style="pescan.info"),
            TextColumn("{task.description}", style="pescan.info"),
            BarColumn(),
            MofNCompleteColumn(),
            console=self._status,
            transient=True,
        )
        with bar:
            yield bar, bar.add_task(description, total=total)
