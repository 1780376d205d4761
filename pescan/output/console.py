"""
pescan Console Output
======================

Rich-based text rendering of a :class:`~pescan.core.models.ScanReport`:
one ``Header:`` line and one table per category that holds at least one
suspect import.  The column set follows the requested details, and the
table is constrained to the configured width with long cells folded.

Documentation links are collapsed into a ``[link]`` terminal hyperlink
when writing to a terminal; elsewhere the URL is written out in full.

References:
    - Rich library: https://github.com/Textualize/rich
    - OSC 8 hyperlinks in terminal emulators.
      https://gist.github.com/egmontkob/eb114294efbcd5adb1944c9f3cb5feda
"""

from __future__ import annotations

from rich.style import Style
from rich.table import Table
from rich.text import Text

from shared.console import ScanConsole

from pescan.core.models import ScanReport, SuspectImport

_COLUMN_STYLES: dict[str, str] = {
    "name": "bright_white",
    "description": "dim",
    "library": "bright_green",
    "documentation": "bright_blue",
}

_LINK_LABEL = "[link]"


class ScanConsoleOutput:
    """Render scan reports as rich tables.

    Usage::

        output = ScanConsoleOutput(ScanConsole(width=80))
        output.display(report)

    Args:
        console: Destination console; its width bounds every table.
    """

    def __init__(self, console: ScanConsole | None = None) -> None:
        self.console = console or ScanConsole()

    # ------------------------------------------------------------------ #
    #  Full display
    # ------------------------------------------------------------------ #

    def display(self, report: ScanReport) -> None:
        """Print every non-empty category of *report*."""
        columns = report.columns
        for header, suspects in report.non_empty():
            self.console.section(header)
            self.console.print(self.build_table(columns, suspects))

    def build_table(self, columns: list[str], suspects: list[SuspectImport]) -> Table:
        tbl = Table(
            border_style="bright_cyan",
            header_style="bold bright_magenta",
            show_lines=True,
            expand=len(columns) > 1,
        )
        for column in columns:
            tbl.add_column(
                column,
                style=_COLUMN_STYLES.get(column, ""),
                overflow="fold",
                ratio=3 if column == "description" else 1,
            )

        for suspect in suspects:
            tbl.add_row(*(self._cell(suspect, column) for column in columns))
        return tbl

    # ------------------------------------------------------------------ #
    #  Helpers
    # ------------------------------------------------------------------ #

    def _cell(self, suspect: SuspectImport, column: str) -> Text:
        value = getattr(suspect, column)
        if value is None:
            return Text("")
        if column == "documentation":
            return self._link(value)
        return Text(value)

    def _link(self, url: str) -> Text:
        if self.console.rich.is_terminal:
            return Text(_LINK_LABEL, style=Style(link=url))
        return Text(url)
