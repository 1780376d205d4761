"""
pescan Report Generator
========================

Machine-readable renderings of a :class:`~pescan.core.models.ScanReport`.

JSON, YAML and TOML share one shape: a mapping from category header to
the list of suspect records found in it.  Only categories with at least
one suspect appear, category order is preserved, and detail fields that
were not requested or are unknown are left out of each record.

CSV is tabular per category.  On stdout every non-empty category is a
``Header:`` line followed by its CSV block; written to disk, the
destination must be a directory and each category becomes its own
``<Header>.csv``.  Existing files are never overwritten.

References:
    - RFC 8259 -- The JavaScript Object Notation (JSON) Data Interchange Format.
    - YAML Ain't Markup Language 1.2. https://yaml.org/spec/1.2.2/
    - TOML v1.0.0 Specification. https://toml.io/en/v1.0.0
    - RFC 4180 -- Common Format and MIME Type for CSV Files.
"""

from __future__ import annotations

import csv
import io
import json
import re
from pathlib import Path
from typing import Any

import tomli_w
import yaml

from pescan.core.errors import OutputError
from pescan.core.models import ScanReport, SuspectImport

#: Formats rendered to a single text document.
DOCUMENT_FORMATS: tuple[str, ...] = ("json", "yaml", "toml")

_UNSAFE_FILENAME = re.compile(r'[\\/:*?"<>|\x00-\x1f]')


class ScanReportGenerator:
    """Render scan reports as JSON, YAML, TOML or CSV.

    Usage::

        generator = ScanReportGenerator()
        text = generator.render(report, "yaml")
        generator.write_csv_directory(report, Path("out/"))
    """

    # ------------------------------------------------------------------ #
    #  Document formats
    # ------------------------------------------------------------------ #

    @staticmethod
    def to_mapping(report: ScanReport) -> dict[str, list[dict[str, Any]]]:
        """Header -> suspect records, non-empty categories only."""
        return {
            header: [suspect.record() for suspect in suspects]
            for header, suspects in report.non_empty()
        }

    def render(self, report: ScanReport, fmt: str) -> str:
        """Render *report* as a JSON, YAML or TOML document.

        Raises:
            OutputError: For an unknown format or a serialisation failure.
        """
        mapping = self.to_mapping(report)
        fmt = fmt.lower()
        try:
            if fmt == "json":
                return json.dumps(mapping, indent=2, ensure_ascii=False) + "\n"
            if fmt == "yaml":
                return yaml.safe_dump(
                    mapping, sort_keys=False, allow_unicode=True, default_flow_style=False
                )
            if fmt == "toml":
                return tomli_w.dumps(mapping)
        except (TypeError, ValueError, yaml.YAMLError) as exc:
            raise OutputError(f"could not render {fmt.upper()}: {exc}") from exc
        raise OutputError(f"unsupported document format: {fmt!r}")

    def write(self, report: ScanReport, fmt: str, output_path: Path) -> Path:
        """Render *report* and write it to *output_path*."""
        text = self.render(report, fmt)
        try:
            output_path.parent.mkdir(parents=True, exist_ok=True)
            output_path.write_text(text, encoding="utf-8")
        except OSError as exc:
            raise OutputError(f"cannot write {output_path}: {exc}") from exc
        return output_path

    # ------------------------------------------------------------------ #
    #  CSV
    # ------------------------------------------------------------------ #

    @staticmethod
    def csv_block(report: ScanReport, suspects: list[SuspectImport]) -> str:
        """One category as CSV: the column row, then one row per suspect."""
        columns = report.columns
        buf = io.StringIO()
        writer = csv.writer(buf, lineterminator="\n")
        writer.writerow(columns)
        for suspect in suspects:
            record = suspect.record()
            writer.writerow([record.get(column, "") for column in columns])
        return buf.getvalue()

    def render_csv(self, report: ScanReport) -> str:
        """All non-empty categories as ``Header:`` plus CSV block, for stdout."""
        parts = [
            f"{header}:\n{self.csv_block(report, suspects)}\n"
            for header, suspects in report.non_empty()
        ]
        return "".join(parts)

    def write_csv_directory(self, report: ScanReport, directory: Path) -> list[Path]:
        """Write one ``<Header>.csv`` per non-empty category into *directory*.

        Raises:
            OutputError: If *directory* is not an existing directory, or a
                target file already exists or cannot be written.
        """
        if not directory.is_dir():
            raise OutputError(
                f"CSV output requires an existing directory, got {directory}"
            )

        # every target is checked before the first file is created
        planned: dict[Path, list[SuspectImport]] = {}
        for header, suspects in report.non_empty():
            target = directory / f"{csv_filename(header)}.csv"
            if target in planned:
                raise OutputError(
                    f"categories map to the same file {target}; refusing to overwrite"
                )
            if target.exists():
                raise OutputError(f"refusing to overwrite {target}")
            planned[target] = suspects

        written: list[Path] = []
        try:
            for target, suspects in planned.items():
                try:
                    with target.open("x", encoding="utf-8", newline="") as fh:
                        fh.write(self.csv_block(report, suspects))
                except FileExistsError as exc:
                    raise OutputError(f"refusing to overwrite {target}") from exc
                except OSError as exc:
                    raise OutputError(f"cannot write {target}: {exc}") from exc
                written.append(target)
        except OutputError:
            for path in written:
                path.unlink(missing_ok=True)
            raise
        return written


def csv_filename(header: str) -> str:
    """File stem for a category header, with path-unsafe characters replaced."""
    return _UNSAFE_FILENAME.sub("_", header).strip() or "category"
