"""
PE Import Extraction
=====================

Adapter around :mod:`pefile` that reduces a PE image to the names of the
API functions it imports, both from the regular import directory and
from the delay-load import directory.  Imports by ordinal carry no name
and are skipped.

References:
    - Microsoft. (2024). PE Format. Microsoft Learn.
      https://learn.microsoft.com/en-us/windows/win32/debug/pe-format
    - pefile. https://github.com/erocarrera/pefile
"""

from __future__ import annotations

import logging

import pefile

from pescan.core.errors import SampleError

logger = logging.getLogger("pescan.parsers.pe_imports")

_IMPORT_DIRECTORIES: tuple[str, ...] = (
    "IMAGE_DIRECTORY_ENTRY_IMPORT",
    "IMAGE_DIRECTORY_ENTRY_DELAY_IMPORT",
)


def extract_import_names(data: bytes) -> list[str]:
    """Return imported API names in import-table order.

    Duplicates (the same name imported from two DLLs) are kept; callers
    that need a set collapse them.

    Raises:
        SampleError: If *data* is not a parseable PE image.
    """
    try:
        pe = pefile.PE(data=data, fast_load=True)
    except pefile.PEFormatError as exc:
        raise SampleError(f"not a valid PE file: {exc.value}") from exc

    try:
        pe.parse_data_directories(
            directories=[
                pefile.DIRECTORY_ENTRY[name] for name in _IMPORT_DIRECTORIES
            ]
        )

        names: list[str] = []
        for attr in ("DIRECTORY_ENTRY_IMPORT", "DIRECTORY_ENTRY_DELAY_IMPORT"):
            for entry in getattr(pe, attr, []):
                dll = entry.dll.decode("utf-8", errors="replace") if entry.dll else "?"
                for imp in entry.imports:
                    if imp.name is None:
                        logger.debug("Skipping %s ordinal import %s", dll, imp.ordinal)
                        continue
                    names.append(imp.name.decode("utf-8", errors="replace"))
    except pefile.PEFormatError as exc:
        raise SampleError(f"malformed import table: {exc.value}") from exc
    finally:
        pe.close()

    logger.debug("Extracted %d imported names", len(names))
    return names
