"""
pescan Output
==============

- ``console``  -- Rich table rendering (TXT)
- ``report``   -- JSON, YAML, TOML and CSV rendering
"""

from pescan.output.console import ScanConsoleOutput
from pescan.output.report import ScanReportGenerator

__all__ = [
    "ScanConsoleOutput",
    "ScanReportGenerator",
]
