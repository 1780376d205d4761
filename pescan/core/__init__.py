"""
pescan Core Module
===================

Data models, error taxonomy, the category store cache and the scan
engine.  The engine lives in :mod:`pescan.core.engine`.
"""

from pescan.core.errors import (
    CacheError,
    CacheUnavailableError,
    FetchError,
    OutputError,
    ParseError,
    PescanError,
    SampleError,
    SampleReadError,
)
from pescan.core.models import (
    ApiCategory,
    ApiEntry,
    CacheManifest,
    DetailKind,
    ScanReport,
    SuspectImport,
)

__all__ = [
    "ApiCategory",
    "ApiEntry",
    "CacheManifest",
    "DetailKind",
    "ScanReport",
    "SuspectImport",
    "PescanError",
    "FetchError",
    "ParseError",
    "SampleError",
    "CacheError",
    "CacheUnavailableError",
    "SampleReadError",
    "OutputError",
]
