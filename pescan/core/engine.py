"""
pescan Scan Engine
===================

Orchestrates one scan:

    1. Read the sample bytes
    2. Load the category store (cached, refreshed, or stale fallback)
    3. Extract the sample's imported names
    4. Match them against every category
    5. Order the suspects and, if requested, attach metadata
    6. Assemble a :class:`~pescan.core.models.ScanReport`

The store is loaded once and only read afterwards; the engine holds no
other state between scans.
"""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, Optional

from shared.config import PescanConfig, running_in_container
from shared.logger import ScanLogger

from pescan.analyzers.details import DetailResolver, order_suspects
from pescan.analyzers.matcher import match_imports
from pescan.collectors.malapi import ProgressCallback, fetch_manifest
from pescan.core.cache import CacheManager, LoadResult
from pescan.core.errors import SampleReadError
from pescan.core.models import CacheManifest, DetailKind, ScanReport
from pescan.parsers.pe_imports import extract_import_names


class PescanEngine:
    """Run the scan pipeline for PE samples.

    Usage::

        engine = PescanEngine(PescanConfig.load())
        report = engine.scan("sample.exe", details={DetailKind.ALL})
        for header, suspects in report.non_empty():
            ...

    Args:
        config: Configuration; defaults are used if not provided.
        logger: Logger instance; a new one is created if not provided.
        cache: Cache manager; built from *config* if not provided.
        progress: Progress callback forwarded to the fetcher on refresh.
    """

    def __init__(
        self,
        config: Optional[PescanConfig] = None,
        logger: Optional[ScanLogger] = None,
        cache: Optional[CacheManager] = None,
        progress: Optional[ProgressCallback] = None,
    ) -> None:
        self._config = config or PescanConfig()
        self._logger = logger or ScanLogger("engine")
        self._cache = cache or CacheManager(
            self._config.cache_path,
            lambda: fetch_manifest(self._config.fetch, progress=progress),
        )

    @property
    def cache(self) -> CacheManager:
        return self._cache

    # ------------------------------------------------------------------ #
    #  Entry points
    # ------------------------------------------------------------------ #

    def load_reference(self, force_refresh: bool = False) -> LoadResult:
        """Load the category store through the cache manager."""
        with self._logger.timed("reference data load"):
            result = self._cache.load(force_refresh=force_refresh)
        self._logger.info(
            "Reference data: %d categories, %d APIs",
            len(result.manifest.categories),
            result.manifest.api_count,
            stale=result.stale,
            refreshed=result.refreshed,
        )
        return result

    def scan(
        self,
        sample_path: str | Path,
        *,
        details: Iterable[DetailKind] = (),
        force_refresh: bool = False,
    ) -> ScanReport:
        """Scan one sample file.

        Raises:
            SampleReadError: If the sample cannot be read.
            SampleError: If the sample is not a valid PE file.
            CacheUnavailableError: If no reference data can be obtained.
        """
        with self._logger.operation("scan"):
            data = self._read_sample(Path(sample_path))
            loaded = self.load_reference(force_refresh=force_refresh)
            return self.scan_data(
                data,
                loaded.manifest,
                sample=str(sample_path),
                details=details,
                stale=loaded.stale,
            )

    def scan_data(
        self,
        data: bytes,
        manifest: CacheManifest,
        *,
        sample: str = "",
        details: Iterable[DetailKind] = (),
        stale: bool = False,
    ) -> ScanReport:
        """Scan an in-memory sample against an already loaded store."""
        imports = frozenset(extract_import_names(data))
        self._logger.debug("Sample imports %d distinct names", len(imports))

        with self._logger.timed("import matching"):
            matches = match_imports(manifest.categories, imports)

        resolver = DetailResolver(manifest, details)
        if resolver.enabled:
            suspects = resolver.resolve(matches)
        else:
            suspects = order_suspects(manifest, matches)

        report = ScanReport(
            sample=sample,
            headers=manifest.headers,
            suspects=suspects,
            details=resolver.kinds,
            total_imports=len(imports),
            stale=stale,
            fetched_at=manifest.fetched_at,
        )
        self._logger.info(
            "%d suspect imports across %d categories",
            report.suspect_count,
            sum(1 for _ in report.non_empty()),
            sample=sample,
        )
        return report

    # ------------------------------------------------------------------ #
    #  Helpers
    # ------------------------------------------------------------------ #

    @staticmethod
    def _read_sample(path: Path) -> bytes:
        try:
            return path.read_bytes()
        except OSError as exc:
            message = f"cannot read sample {path}: {exc.strerror or exc}"
            if running_in_container():
                message += (
                    " (running in a container: mount the sample's directory "
                    "as a volume and pass the path inside the container)"
                )
            raise SampleReadError(message) from exc
