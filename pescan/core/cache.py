"""
pescan Category Store Cache
============================

Owns the on-disk copy of the MalAPI category store and decides, per
invocation, which :class:`~pescan.core.models.CacheManifest` is
authoritative.

Lookup strategy (offline first):
  1. Unless a refresh is forced, a valid persisted store is returned
     without touching the network.
  2. Otherwise the fetcher runs; a fresh manifest is persisted and
     returned.
  3. If the fetch fails, a valid persisted store is still used, flagged
     as stale.  With no valid store at all the invocation cannot proceed.

The store is a single compact JSON document.  Writes go to a temporary
file in the same directory which is then renamed over the canonical path,
so readers see either the old store or the new one, never a mix.  There
is no inter-process locking: two concurrent refreshes both complete and
the last rename wins.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from pydantic import ValidationError

from pescan.core.errors import (
    CacheError,
    CacheUnavailableError,
    FetchError,
    ParseError,
)
from pescan.core.models import MANIFEST_VERSION, CacheManifest

logger = logging.getLogger("pescan.core.cache")

#: Zero-argument callable producing a fresh manifest or raising
#: FetchError / ParseError.
ManifestSource = Callable[[], CacheManifest]


@dataclass(frozen=True, slots=True)
class LoadResult:
    """Outcome of :meth:`CacheManager.load`.

    Attributes:
        manifest: The manifest to use for this invocation.
        stale: ``True`` when a refresh failed and the persisted store
               was used instead.
        refreshed: ``True`` when the manifest was fetched just now.
    """
    manifest: CacheManifest
    stale: bool = False
    refreshed: bool = False


class CacheManager:
    """Load, refresh and persist the category store.

    Usage::

        manager = CacheManager(config.cache_path, lambda: fetch_manifest(config.fetch))
        result = manager.load(force_refresh=False)
        if result.stale:
            ...

    Args:
        path: Canonical location of the persisted store.
        source: Callable that fetches a fresh manifest.
    """

    def __init__(self, path: str | Path, source: ManifestSource) -> None:
        self._path = Path(path)
        self._source = source

    @property
    def path(self) -> Path:
        return self._path

    def exists(self) -> bool:
        return self._path.is_file()

    # ------------------------------------------------------------------ #
    #  Persistence
    # ------------------------------------------------------------------ #

    def read(self) -> CacheManifest:
        """Load and validate the persisted store.

        Raises:
            CacheError: If the store is absent, unreadable, corrupt, or was
                written under a different format version.
        """
        try:
            raw = self._path.read_bytes()
        except FileNotFoundError as exc:
            raise CacheError(f"no cached data at {self._path}") from exc
        except OSError as exc:
            raise CacheError(f"cannot read {self._path}: {exc}") from exc

        try:
            document = json.loads(raw)
        except ValueError as exc:
            raise CacheError(f"{self._path} is not valid JSON: {exc}") from exc

        version = document.get("version") if isinstance(document, dict) else None
        if version != MANIFEST_VERSION:
            raise CacheError(
                f"{self._path} has format version {version!r}, "
                f"expected {MANIFEST_VERSION}"
            )

        try:
            return CacheManifest.model_validate(document)
        except ValidationError as exc:
            raise CacheError(f"{self._path} is corrupt: {exc}") from exc

    def write(self, manifest: CacheManifest) -> None:
        """Atomically replace the persisted store with *manifest*.

        Raises:
            CacheError: If the directory or the file cannot be written.
                The previous store, if any, is left untouched.
        """
        payload = manifest.model_dump_json().encode("utf-8")
        directory = self._path.parent

        try:
            directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self._path.name}.", suffix=".tmp", dir=directory
            )
        except OSError as exc:
            raise CacheError(f"cannot create cache in {directory}: {exc}") from exc

        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(payload)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_name, self._path)
        except OSError as exc:
            Path(tmp_name).unlink(missing_ok=True)
            raise CacheError(f"cannot write {self._path}: {exc}") from exc

        logger.info(
            "Cached %d categories (%d bytes) at %s",
            len(manifest.categories), len(payload), self._path,
        )

    def clear(self) -> bool:
        """Delete the persisted store.  Returns ``True`` if one existed."""
        try:
            self._path.unlink()
        except FileNotFoundError:
            return False
        except OSError as exc:
            raise CacheError(f"cannot remove {self._path}: {exc}") from exc
        logger.info("Removed cached data at %s", self._path)
        return True

    # ------------------------------------------------------------------ #
    #  Authoritative manifest
    # ------------------------------------------------------------------ #

    def load(self, force_refresh: bool = False) -> LoadResult:
        """Return the manifest to use for this invocation.

        Args:
            force_refresh: Fetch even when a valid store exists.

        Raises:
            CacheUnavailableError: If fetching fails and there is no valid
                persisted store to fall back to.
        """
        if not force_refresh:
            try:
                manifest = self.read()
            except CacheError as exc:
                logger.info("No usable cached data (%s); refreshing", exc)
            else:
                logger.debug("Using cached data from %s", self._path)
                return LoadResult(manifest)

        try:
            manifest = self._source()
        except (FetchError, ParseError) as exc:
            return self._fall_back(exc)

        try:
            self.write(manifest)
        except CacheError as exc:
            logger.warning("Reference data not cached: %s", exc)

        return LoadResult(manifest, refreshed=True)

    def _fall_back(self, failure: Exception) -> LoadResult:
        try:
            manifest = self.read()
        except CacheError as exc:
            raise CacheUnavailableError(
                f"reference data unavailable: {failure} ({exc})"
            ) from failure

        logger.warning(
            "Refresh failed (%s); using cached data from %s",
            failure, manifest.fetched_at.isoformat(),
        )
        return LoadResult(manifest, stale=True)
