"""
Detail Resolver
================

Turns the matcher's per-category name sets into ordered
:class:`~pescan.core.models.SuspectImport` lists, attaching the requested
MalAPI metadata (summary, DLL, documentation link) where the store has
it.

Output order is deterministic: within a category, suspects follow the
order in which the reference lists the names.  A matched name with no
metadata record -- the store can lag behind what samples import -- is
reported with its fields absent; that is not an error.
"""

from __future__ import annotations

from typing import Iterable, Sequence

from pescan.core.models import (
    DETAIL_FIELDS,
    CacheManifest,
    DetailKind,
    SuspectImport,
)


def order_suspects(
    manifest: CacheManifest,
    matches: Sequence[set[str]],
) -> list[list[SuspectImport]]:
    """Order matched names by category listing order, without metadata."""
    return [
        [SuspectImport(name=name) for name in category.names if name in matched]
        for category, matched in zip(manifest.categories, matches)
    ]


class DetailResolver:
    """Attach requested metadata fields to matched imports.

    Usage::

        resolver = DetailResolver(manifest, {DetailKind.LIBRARY})
        if resolver.enabled:
            suspects = resolver.resolve(matches)

    Args:
        manifest: Store supplying the metadata records.
        kinds: Requested detail kinds; ``ALL`` expands to every field.
    """

    def __init__(self, manifest: CacheManifest, kinds: Iterable[DetailKind]) -> None:
        self._manifest = manifest
        self._kinds = DetailKind.expand(kinds)

    @property
    def kinds(self) -> list[DetailKind]:
        """Concrete kinds in column order."""
        return [k for k in DETAIL_FIELDS if k in self._kinds]

    @property
    def enabled(self) -> bool:
        return bool(self._kinds)

    def resolve(self, matches: Sequence[set[str]]) -> list[list[SuspectImport]]:
        """Build enriched suspect lists, parallel to the store's categories."""
        kinds = self.kinds
        resolved: list[list[SuspectImport]] = []

        for index, ordered in enumerate(order_suspects(self._manifest, matches)):
            enriched: list[SuspectImport] = []
            for suspect in ordered:
                entry = self._manifest.get_entry(index, suspect.name)
                if entry is None:
                    enriched.append(suspect)
                    continue
                values = {k.value: entry.value_for(k) for k in kinds}
                enriched.append(SuspectImport(name=suspect.name, **values))
            resolved.append(enriched)

        return resolved
