"""
pescan Data Models
===================

Pydantic models for the category store (what the MalAPI reference lists
per behavioural category), its persisted form, and the per-sample scan
results handed to the output renderers.

Category order is significant everywhere: match results are correlated
back to categories purely by position, so every sequence of categories
or per-category results here is parallel to ``CacheManifest.categories``.
"""

from __future__ import annotations

import enum
from collections import Counter
from datetime import datetime, timezone
from typing import Any, Iterable, Iterator, Optional

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, model_validator


# Bump whenever the persisted layout changes; other versions are refetched.
MANIFEST_VERSION: int = 2


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

class DetailKind(str, enum.Enum):
    """Metadata a suspect import can be enriched with."""
    DESCRIPTION = "description"
    LIBRARY = "library"
    DOCUMENTATION = "documentation"
    ALL = "all"

    @classmethod
    def expand(cls, kinds: Iterable[DetailKind]) -> frozenset[DetailKind]:
        """Resolve ``ALL`` into the three concrete kinds."""
        requested = set(kinds)
        if cls.ALL in requested:
            return frozenset({cls.DESCRIPTION, cls.LIBRARY, cls.DOCUMENTATION})
        return frozenset(requested)


#: Concrete kinds in column order.
DETAIL_FIELDS: tuple[DetailKind, ...] = (
    DetailKind.DESCRIPTION,
    DetailKind.LIBRARY,
    DetailKind.DOCUMENTATION,
)


# ---------------------------------------------------------------------------
# Category store
# ---------------------------------------------------------------------------

class ApiEntry(BaseModel):
    """Descriptive metadata for one API name within one category.

    Attributes:
        category: Header of the owning category.
        name: API name, exactly as listed by the reference.
        description: Short summary of what the API does.
        library: DLL exporting the API.
        documentation: Link to the vendor documentation.
    """
    model_config = ConfigDict(frozen=True)

    category: str
    name: str
    description: Optional[str] = None
    library: Optional[str] = None
    documentation: Optional[str] = None

    def value_for(self, kind: DetailKind) -> Optional[str]:
        """Return the value for a concrete detail kind."""
        return getattr(self, kind.value)


class ApiCategory(BaseModel):
    """A behavioural grouping and the API names the reference lists for it.

    ``names`` keeps discovery order; membership tests go through
    :attr:`name_set`.
    """
    model_config = ConfigDict(frozen=True)

    header: str
    names: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _unique_names(self) -> ApiCategory:
        counts = Counter(self.names)
        dupes = sorted(name for name, n in counts.items() if n > 1)
        if dupes:
            raise ValueError(
                f"category {self.header!r} lists duplicate names: {', '.join(dupes)}"
            )
        return self

    @property
    def name_set(self) -> frozenset[str]:
        return frozenset(self.names)


class CacheManifest(BaseModel):
    """Versioned snapshot of the whole category store.

    Created by the fetcher, persisted by the cache manager, and read-only
    afterwards -- a refresh replaces it wholesale.

    Attributes:
        version: Persisted-format marker, see :data:`MANIFEST_VERSION`.
        source: URL the data was fetched from.
        fetched_at: When the fetch completed (UTC).
        categories: Categories in reference order.
        entries: Metadata records, unique per ``(category, name)``.
    """
    model_config = ConfigDict(frozen=True)

    version: int = MANIFEST_VERSION
    source: str = ""
    fetched_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    categories: list[ApiCategory] = Field(default_factory=list)
    entries: list[ApiEntry] = Field(default_factory=list)

    _index: dict[tuple[str, str], ApiEntry] = PrivateAttr(default_factory=dict)

    @model_validator(mode="after")
    def _check_consistency(self) -> CacheManifest:
        headers = [c.header for c in self.categories]
        if len(set(headers)) != len(headers):
            raise ValueError("category headers are not unique")

        members = {c.header: c.name_set for c in self.categories}
        seen: set[tuple[str, str]] = set()
        for entry in self.entries:
            key = (entry.category, entry.name)
            if entry.category not in members:
                raise ValueError(f"entry {entry.name!r} names unknown category {entry.category!r}")
            if entry.name not in members[entry.category]:
                raise ValueError(f"entry {entry.name!r} is not listed in {entry.category!r}")
            if key in seen:
                raise ValueError(f"duplicate entry for {entry.name!r} in {entry.category!r}")
            seen.add(key)
        return self

    def model_post_init(self, __context: Any) -> None:
        self._index = {(e.category, e.name): e for e in self.entries}

    # ------------------------------------------------------------------ #
    #  Accessors
    # ------------------------------------------------------------------ #

    @property
    def headers(self) -> list[str]:
        return [c.header for c in self.categories]

    @property
    def api_count(self) -> int:
        """Total names across categories (a name in two categories counts twice)."""
        return sum(len(c.names) for c in self.categories)

    def category_sets(self) -> list[frozenset[str]]:
        return [c.name_set for c in self.categories]

    def get_entry(self, category_index: int, name: str) -> Optional[ApiEntry]:
        """Metadata for *name* in the category at *category_index*, if any."""
        header = self.categories[category_index].header
        return self._index.get((header, name))


# ---------------------------------------------------------------------------
# Scan results
# ---------------------------------------------------------------------------

class SuspectImport(BaseModel):
    """An imported name found in a category, optionally enriched."""
    name: str
    description: Optional[str] = None
    library: Optional[str] = None
    documentation: Optional[str] = None

    def record(self) -> dict[str, str]:
        """Serialisable form with absent fields omitted."""
        return self.model_dump(exclude_none=True)


class ScanReport(BaseModel):
    """Everything the output renderers need for one sample.

    Attributes:
        sample: Path of the analysed sample.
        headers: Category headers in store order.
        suspects: Per-category suspect imports, parallel to ``headers``.
        details: Detail kinds that were requested (concrete kinds only).
        total_imports: Distinct imported names found in the sample.
        stale: ``True`` when a refresh failed and cached data was used.
        fetched_at: Age marker of the reference data used.
    """
    sample: str = ""
    headers: list[str] = Field(default_factory=list)
    suspects: list[list[SuspectImport]] = Field(default_factory=list)
    details: list[DetailKind] = Field(default_factory=list)
    total_imports: int = 0
    stale: bool = False
    fetched_at: Optional[datetime] = None

    @model_validator(mode="after")
    def _parallel(self) -> ScanReport:
        if len(self.headers) != len(self.suspects):
            raise ValueError("headers and suspects are different lengths")
        return self

    def non_empty(self) -> Iterator[tuple[str, list[SuspectImport]]]:
        """Yield ``(header, suspects)`` for categories with at least one match."""
        for header, suspects in zip(self.headers, self.suspects):
            if suspects:
                yield header, suspects

    @property
    def suspect_count(self) -> int:
        return sum(len(s) for s in self.suspects)

    @property
    def columns(self) -> list[str]:
        """Column names for tabular output: ``name`` plus requested details."""
        return ["name"] + [k.value for k in DETAIL_FIELDS if k in self.details]
