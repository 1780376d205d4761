"""
Import Matcher
===============

Intersects a sample's imported names with every category of the store.

Comparison is exact and case-sensitive: ``CreateFileA`` does not match
``CreateFileW`` or ``createfilea``, and no decoration is stripped.  The
result is parallel to the category sequence; a name imported by the
sample but listed nowhere simply appears in no result.
"""

from __future__ import annotations

from typing import Iterable, Sequence

from pescan.core.models import ApiCategory


def match_imports(
    categories: Sequence[ApiCategory],
    imports: Iterable[str],
) -> list[set[str]]:
    """Return, per category in order, the imported names it lists.

    A name listed by several categories is reported in each of them.
    Never raises; an empty import set yields one empty set per category.
    """
    import_set = frozenset(imports)
    return [set(category.name_set & import_set) for category in categories]
