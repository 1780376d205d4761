"""
pescan Analyzers
=================

- ``matcher``  -- Exact-name intersection of imports and categories
- ``details``  -- Suspect ordering and metadata enrichment
"""

from pescan.analyzers.details import DetailResolver, order_suspects
from pescan.analyzers.matcher import match_imports

__all__ = [
    "DetailResolver",
    "match_imports",
    "order_suspects",
]
