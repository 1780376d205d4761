"""
pescan Parsers
===============

- ``malapi_html``  -- MalAPI index and detail page parsing
- ``pe_imports``   -- Imported API names from PE images
"""

from pescan.parsers.malapi_html import ApiDetail, parse_detail, parse_index
from pescan.parsers.pe_imports import extract_import_names

__all__ = [
    "ApiDetail",
    "extract_import_names",
    "parse_detail",
    "parse_index",
]
