"""
MalAPI HTML Parser
===================

Turns the two kinds of MalAPI pages into plain Python values:

* the **index page** -- one table whose header row (``th``) names the
  behavioural categories and whose body row holds one nested table per
  category, each API rendered as a ``.map-item`` element;
* an **API detail page** -- a sequence of ``.content`` blocks of which
  block 1 is the summary, block 2 the DLL and block 4 the documentation
  link.

The site is third-party and hand-maintained.  Anything that does not fit
this layout raises :class:`~pescan.core.errors.ParseError`; nothing is
silently dropped.

References:
    - MalAPI.io. https://malapi.io
    - Beautiful Soup documentation.
      https://www.crummy.com/software/BeautifulSoup/bs4/doc/
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from bs4 import BeautifulSoup

from pescan.core.errors import ParseError

logger = logging.getLogger("pescan.parsers.malapi_html")

_HEADER_SELECTOR = "th"
_COLUMN_SELECTOR = "td > table"
_API_SELECTOR = ".map-item"
_DETAIL_SELECTOR = ".content"

# Positions of the fields among the detail page's .content blocks
_DESCRIPTION_BLOCK = 1
_LIBRARY_BLOCK = 2
_DOCUMENTATION_BLOCK = 4


@dataclass(frozen=True, slots=True)
class ApiDetail:
    """Fields scraped from one API detail page."""
    description: Optional[str] = None
    library: Optional[str] = None
    documentation: Optional[str] = None


def _soup(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "html.parser")


def _text(element) -> str:
    return " ".join(element.get_text(" ", strip=True).split())


def parse_index(html: str) -> list[tuple[str, list[str]]]:
    """Parse the index page into ``(header, names)`` pairs in page order.

    Names keep document order; a name repeated inside one column is kept
    once.  The same name in several columns is kept in each of them.

    Raises:
        ParseError: When headers are missing, empty or duplicated, when a
            column has no API names, or when the header and column counts
            disagree.
    """
    soup = _soup(html)

    headers = [_text(th) for th in soup.select(_HEADER_SELECTOR)]
    if not headers:
        raise ParseError("index page has no category headers")
    if any(not h for h in headers):
        raise ParseError("index page has an empty category header")
    if len(set(headers)) != len(headers):
        raise ParseError("index page repeats a category header")

    columns: list[list[str]] = []
    for column in soup.select(_COLUMN_SELECTOR):
        names: list[str] = []
        for item in column.select(_API_SELECTOR):
            name = _text(item)
            if not name:
                continue
            if name in names:
                logger.debug("Duplicate %s in column %d ignored", name, len(columns))
                continue
            names.append(name)
        columns.append(names)

    if len(columns) != len(headers):
        raise ParseError(
            f"index page has {len(headers)} category headers "
            f"but {len(columns)} API columns"
        )

    for header, names in zip(headers, columns):
        if not names:
            raise ParseError(f"category {header!r} lists no APIs")

    return list(zip(headers, columns))


def parse_detail(html: str, name: str) -> ApiDetail:
    """Parse an API detail page.

    Empty blocks become ``None``.

    Raises:
        ParseError: When the page has fewer ``.content`` blocks than the
            documentation link's position requires.
    """
    blocks = _soup(html).select(_DETAIL_SELECTOR)
    if len(blocks) <= _DOCUMENTATION_BLOCK:
        raise ParseError(
            f"detail page for {name} has {len(blocks)} content blocks, "
            f"expected at least {_DOCUMENTATION_BLOCK + 1}"
        )

    def block(index: int) -> Optional[str]:
        value = _text(blocks[index])
        return value or None

    return ApiDetail(
        description=block(_DESCRIPTION_BLOCK),
        library=block(_LIBRARY_BLOCK),
        documentation=block(_DOCUMENTATION_BLOCK),
    )
