"""
pescan Error Taxonomy
======================

Every failure pescan reports is a :class:`PescanError`.  The subclasses
let the Cache Manager tell a network failure from schema drift, and let
the CLI print a distinct diagnostic for each fatal condition.
"""

from __future__ import annotations


class PescanError(Exception):
    """Base class for all pescan errors."""


class FetchError(PescanError):
    """The reference source could not be retrieved.

    Unreachable host, timeout, or a non-success HTTP status.
    """


class ParseError(PescanError):
    """A document did not match the structure pescan expects."""


class SampleError(ParseError):
    """The sample is not a valid PE file, or its import table is unreadable."""


class CacheError(PescanError):
    """The persisted store is absent, unreadable, corrupt or of another version.

    Recovered locally by refreshing; fatal only through
    :class:`CacheUnavailableError`.
    """


class CacheUnavailableError(CacheError):
    """No usable reference data: the refresh failed and no valid store exists."""


class SampleReadError(PescanError):
    """The sample file could not be read from disk."""


class OutputError(PescanError):
    """Rendering results or writing them to their destination failed."""


class MatchInputError(PescanError):
    """Reserved.  Import matching never fails; it only yields empty results."""
