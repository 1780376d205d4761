"""
pescan -- PE Import Scanner
============================

Static analysis of Windows PE samples through their import tables.
Imported API names are matched against the behavioural categories
published by MalAPI.io (process injection, anti-debugging, ransomware,
spying, ...) and reported per category, optionally with each API's
summary, DLL and documentation link.

Modules:
    - ``pescan.core.engine``         -- Scan pipeline
    - ``pescan.core.cache``          -- Category store persistence
    - ``pescan.core.models``         -- Pydantic data models
    - ``pescan.collectors.malapi``   -- MalAPI fetcher
    - ``pescan.parsers``             -- MalAPI HTML and PE import parsing
    - ``pescan.analyzers``           -- Import matching and detail resolution
    - ``pescan.output``              -- Console and file renderers
    - ``pescan.cli``                 -- Click CLI entry point

References:
    - MalAPI.io. https://malapi.io
    - Sikorski, M., & Honig, A. (2012). Practical Malware Analysis.
"""

__version__ = "2.0.5"
