"""
pescan Collectors
==================

- ``malapi``  -- Asynchronous MalAPI.io reference-data fetcher
"""

from pescan.collectors.malapi import MalApiFetcher, fetch_manifest

__all__ = [
    "MalApiFetcher",
    "fetch_manifest",
]
