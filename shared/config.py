"""
pescan Configuration Management
================================

Centralized configuration for the pescan toolkit using Python dataclasses
and TOML-based persistence.

Every section falls back to its dataclass defaults, so an absent or
partial ``config.toml`` is always valid.  A small number of environment
variables override file settings for containerised runs.

References:
    - PEP 681 -- Data Class Transforms (2022).
    - TOML v1.0.0 Specification. https://toml.io/en/v1.0.0
    - XDG Base Directory Specification.
      https://specifications.freedesktop.org/basedir-spec/latest/
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib


# ---------------------------------------------------------------------------
# Default configuration file path relative to the project root
# ---------------------------------------------------------------------------
_DEFAULT_CONFIG_PATH: Path = Path(__file__).resolve().parent.parent / "config.toml"

# Environment overrides
ENV_CACHE_DIR: str = "PESCAN_CACHE_DIR"
ENV_DOCKER: str = "PESCAN_DOCKER"

_TRUTHY: frozenset[str] = frozenset({"1", "true", "yes", "on"})


# ========================== Section Configs ================================


@dataclass(frozen=False, slots=True)
class FetchConfig:
    """Configuration for the MalAPI reference-data fetcher.

    Controls the remote endpoint, transport timeouts, retry count and
    the number of detail pages requested concurrently.
    """

    base_url: str = "https://malapi.io"
    detail_path: str = "/winapi/"
    timeout: float = 30.0
    max_retries: int = 2
    max_concurrency: int = 4
    user_agent: str = "pescan/2.0 (+https://malapi.io)"


@dataclass(frozen=False, slots=True)
class CacheConfig:
    """Location of the persisted category store.

    An empty *path* selects the per-user default, see
    :func:`default_cache_path`.
    """

    path: str = ""


@dataclass(frozen=False, slots=True)
class OutputConfig:
    """Default output settings, overridable from the command line."""

    format: str = "txt"
    width: int = 80


# =========================== Global Settings ===============================


@dataclass(frozen=False, slots=True)
class GlobalConfig:
    """Global settings: logging verbosity and log destinations."""

    log_level: str = "WARNING"
    log_file: str = ""
    log_json: bool = False
    debug: bool = False


# =========================== Master Config =================================


@dataclass(frozen=False, slots=True)
class PescanConfig:
    """Master configuration aggregating all sections.

    Usage:
        >>> config = PescanConfig.load()                  # from default path
        >>> config = PescanConfig.load("custom.toml")     # from custom path
        >>> config.fetch.base_url
        'https://malapi.io'
    """

    global_settings: GlobalConfig = field(default_factory=GlobalConfig)
    fetch: FetchConfig = field(default_factory=FetchConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    output: OutputConfig = field(default_factory=OutputConfig)

    @classmethod
    def load(cls, path: str | Path | None = None) -> PescanConfig:
        """Read *path* (default: ``config.toml`` beside the packages).

        Tables and keys the file does not mention keep their defaults and
        unrecognised ones are dropped.  A missing default file yields the
        defaults; a missing explicit file raises :class:`FileNotFoundError`.
        Malformed TOML raises ``tomllib.TOMLDecodeError``.
        """
        source = _DEFAULT_CONFIG_PATH if path is None else Path(path)
        try:
            raw: dict[str, Any] = tomllib.loads(source.read_text(encoding="utf-8"))
        except FileNotFoundError:
            if path is None:
                return cls()
            raise FileNotFoundError(f"Configuration file not found: {source}") from None

        sections = {
            attr: _section_from(section_type, raw.get(table) or {})
            for table, (attr, section_type) in _TABLES.items()
        }
        return cls(**sections)

    @property
    def cache_path(self) -> Path:
        """Resolved location of the persisted category store.

        ``PESCAN_CACHE_DIR`` wins over ``[cache] path``, which wins over
        :func:`default_cache_path`.
        """
        env_dir = os.environ.get(ENV_CACHE_DIR)
        if env_dir:
            return Path(env_dir).expanduser() / CACHE_FILE_NAME
        if self.cache.path:
            return Path(self.cache.path).expanduser()
        return default_cache_path()


# TOML table -> (PescanConfig attribute, section dataclass)
_TABLES: dict[str, tuple[str, type]] = {
    "global": ("global_settings", GlobalConfig),
    "fetch": ("fetch", FetchConfig),
    "cache": ("cache", CacheConfig),
    "output": ("output", OutputConfig),
}


def _section_from(section_type: type, table: dict[str, Any]) -> Any:
    known = {f.name for f in fields(section_type)}
    return section_type(**{key: table[key] for key in table.keys() & known})


# ========================= Module-level helpers ============================

CACHE_FILE_NAME: str = "data.json"


def default_cache_path() -> Path:
    """Per-user cache location: ``$XDG_CACHE_HOME/pescan/data.json``.

    Falls back to ``~/.cache`` when ``XDG_CACHE_HOME`` is unset.
    """
    base = os.environ.get("XDG_CACHE_HOME")
    root = Path(base) if base else Path.home() / ".cache"
    return root / "pescan" / CACHE_FILE_NAME


def running_in_container() -> bool:
    """Return ``True`` when ``PESCAN_DOCKER`` marks a containerised run."""
    return os.environ.get(ENV_DOCKER, "").strip().lower() in _TRUTHY


