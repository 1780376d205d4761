# ==============================================
# Pytest Configuration and Fixtures
# ==============================================
#
# Shared fixtures for the pescan test suite:
#   - a small category store (CacheManifest)
#   - MalAPI index / detail page builders
#   - a minimal PE32 image builder with real import tables
#   - an isolated cache location
# ==============================================

from __future__ import annotations

import logging
import struct
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional, Union

import pytest

from shared.config import ENV_CACHE_DIR, ENV_DOCKER
from shared.logger import ROOT_LOGGER

from pescan.core.models import ApiCategory, ApiEntry, CacheManifest


# ==============================================
# Environment isolation
# ==============================================

@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch, tmp_path):
    """Keep tests away from the real cache directory and container flag."""
    monkeypatch.delenv(ENV_DOCKER, raising=False)
    monkeypatch.delenv(ENV_CACHE_DIR, raising=False)
    monkeypatch.setenv("XDG_CACHE_HOME", str(tmp_path / "xdg-cache"))
    yield
    root = logging.getLogger(ROOT_LOGGER)
    for handler in root.handlers:
        handler.close()
    root.handlers.clear()


@pytest.fixture
def cache_path(tmp_path) -> Path:
    return tmp_path / "cache" / "data.json"


# ==============================================
# Category store
# ==============================================

@pytest.fixture
def manifest() -> CacheManifest:
    """Three categories; VirtualAllocEx is listed in two of them."""
    return CacheManifest(
        source="https://malapi.io",
        fetched_at=datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc),
        categories=[
            ApiCategory(
                header="Injection",
                names=["VirtualAllocEx", "WriteProcessMemory", "CreateRemoteThread"],
            ),
            ApiCategory(header="Evasion", names=["IsDebuggerPresent", "VirtualAllocEx"]),
            ApiCategory(header="Spying", names=["GetAsyncKeyState"]),
        ],
        entries=[
            ApiEntry(
                category="Injection",
                name="VirtualAllocEx",
                description="Allocates memory in another process.",
                library="kernel32.dll",
                documentation="https://learn.microsoft.com/virtualallocex",
            ),
            ApiEntry(
                category="Injection",
                name="WriteProcessMemory",
                description="Writes memory in another process.",
                library="kernel32.dll",
                documentation="https://learn.microsoft.com/writeprocessmemory",
            ),
            ApiEntry(
                category="Evasion",
                name="VirtualAllocEx",
                description="Allocates memory in another process.",
                library="kernel32.dll",
            ),
            ApiEntry(
                category="Evasion",
                name="IsDebuggerPresent",
                description="Checks for a user-mode debugger.",
                library="kernel32.dll",
                documentation="https://learn.microsoft.com/isdebuggerpresent",
            ),
        ],
    )


# ==============================================
# MalAPI pages
# ==============================================

def _index_html(columns: list[tuple[str, list[str]]]) -> str:
    heads = "".join(f"<th>{header}</th>" for header, _ in columns)
    cells = "".join(
        "<td><table><tbody>"
        + "".join(f'<tr><td class="map-item">{name}</td></tr>' for name in names)
        + "</tbody></table></td>"
        for _, names in columns
    )
    return (
        "<html><body><table>"
        f"<thead><tr>{heads}</tr></thead>"
        f"<tbody><tr>{cells}</tr></tbody>"
        "</table></body></html>"
    )


def _detail_html(
    name: str,
    description: str = "",
    library: str = "",
    documentation: str = "",
) -> str:
    blocks = [name, description, library, "Associated attacks", documentation]
    body = "".join(f'<div class="content">{text}</div>' for text in blocks)
    return f"<html><body>{body}</body></html>"


@pytest.fixture
def index_html() -> Callable[[list[tuple[str, list[str]]]], str]:
    """Builder for index pages: ``index_html([(header, [names...]), ...])``."""
    return _index_html


@pytest.fixture
def detail_html() -> Callable[..., str]:
    """Builder for detail pages with five ``.content`` blocks."""
    return _detail_html


# ==============================================
# PE images
# ==============================================

Import = Union[str, int]


def _align(value: int, alignment: int) -> int:
    return (value + alignment - 1) // alignment * alignment


def _build_pe(
    imports: dict[str, list[Import]],
    delay_imports: Optional[dict[str, list[Import]]] = None,
) -> bytes:
    """Assemble a PE32 image with one ``.idata`` section.

    ``imports`` maps DLL names to imported function names; an ``int``
    entry is an import by ordinal.  ``delay_imports`` fills the
    delay-load directory the same way.
    """
    section_rva = 0x1000
    file_alignment = 0x200
    delay_imports = delay_imports or {}

    regular = list(imports.items())
    delayed = list(delay_imports.items())

    # Layout pass: descriptors, thunk arrays, then strings.
    offset = 20 * (len(regular) + 1)
    delay_dir_offset = offset
    offset += 32 * (len(delayed) + 1)

    thunk_offsets: dict[tuple[str, str], int] = {}
    for kind, table in (("imp", regular), ("dly", delayed)):
        for dll, names in table:
            thunk_offsets[(kind, dll + ":ilt")] = offset
            offset += 4 * (len(names) + 1)
            thunk_offsets[(kind, dll + ":iat")] = offset
            offset += 4 * (len(names) + 1)

    strings = bytearray()
    hint_offsets: dict[str, int] = {}
    dll_offsets: dict[str, int] = {}
    for dll, names in regular + delayed:
        for name in names:
            if isinstance(name, str) and name not in hint_offsets:
                hint_offsets[name] = offset + len(strings)
                entry = struct.pack("<H", 0) + name.encode("ascii") + b"\x00"
                if len(entry) % 2:
                    entry += b"\x00"
                strings += entry
        if dll not in dll_offsets:
            dll_offsets[dll] = offset + len(strings)
            strings += dll.encode("ascii") + b"\x00"
            if len(strings) % 2:
                strings += b"\x00"

    section = bytearray(offset) + strings
    virtual_size = len(section)

    def rva(section_offset: int) -> int:
        return section_rva + section_offset

    def thunks(names: list[Import]) -> bytes:
        values = [
            (0x80000000 | name) if isinstance(name, int) else rva(hint_offsets[name])
            for name in names
        ]
        return struct.pack(f"<{len(values) + 1}I", *values, 0)

    for index, (dll, names) in enumerate(regular):
        ilt = thunk_offsets[("imp", dll + ":ilt")]
        iat = thunk_offsets[("imp", dll + ":iat")]
        section[ilt:ilt + 4 * (len(names) + 1)] = thunks(names)
        section[iat:iat + 4 * (len(names) + 1)] = thunks(names)
        section[index * 20:(index + 1) * 20] = struct.pack(
            "<5I", rva(ilt), 0, 0, rva(dll_offsets[dll]), rva(iat)
        )

    for index, (dll, names) in enumerate(delayed):
        ilt = thunk_offsets[("dly", dll + ":ilt")]
        iat = thunk_offsets[("dly", dll + ":iat")]
        section[ilt:ilt + 4 * (len(names) + 1)] = thunks(names)
        section[iat:iat + 4 * (len(names) + 1)] = thunks(names)
        start = delay_dir_offset + index * 32
        # grAttrs=1: fields are RVAs
        section[start:start + 32] = struct.pack(
            "<8I", 1, rva(dll_offsets[dll]), 0, rva(iat), rva(ilt), 0, 0, 0
        )

    raw_size = _align(max(virtual_size, 1), file_alignment)
    section += bytes(raw_size - len(section))
    size_of_image = section_rva + _align(virtual_size, 0x1000)

    data_dirs = [(0, 0)] * 16
    if regular:
        data_dirs[1] = (section_rva, 20 * (len(regular) + 1))
    if delayed:
        data_dirs[13] = (rva(delay_dir_offset), 32 * (len(delayed) + 1))

    dos_header = b"MZ" + bytes(58) + struct.pack("<I", 0x40)
    file_header = struct.pack("<HHIIIHH", 0x14C, 1, 0, 0, 0, 224, 0x0102)
    optional_header = struct.pack(
        "<HBB9I6H4I2H6I",
        0x10B, 14, 0,                       # magic, linker version
        0, raw_size, 0,                     # code / data sizes
        0, section_rva, section_rva,        # entry point, BaseOfCode, BaseOfData
        0x400000, 0x1000, file_alignment,   # image base, alignments
        6, 0, 0, 0, 6, 0,                   # OS / image / subsystem versions
        0, size_of_image, file_alignment, 0,
        3, 0,                               # console subsystem
        0x100000, 0x1000, 0x100000, 0x1000,
        0, 16,
    ) + b"".join(struct.pack("<II", addr, size) for addr, size in data_dirs)
    section_header = struct.pack(
        "<8sIIIIIIHHI",
        b".idata", virtual_size, section_rva, raw_size, file_alignment,
        0, 0, 0, 0, 0xC0000040,
    )

    headers = dos_header + b"PE\x00\x00" + file_header + optional_header + section_header
    headers += bytes(file_alignment - len(headers))
    return bytes(headers) + bytes(section)


@pytest.fixture
def build_pe() -> Callable[..., bytes]:
    """Builder for PE32 images: ``build_pe({"KERNEL32.dll": ["Sleep", 17]})``."""
    return _build_pe


@pytest.fixture
def sample_file(tmp_path, build_pe) -> Path:
    """A PE importing two Injection APIs, one Evasion API and one unlisted API."""
    path = tmp_path / "sample.exe"
    path.write_bytes(
        build_pe({
            "KERNEL32.dll": ["VirtualAllocEx", "WriteProcessMemory", "Sleep", 42],
            "USER32.dll": ["MessageBoxA"],
        })
    )
    return path
