"""Normalize directory listings from sftp, ssh ``ls -la`` and FTP servers.

Parsing never fails: lines that fit none of the known grammars are dropped.
"""
from typing import Iterable, List, Optional
import re

from ..models.remote_file import RemoteFileEntry
from .remote_path import join_remote_path

NOISE_PREFIXES = ("sftp>", "Connected to", "spawn ", "total ")

WINDOWS_FTP_LINE = re.compile(r"^\d{2}-\d{2}-\d{2}\s+\d{2}:\d{2}[AP]M\s+(<DIR>|\d+)\s+(.+)$")


def sort_entries(entries: Iterable[RemoteFileEntry]) -> List[RemoteFileEntry]:
    return sorted(entries, key=RemoteFileEntry.sort_key)


def _valid_name(name: str) -> bool:
    return bool(name) and name not in (".", "..")


def parse_unix_line(line: str, current_path: str) -> Optional[RemoteFileEntry]:
    fields = line.split()
    if len(fields) < 9:
        return None
    kind = fields[0][0]
    if kind not in ("d", "-", "l"):
        return None

    name = " ".join(fields[8:])
    arrow = name.find(" -> ")
    if arrow >= 0:
        name = name[:arrow]
    name = name.strip()
    if not _valid_name(name):
        return None

    return RemoteFileEntry(
        name=name,
        full_path=join_remote_path(current_path, name),
        is_dir=kind == "d",
        size_text=fields[4],
        modified_text=" ".join(fields[5:8]),
    )


def parse_windows_line(line: str, current_path: str) -> Optional[RemoteFileEntry]:
    match = WINDOWS_FTP_LINE.match(line)
    if not match:
        return None
    marker, name = match.group(1), match.group(2).strip()
    if not _valid_name(name):
        return None

    is_dir = marker == "<DIR>"
    return RemoteFileEntry(
        name=name,
        full_path=join_remote_path(current_path, name),
        is_dir=is_dir,
        size_text="-" if is_dir else marker,
        modified_text="",
    )


def parse_listing(text: str, current_path: str) -> List[RemoteFileEntry]:
    entries = []
    for raw in (text or "").splitlines():
        line = raw.strip()
        if not line or line.startswith(NOISE_PREFIXES):
            continue
        entry = parse_unix_line(line, current_path) or parse_windows_line(line, current_path)
        if entry is not None:
            entries.append(entry)
    return sort_entries(entries)


def parse_name_only_listing(text: str, current_path: str) -> List[RemoteFileEntry]:
    """Parse ``curl --list-only`` output: one name per line, "/" suffix marks a directory."""
    entries = []
    for raw in (text or "").splitlines():
        name = raw.strip()
        if not name:
            continue
        is_dir = name.endswith("/")
        if is_dir:
            name = name[:-1]
        if not _valid_name(name):
            continue
        entries.append(RemoteFileEntry(
            name=name,
            full_path=join_remote_path(current_path, name),
            is_dir=is_dir,
            size_text="-",
            modified_text="",
        ))
    return sort_entries(entries)
