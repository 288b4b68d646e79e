"""Bundle converted payslips into ``payslips.zip`` or save them one by one."""
from __future__ import annotations

import io
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set, Tuple
from zipfile import ZIP_DEFLATED, ZipFile

from . import config
from .error_codes import ArchiveAssemblyError, ErrorCode
from .logging_utils import _payslips_event
from .pipeline import ConversionResult

COLLISION_POLICIES = ("rename", "error")


class FilenameAllocator:
    """Hand out unique archive/file names.

    Names compare case-insensitively so the archive also extracts cleanly
    on case-insensitive filesystems.
    """

    def __init__(self, on_collision: Optional[str] = None) -> None:
        policy = (on_collision or config.FILENAME_COLLISION_POLICY).strip().lower()
        if policy not in COLLISION_POLICIES:
            raise ValueError(f"Unknown collision policy {policy!r}")
        self.on_collision = policy
        self._taken: Set[str] = set()

    def allocate(self, filename: str) -> str:
        if filename.casefold() not in self._taken:
            self._taken.add(filename.casefold())
            return filename

        if self.on_collision == "error":
            raise ArchiveAssemblyError(
                f"Two documents share the filename {filename!r}",
                error_code=ErrorCode.FILENAME_COLLISION,
            )

        stem, dot, suffix = filename.rpartition(".")
        if not dot:
            stem, suffix = filename, ""
        counter = 2
        while True:
            candidate = f"{stem} ({counter}){dot}{suffix}"
            if candidate.casefold() not in self._taken:
                break
            counter += 1
        self._taken.add(candidate.casefold())
        _payslips_event("archive", step="rename_duplicate", original=filename, renamed=candidate)
        return candidate


@dataclass
class ArchiveBuild:
    data: bytes
    entries: Dict[str, bytes] = field(default_factory=dict)
    discarded: int = 0


def assign_filenames(
    results: Iterable[ConversionResult], *, on_collision: Optional[str] = None
) -> List[Tuple[str, ConversionResult]]:
    """Pair each successful result with a unique filename, in input order."""

    allocator = FilenameAllocator(on_collision)
    return [
        (allocator.allocate(result.descriptor.filename), result)
        for result in results
        if result.ok
    ]


def build_archive(
    results: Iterable[ConversionResult], *, on_collision: Optional[str] = None
) -> ArchiveBuild:
    """Serialise every successful artifact into an in-memory ZIP."""

    results = list(results)
    named = assign_filenames(results, on_collision=on_collision)
    entries = {name: result.artifact for name, result in named}

    buffer = io.BytesIO()
    try:
        with ZipFile(buffer, "w", ZIP_DEFLATED) as archive:
            for name, data in entries.items():
                archive.writestr(name, data)
    except (OSError, ValueError) as exc:
        raise ArchiveAssemblyError(f"Failed to build archive: {exc}") from exc

    build = ArchiveBuild(data=buffer.getvalue(), entries=entries, discarded=len(results) - len(named))
    _payslips_event(
        "archive",
        step="built",
        entries=len(entries),
        discarded=build.discarded,
        bytes=len(build.data),
    )
    return build


def _write_atomically(target: Path, data: bytes) -> None:
    """Write via a temporary sibling that is removed on every exit path."""

    target.parent.mkdir(parents=True, exist_ok=True)
    handle = tempfile.NamedTemporaryFile(
        dir=target.parent, prefix=f".{target.name}.", suffix=".part", delete=False
    )
    tmp_path = Path(handle.name)
    try:
        with handle:
            handle.write(data)
        os.replace(tmp_path, target)
    finally:
        tmp_path.unlink(missing_ok=True)


def save_archive(
    build: ArchiveBuild,
    output_dir: Optional[Path] = None,
    name: Optional[str] = None,
) -> Path:
    """Write ``build`` to ``output_dir/name`` and return the path."""

    target = Path(output_dir or config.OUTPUT_DIR) / (name or config.ARCHIVE_NAME)
    try:
        _write_atomically(target, build.data)
    except OSError as exc:
        raise ArchiveAssemblyError(f"Failed to save archive {target}: {exc}") from exc
    _payslips_event("archive", step="saved", path=str(target), entries=len(build.entries))
    return target


class PerFileSaver:
    """Save each artifact as soon as its conversion settles (no archive)."""

    def __init__(self, output_dir: Optional[Path] = None, *, on_collision: Optional[str] = None) -> None:
        self.output_dir = Path(output_dir or config.OUTPUT_DIR)
        self._allocator = FilenameAllocator(on_collision)
        self.saved: List[Path] = []

    def __call__(self, result: ConversionResult) -> None:
        if not result.ok:
            return
        target = self.output_dir / self._allocator.allocate(result.descriptor.filename)
        try:
            _write_atomically(target, result.artifact)
        except OSError as exc:
            raise ArchiveAssemblyError(f"Failed to save {target}: {exc}") from exc
        self.saved.append(target)
        _payslips_event("archive", step="saved_file", path=str(target), bytes=len(result.artifact))


__all__ = [
    "COLLISION_POLICIES",
    "FilenameAllocator",
    "ArchiveBuild",
    "assign_filenames",
    "build_archive",
    "save_archive",
    "PerFileSaver",
]
