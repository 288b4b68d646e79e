from __future__ import annotations

import io
import zipfile
from pathlib import Path
from typing import List

import pytest

from app.payslips import archive, config
from app.payslips.archive import (
    FilenameAllocator,
    PerFileSaver,
    assign_filenames,
    build_archive,
    save_archive,
)
from app.payslips.error_codes import ArchiveAssemblyError, ConversionError, ErrorCode
from app.payslips.extractor import DocumentDescriptor
from app.payslips.pipeline import ConversionResult


def _ok(label: str, data: bytes = b"%PDF-1.7 body") -> ConversionResult:
    return ConversionResult(DocumentDescriptor(f"https://payroll.example.com/{label}", label), artifact=data)


def _failed(label: str) -> ConversionResult:
    return ConversionResult(
        DocumentDescriptor(f"https://payroll.example.com/{label}", label),
        error=ConversionError(ErrorCode.HTTP_5XX, "server error", http_status=502),
    )


def _zip_entries(data: bytes) -> dict:
    with zipfile.ZipFile(io.BytesIO(data)) as bundle:
        return {name: bundle.read(name) for name in bundle.namelist()}


def test_archive_holds_each_artifact_unchanged() -> None:
    build = build_archive([_ok("2024-01-15", b"%PDF-a"), _ok("2024-01-31", b"%PDF-b")])

    assert _zip_entries(build.data) == {"2024-01-15.pdf": b"%PDF-a", "2024-01-31.pdf": b"%PDF-b"}
    assert build.discarded == 0


def test_failed_and_dry_run_results_are_left_out() -> None:
    dry = ConversionResult(DocumentDescriptor("https://payroll.example.com/d", "dry"), dry_run=True)

    build = build_archive([_ok("a"), _failed("b"), dry, _ok("c")])

    assert sorted(_zip_entries(build.data)) == ["a.pdf", "c.pdf"]
    assert build.discarded == 2


def test_empty_input_builds_empty_archive() -> None:
    build = build_archive([])

    assert _zip_entries(build.data) == {}


def test_duplicate_labels_are_renamed() -> None:
    named = assign_filenames([_ok("2024-01-31"), _ok("2024-01-31"), _ok("2024-01-31")])

    assert [name for name, _ in named] == [
        "2024-01-31.pdf",
        "2024-01-31 (2).pdf",
        "2024-01-31 (3).pdf",
    ]


def test_duplicates_compare_case_insensitively() -> None:
    allocator = FilenameAllocator("rename")

    assert allocator.allocate("Slip.pdf") == "Slip.pdf"
    assert allocator.allocate("slip.PDF") == "slip (2).PDF"


def test_duplicate_labels_can_be_rejected() -> None:
    with pytest.raises(ArchiveAssemblyError) as excinfo:
        build_archive([_ok("2024-01-31"), _ok("2024-01-31")], on_collision="error")

    assert excinfo.value.error_code == ErrorCode.FILENAME_COLLISION


def test_unknown_collision_policy_is_rejected() -> None:
    with pytest.raises(ValueError):
        FilenameAllocator("overwrite")


def test_save_archive_writes_to_output_dir() -> None:
    build = build_archive([_ok("a")])

    target = save_archive(build)

    assert target == Path(config.OUTPUT_DIR) / "payslips.zip"
    assert target.read_bytes() == build.data
    assert list(target.parent.glob("*.part")) == []


def test_save_failure_raises_and_leaves_no_temp_file(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    def _boom(*_args, **_kwargs):  # noqa: ANN001
        raise OSError("disk full")

    out = tmp_path / "out"
    monkeypatch.setattr(archive.os, "replace", _boom)

    with pytest.raises(ArchiveAssemblyError):
        save_archive(build_archive([_ok("a")]), output_dir=out)

    assert list(out.iterdir()) == []


def test_per_file_saver_writes_successes_only(tmp_path: Path) -> None:
    out = tmp_path / "out"
    saver = PerFileSaver(out)

    for result in [_ok("2024-01-31", b"%PDF-1"), _failed("2024-02-28"), _ok("2024-01-31", b"%PDF-2")]:
        saver(result)

    names: List[str] = sorted(path.name for path in out.iterdir())
    assert names == ["2024-01-31 (2).pdf", "2024-01-31.pdf"]
    assert (out / "2024-01-31.pdf").read_bytes() == b"%PDF-1"
    assert len(saver.saved) == 2
