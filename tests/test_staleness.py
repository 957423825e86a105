"""Tests for document staleness checks."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from repowiki.models import DocStatus, SourceDocMapping
from repowiki.staleness import StalenessEngine

APP = SourceDocMapping("src/app.py", "zh/content/app.md", "App")
UTIL = SourceDocMapping("src/util.py", "zh/content/util.md", "Util")


def _write_doc(workspace: Path, mapping: SourceDocMapping, mtime: float) -> Path:
    path = workspace / "repowiki" / mapping.doc_path
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("# Doc\n", encoding="utf-8")
    os.utime(path, (mtime, mtime))
    return path


def _touch(path: Path, mtime: float) -> None:
    os.utime(path, (mtime, mtime))


@pytest.mark.asyncio
async def test_missing_document(workspace: Path) -> None:
    record = await StalenessEngine(workspace).check_status(APP)

    assert record.status is DocStatus.MISSING
    assert record.doc_mtime is None
    assert record.source_mtime is not None


@pytest.mark.asyncio
async def test_newer_source_makes_document_outdated(workspace: Path) -> None:
    _write_doc(workspace, APP, 1_000_000)
    _touch(workspace / APP.source_path, 2_000_000)

    record = await StalenessEngine(workspace).check_status(APP)

    assert record.status is DocStatus.OUTDATED


@pytest.mark.asyncio
async def test_equal_timestamps_are_up_to_date(workspace: Path) -> None:
    _write_doc(workspace, APP, 1_500_000)
    _touch(workspace / APP.source_path, 1_500_000)

    record = await StalenessEngine(workspace).check_status(APP)

    assert record.status is DocStatus.UP_TO_DATE


@pytest.mark.asyncio
async def test_deleted_source_leaves_document_up_to_date(workspace: Path) -> None:
    _write_doc(workspace, APP, 1_000_000)
    (workspace / APP.source_path).unlink()

    record = await StalenessEngine(workspace).check_status(APP)

    assert record.status is DocStatus.UP_TO_DATE
    assert record.source_mtime is None


@pytest.mark.asyncio
async def test_source_below_a_file_counts_as_absent(workspace: Path) -> None:
    # src/app.py is a regular file, so stat on a child path fails with ENOTDIR.
    nested = SourceDocMapping("src/app.py/inner.py", "app.md", "App")
    _write_doc(workspace, nested, 1_000_000)

    record = await StalenessEngine(workspace).check_status(nested)

    assert record.status is DocStatus.UP_TO_DATE
    assert record.source_mtime is None


@pytest.mark.asyncio
async def test_check_all_preserves_order_and_summarizes(workspace: Path) -> None:
    _write_doc(workspace, UTIL, 2_000_000)
    _touch(workspace / UTIL.source_path, 1_000_000)
    engine = StalenessEngine(workspace)

    records = await engine.check_all([UTIL, APP, UTIL])
    summary = engine.summarize(records)

    assert [record.mapping for record in records] == [UTIL, APP, UTIL]
    assert [record.status for record in records] == [
        DocStatus.UP_TO_DATE,
        DocStatus.MISSING,
        DocStatus.UP_TO_DATE,
    ]
    assert (summary.missing, summary.outdated, summary.up_to_date) == (1, 0, 2)
    assert summary.total == 3


@pytest.mark.asyncio
async def test_custom_docs_root(workspace: Path) -> None:
    path = workspace / "wiki" / APP.doc_path
    path.parent.mkdir(parents=True)
    path.write_text("# Doc\n", encoding="utf-8")
    os.utime(path, (3_000_000, 3_000_000))
    _touch(workspace / APP.source_path, 1_000_000)

    record = await StalenessEngine(workspace, "wiki").check_status(APP)

    assert record.status is DocStatus.UP_TO_DATE
