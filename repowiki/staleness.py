"""Compares document and source modification times."""

from __future__ import annotations

import asyncio
import os
from datetime import datetime
from pathlib import Path
from typing import Iterable, List, Optional

from .logging import get_logger
from .models import DEFAULT_DOCS_ROOT, DocRecord, DocStatus, SourceDocMapping, StatusSummary


class StalenessEngine:
    """Classifies each mapping as missing, outdated or up to date."""

    def __init__(self, workspace_root: Path, docs_root: str = DEFAULT_DOCS_ROOT) -> None:
        self.workspace_root = Path(workspace_root)
        self.docs_root = docs_root
        self.logger = get_logger("staleness")

    def doc_file(self, mapping: SourceDocMapping) -> Path:
        return self.workspace_root / self.docs_root / mapping.doc_path

    def source_file(self, mapping: SourceDocMapping) -> Path:
        return self.workspace_root / mapping.source_path

    async def check_status(self, mapping: SourceDocMapping) -> DocRecord:
        doc_mtime, source_mtime = await asyncio.gather(
            _modified_at(self.doc_file(mapping)),
            _modified_at(self.source_file(mapping)),
        )
        if doc_mtime is None:
            status = DocStatus.MISSING
        elif source_mtime is not None and source_mtime > doc_mtime:
            status = DocStatus.OUTDATED
        else:
            # A deleted source leaves its document up to date; regeneration
            # would have nothing to read.
            status = DocStatus.UP_TO_DATE
            if source_mtime is None:
                self.logger.debug(
                    "Source %s for %s no longer exists", mapping.source_path, mapping.doc_path
                )
        return DocRecord(
            mapping=mapping,
            status=status,
            doc_mtime=doc_mtime,
            source_mtime=source_mtime,
        )

    async def check_all(self, mappings: Iterable[SourceDocMapping]) -> List[DocRecord]:
        """Check every mapping concurrently; results keep the input order."""
        return list(await asyncio.gather(*(self.check_status(m) for m in mappings)))

    @staticmethod
    def summarize(records: Iterable[DocRecord]) -> StatusSummary:
        missing = outdated = up_to_date = 0
        for record in records:
            if record.status is DocStatus.MISSING:
                missing += 1
            elif record.status is DocStatus.OUTDATED:
                outdated += 1
            else:
                up_to_date += 1
        return StatusSummary(missing=missing, outdated=outdated, up_to_date=up_to_date)


async def _modified_at(path: Path) -> Optional[datetime]:
    try:
        stat = await asyncio.to_thread(os.stat, path)
    except (FileNotFoundError, NotADirectoryError):
        return None
    return datetime.fromtimestamp(stat.st_mtime)


__all__ = ["StalenessEngine"]
