"""Job-run audit log shared by the selector and the sweeper.

Each invocation records one summary via :meth:`AuditLog.record`.  Same
persistence pattern as :class:`pressline.drafts.store.DraftStore`: held
in memory, optionally written to a JSON file after every record.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from pressline.drafts.models import JobRunRecord

logger = logging.getLogger(__name__)

AUDIT_FILENAME = ".pressline-audit.json"
MAX_RECORDS = 500


class _AuditData(BaseModel):
    records: list[JobRunRecord] = Field(default_factory=list)


class AuditLog:
    """Append-only log of job runs, trimmed to the newest ``MAX_RECORDS``."""

    def __init__(self, output_dir: Path | None = None) -> None:
        self._path = output_dir / AUDIT_FILENAME if output_dir is not None else None
        self._data = self._load()

    def _load(self) -> _AuditData:
        if self._path is None or not self._path.exists():
            return _AuditData()
        try:
            return _AuditData.model_validate(json.loads(self._path.read_text(encoding="utf-8")))
        except (json.JSONDecodeError, ValueError, KeyError):
            logger.warning("Corrupt audit log at %s, starting fresh", self._path)
            return _AuditData()

    def _save(self) -> None:
        if self._path is None:
            return
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(self._data.model_dump_json(indent=2), encoding="utf-8")

    def record(self, job_name: str, status: str, summary: dict[str, Any]) -> JobRunRecord:
        """Append a run summary and persist it."""
        entry = JobRunRecord(job_name=job_name, status=status, summary=summary)
        self._data.records.append(entry)
        if len(self._data.records) > MAX_RECORDS:
            self._data.records = self._data.records[-MAX_RECORDS:]
        self._save()
        logger.debug("Recorded %s run (%s)", job_name, status)
        return entry

    def recent(self, job_name: str | None = None, limit: int = 20) -> list[JobRunRecord]:
        """Return the newest records first, optionally for one job."""
        records = [r for r in self._data.records if job_name is None or r.job_name == job_name]
        return list(reversed(records))[:limit]
