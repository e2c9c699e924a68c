"""Recovery-log summaries for the operator dashboard."""

from __future__ import annotations

from collections import Counter
from datetime import datetime

from pydantic import BaseModel, Field

from pressline.drafts.models import RecoveryLogEntry, RecoveryOutcome
from pressline.drafts.store import DraftRepository


class RecoveryHistorySummary(BaseModel):
    since: datetime
    total: int = 0
    recovered: int = 0
    failed: int = 0
    by_category: dict[str, int] = Field(default_factory=dict)
    by_source: dict[str, int] = Field(default_factory=dict)
    repeat_drafts: list[str] = Field(default_factory=list)
    recent: list[RecoveryLogEntry] = Field(default_factory=list)


def summarize_recovery_history(
    repository: DraftRepository,
    since: datetime,
    recent_limit: int = 10,
) -> RecoveryHistorySummary:
    """Aggregate recovery log entries written at or after ``since``.

    ``repeat_drafts`` lists drafts recovered more than once in the window,
    which usually means the underlying failure is not transient.
    """
    entries = repository.list_recovery_entries(since=since)
    outcomes = Counter(e.outcome for e in entries)
    recovered_per_draft = Counter(
        e.draft_id for e in entries if e.outcome == RecoveryOutcome.RECOVERED
    )
    return RecoveryHistorySummary(
        since=since,
        total=len(entries),
        recovered=outcomes.get(RecoveryOutcome.RECOVERED, 0),
        failed=outcomes.get(RecoveryOutcome.FAILED, 0),
        by_category=dict(Counter(e.category for e in entries)),
        by_source=dict(Counter(str(e.source) for e in entries)),
        repeat_drafts=sorted(d for d, n in recovered_per_draft.items() if n > 1),
        recent=entries[:recent_limit],
    )
