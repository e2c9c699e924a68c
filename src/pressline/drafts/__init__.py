"""Draft domain: models, phase state machine and repository."""

from pressline.drafts.models import (
    Draft,
    JobRunRecord,
    Locale,
    Phase,
    PublishedPost,
    RecoveryLogEntry,
    RecoveryOutcome,
    RecoverySource,
)
from pressline.drafts.store import DraftQuery, DraftRepository, DraftStore

__all__ = [
    "Draft",
    "DraftQuery",
    "DraftRepository",
    "DraftStore",
    "JobRunRecord",
    "Locale",
    "Phase",
    "PublishedPost",
    "RecoveryLogEntry",
    "RecoveryOutcome",
    "RecoverySource",
]
