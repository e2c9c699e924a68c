"""Recovery engine. Diagnoses and repairs rejected, stuck and failing drafts."""

from pressline.sweeper.diagnosis import Diagnosis, FailureKind, classify, diagnose
from pressline.sweeper.history import RecoveryHistorySummary, summarize_recovery_history
from pressline.sweeper.runner import Category, Sweeper, SweeperAction, SweeperResult, run_sweeper

__all__ = [
    "Category",
    "Diagnosis",
    "FailureKind",
    "RecoveryHistorySummary",
    "Sweeper",
    "SweeperAction",
    "SweeperResult",
    "classify",
    "diagnose",
    "run_sweeper",
    "summarize_recovery_history",
]
