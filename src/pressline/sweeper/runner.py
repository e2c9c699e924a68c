"""Sweeper: automatic recovery for rejected, stuck and failing drafts.

Callable directly from the scheduler or an operator's "fix now" action.
Four scans run in order and share one per-run action cap:

- ``rejected``: recently rejected drafts whose reason is retryable are
  reset to the diagnosed phase;
- ``stuck``: active drafts untouched past the stuck threshold get their
  phase timer reset, phase unchanged;
- ``failing``: active drafts at the attempt ceiling that are not yet
  rejected are diagnosed and reset like rejected ones;
- ``frozen``: reservoir drafts whose enhancement attempts hit the
  ceiling and have been stale for much longer get their counter reset.

Drafts recovered within the de-duplication window are skipped.  The
window is checked against a recovery token stamped on the draft and
against the recovery log, since there is no row locking between
overlapping runs.
"""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Callable
from datetime import datetime, timedelta
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field

from pressline.audit import AuditLog
from pressline.config import PresslineConfig
from pressline.drafts.models import (
    Draft,
    Phase,
    RecoveryLogEntry,
    RecoveryOutcome,
    RecoverySource,
    utcnow,
)
from pressline.drafts.phases import ACTIVE_PHASES, transition_changes
from pressline.drafts.store import DraftQuery, DraftRepository
from pressline.errors import PipelineReport
from pressline.sweeper.diagnosis import Diagnosis, diagnose

logger = logging.getLogger(__name__)

JOB_NAME = "sweeper"


class Category(StrEnum):
    REJECTED = "rejected"
    STUCK = "stuck"
    FAILING = "failing"
    FROZEN = "frozen"


class SweeperAction(BaseModel):
    draft_id: str
    keyword: str
    locale: str
    category: str
    problem: str
    diagnosis: str
    fix: str
    previous_phase: Phase
    new_phase: Phase


class SweeperResult(BaseModel):
    success: bool
    message: str = ""
    recovered_count: int = 0
    skipped_count: int = 0
    actions: list[SweeperAction] = Field(default_factory=list)
    categories: dict[str, int] = Field(default_factory=dict)
    scanned: dict[str, int] = Field(default_factory=dict)
    duration_ms: int = 0


class _Plan(BaseModel):
    """A repair decided for one draft, before it is applied."""

    category: str
    problem: str
    diagnosis: str
    fix: str
    new_phase: Phase
    changes: dict[str, Any]


class Sweeper:
    """One sweep over the draft population."""

    def __init__(
        self,
        repository: DraftRepository,
        config: PresslineConfig | None = None,
        *,
        audit: AuditLog | None = None,
        report: PipelineReport | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.repository = repository
        self.config = config or PresslineConfig()
        self.audit = audit if audit is not None else AuditLog()
        self.report = report or PipelineReport()
        self._clock = clock
        self._actions: list[SweeperAction] = []
        self._skipped = 0
        self._scanned: dict[str, int] = {}

    @property
    def _cap_reached(self) -> bool:
        return len(self._actions) >= self.config.sweeper.max_recoveries_per_run

    # -- Entry point -----------------------------------------------------------

    def run(self) -> SweeperResult:
        """Run all scans.  Never raises; failures return ``success=False``."""
        start = time.monotonic()
        self._actions, self._skipped, self._scanned = [], 0, {}
        try:
            now = self._clock()
            scans = [
                (Category.REJECTED, self._find_rejected, self._plan_rejected),
                (Category.STUCK, self._find_stuck, self._plan_stuck),
                (Category.FAILING, self._find_failing, self._plan_failing),
                (Category.FROZEN, self._find_frozen, self._plan_frozen),
            ]
            for category, find, plan in scans:
                if self._cap_reached:
                    break
                self._sweep(category, find, plan, now)
        except Exception as exc:
            logger.exception("Sweeper failed")
            result = self._result(False, str(exc) or exc.__class__.__name__, start)
            self._record_run("failed", result)
            return result

        if self._actions:
            message = f"Recovered {len(self._actions)} draft(s), skipped {self._skipped}"
        else:
            checked = ", ".join(f"{self._scanned.get(c, 0)} {c}" for c in Category)
            message = f"No recoverable failures found (checked {checked})"
        result = self._result(True, message, start)
        self._record_run("completed", result)
        return result

    def _sweep(
        self,
        category: str,
        find: Callable[[datetime], list[Draft]],
        plan: Callable[[Draft, datetime], _Plan | None],
        now: datetime,
    ) -> None:
        try:
            drafts = find(now)
        except Exception:
            logger.warning("Sweeper scan %r failed (non-fatal)", category, exc_info=True)
            self.report.add_error("sweeper", category, error_type="scan_error")
            drafts = []
        self._scanned[category] = len(drafts)

        for draft in drafts:
            if self._cap_reached:
                break
            if self._recently_recovered(draft, now):
                logger.info("Draft %s was recovered recently, skipping", draft.id)
                self._skipped += 1
                continue
            repair = plan(draft, now)
            if repair is None:
                self._skipped += 1
                continue
            self._apply(draft, repair, now)

    # -- Scans -----------------------------------------------------------------

    def _find_rejected(self, now: datetime) -> list[Draft]:
        cfg = self.config.sweeper
        return self.repository.find_drafts(
            DraftQuery(
                phases=[Phase.REJECTED],
                has_rejection_reason=True,
                completed_after=now - timedelta(hours=cfg.rejected_lookback_hours),
                order_by=[("completed_at", True)],
                limit=cfg.max_recoveries_per_run * 2,
            )
        )

    def _find_stuck(self, now: datetime) -> list[Draft]:
        cfg = self.config.sweeper
        return self.repository.find_drafts(
            DraftQuery(
                phases=list(ACTIVE_PHASES),
                updated_before=now - timedelta(minutes=cfg.stuck_threshold_minutes),
                max_attempts=cfg.max_phase_attempts,
                order_by=[("updated_at", False)],
                limit=cfg.max_recoveries_per_run,
            )
        )

    def _find_failing(self, now: datetime) -> list[Draft]:
        cfg = self.config.sweeper
        return self.repository.find_drafts(
            DraftQuery(
                phases=list(ACTIVE_PHASES),
                min_attempts=cfg.max_phase_attempts,
                order_by=[("updated_at", False)],
                limit=cfg.max_recoveries_per_run,
            )
        )

    def _find_frozen(self, now: datetime) -> list[Draft]:
        cfg = self.config.sweeper
        return self.repository.find_drafts(
            DraftQuery(
                phases=[Phase.RESERVOIR],
                min_attempts=cfg.max_phase_attempts,
                updated_before=now - timedelta(hours=cfg.frozen_threshold_hours),
                order_by=[("updated_at", False)],
                limit=cfg.max_recoveries_per_run,
            )
        )

    # -- Planning --------------------------------------------------------------

    def _plan_reset(
        self, draft: Draft, diagnosis: Diagnosis, category: str, problem: str, now: datetime
    ) -> _Plan | None:
        if not diagnosis.retryable:
            logger.info(
                "Draft %s not retryable (%s): %s", draft.id, diagnosis.kind, diagnosis.fix_description
            )
            return None
        changes = transition_changes(draft, diagnosis.resume_phase, now)
        changes.update(last_error=None, rejection_reason=None, completed_at=None)
        return _Plan(
            category=category,
            problem=problem,
            diagnosis=f"{diagnosis.kind}: {diagnosis.explanation}",
            fix=diagnosis.fix_description,
            new_phase=diagnosis.resume_phase,
            changes=changes,
        )

    def _plan_rejected(self, draft: Draft, now: datetime) -> _Plan | None:
        reason = draft.rejection_reason or ""
        return self._plan_reset(draft, diagnose(reason), Category.REJECTED, reason[:150], now)

    def _plan_stuck(self, draft: Draft, now: datetime) -> _Plan | None:
        minutes = int((now - draft.updated_at).total_seconds() // 60)
        return _Plan(
            category=Category.STUCK,
            problem=f'Stuck in "{draft.phase}" for {minutes} min with no progress',
            diagnosis="Draft appears abandoned by the authoring process. Timer reset.",
            fix="Reset phase timer; the authoring process picks it up on its next run",
            new_phase=draft.phase,
            changes={"phase_started_at": now, "updated_at": now, "last_error": None},
        )

    def _plan_failing(self, draft: Draft, now: datetime) -> _Plan | None:
        error = draft.last_error or f'Phase "{draft.phase}" failed {draft.phase_attempts} times'
        problem = f'Failed {draft.phase_attempts}x at "{draft.phase}": {error[:100]}'
        return self._plan_reset(draft, diagnose(error), Category.FAILING, problem, now)

    def _plan_frozen(self, draft: Draft, now: datetime) -> _Plan | None:
        hours = int((now - draft.updated_at).total_seconds() // 3600)
        return _Plan(
            category=Category.FROZEN,
            problem=(
                f"Reservoir draft at {draft.phase_attempts} enhancement attempts, "
                f"untouched for {hours}h"
            ),
            diagnosis="Enhancement attempts exhausted. Counter reset for another try.",
            fix="Reset enhancement attempt counter; phase stays reservoir",
            new_phase=Phase.RESERVOIR,
            changes={"phase_attempts": 0, "updated_at": now},
        )

    # -- Applying --------------------------------------------------------------

    def _recently_recovered(self, draft: Draft, now: datetime) -> bool:
        if draft.has_live_recovery_token(now):
            return True
        window = timedelta(minutes=self.config.sweeper.dedup_window_minutes)
        try:
            prior = self.repository.count_recovery_entries(
                draft.id,
                since=now - window,
                source=RecoverySource.SWEEPER,
                outcome=RecoveryOutcome.RECOVERED,
            )
        except Exception:
            logger.warning("Recovery log lookup failed for %s", draft.id, exc_info=True)
            return False
        return prior > 0

    def _apply(self, draft: Draft, plan: _Plan, now: datetime) -> None:
        window = timedelta(minutes=self.config.sweeper.dedup_window_minutes)
        changes = {
            **plan.changes,
            "recovery_token": uuid.uuid4().hex,
            "recovery_token_expires_at": now + window,
        }
        try:
            self.repository.update_draft(draft.id, **changes)
        except Exception as exc:
            logger.error("Failed to recover draft %s: %s", draft.id, exc)
            self.report.add_error(
                "sweeper", draft.id, source=plan.category, error_type="recovery_error",
                message=str(exc),
            )
            self._skipped += 1
            self._log_entry(draft, plan, RecoveryOutcome.FAILED, now)
            return

        self._actions.append(
            SweeperAction(
                draft_id=draft.id,
                keyword=draft.keyword or "unknown",
                locale=str(draft.locale),
                category=plan.category,
                problem=plan.problem,
                diagnosis=plan.diagnosis,
                fix=plan.fix,
                previous_phase=draft.phase,
                new_phase=plan.new_phase,
            )
        )
        self._log_entry(draft, plan, RecoveryOutcome.RECOVERED, now)
        logger.info(
            "Recovered draft %s (%s %s) [%s]: %s",
            draft.id, draft.keyword, draft.locale, plan.category, plan.fix,
        )

    def _log_entry(self, draft: Draft, plan: _Plan, outcome: RecoveryOutcome, now: datetime) -> None:
        try:
            self.repository.add_recovery_entry(
                RecoveryLogEntry(
                    source=RecoverySource.SWEEPER,
                    draft_id=draft.id,
                    category=plan.category,
                    problem=plan.problem,
                    diagnosis=plan.diagnosis,
                    fix=plan.fix,
                    outcome=outcome,
                    previous_phase=draft.phase,
                    new_phase=plan.new_phase if outcome == RecoveryOutcome.RECOVERED else draft.phase,
                    created_at=now,
                )
            )
        except Exception:
            logger.warning("Could not write recovery log entry for %s", draft.id, exc_info=True)

    # -- Reporting -------------------------------------------------------------

    def _result(self, success: bool, message: str, start: float) -> SweeperResult:
        categories = {c.value: 0 for c in Category}
        for action in self._actions:
            categories[action.category] += 1
        return SweeperResult(
            success=success,
            message=message,
            recovered_count=len(self._actions),
            skipped_count=self._skipped,
            actions=list(self._actions),
            categories=categories,
            scanned=dict(self._scanned),
            duration_ms=int((time.monotonic() - start) * 1000),
        )

    def _record_run(self, status: str, result: SweeperResult) -> None:
        try:
            self.audit.record(
                JOB_NAME,
                status,
                {
                    "message": result.message,
                    "recovered": result.recovered_count,
                    "skipped": result.skipped_count,
                    "categories": result.categories,
                    "scanned": result.scanned,
                    "actions": [f"{a.keyword} ({a.locale}): {a.fix}" for a in result.actions],
                    "duration_ms": result.duration_ms,
                },
            )
        except Exception:
            logger.warning("Failed to record %s run", JOB_NAME, exc_info=True)


def run_sweeper(
    repository: DraftRepository,
    config: PresslineConfig | None = None,
    *,
    audit: AuditLog | None = None,
    report: PipelineReport | None = None,
) -> SweeperResult:
    """Run one sweep.  Never raises."""
    return Sweeper(repository, config, audit=audit, report=report).run()
