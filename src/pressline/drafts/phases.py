"""Phase state machine shared by the content selector and the sweeper.

The authoring stages advance a draft one phase at a time and reject it
after repeated failures.  The selector only promotes ``reservoir`` drafts
and the sweeper only moves drafts back into active phases; both go
through :func:`transition_changes` so the attempt counter is reset on
every phase change they make.
"""

from __future__ import annotations

import re
from datetime import datetime, timedelta
from typing import Any

from pressline.drafts.models import Draft, Phase
from pressline.errors import PhaseTransitionError

MAX_PHASE_ATTEMPTS = 3
DEFAULT_RESUME_PHASE = Phase.OUTLINE

PIPELINE_PHASES: tuple[Phase, ...] = (
    Phase.RESEARCH,
    Phase.OUTLINE,
    Phase.DRAFTING,
    Phase.ASSEMBLY,
    Phase.IMAGES,
    Phase.SEO,
    Phase.SCORING,
    Phase.RESERVOIR,
)
ACTIVE_PHASES: tuple[Phase, ...] = PIPELINE_PHASES[:-1]
TERMINAL_PHASES: frozenset[Phase] = frozenset({Phase.PUBLISHED, Phase.REJECTED})
# Phases after assembly; a sibling here already has content and can be
# published alongside its promoted pair.
CONTENT_READY_PHASES: frozenset[Phase] = frozenset(
    {Phase.IMAGES, Phase.SEO, Phase.SCORING, Phase.RESERVOIR}
)


def _build_transitions() -> dict[Phase, frozenset[Phase]]:
    table: dict[Phase, frozenset[Phase]] = {}
    for idx, phase in enumerate(ACTIVE_PHASES):
        forward = PIPELINE_PHASES[idx + 1]
        allowed = {forward, Phase.REJECTED, *ACTIVE_PHASES}
        if phase in CONTENT_READY_PHASES:
            allowed.add(Phase.PUBLISHED)
        table[phase] = frozenset(allowed)
    table[Phase.RESERVOIR] = frozenset({Phase.PUBLISHED, *ACTIVE_PHASES})
    table[Phase.REJECTED] = frozenset(ACTIVE_PHASES)
    table[Phase.PUBLISHED] = frozenset()
    return table


ALLOWED_TRANSITIONS: dict[Phase, frozenset[Phase]] = _build_transitions()


def can_transition(source: Phase, target: Phase) -> bool:
    return target in ALLOWED_TRANSITIONS[source]


def ensure_transition(source: Phase, target: Phase) -> None:
    """Raise PhaseTransitionError unless ``source -> target`` is allowed.

    Re-entering the same active phase is allowed; it is how the sweeper
    restarts a phase from scratch.
    """
    if not can_transition(source, target):
        raise PhaseTransitionError(source.value, target.value)


def next_phase(phase: Phase) -> Phase | None:
    """Return the phase after ``phase`` in pipeline order, or None at the end."""
    if phase not in PIPELINE_PHASES:
        return None
    idx = PIPELINE_PHASES.index(phase)
    if idx + 1 >= len(PIPELINE_PHASES):
        return None
    return PIPELINE_PHASES[idx + 1]


def phase_from_text(text: str, default: Phase = DEFAULT_RESUME_PHASE) -> Phase:
    """Find the active phase named in an error message.

    Matches a quoted phase name (``"outline"``) or the ``phase "outline"``
    form the authoring stages write, case-insensitively.  Falls back to
    ``default``.
    """
    lower = (text or "").lower()
    for phase in ACTIVE_PHASES:
        if f'"{phase.value}"' in lower:
            return phase
        if re.search(rf"\bphase\s+{phase.value}\b", lower):
            return phase
    return default


def is_stuck(draft: Draft, now: datetime, threshold: timedelta) -> bool:
    """True when an active-phase draft has not been touched within ``threshold``."""
    return draft.phase in ACTIVE_PHASES and draft.updated_at < now - threshold


def at_attempt_ceiling(draft: Draft, ceiling: int = MAX_PHASE_ATTEMPTS) -> bool:
    return draft.phase_attempts >= ceiling


def transition_changes(draft: Draft, target: Phase, now: datetime) -> dict[str, Any]:
    """Validate a phase change and return the fields it must write."""
    ensure_transition(draft.phase, target)
    return {
        "phase": target,
        "phase_attempts": 0,
        "phase_started_at": now,
        "updated_at": now,
    }
