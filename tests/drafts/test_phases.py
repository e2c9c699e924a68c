"""Tests for the draft phase state machine."""

from datetime import UTC, datetime, timedelta

import pytest
from pressline.drafts.models import Draft, Phase
from pressline.drafts.phases import (
    ACTIVE_PHASES,
    ALLOWED_TRANSITIONS,
    PIPELINE_PHASES,
    at_attempt_ceiling,
    can_transition,
    ensure_transition,
    is_stuck,
    next_phase,
    phase_from_text,
    transition_changes,
)
from pressline.errors import PhaseTransitionError

NOW = datetime(2026, 3, 14, 12, 0, tzinfo=UTC)


def _draft(phase: Phase = Phase.DRAFTING, **kwargs: object) -> Draft:
    return Draft(site_id="s", keyword="k", phase=phase, **kwargs)  # type: ignore[arg-type]


class TestTransitions:
    def test_every_phase_has_an_entry(self):
        assert set(ALLOWED_TRANSITIONS) == set(Phase)

    def test_forward_one_step(self):
        for current, following in zip(PIPELINE_PHASES, PIPELINE_PHASES[1:]):
            assert can_transition(current, following)

    def test_active_phases_can_be_rejected(self):
        for phase in ACTIVE_PHASES:
            assert can_transition(phase, Phase.REJECTED)

    def test_reservoir_cannot_be_rejected(self):
        assert not can_transition(Phase.RESERVOIR, Phase.REJECTED)

    def test_reservoir_to_published(self):
        assert can_transition(Phase.RESERVOIR, Phase.PUBLISHED)

    def test_early_phases_cannot_publish(self):
        for phase in (Phase.RESEARCH, Phase.OUTLINE, Phase.DRAFTING, Phase.ASSEMBLY):
            assert not can_transition(phase, Phase.PUBLISHED)

    def test_rejected_resets_to_any_active_phase(self):
        for phase in ACTIVE_PHASES:
            assert can_transition(Phase.REJECTED, phase)
        assert not can_transition(Phase.REJECTED, Phase.RESERVOIR)
        assert not can_transition(Phase.REJECTED, Phase.PUBLISHED)

    def test_published_is_final(self):
        assert ALLOWED_TRANSITIONS[Phase.PUBLISHED] == frozenset()

    def test_reenter_same_active_phase(self):
        assert can_transition(Phase.OUTLINE, Phase.OUTLINE)

    def test_ensure_transition_raises(self):
        with pytest.raises(PhaseTransitionError, match="published -> research"):
            ensure_transition(Phase.PUBLISHED, Phase.RESEARCH)


class TestNextPhase:
    def test_research_to_outline(self):
        assert next_phase(Phase.RESEARCH) == Phase.OUTLINE

    def test_scoring_to_reservoir(self):
        assert next_phase(Phase.SCORING) == Phase.RESERVOIR

    def test_end_of_pipeline(self):
        assert next_phase(Phase.RESERVOIR) is None
        assert next_phase(Phase.REJECTED) is None


class TestPhaseFromText:
    def test_quoted_phase(self):
        assert phase_from_text('Phase "drafting" failed 3 times') == Phase.DRAFTING

    def test_phase_word_form(self):
        assert phase_from_text("JSON parse error in phase outline") == Phase.OUTLINE

    def test_case_insensitive(self):
        assert phase_from_text('Error in "SEO"') == Phase.SEO

    def test_default(self):
        assert phase_from_text("something broke") == Phase.OUTLINE
        assert phase_from_text("", Phase.RESEARCH) == Phase.RESEARCH

    def test_bare_word_is_not_enough(self):
        assert phase_from_text("the images were blurry") == Phase.OUTLINE


class TestStuckAndCeiling:
    def test_stuck_when_untouched(self):
        draft = _draft(updated_at=NOW - timedelta(minutes=90))
        assert is_stuck(draft, NOW, timedelta(minutes=60))

    def test_not_stuck_when_recent(self):
        draft = _draft(updated_at=NOW - timedelta(minutes=30))
        assert not is_stuck(draft, NOW, timedelta(minutes=60))

    def test_reservoir_is_never_stuck(self):
        draft = _draft(Phase.RESERVOIR, updated_at=NOW - timedelta(days=3))
        assert not is_stuck(draft, NOW, timedelta(minutes=60))

    def test_ceiling(self):
        assert at_attempt_ceiling(_draft(phase_attempts=3))
        assert not at_attempt_ceiling(_draft(phase_attempts=2))


class TestTransitionChanges:
    def test_resets_attempts_and_timer(self):
        draft = _draft(Phase.REJECTED, phase_attempts=3)
        changes = transition_changes(draft, Phase.OUTLINE, NOW)
        assert changes == {
            "phase": Phase.OUTLINE,
            "phase_attempts": 0,
            "phase_started_at": NOW,
            "updated_at": NOW,
        }

    def test_rejects_illegal_move(self):
        with pytest.raises(PhaseTransitionError):
            transition_changes(_draft(Phase.PUBLISHED), Phase.OUTLINE, NOW)
