"""Failure diagnosis for stored draft errors.

:func:`diagnose` is pure: the same error text always yields the same
:class:`Diagnosis`.  Rules are checked in order and the first whose
keywords appear (case-insensitively) in the text wins.
"""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict

from pressline.drafts.models import Phase
from pressline.drafts.phases import DEFAULT_RESUME_PHASE, phase_from_text


class FailureKind(StrEnum):
    JSON_PARSE = "json_parse"
    TIMEOUT = "timeout"
    RATE_LIMIT = "rate_limit"
    AUTH = "auth"
    NETWORK = "network"
    QUALITY_REJECTION = "quality_rejection"
    UNKNOWN = "unknown"


class Diagnosis(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: FailureKind
    retryable: bool
    resume_phase: Phase
    explanation: str
    fix_description: str


class _Rule(BaseModel):
    kind: FailureKind
    keywords: tuple[str, ...]
    retryable: bool
    explanation: str


RULES: tuple[_Rule, ...] = (
    _Rule(
        kind=FailureKind.JSON_PARSE,
        keywords=("json", "unterminated string", "unexpected token", "unexpected end"),
        retryable=True,
        explanation="The AI provider returned malformed JSON. This is intermittent; a retry usually succeeds.",
    ),
    _Rule(
        kind=FailureKind.TIMEOUT,
        keywords=("timeout", "timed out", "budget", "aborted"),
        retryable=True,
        explanation="The request timed out, most likely under load. A later retry should work.",
    ),
    _Rule(
        kind=FailureKind.RATE_LIMIT,
        keywords=("rate limit", "429", "too many requests"),
        retryable=True,
        explanation="The AI provider rate limit was hit. It resets on its own.",
    ),
    _Rule(
        kind=FailureKind.AUTH,
        keywords=("api key", "unauthorized", "401", "403"),
        retryable=False,
        explanation="AI provider authentication failed. A valid API key must be configured.",
    ),
    _Rule(
        kind=FailureKind.NETWORK,
        keywords=("network", "econnrefused", "fetch failed", "socket"),
        retryable=True,
        explanation="The network connection to the AI provider failed. Likely temporary.",
    ),
    _Rule(
        kind=FailureKind.QUALITY_REJECTION,
        keywords=("quality score", "below threshold"),
        retryable=False,
        explanation="The article did not meet quality standards; the rejection is intentional.",
    ),
)

_UNKNOWN_EXPLANATION = "Unknown error. Giving it one more chance with a fresh attempt counter."


def classify(text: str) -> FailureKind:
    lower = (text or "").lower()
    for rule in RULES:
        if any(k in lower for k in rule.keywords):
            return rule.kind
    return FailureKind.UNKNOWN


def diagnose(text: str) -> Diagnosis:
    """Classify raw error text into a retry decision."""
    kind = classify(text)
    rule = next((r for r in RULES if r.kind == kind), None)
    if rule is not None and not rule.retryable:
        return Diagnosis(
            kind=kind,
            retryable=False,
            resume_phase=Phase.RESEARCH,
            explanation=rule.explanation,
            fix_description=(
                "Not auto-retryable: requires an API key fix"
                if kind == FailureKind.AUTH
                else "Not auto-retryable: quality rejection is intentional"
            ),
        )

    resume = phase_from_text(text, DEFAULT_RESUME_PHASE)
    return Diagnosis(
        kind=kind,
        retryable=True,
        resume_phase=resume,
        explanation=rule.explanation if rule is not None else _UNKNOWN_EXPLANATION,
        fix_description=f'Reset to "{resume}" phase with a fresh attempt counter',
    )
