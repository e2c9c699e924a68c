"""Keyword diversity filter for reservoir candidates."""

from __future__ import annotations

from collections.abc import Iterable
from enum import StrEnum

from pydantic import BaseModel, Field

from pressline.drafts.models import Draft


class SkipReason(StrEnum):
    ALREADY_SELECTED = "already_selected"
    EMPTY_KEYWORD = "empty_keyword"
    KEYWORD_OVERLAP = "keyword_overlap"
    CAP_REACHED = "cap_reached"


class SkippedCandidate(BaseModel):
    draft_id: str
    keyword: str
    reason: str
    detail: str = ""


class DiversitySelection(BaseModel):
    selected: list[Draft] = Field(default_factory=list)
    skipped: list[SkippedCandidate] = Field(default_factory=list)


FILLER_WORDS = frozenset(
    {
        "a", "an", "the", "best", "top", "guide", "ultimate", "complete",
        "your", "for", "to", "of", "and", "in", "on", "with", "at",
        "2024", "2025", "2026",
    }
)


def normalize_keyword(keyword: str | None) -> str:
    return " ".join((keyword or "").lower().split())


def core_keyword(keyword: str | None) -> str:
    """Keyword with filler words removed ("best halal food guide" -> "halal food")."""
    return " ".join(w for w in normalize_keyword(keyword).split() if w not in FILLER_WORDS)


def keywords_overlap(a: str, b: str) -> bool:
    """Case-insensitive substring match in either direction.

    Checked on the raw keywords and again on their core phrases, so
    "halal fine dining mayfair" and "best halal fine dining guide" clash.
    """
    a, b = normalize_keyword(a), normalize_keyword(b)
    if not a or not b:
        return False
    if a in b or b in a:
        return True
    core_a, core_b = core_keyword(a), core_keyword(b)
    if not core_a or not core_b:
        return False
    return core_a in core_b or core_b in core_a


def select_diverse(candidates: Iterable[Draft], cap: int) -> DiversitySelection:
    """Greedily accept ranked candidates whose topics don't overlap.

    Walks ``candidates`` in order.  A candidate is skipped when it or its
    paired sibling was already accepted, when its keyword is empty, or
    when its keyword overlaps an accepted one.  At most ``cap`` drafts are
    accepted; the remainder are reported as ``cap_reached``.
    """
    result = DiversitySelection()
    accepted_keywords: list[str] = []
    accepted_ids: set[str] = set()

    for candidate in candidates:
        if len(result.selected) >= cap:
            result.skipped.append(
                SkippedCandidate(
                    draft_id=candidate.id,
                    keyword=candidate.keyword,
                    reason=SkipReason.CAP_REACHED,
                )
            )
            continue

        if candidate.id in accepted_ids or (
            candidate.paired_draft_id and candidate.paired_draft_id in accepted_ids
        ):
            result.skipped.append(
                SkippedCandidate(
                    draft_id=candidate.id,
                    keyword=candidate.keyword,
                    reason=SkipReason.ALREADY_SELECTED,
                )
            )
            continue

        keyword = normalize_keyword(candidate.keyword)
        if not keyword:
            result.skipped.append(
                SkippedCandidate(
                    draft_id=candidate.id,
                    keyword=candidate.keyword,
                    reason=SkipReason.EMPTY_KEYWORD,
                )
            )
            continue

        clash = next((k for k in accepted_keywords if keywords_overlap(k, keyword)), None)
        if clash is not None:
            result.skipped.append(
                SkippedCandidate(
                    draft_id=candidate.id,
                    keyword=candidate.keyword,
                    reason=SkipReason.KEYWORD_OVERLAP,
                    detail=f"overlaps with {clash!r}",
                )
            )
            continue

        result.selected.append(candidate)
        accepted_keywords.append(keyword)
        accepted_ids.add(candidate.id)
        if candidate.paired_draft_id:
            accepted_ids.add(candidate.paired_draft_id)

    return result
