"""Draft domain models as pure Pydantic v2 data types.

A Draft moves through the production phases and ends up either promoted
to a PublishedPost or rejected.  RecoveryLogEntry is the immutable audit
trail written by the sweeper and by failed promotions; JobRunRecord is
the per-run summary written by both.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    return datetime.now(tz=UTC)


def new_id() -> str:
    return uuid.uuid4().hex


class Locale(StrEnum):
    """Languages a draft can be written in."""

    EN = "en"
    AR = "ar"


class Phase(StrEnum):
    """Production phase of a draft, in pipeline order."""

    RESEARCH = "research"
    OUTLINE = "outline"
    DRAFTING = "drafting"
    ASSEMBLY = "assembly"
    IMAGES = "images"
    SEO = "seo"
    SCORING = "scoring"
    RESERVOIR = "reservoir"
    PUBLISHED = "published"
    REJECTED = "rejected"


class RecoverySource(StrEnum):
    SWEEPER = "sweeper"
    CONTENT_SELECTOR = "content-selector"


class RecoveryOutcome(StrEnum):
    RECOVERED = "recovered"
    FAILED = "failed"


class Draft(BaseModel):
    """A content record progressing through the production phases."""

    id: str = Field(default_factory=new_id)
    site_id: str
    locale: Locale = Locale.EN
    keyword: str
    topic_title: str | None = None

    # Workflow
    phase: Phase = Phase.RESEARCH
    phase_attempts: int = 0
    phase_started_at: datetime | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    completed_at: datetime | None = None
    published_at: datetime | None = None

    # Per-phase payloads, produced by the authoring stages
    research_data: dict[str, Any] | None = None
    outline_data: dict[str, Any] | None = None
    assembled_html: str | None = None
    images_data: dict[str, Any] | None = None
    seo_meta: dict[str, Any] | None = None

    # Quality signals
    quality_score: float | None = None
    seo_score: float | None = None

    # Failure state
    last_error: str | None = None
    rejection_reason: str | None = None

    paired_draft_id: str | None = None
    published_post_id: str | None = None
    needs_review: bool = False

    recovery_token: str | None = None
    recovery_token_expires_at: datetime | None = None

    @property
    def has_content(self) -> bool:
        return bool(self.assembled_html and self.assembled_html.strip())

    def has_live_recovery_token(self, now: datetime) -> bool:
        if not self.recovery_token or self.recovery_token_expires_at is None:
            return False
        return self.recovery_token_expires_at > now


class PublishedPost(BaseModel):
    """A promoted post owning merged bilingual content and a unique slug."""

    id: str = Field(default_factory=new_id)
    site_id: str
    slug: str
    title_en: str = ""
    title_ar: str = ""
    excerpt_en: str = ""
    excerpt_ar: str = ""
    content_en: str = ""
    content_ar: str = ""
    meta_title_en: str = ""
    meta_title_ar: str = ""
    meta_description_en: str = ""
    meta_description_ar: str = ""
    tags: list[str] = Field(default_factory=list)
    keywords: list[str] = Field(default_factory=list)
    locales: list[Locale] = Field(default_factory=list)
    missing_locales: list[Locale] = Field(default_factory=list)
    bilingual: bool = False
    featured_image: str | None = None
    page_type: str = "guide"
    seo_score: int = 0
    structured_data: dict[str, Any] | None = None
    indexing_status: str | None = None
    source_draft_ids: list[str] = Field(default_factory=list)
    needs_review: bool = True
    created_at: datetime = Field(default_factory=utcnow)


class RecoveryLogEntry(BaseModel):
    """Immutable audit record for one recovery or promotion-failure action."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    source: RecoverySource
    draft_id: str
    category: str
    problem: str
    diagnosis: str = ""
    fix: str = ""
    outcome: RecoveryOutcome
    previous_phase: Phase | None = None
    new_phase: Phase | None = None
    created_at: datetime = Field(default_factory=utcnow)


class JobRunRecord(BaseModel):
    """Summary of one selector or sweeper invocation."""

    job_name: str
    status: str
    summary: dict[str, Any] = Field(default_factory=dict)
    recorded_at: datetime = Field(default_factory=utcnow)
