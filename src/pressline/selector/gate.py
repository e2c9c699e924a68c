"""Pre-publication gate, the one hard blocker before a post is created.

The selector treats the validator as fail-closed: a verdict with
``allowed=False`` or any exception keeps the draft in the reservoir.
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from enum import StrEnum
from urllib.parse import urlparse

from pydantic import BaseModel, Field

from pressline.config import GateSectionConfig

logger = logging.getLogger(__name__)


class Severity(StrEnum):
    BLOCKER = "blocker"
    WARNING = "warning"
    INFO = "info"


class GateInput(BaseModel):
    """Content fields submitted to the validator."""

    title_en: str = ""
    title_ar: str = ""
    meta_title_en: str = ""
    meta_description_en: str = ""
    content_en: str = ""
    content_ar: str = ""
    locale: str = "en"
    tags: list[str] = Field(default_factory=list)
    keywords: list[str] = Field(default_factory=list)
    seo_score: float | None = None
    author_id: str = "system"


class GateCheck(BaseModel):
    name: str
    passed: bool
    message: str
    severity: Severity = Severity.INFO


class GateResult(BaseModel):
    allowed: bool
    blockers: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    checks: list[GateCheck] = Field(default_factory=list)


class PrePublicationValidator(ABC):
    """Validator port consumed by the content selector."""

    @abstractmethod
    def validate(self, target_url: str, content: GateInput, site_url: str = "") -> GateResult:
        """Return a verdict for publishing ``content`` at ``target_url``."""


_TAG_RE = re.compile(r"<[^>]+>")
_H1_RE = re.compile(r"<h1[\s>]", re.IGNORECASE)
_H2_RE = re.compile(r"<h2[\s>]", re.IGNORECASE)
_IMG_RE = re.compile(r"<img\b[^>]*>", re.IGNORECASE)
_ALT_RE = re.compile(r"\balt\s*=\s*([\"'])\s*\S", re.IGNORECASE)


def count_words(html: str) -> int:
    return len(_TAG_RE.sub(" ", html).split())


class StandardPrePublicationGate(PrePublicationValidator):
    """Built-in SEO and structure checks run before every promotion."""

    def __init__(self, config: GateSectionConfig | None = None) -> None:
        self.config = config or GateSectionConfig()

    def validate(self, target_url: str, content: GateInput, site_url: str = "") -> GateResult:
        cfg = self.config
        checks: list[GateCheck] = []

        def fail(name: str, message: str, severity: Severity) -> None:
            checks.append(GateCheck(name=name, passed=False, message=message, severity=severity))

        def ok(name: str, message: str) -> None:
            checks.append(GateCheck(name=name, passed=True, message=message))

        # Route: absolute target URLs must live on the site being published to
        parsed = urlparse(target_url)
        if not target_url:
            fail("Target URL", "Target URL is missing", Severity.BLOCKER)
        elif parsed.netloc and site_url and parsed.netloc != urlparse(site_url).netloc:
            fail("Target URL", f"Target URL {target_url} is not on {site_url}", Severity.BLOCKER)
        else:
            ok("Target URL", f"Publishing to {target_url}")

        # Title: English title, or the Arabic one for Arabic-only posts
        arabic_only = not content.content_en and bool(content.content_ar)
        title = content.title_ar if arabic_only else content.title_en
        if len(title) < cfg.min_title_length:
            fail(
                "Title",
                f"Title missing or too short ({len(title)} chars, min {cfg.min_title_length})",
                Severity.BLOCKER,
            )
        else:
            ok("Title", f"Title: {len(title)} chars")

        if not arabic_only:
            meta_title = content.meta_title_en
            if len(meta_title) < cfg.meta_title_min:
                fail(
                    "Meta Title",
                    f"Meta title should be {cfg.meta_title_min}-{cfg.meta_title_max} characters",
                    Severity.WARNING,
                )
            elif len(meta_title) > cfg.meta_title_max:
                fail(
                    "Meta Title",
                    f"Meta title is {len(meta_title)} chars and will be truncated",
                    Severity.WARNING,
                )

            meta_desc = content.meta_description_en
            if len(meta_desc) < cfg.meta_description_min:
                fail(
                    "Meta Description",
                    f"Meta description should be {cfg.meta_description_min}-"
                    f"{cfg.meta_description_max} characters",
                    Severity.WARNING,
                )
            elif len(meta_desc) > cfg.meta_description_max:
                fail(
                    "Meta Description",
                    f"Meta description is {len(meta_desc)} chars and will be truncated",
                    Severity.WARNING,
                )

        body = content.content_en or content.content_ar
        if len(body) < cfg.thin_content_chars:
            fail("Content Length", "Content is too short for indexing", Severity.BLOCKER)
        else:
            words = count_words(body)
            if words < cfg.min_words:
                fail(
                    "Word Count",
                    f"Content has {words} words, below the {cfg.min_words} minimum",
                    Severity.BLOCKER,
                )
            elif words < cfg.target_words:
                fail(
                    "Word Count",
                    f"Content has {words} words (target {cfg.target_words}+)",
                    Severity.WARNING,
                )
            else:
                ok("Word Count", f"Content has {words} words")

            if len(_H1_RE.findall(body)) > 1:
                fail("Headings", "Content has more than one <h1>", Severity.WARNING)
            h2_count = len(_H2_RE.findall(body))
            if h2_count < cfg.min_h2_count:
                fail(
                    "Headings",
                    f"Only {h2_count} <h2> headings (need {cfg.min_h2_count})",
                    Severity.WARNING,
                )

            missing_alt = sum(1 for img in _IMG_RE.findall(body) if not _ALT_RE.search(img))
            if missing_alt:
                fail("Images", f"{missing_alt} images missing alt text", Severity.WARNING)

        if content.seo_score is not None:
            if content.seo_score < cfg.seo_score_blocker:
                fail(
                    "SEO Score",
                    f"SEO score critically low: {content.seo_score:g}/100",
                    Severity.BLOCKER,
                )
            elif content.seo_score < cfg.seo_score_target:
                fail(
                    "SEO Score",
                    f"Low SEO score: {content.seo_score:g}/100 (target: {cfg.seo_score_target:g}+)",
                    Severity.WARNING,
                )

        if not content.author_id:
            fail("Author", "No author attributed", Severity.BLOCKER)

        blockers = [c.message for c in checks if c.severity == Severity.BLOCKER and not c.passed]
        warnings = [c.message for c in checks if c.severity == Severity.WARNING and not c.passed]
        return GateResult(allowed=not blockers, blockers=blockers, warnings=warnings, checks=checks)
