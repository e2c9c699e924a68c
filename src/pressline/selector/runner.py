"""Content selector. Promotes the best reservoir drafts to published posts.

Callable directly from a scheduler tick or an operator action.  A run:

1. gathers reservoir drafts above the quality gate for the active sites,
2. keeps a keyword-diverse subset (at most ``max_promotions_per_run``),
3. merges each accepted draft with its sibling-language pair,
4. runs the fail-closed pre-publication gate,
5. creates the post, applies best-effort enrichment and marks both
   drafts published.

Only reservoir drafts are ever queried, so a published draft can never
be promoted twice.  The run re-checks its wall-clock budget before every
promotion and never raises; failures come back as ``success=False``.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field

from pressline.audit import AuditLog
from pressline.config import PresslineConfig, SiteConfig
from pressline.drafts.models import (
    Draft,
    Locale,
    Phase,
    PublishedPost,
    RecoveryLogEntry,
    RecoveryOutcome,
    RecoverySource,
    utcnow,
)
from pressline.drafts.phases import can_transition, transition_changes
from pressline.drafts.store import DraftQuery, DraftRepository
from pressline.errors import PipelineReport
from pressline.selector.diversity import SkippedCandidate, select_diverse
from pressline.selector.enrichment import EnrichmentContext, PostEnricher, default_enrichers
from pressline.selector.gate import GateInput, PrePublicationValidator, StandardPrePublicationGate
from pressline.selector.slugs import assign_slug

logger = logging.getLogger(__name__)

JOB_NAME = "content-selector"


class SelectorSkip(StrEnum):
    UNKNOWN_SITE = "unknown_site"
    NO_CONTENT = "no_content"
    GATE_BLOCKED = "gate_blocked"
    GATE_ERROR = "gate_error"
    PROMOTION_FAILED = "promotion_failed"
    BUDGET_EXHAUSTED = "budget_exhausted"


class PromotedItem(BaseModel):
    draft_id: str
    paired_draft_id: str | None = None
    post_id: str
    slug: str
    keyword: str
    score: float | None = None
    locales: list[Locale] = Field(default_factory=list)
    missing_locales: list[Locale] = Field(default_factory=list)


class SelectorResult(BaseModel):
    success: bool
    message: str = ""
    candidate_count: int = 0
    selected_count: int = 0
    promoted_count: int = 0
    promoted: list[PromotedItem] = Field(default_factory=list)
    skipped: list[SkippedCandidate] = Field(default_factory=list)
    min_quality_score: float | None = None
    stopped_early: bool = False
    duration_ms: int = 0


class _Sources(BaseModel):
    """The per-language content sources for one promotion."""

    en: Draft | None = None
    ar: Draft | None = None
    pair: Draft | None = None


def _meta(draft: Draft | None) -> dict[str, Any]:
    return dict(draft.seo_meta or {}) if draft is not None else {}


def _locale_label(locale: Locale) -> str:
    return {Locale.EN: "english", Locale.AR: "arabic"}[locale]


class ContentSelector:
    """Runs one selection pass over the reservoir."""

    def __init__(
        self,
        repository: DraftRepository,
        config: PresslineConfig | None = None,
        *,
        validator: PrePublicationValidator | None = None,
        audit: AuditLog | None = None,
        enrichers: list[PostEnricher] | None = None,
        report: PipelineReport | None = None,
        clock: Callable[[], datetime] = utcnow,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self.repository = repository
        self.config = config or PresslineConfig()
        self.validator = validator or StandardPrePublicationGate(self.config.gate)
        self.audit = audit if audit is not None else AuditLog()
        self.enrichers = (
            enrichers
            if enrichers is not None
            else default_enrichers(self.config.selector.max_affiliate_partners)
        )
        self.report = report or PipelineReport()
        self._clock = clock
        self._monotonic = monotonic

    # -- Entry point -----------------------------------------------------------

    def run(self, timeout_budget: float | None = None) -> SelectorResult:
        """Promote up to ``max_promotions_per_run`` drafts within the budget (seconds)."""
        start = self._monotonic()
        budget = (
            timeout_budget
            if timeout_budget is not None
            else self.config.selector.timeout_budget_seconds
        )
        try:
            result = self._run(start, budget)
        except Exception as exc:
            logger.exception("Content selector failed")
            result = SelectorResult(
                success=False,
                message=str(exc) or exc.__class__.__name__,
                duration_ms=self._elapsed_ms(start),
            )
            self._record_run("failed", {"error": result.message, "duration_ms": result.duration_ms})
            return result

        self._record_run(
            "completed",
            {
                "message": result.message,
                "candidates": result.candidate_count,
                "selected": result.selected_count,
                "promoted": result.promoted_count,
                "articles": [p.model_dump(mode="json") for p in result.promoted],
                "skipped": [s.model_dump(mode="json") for s in result.skipped],
                "stopped_early": result.stopped_early,
                "duration_ms": result.duration_ms,
            },
        )
        return result

    def _run(self, start: float, budget: float) -> SelectorResult:
        cfg = self.config.selector
        active_sites = self.config.active_site_ids
        if not active_sites:
            return SelectorResult(
                success=True,
                message="No active sites",
                duration_ms=self._elapsed_ms(start),
            )

        candidates = self.repository.find_drafts(
            DraftQuery(
                phases=[Phase.RESERVOIR],
                site_ids=active_sites,
                min_quality_score=cfg.quality_gate_score,
                order_by=[("quality_score", True), ("created_at", False)],
                limit=cfg.max_promotions_per_run * cfg.candidate_multiplier,
            )
        )
        if not candidates:
            return SelectorResult(
                success=True,
                message="No reservoir drafts meet the quality gate",
                min_quality_score=cfg.quality_gate_score,
                duration_ms=self._elapsed_ms(start),
            )

        selection = select_diverse(candidates, cfg.max_promotions_per_run)
        result = SelectorResult(
            success=True,
            candidate_count=len(candidates),
            selected_count=len(selection.selected),
            skipped=list(selection.skipped),
            min_quality_score=cfg.quality_gate_score,
        )
        for skip in selection.skipped:
            logger.info("Skipping draft %s (%s): %s", skip.draft_id, skip.keyword, skip.reason)

        if not selection.selected:
            result.message = "All reservoir candidates were filtered out by the diversity check"
            result.duration_ms = self._elapsed_ms(start)
            return result

        for draft in selection.selected:
            remaining = budget - (self._monotonic() - start)
            if remaining < cfg.min_remaining_seconds:
                logger.info("Budget running low (%.1fs left), stopping promotion loop", remaining)
                result.stopped_early = True
                result.skipped.append(
                    SkippedCandidate(
                        draft_id=draft.id,
                        keyword=draft.keyword,
                        reason=SelectorSkip.BUDGET_EXHAUSTED,
                    )
                )
                continue

            outcome = self._promote_safely(draft)
            if isinstance(outcome, PromotedItem):
                result.promoted.append(outcome)
            else:
                result.skipped.append(outcome)

        result.promoted_count = len(result.promoted)
        result.message = f"Promoted {result.promoted_count} of {result.selected_count} selected draft(s)"
        if result.stopped_early:
            result.message += " (stopped early: time budget exhausted)"
        result.duration_ms = self._elapsed_ms(start)
        return result

    # -- Promotion -------------------------------------------------------------

    def _promote_safely(self, draft: Draft) -> PromotedItem | SkippedCandidate:
        try:
            return self.promote(draft)
        except Exception as exc:
            message = str(exc) or exc.__class__.__name__
            logger.error("Failed to promote draft %s: %s", draft.id, message)
            self.report.add_error(
                "selector", draft.id, source=draft.keyword, error_type="promotion_error",
                message=message,
            )
            try:
                self.repository.update_draft(
                    draft.id,
                    last_error=f"Promotion failed: {message}",
                    phase_attempts=draft.phase_attempts + 1,
                )
            except Exception:
                logger.warning("Could not record promotion failure on %s", draft.id, exc_info=True)
            self._log_failure(draft, "promotion", f"Promotion failed: {message}")
            return SkippedCandidate(
                draft_id=draft.id,
                keyword=draft.keyword,
                reason=SelectorSkip.PROMOTION_FAILED,
                detail=message,
            )

    def promote(self, draft: Draft) -> PromotedItem | SkippedCandidate:
        """Promote one reservoir draft (and its sibling) to a published post."""
        site = self.config.get_site(draft.site_id)
        if site is None:
            logger.warning("No site config for %s, skipping draft %s", draft.site_id, draft.id)
            return SkippedCandidate(
                draft_id=draft.id, keyword=draft.keyword, reason=SelectorSkip.UNKNOWN_SITE
            )

        pair = self._resolve_pair(draft)
        if pair is not None and pair.published_post_id:
            return self._attach_to_published_pair(draft, pair, site)

        sources = self._sources(draft, pair)
        if sources.en is None and sources.ar is None:
            logger.warning("Draft %s and its pair have no assembled content, skipping", draft.id)
            return SkippedCandidate(
                draft_id=draft.id, keyword=draft.keyword, reason=SelectorSkip.NO_CONTENT
            )

        now = self._clock()
        en_meta, ar_meta = _meta(sources.en), _meta(sources.ar)
        existing = self.repository.find_posts(source_draft_id=draft.id, limit=1)
        if existing:
            post = existing[0]
            logger.info("Draft %s already has post %s, finishing bookkeeping", draft.id, post.id)
            if sources.pair is not None and sources.pair.id not in post.source_draft_ids:
                sources.pair = None
        else:
            slug = assign_slug(
                self.repository,
                draft_id=draft.id,
                keyword=draft.keyword,
                seo_slugs=[en_meta.get("slug"), ar_meta.get("slug")],
                on=now.date(),
            )
            post = self._build_post(draft, sources, site, slug, now)
            gate_skip = self._run_gate(draft, post, site)
            if gate_skip is not None:
                return gate_skip
            post = self.repository.create_post(post)
            self._enrich(post, site, en_meta.get("schema") or ar_meta.get("schema"))

        self._mark_published(draft, sources.pair, post.id, now)

        logger.info(
            "Promoted draft %s%s -> post %s (keyword: %r, score: %s, bilingual: %s)",
            draft.id,
            f" + paired {sources.pair.id}" if sources.pair else "",
            post.id,
            draft.keyword,
            draft.quality_score,
            post.bilingual,
        )
        return PromotedItem(
            draft_id=draft.id,
            paired_draft_id=sources.pair.id if sources.pair else None,
            post_id=post.id,
            slug=post.slug,
            keyword=draft.keyword,
            score=draft.quality_score,
            locales=list(post.locales),
            missing_locales=list(post.missing_locales),
        )

    def _resolve_pair(self, draft: Draft) -> Draft | None:
        if not draft.paired_draft_id:
            return None
        try:
            return self.repository.get_draft(draft.paired_draft_id)
        except Exception:
            logger.warning(
                "Failed to fetch paired draft %s, publishing single-language",
                draft.paired_draft_id,
                exc_info=True,
            )
            self.report.add_error(
                "selector", draft.paired_draft_id, error_type="pair_lookup_error"
            )
            return None

    def _sources(self, draft: Draft, pair: Draft | None) -> _Sources:
        if pair is not None and not pair.has_content:
            logger.info(
                "Paired draft %s has no assembled content yet, publishing single-language",
                pair.id,
            )
            pair = None
        elif pair is not None and not can_transition(pair.phase, Phase.PUBLISHED):
            logger.info(
                "Paired draft %s cannot be published from %s, publishing single-language",
                pair.id,
                pair.phase,
            )
            pair = None
        by_locale: dict[Locale, Draft] = {}
        for member in (pair, draft):
            if member is not None and member.has_content:
                by_locale[member.locale] = member
        return _Sources(en=by_locale.get(Locale.EN), ar=by_locale.get(Locale.AR), pair=pair)

    def _build_post(
        self,
        draft: Draft,
        sources: _Sources,
        site: SiteConfig,
        slug: str,
        now: datetime,
    ) -> PublishedPost:
        en, ar = sources.en, sources.ar
        en_meta, ar_meta = _meta(en), _meta(ar)
        en_title = (en.topic_title if en else None) or (draft.keyword if en else "")
        ar_title = (ar.topic_title if ar else None) or ""
        keywords = list(en_meta.get("keywords") or ar_meta.get("keywords") or [draft.keyword])

        locales = [loc for loc, src in ((Locale.EN, en), (Locale.AR, ar)) if src is not None]
        missing = [loc for loc in Locale if loc not in locales]
        bilingual = not missing

        tags = [
            *keywords[:5],
            "auto-generated",
            "reservoir-pipeline",
            "needs-review",
            "bilingual" if bilingual else f"primary-{draft.locale}",
            *(f"missing-{_locale_label(loc)}" for loc in missing),
            f"site-{site.id}",
        ]
        if site.destination:
            tags.append(site.destination.lower())

        schema_type = (draft.outline_data or {}).get("schemaType")
        page_type = "faq" if schema_type == "FAQPage" else "guide"
        images = [(src.images_data or {}).get("featured") or {} for src in (en, ar) if src]
        featured = next((img.get("url") for img in images if img.get("url")), None)

        return PublishedPost(
            site_id=site.id,
            slug=slug,
            title_en=en_title or "",
            title_ar=ar_title,
            excerpt_en=en_meta.get("metaDescription", ""),
            excerpt_ar=ar_meta.get("metaDescription", ""),
            content_en=(en.assembled_html or "") if en else "",
            content_ar=(ar.assembled_html or "") if ar else "",
            meta_title_en=en_meta.get("metaTitle") or en_title or "",
            meta_title_ar=ar_meta.get("metaTitle") or ar_title,
            meta_description_en=en_meta.get("metaDescription", ""),
            meta_description_ar=ar_meta.get("metaDescription", ""),
            tags=tags,
            keywords=keywords,
            locales=locales,
            missing_locales=missing,
            bilingual=bilingual,
            featured_image=featured,
            page_type=page_type,
            seo_score=round(draft.seo_score or draft.quality_score or 70),
            source_draft_ids=[d.id for d in (draft, sources.pair) if d is not None],
            needs_review=True,
            created_at=now,
        )

    def _run_gate(
        self, draft: Draft, post: PublishedPost, site: SiteConfig
    ) -> SkippedCandidate | None:
        """Fail-closed gate check.  Returns a skip when the draft must not publish."""
        gate_input = GateInput(
            title_en=post.title_en,
            title_ar=post.title_ar,
            meta_title_en=post.meta_title_en,
            meta_description_en=post.meta_description_en,
            content_en=post.content_en,
            content_ar=post.content_ar,
            locale=str(draft.locale),
            tags=post.keywords[:5],
            keywords=post.keywords,
            seo_score=post.seo_score,
        )
        target_url = f"/blog/{post.slug}"
        try:
            verdict = self.validator.validate(target_url, gate_input, site.base_url)
        except Exception as exc:
            message = f"Pre-pub gate error (blocked): {exc}"
            logger.warning("Pre-pub gate error for draft %s, blocking publication: %s", draft.id, exc)
            self._record_gate_failure(draft, message)
            return SkippedCandidate(
                draft_id=draft.id,
                keyword=draft.keyword,
                reason=SelectorSkip.GATE_ERROR,
                detail=str(exc),
            )

        if not verdict.allowed:
            blockers = "; ".join(verdict.blockers) or "no reason given"
            message = f"Pre-pub gate blocked: {blockers}"
            logger.warning("Pre-pub gate blocked draft %s (%r): %s", draft.id, draft.keyword, blockers)
            self._record_gate_failure(draft, message)
            return SkippedCandidate(
                draft_id=draft.id,
                keyword=draft.keyword,
                reason=SelectorSkip.GATE_BLOCKED,
                detail=blockers,
            )

        if verdict.warnings:
            logger.info(
                "Pre-pub gate passed draft %s with warnings: %s",
                draft.id,
                "; ".join(verdict.warnings),
            )
        return None

    def _record_gate_failure(self, draft: Draft, message: str) -> None:
        try:
            self.repository.update_draft(draft.id, last_error=message, updated_at=self._clock())
        except Exception:
            logger.warning("Could not record gate failure on %s", draft.id, exc_info=True)
        self._log_failure(draft, "pre-publication-gate", message)

    def _enrich(self, post: PublishedPost, site: SiteConfig, schema_hint: Any) -> None:
        context = EnrichmentContext(
            site=site,
            post_url=f"{site.base_url}/blog/{post.slug}",
            keywords=post.keywords,
            schema_hint=schema_hint if isinstance(schema_hint, dict) else None,
        )
        for enricher in self.enrichers:
            try:
                changes = enricher.enrich(post, context)
                if changes:
                    post = self.repository.update_post(post.id, **changes)
            except Exception:
                logger.warning(
                    "Enrichment %s failed for post %s (non-fatal)",
                    enricher.name,
                    post.id,
                    exc_info=True,
                )
                self.report.add_error(
                    "selector", post.id, source=enricher.name, error_type="enrichment_error"
                )

    def _mark_published(
        self, draft: Draft, pair: Draft | None, post_id: str, now: datetime
    ) -> None:
        publish = {
            "published_post_id": post_id,
            "published_at": now,
            "completed_at": now,
            "needs_review": True,
            "last_error": None,
        }
        self.repository.update_draft(
            draft.id, **transition_changes(draft, Phase.PUBLISHED, now), **publish
        )
        if pair is None:
            return
        try:
            self.repository.update_draft(
                pair.id, **transition_changes(pair, Phase.PUBLISHED, now), **publish
            )
        except Exception:
            logger.warning(
                "Failed to mark paired draft %s published (primary %s kept)",
                pair.id,
                draft.id,
                exc_info=True,
            )
            self.report.add_error("selector", pair.id, error_type="pair_update_error")

    def _attach_to_published_pair(
        self, draft: Draft, pair: Draft, site: SiteConfig
    ) -> PromotedItem | SkippedCandidate:
        """Fold a late sibling into the post its pair was already published as."""
        post = self.repository.get_post(pair.published_post_id or "")
        if post is None or not draft.has_content:
            return SkippedCandidate(
                draft_id=draft.id, keyword=draft.keyword, reason=SelectorSkip.NO_CONTENT
            )

        meta = _meta(draft)
        suffix = str(draft.locale)
        title = draft.topic_title or (draft.keyword if draft.locale == Locale.EN else "")
        changes: dict[str, Any] = {
            f"content_{suffix}": draft.assembled_html or "",
            f"title_{suffix}": title,
            f"meta_title_{suffix}": meta.get("metaTitle") or title,
            f"meta_description_{suffix}": meta.get("metaDescription", ""),
            f"excerpt_{suffix}": meta.get("metaDescription", ""),
        }
        merged = post.model_copy(update=changes)
        gate_skip = self._run_gate(draft, merged, site)
        if gate_skip is not None:
            return gate_skip

        locales = sorted({*post.locales, draft.locale}, key=list(Locale).index)
        missing = [loc for loc in Locale if loc not in locales]
        changes.update(
            locales=locales,
            missing_locales=missing,
            bilingual=not missing,
            tags=[t for t in post.tags if t != f"missing-{_locale_label(draft.locale)}"],
            source_draft_ids=[*post.source_draft_ids, draft.id],
        )
        post = self.repository.update_post(post.id, **changes)
        self._mark_published(draft, None, post.id, self._clock())
        logger.info("Attached draft %s to post %s of paired draft %s", draft.id, post.id, pair.id)
        return PromotedItem(
            draft_id=draft.id,
            paired_draft_id=pair.id,
            post_id=post.id,
            slug=post.slug,
            keyword=draft.keyword,
            score=draft.quality_score,
            locales=list(post.locales),
            missing_locales=list(post.missing_locales),
        )

    # -- Bookkeeping -----------------------------------------------------------

    def _log_failure(self, draft: Draft, category: str, problem: str) -> None:
        try:
            self.repository.add_recovery_entry(
                RecoveryLogEntry(
                    source=RecoverySource.CONTENT_SELECTOR,
                    draft_id=draft.id,
                    category=category,
                    problem=problem[:500],
                    outcome=RecoveryOutcome.FAILED,
                    previous_phase=draft.phase,
                    new_phase=draft.phase,
                    created_at=self._clock(),
                )
            )
        except Exception:
            logger.warning("Could not write recovery log entry for %s", draft.id, exc_info=True)

    def _record_run(self, status: str, summary: dict[str, Any]) -> None:
        try:
            self.audit.record(JOB_NAME, status, summary)
        except Exception:
            logger.warning("Failed to record %s run", JOB_NAME, exc_info=True)

    def _elapsed_ms(self, start: float) -> int:
        return int((self._monotonic() - start) * 1000)


def run_content_selector(
    repository: DraftRepository,
    config: PresslineConfig | None = None,
    *,
    validator: PrePublicationValidator | None = None,
    audit: AuditLog | None = None,
    timeout_budget: float | None = None,
    enrichers: list[PostEnricher] | None = None,
    report: PipelineReport | None = None,
) -> SelectorResult:
    """Run one content-selector pass.  Never raises."""
    selector = ContentSelector(
        repository,
        config,
        validator=validator,
        audit=audit,
        enrichers=enrichers,
        report=report,
    )
    return selector.run(timeout_budget)
