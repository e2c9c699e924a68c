"""Best-effort post enrichment applied after a post has been created.

Each enricher returns the field changes it wants written to the post (or
None for nothing).  The selector applies them one by one and logs, never
propagates, any failure. An enricher can never un-publish a post.
"""

from __future__ import annotations

import html
import re
from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel, Field

from pressline.config import AffiliateRule, SiteConfig
from pressline.drafts.models import PublishedPost


class EnrichmentContext(BaseModel):
    site: SiteConfig
    post_url: str
    keywords: list[str] = Field(default_factory=list)
    schema_hint: dict[str, Any] | None = None


class PostEnricher(ABC):
    """A non-critical transform over a freshly created post."""

    name: str = "enricher"

    @abstractmethod
    def enrich(self, post: PublishedPost, context: EnrichmentContext) -> dict[str, Any] | None:
        """Return field changes for ``post``, or None."""


# ---------------------------------------------------------------------------
# Affiliate partners
# ---------------------------------------------------------------------------

_PLACEHOLDER_RE = re.compile(
    r'<div class="affiliate-placeholder"[^>]*>[\s\S]*?</div>', re.IGNORECASE
)


def match_affiliates(rules: list[AffiliateRule], text: str, limit: int = 3) -> list[AffiliateRule]:
    """Rules with at least one keyword in ``text``, in configured order."""
    lower = text.lower()
    matched = [r for r in rules if any(k.lower() in lower for k in r.keywords)]
    return matched[:limit]


def render_partners(partners: list[AffiliateRule]) -> str:
    links = "".join(
        f'<a href="{html.escape(p.link, quote=True)}" target="_blank" rel="noopener sponsored">'
        f"<strong>{html.escape(p.name)}</strong></a>"
        for p in partners
    )
    return (
        '\n<div class="affiliate-partners-section">'
        f"<h3>Recommended Partners</h3><div>{links}</div></div>"
    )


class AffiliateLinkInjector(PostEnricher):
    """Replace affiliate placeholders with a block of matching partners."""

    name = "affiliates"

    def __init__(self, max_partners: int = 3) -> None:
        self.max_partners = max_partners

    def enrich(self, post: PublishedPost, context: EnrichmentContext) -> dict[str, Any] | None:
        text = f"{post.content_en} {post.content_ar}"
        partners = match_affiliates(context.site.affiliates, text, self.max_partners)
        if not partners:
            return None
        block = render_partners(partners)
        changes: dict[str, Any] = {}
        if post.content_en:
            changes["content_en"] = _PLACEHOLDER_RE.sub("", post.content_en) + block
        if post.content_ar:
            changes["content_ar"] = _PLACEHOLDER_RE.sub("", post.content_ar) + block
        return changes


# ---------------------------------------------------------------------------
# Structured data
# ---------------------------------------------------------------------------

_PAGE_TYPE_SCHEMA = {"guide": "Article", "howto": "HowTo", "faq": "FAQPage"}


class StructuredDataInjector(PostEnricher):
    """Attach schema.org JSON-LD, preferring a schema produced by the SEO phase."""

    name = "structured-data"

    def enrich(self, post: PublishedPost, context: EnrichmentContext) -> dict[str, Any] | None:
        if context.schema_hint:
            return {"structured_data": context.schema_hint}
        publisher = context.site.name or context.site.id
        schema: dict[str, Any] = {
            "@context": "https://schema.org",
            "@type": _PAGE_TYPE_SCHEMA.get(post.page_type, "Article"),
            "headline": post.title_en or post.title_ar,
            "url": context.post_url,
            "inLanguage": [str(loc) for loc in post.locales],
            "keywords": ", ".join(context.keywords[:5]),
            "datePublished": post.created_at.isoformat(),
            "author": {"@type": "Organization", "name": f"{publisher} Editorial Team"},
            "publisher": {"@type": "Organization", "name": publisher},
        }
        if post.featured_image:
            schema["image"] = post.featured_image
        return {"structured_data": schema}


# ---------------------------------------------------------------------------
# Indexing bookkeeping
# ---------------------------------------------------------------------------


class IndexingStatusTracker(PostEnricher):
    """Mark the new URL as discovered so index submission can pick it up."""

    name = "indexing"

    def enrich(self, post: PublishedPost, context: EnrichmentContext) -> dict[str, Any] | None:
        if post.indexing_status:
            return None
        return {"indexing_status": "discovered"}


def default_enrichers(max_affiliate_partners: int = 3) -> list[PostEnricher]:
    return [
        AffiliateLinkInjector(max_affiliate_partners),
        StructuredDataInjector(),
        IndexingStatusTracker(),
    ]
