"""Slug derivation for promoted posts."""

from __future__ import annotations

import hashlib
import re
import secrets
import string
from datetime import date

from pressline.drafts.store import DraftRepository

MAX_SLUG_LENGTH = 80
_BASE36 = string.digits + string.ascii_lowercase


def slugify(text: str, max_length: int = MAX_SLUG_LENGTH) -> str:
    """Lowercase ASCII slug: drop punctuation, hyphenate whitespace."""
    slug = text.lower()
    slug = re.sub(r"[^a-z0-9\s-]", "", slug)
    slug = re.sub(r"\s+", "-", slug.strip())
    slug = re.sub(r"-+", "-", slug)
    return slug[:max_length].strip("-")


def _base36(value: int, width: int) -> str:
    chars = []
    for _ in range(width):
        value, rem = divmod(value, 36)
        chars.append(_BASE36[rem])
    return "".join(reversed(chars))


def draft_suffix(draft_id: str, width: int = 4) -> str:
    """Short suffix derived from the draft id, stable across retries."""
    digest = int(hashlib.sha1(draft_id.encode("utf-8")).hexdigest(), 16)
    return _base36(digest, width)


def base_slug(seo_slugs: list[str | None], keyword: str) -> str:
    """First non-empty SEO slug, otherwise the slugified keyword."""
    for candidate in seo_slugs:
        if candidate:
            cleaned = slugify(candidate)
            if cleaned:
                return cleaned
    return slugify(keyword) or "post"


def assign_slug(
    repository: DraftRepository,
    *,
    draft_id: str,
    keyword: str,
    seo_slugs: list[str | None],
    on: date,
) -> str:
    """Return a slug that is free or already owned by this draft's post.

    ``<base>-<YYYY-MM-DD>`` first; on collision a suffix derived from the
    draft id, so a retried promotion of the same draft lands on the same
    slug while two drafts never share one.  Random suffixes are the last
    resort.
    """
    slug = f"{base_slug(seo_slugs, keyword)}-{on.isoformat()}"
    for candidate in (slug, f"{slug}-{draft_suffix(draft_id)}"):
        existing = repository.get_post_by_slug(candidate)
        if existing is None or draft_id in existing.source_draft_ids:
            return candidate

    while True:
        candidate = f"{slug}-{''.join(secrets.choice(_BASE36) for _ in range(4))}"
        if repository.get_post_by_slug(candidate) is None:
            return candidate
