"""Draft repository port and its JSON-backed implementation.

The selector and sweeper only talk to :class:`DraftRepository`, so any
backend can be plugged in.  :class:`DraftStore` keeps every collection in
memory and, when given a directory, persists them to a single JSON file
after each write.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from pressline.drafts.models import (
    Draft,
    Phase,
    PublishedPost,
    RecoveryLogEntry,
    RecoveryOutcome,
    RecoverySource,
)
from pressline.errors import (
    DraftNotFoundError,
    DuplicateSlugError,
    ImmutableFieldError,
    PostNotFoundError,
)

logger = logging.getLogger(__name__)

STORE_FILENAME = ".pressline-store.json"

# Alias to avoid shadowing inside methods that take a ``list`` argument name
_list = list


class DraftQuery(BaseModel):
    """Filter, ordering and limit for :meth:`DraftRepository.find_drafts`.

    ``max_attempts`` is exclusive (``phase_attempts < max_attempts``);
    ``order_by`` is applied left to right, missing values sort last.
    """

    ids: list[str] | None = None
    phases: list[Phase] | None = None
    site_ids: list[str] | None = None
    min_quality_score: float | None = None
    min_attempts: int | None = None
    max_attempts: int | None = None
    updated_before: datetime | None = None
    completed_after: datetime | None = None
    has_rejection_reason: bool | None = None
    order_by: list[tuple[str, bool]] = Field(default_factory=list)
    limit: int | None = None

    def matches(self, draft: Draft) -> bool:
        if self.ids is not None and draft.id not in self.ids:
            return False
        if self.phases is not None and draft.phase not in self.phases:
            return False
        if self.site_ids is not None and draft.site_id not in self.site_ids:
            return False
        if self.min_quality_score is not None and (
            draft.quality_score is None or draft.quality_score < self.min_quality_score
        ):
            return False
        if self.min_attempts is not None and draft.phase_attempts < self.min_attempts:
            return False
        if self.max_attempts is not None and draft.phase_attempts >= self.max_attempts:
            return False
        if self.updated_before is not None and draft.updated_at >= self.updated_before:
            return False
        if self.completed_after is not None and (
            draft.completed_at is None or draft.completed_at < self.completed_after
        ):
            return False
        if self.has_rejection_reason is not None:
            if bool(draft.rejection_reason) != self.has_rejection_reason:
                return False
        return True


class DraftRepository(ABC):
    """Persistence port consumed by the selector and the sweeper."""

    # -- Drafts ---------------------------------------------------------------

    @abstractmethod
    def find_drafts(self, query: DraftQuery) -> _list[Draft]:
        """Return drafts matching ``query``, ordered and limited."""

    @abstractmethod
    def get_draft(self, draft_id: str) -> Draft | None:
        """Return a draft by id, or None."""

    @abstractmethod
    def create_draft(self, draft: Draft) -> Draft:
        """Insert a new draft."""

    @abstractmethod
    def update_draft(self, draft_id: str, **changes: Any) -> Draft:
        """Apply ``changes`` to a draft and return the updated record.

        Raises DraftNotFoundError for unknown ids and ImmutableFieldError
        when trying to replace an already-set ``published_post_id``.
        """

    # -- Published posts ------------------------------------------------------

    @abstractmethod
    def find_posts(
        self,
        site_id: str | None = None,
        limit: int | None = None,
        *,
        source_draft_id: str | None = None,
    ) -> _list[PublishedPost]:
        """Return published posts, newest first.

        ``source_draft_id`` keeps only posts built from that draft.
        """

    @abstractmethod
    def get_post(self, post_id: str) -> PublishedPost | None:
        """Return a post by id, or None."""

    @abstractmethod
    def get_post_by_slug(self, slug: str) -> PublishedPost | None:
        """Return a post by slug, or None."""

    @abstractmethod
    def create_post(self, post: PublishedPost) -> PublishedPost:
        """Insert a post.  Raises DuplicateSlugError on slug collision."""

    @abstractmethod
    def update_post(self, post_id: str, **changes: Any) -> PublishedPost:
        """Apply ``changes`` to a post.  Raises PostNotFoundError."""

    # -- Recovery log ---------------------------------------------------------

    @abstractmethod
    def add_recovery_entry(self, entry: RecoveryLogEntry) -> None:
        """Append an entry to the recovery log."""

    @abstractmethod
    def count_recovery_entries(
        self,
        draft_id: str,
        since: datetime,
        source: RecoverySource | None = None,
        outcome: RecoveryOutcome | None = None,
    ) -> int:
        """Count entries for ``draft_id`` written at or after ``since``."""

    @abstractmethod
    def list_recovery_entries(
        self,
        since: datetime | None = None,
        source: RecoverySource | None = None,
        limit: int | None = None,
    ) -> _list[RecoveryLogEntry]:
        """Return recovery log entries, newest first."""


class _StoreData(BaseModel):
    """Internal wrapper for JSON serialization."""

    drafts: list[Draft] = Field(default_factory=list)
    posts: list[PublishedPost] = Field(default_factory=list)
    recovery_log: list[RecoveryLogEntry] = Field(default_factory=list)


def _order(records: _list[Draft], order_by: _list[tuple[str, bool]]) -> _list[Draft]:
    result = _list(records)
    # Stable sorts applied from the last key to the first give lexicographic order.
    for field, descending in reversed(order_by):
        present = [r for r in result if getattr(r, field) is not None]
        missing = [r for r in result if getattr(r, field) is None]
        present.sort(key=lambda r: getattr(r, field), reverse=descending)
        result = present + missing
    return result


class DraftStore(DraftRepository):
    """JSON-backed (or purely in-memory) draft repository.

    With ``output_dir=None`` nothing touches the disk, which is what the
    tests and dry runs use.
    """

    def __init__(self, output_dir: Path | None = None) -> None:
        self._path = output_dir / STORE_FILENAME if output_dir is not None else None
        self._data = self._load()

    # ── Private helpers ──────────────────────────────────────────

    def _load(self) -> _StoreData:
        if self._path is None or not self._path.exists():
            return _StoreData()
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
            return _StoreData.model_validate(raw)
        except (json.JSONDecodeError, ValueError, KeyError):
            logger.warning("Corrupt draft store at %s, starting fresh", self._path)
            return _StoreData()

    def _save(self) -> None:
        if self._path is None:
            return
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(
            self._data.model_dump_json(indent=2),
            encoding="utf-8",
        )

    def _draft_index(self, draft_id: str) -> int:
        for idx, draft in enumerate(self._data.drafts):
            if draft.id == draft_id:
                return idx
        raise DraftNotFoundError(draft_id)

    def _post_index(self, post_id: str) -> int:
        for idx, post in enumerate(self._data.posts):
            if post.id == post_id:
                return idx
        raise PostNotFoundError(post_id)

    # ── Drafts ───────────────────────────────────────────────────

    def find_drafts(self, query: DraftQuery) -> _list[Draft]:
        matched = [d for d in self._data.drafts if query.matches(d)]
        ordered = _order(matched, query.order_by)
        if query.limit is not None:
            ordered = ordered[: query.limit]
        return [d.model_copy(deep=True) for d in ordered]

    def get_draft(self, draft_id: str) -> Draft | None:
        for draft in self._data.drafts:
            if draft.id == draft_id:
                return draft.model_copy(deep=True)
        return None

    def create_draft(self, draft: Draft) -> Draft:
        if any(d.id == draft.id for d in self._data.drafts):
            raise ValueError(f"Draft already exists: {draft.id}")
        self._data.drafts.append(draft.model_copy(deep=True))
        self._save()
        return draft

    def update_draft(self, draft_id: str, **changes: Any) -> Draft:
        idx = self._draft_index(draft_id)
        current = self._data.drafts[idx]
        new_post_id = changes.get("published_post_id")
        if (
            "published_post_id" in changes
            and current.published_post_id is not None
            and new_post_id != current.published_post_id
        ):
            raise ImmutableFieldError(draft_id, "published_post_id")
        updated = Draft.model_validate({**current.model_dump(), **changes})
        self._data.drafts[idx] = updated
        self._save()
        return updated.model_copy(deep=True)

    # ── Published posts ──────────────────────────────────────────

    def find_posts(
        self,
        site_id: str | None = None,
        limit: int | None = None,
        *,
        source_draft_id: str | None = None,
    ) -> _list[PublishedPost]:
        posts = [
            p
            for p in self._data.posts
            if (site_id is None or p.site_id == site_id)
            and (source_draft_id is None or source_draft_id in p.source_draft_ids)
        ]
        posts.sort(key=lambda p: p.created_at, reverse=True)
        if limit is not None:
            posts = posts[:limit]
        return [p.model_copy(deep=True) for p in posts]

    def get_post(self, post_id: str) -> PublishedPost | None:
        for post in self._data.posts:
            if post.id == post_id:
                return post.model_copy(deep=True)
        return None

    def get_post_by_slug(self, slug: str) -> PublishedPost | None:
        for post in self._data.posts:
            if post.slug == slug:
                return post.model_copy(deep=True)
        return None

    def create_post(self, post: PublishedPost) -> PublishedPost:
        if any(p.slug == post.slug for p in self._data.posts):
            raise DuplicateSlugError(post.slug)
        self._data.posts.append(post.model_copy(deep=True))
        self._save()
        return post

    def update_post(self, post_id: str, **changes: Any) -> PublishedPost:
        idx = self._post_index(post_id)
        current = self._data.posts[idx]
        if "slug" in changes and changes["slug"] != current.slug:
            if any(p.slug == changes["slug"] for p in self._data.posts):
                raise DuplicateSlugError(changes["slug"])
        updated = PublishedPost.model_validate({**current.model_dump(), **changes})
        self._data.posts[idx] = updated
        self._save()
        return updated.model_copy(deep=True)

    # ── Recovery log ─────────────────────────────────────────────

    def add_recovery_entry(self, entry: RecoveryLogEntry) -> None:
        self._data.recovery_log.append(entry)
        self._save()

    def count_recovery_entries(
        self,
        draft_id: str,
        since: datetime,
        source: RecoverySource | None = None,
        outcome: RecoveryOutcome | None = None,
    ) -> int:
        return sum(
            1
            for e in self._data.recovery_log
            if e.draft_id == draft_id
            and e.created_at >= since
            and (source is None or e.source == source)
            and (outcome is None or e.outcome == outcome)
        )

    def list_recovery_entries(
        self,
        since: datetime | None = None,
        source: RecoverySource | None = None,
        limit: int | None = None,
    ) -> _list[RecoveryLogEntry]:
        entries = [
            e
            for e in self._data.recovery_log
            if (since is None or e.created_at >= since)
            and (source is None or e.source == source)
        ]
        entries.sort(key=lambda e: e.created_at, reverse=True)
        if limit is not None:
            entries = entries[:limit]
        return entries
