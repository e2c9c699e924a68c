"""Tests for DraftStore, the JSON-backed draft repository."""

import json
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
from pressline.drafts.models import (
    Draft,
    Phase,
    PublishedPost,
    RecoveryLogEntry,
    RecoveryOutcome,
    RecoverySource,
)
from pressline.drafts.store import STORE_FILENAME, DraftQuery, DraftStore
from pressline.errors import (
    DraftNotFoundError,
    DuplicateSlugError,
    ImmutableFieldError,
    PostNotFoundError,
)

NOW = datetime(2026, 3, 14, 12, 0, tzinfo=UTC)


def _make_draft(keyword: str = "halal brunch", phase: Phase = Phase.RESERVOIR, **kwargs: object) -> Draft:
    """Helper to build a Draft with sensible defaults."""
    return Draft(site_id="yalla-london", keyword=keyword, phase=phase, **kwargs)  # type: ignore[arg-type]


def _entry(draft_id: str, minutes_ago: int, **kwargs: object) -> RecoveryLogEntry:
    defaults: dict[str, object] = {
        "source": RecoverySource.SWEEPER,
        "category": "stuck",
        "problem": "stuck",
        "outcome": RecoveryOutcome.RECOVERED,
    }
    defaults.update(kwargs)
    return RecoveryLogEntry(
        draft_id=draft_id,
        created_at=NOW - timedelta(minutes=minutes_ago),
        **defaults,  # type: ignore[arg-type]
    )


class TestDrafts:
    def test_create_and_get(self):
        store = DraftStore()
        draft = store.create_draft(_make_draft())
        fetched = store.get_draft(draft.id)
        assert fetched is not None
        assert fetched.keyword == "halal brunch"

    def test_get_missing(self):
        assert DraftStore().get_draft("nope") is None

    def test_duplicate_id_rejected(self):
        store = DraftStore()
        draft = store.create_draft(_make_draft())
        with pytest.raises(ValueError, match="already exists"):
            store.create_draft(draft)

    def test_returns_copies(self):
        store = DraftStore()
        draft = store.create_draft(_make_draft())
        fetched = store.get_draft(draft.id)
        assert fetched is not None
        fetched.keyword = "mutated"
        assert store.get_draft(draft.id).keyword == "halal brunch"  # type: ignore[union-attr]

    def test_update(self):
        store = DraftStore()
        draft = store.create_draft(_make_draft())
        updated = store.update_draft(draft.id, last_error="boom", phase_attempts=2)
        assert updated.last_error == "boom"
        assert store.get_draft(draft.id).phase_attempts == 2  # type: ignore[union-attr]

    def test_update_missing(self):
        with pytest.raises(DraftNotFoundError):
            DraftStore().update_draft("nope", last_error="x")

    def test_update_validates(self):
        store = DraftStore()
        draft = store.create_draft(_make_draft())
        with pytest.raises(ValueError):
            store.update_draft(draft.id, phase="not-a-phase")

    def test_published_post_id_is_write_once(self):
        store = DraftStore()
        draft = store.create_draft(_make_draft())
        store.update_draft(draft.id, published_post_id="post-1")
        store.update_draft(draft.id, published_post_id="post-1")
        with pytest.raises(ImmutableFieldError):
            store.update_draft(draft.id, published_post_id="post-2")


class TestFindDrafts:
    def test_filters_by_phase_and_site(self):
        store = DraftStore()
        store.create_draft(_make_draft("a"))
        store.create_draft(_make_draft("b", Phase.DRAFTING))
        store.create_draft(Draft(site_id="other", keyword="c", phase=Phase.RESERVOIR))

        found = store.find_drafts(DraftQuery(phases=[Phase.RESERVOIR], site_ids=["yalla-london"]))
        assert [d.keyword for d in found] == ["a"]

    def test_min_quality_excludes_unscored(self):
        store = DraftStore()
        store.create_draft(_make_draft("low", quality_score=60))
        store.create_draft(_make_draft("high", quality_score=75))
        store.create_draft(_make_draft("unscored"))

        found = store.find_drafts(DraftQuery(min_quality_score=70))
        assert [d.keyword for d in found] == ["high"]

    def test_attempt_bounds(self):
        store = DraftStore()
        for n in range(5):
            store.create_draft(_make_draft(f"k{n}", phase_attempts=n))

        below = store.find_drafts(DraftQuery(max_attempts=3))
        at_or_above = store.find_drafts(DraftQuery(min_attempts=3))
        assert {d.phase_attempts for d in below} == {0, 1, 2}
        assert {d.phase_attempts for d in at_or_above} == {3, 4}

    def test_time_filters(self):
        store = DraftStore()
        store.create_draft(_make_draft("old", updated_at=NOW - timedelta(hours=2)))
        store.create_draft(_make_draft("new", updated_at=NOW))
        store.create_draft(_make_draft("done", completed_at=NOW - timedelta(hours=1)))

        stale = store.find_drafts(DraftQuery(updated_before=NOW - timedelta(hours=1)))
        completed = store.find_drafts(DraftQuery(completed_after=NOW - timedelta(hours=3)))
        assert [d.keyword for d in stale] == ["old"]
        assert [d.keyword for d in completed] == ["done"]

    def test_rejection_reason_filter(self):
        store = DraftStore()
        store.create_draft(_make_draft("r", Phase.REJECTED, rejection_reason="timeout"))
        store.create_draft(_make_draft("blank", Phase.REJECTED))

        found = store.find_drafts(DraftQuery(has_rejection_reason=True))
        assert [d.keyword for d in found] == ["r"]

    def test_order_and_limit(self):
        store = DraftStore()
        store.create_draft(_make_draft("b", quality_score=80, created_at=NOW))
        store.create_draft(_make_draft("a", quality_score=80, created_at=NOW - timedelta(days=1)))
        store.create_draft(_make_draft("c", quality_score=90, created_at=NOW))
        store.create_draft(_make_draft("none"))

        ordered = store.find_drafts(
            DraftQuery(order_by=[("quality_score", True), ("created_at", False)])
        )
        assert [d.keyword for d in ordered] == ["c", "a", "b", "none"]

        limited = store.find_drafts(DraftQuery(order_by=[("quality_score", True)], limit=1))
        assert [d.keyword for d in limited] == ["c"]


class TestPosts:
    def test_create_and_lookup(self):
        store = DraftStore()
        post = store.create_post(PublishedPost(site_id="s", slug="halal-brunch-2026-03-14"))
        assert store.get_post(post.id) is not None
        assert store.get_post_by_slug("halal-brunch-2026-03-14").id == post.id  # type: ignore[union-attr]

    def test_duplicate_slug(self):
        store = DraftStore()
        store.create_post(PublishedPost(site_id="s", slug="dup"))
        with pytest.raises(DuplicateSlugError):
            store.create_post(PublishedPost(site_id="s", slug="dup"))

    def test_update_post(self):
        store = DraftStore()
        post = store.create_post(PublishedPost(site_id="s", slug="x"))
        updated = store.update_post(post.id, indexing_status="discovered")
        assert updated.indexing_status == "discovered"

    def test_update_post_slug_collision(self):
        store = DraftStore()
        store.create_post(PublishedPost(site_id="s", slug="taken"))
        post = store.create_post(PublishedPost(site_id="s", slug="mine"))
        with pytest.raises(DuplicateSlugError):
            store.update_post(post.id, slug="taken")

    def test_update_missing_post(self):
        with pytest.raises(PostNotFoundError):
            DraftStore().update_post("nope", title_en="x")

    def test_find_posts_newest_first(self):
        store = DraftStore()
        store.create_post(PublishedPost(site_id="s", slug="old", created_at=NOW - timedelta(days=1)))
        store.create_post(PublishedPost(site_id="s", slug="new", created_at=NOW))
        store.create_post(PublishedPost(site_id="t", slug="other", created_at=NOW))

        assert [p.slug for p in store.find_posts(site_id="s")] == ["new", "old"]
        assert len(store.find_posts(limit=1)) == 1

    def test_find_posts_by_source_draft(self):
        store = DraftStore()
        mine = store.create_post(PublishedPost(site_id="s", slug="mine", source_draft_ids=["d1", "d2"]))
        store.create_post(PublishedPost(site_id="s", slug="other", source_draft_ids=["d3"]))

        assert [p.id for p in store.find_posts(source_draft_id="d2")] == [mine.id]
        assert store.find_posts(source_draft_id="missing") == []


class TestRecoveryLog:
    def test_count_within_window(self):
        store = DraftStore()
        store.add_recovery_entry(_entry("d1", 30))
        store.add_recovery_entry(_entry("d1", 300))
        store.add_recovery_entry(_entry("d2", 10))

        assert store.count_recovery_entries("d1", since=NOW - timedelta(hours=2)) == 1

    def test_count_filters_source_and_outcome(self):
        store = DraftStore()
        store.add_recovery_entry(_entry("d1", 10))
        store.add_recovery_entry(
            _entry("d1", 10, source=RecoverySource.CONTENT_SELECTOR, outcome=RecoveryOutcome.FAILED)
        )
        since = NOW - timedelta(hours=1)

        assert store.count_recovery_entries("d1", since) == 2
        assert store.count_recovery_entries("d1", since, source=RecoverySource.SWEEPER) == 1
        assert store.count_recovery_entries("d1", since, outcome=RecoveryOutcome.FAILED) == 1

    def test_list_newest_first(self):
        store = DraftStore()
        store.add_recovery_entry(_entry("a", 60))
        store.add_recovery_entry(_entry("b", 5))
        store.add_recovery_entry(_entry("c", 600))

        entries = store.list_recovery_entries(since=NOW - timedelta(hours=2))
        assert [e.draft_id for e in entries] == ["b", "a"]
        assert len(store.list_recovery_entries(limit=1)) == 1


class TestPersistence:
    def test_persists_to_disk(self, tmp_path: Path):
        store = DraftStore(tmp_path)
        draft = store.create_draft(_make_draft())
        store.create_post(PublishedPost(site_id="s", slug="x", source_draft_ids=[draft.id]))
        store.add_recovery_entry(_entry(draft.id, 1))

        data = json.loads((tmp_path / STORE_FILENAME).read_text(encoding="utf-8"))
        assert len(data["drafts"]) == 1
        assert len(data["posts"]) == 1
        assert len(data["recovery_log"]) == 1

    def test_reload(self, tmp_path: Path):
        store = DraftStore(tmp_path)
        draft = store.create_draft(_make_draft())
        store.update_draft(draft.id, phase=Phase.PUBLISHED, published_post_id="p1")

        reloaded = DraftStore(tmp_path).get_draft(draft.id)
        assert reloaded is not None
        assert reloaded.phase == Phase.PUBLISHED
        assert reloaded.published_post_id == "p1"

    def test_corrupt_file_starts_fresh(self, tmp_path: Path):
        (tmp_path / STORE_FILENAME).write_text("{not json", encoding="utf-8")
        store = DraftStore(tmp_path)
        assert store.find_drafts(DraftQuery()) == []

    def test_in_memory_writes_nothing(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.chdir(tmp_path)
        store = DraftStore()
        store.create_draft(_make_draft())
        assert list(tmp_path.iterdir()) == []
