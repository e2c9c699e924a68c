"""Shared fixtures: an in-memory store, a fixed clock and draft factories."""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime, timedelta

import pytest
from pressline.config import AffiliateRule, PresslineConfig, SiteConfig
from pressline.drafts.models import Draft, Locale, Phase
from pressline.drafts.store import DraftStore

NOW = datetime(2026, 3, 14, 12, 0, tzinfo=UTC)

LONG_BODY = (
    "<h1>Guide</h1>"
    + "".join(
        f"<h2>Section {i}</h2><p>{'Luxury halal dining and hotel tips for families. ' * 40}</p>"
        for i in range(4)
    )
)


class FakeClock:
    """A controllable clock for code that takes ``clock=``."""

    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> DraftStore:
    return DraftStore()


@pytest.fixture
def config() -> PresslineConfig:
    return PresslineConfig(
        sites=[
            SiteConfig(
                id="yalla-london",
                name="Yalla London",
                domain="www.yalla-london.com",
                destination="London",
                affiliates=[
                    AffiliateRule(
                        name="TheFork",
                        url="https://www.thefork.co.uk/london",
                        param="?ref=yl",
                        keywords=["restaurant", "dining", "halal"],
                    ),
                    AffiliateRule(
                        name="Booking.com",
                        url="https://www.booking.com/city/gb/london.html",
                        keywords=["hotel"],
                    ),
                ],
            ),
        ]
    )


@pytest.fixture
def make_draft(store: DraftStore) -> Callable[..., Draft]:
    """Create and persist a draft with sensible defaults."""

    def _make(
        keyword: str = "halal fine dining mayfair",
        phase: Phase = Phase.RESERVOIR,
        **kwargs: object,
    ) -> Draft:
        defaults: dict[str, object] = {
            "site_id": "yalla-london",
            "locale": Locale.EN,
            "topic_title": f"The Complete Guide to {keyword.title()}",
            "quality_score": 80,
            "seo_score": 80,
            "assembled_html": LONG_BODY,
            "seo_meta": {
                "metaTitle": f"{keyword.title()} - Luxury Guide for Arab Travellers",
                "metaDescription": "A detailed, locally researched guide " * 4,
            },
            "created_at": NOW - timedelta(days=2),
            "updated_at": NOW - timedelta(hours=1),
        }
        defaults.update(kwargs)
        draft = Draft(keyword=keyword, phase=phase, **defaults)  # type: ignore[arg-type]
        return store.create_draft(draft)

    return _make
