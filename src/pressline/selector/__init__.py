"""Content selector: quality gate, diversity filter and promotion."""

from pressline.selector.diversity import (
    DiversitySelection,
    SkippedCandidate,
    keywords_overlap,
    select_diverse,
)
from pressline.selector.enrichment import (
    AffiliateLinkInjector,
    EnrichmentContext,
    IndexingStatusTracker,
    PostEnricher,
    StructuredDataInjector,
    default_enrichers,
)
from pressline.selector.gate import (
    GateInput,
    GateResult,
    PrePublicationValidator,
    StandardPrePublicationGate,
)
from pressline.selector.runner import (
    ContentSelector,
    PromotedItem,
    SelectorResult,
    run_content_selector,
)
from pressline.selector.slugs import assign_slug, slugify

__all__ = [
    "AffiliateLinkInjector",
    "ContentSelector",
    "DiversitySelection",
    "EnrichmentContext",
    "GateInput",
    "GateResult",
    "IndexingStatusTracker",
    "PostEnricher",
    "PrePublicationValidator",
    "PromotedItem",
    "SelectorResult",
    "SkippedCandidate",
    "StandardPrePublicationGate",
    "StructuredDataInjector",
    "assign_slug",
    "default_enrichers",
    "keywords_overlap",
    "run_content_selector",
    "select_diverse",
    "slugify",
]
