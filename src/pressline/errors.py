"""Exception hierarchy and non-fatal error reporting for pressline runs."""

from __future__ import annotations

from datetime import UTC, datetime

from pydantic import BaseModel, Field


class PresslineError(Exception):
    """Base error for the pressline package."""


class RepositoryError(PresslineError):
    """A persistence operation failed."""


class DraftNotFoundError(RepositoryError):
    def __init__(self, draft_id: str) -> None:
        super().__init__(f"Draft not found: {draft_id}")
        self.draft_id = draft_id


class PostNotFoundError(RepositoryError):
    def __init__(self, post_id: str) -> None:
        super().__init__(f"Published post not found: {post_id}")
        self.post_id = post_id


class DuplicateSlugError(RepositoryError):
    def __init__(self, slug: str) -> None:
        super().__init__(f"Slug already in use: {slug}")
        self.slug = slug


class ImmutableFieldError(RepositoryError):
    def __init__(self, record_id: str, field: str) -> None:
        super().__init__(f"Field {field!r} of {record_id} is immutable once set")
        self.record_id = record_id
        self.field = field


class PhaseTransitionError(PresslineError):
    def __init__(self, source: str, target: str) -> None:
        super().__init__(f"Phase transition not allowed: {source} -> {target}")
        self.source = source
        self.target = target


class GateError(PresslineError):
    """The pre-publication validator could not produce a verdict."""


class PipelineError(BaseModel):
    """A single non-fatal error captured during a run."""

    stage: str
    target: str
    source: str = ""
    error_type: str = "error"
    message: str = ""
    recorded_at: datetime = Field(default_factory=lambda: datetime.now(tz=UTC))


class PipelineReport(BaseModel):
    """Collects non-fatal errors so a run can finish with partial results."""

    errors: list[PipelineError] = Field(default_factory=list)

    def add_error(
        self,
        stage: str,
        target: str,
        *,
        source: str = "",
        error_type: str = "error",
        message: str = "",
    ) -> None:
        self.errors.append(
            PipelineError(
                stage=stage,
                target=target,
                source=source,
                error_type=error_type,
                message=message,
            )
        )

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)

    def errors_for(self, stage: str) -> list[PipelineError]:
        return [e for e in self.errors if e.stage == stage]
