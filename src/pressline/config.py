"""Unified configuration loaded from .pressline.toml and env vars.

Loading order: defaults → TOML file → env vars.  CLI flags are applied by
the command itself on top of the loaded config.
"""

from __future__ import annotations

import logging
import os
import tomllib
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".pressline.toml"
CONFIG_SEARCH_PATHS = [
    Path("."),
]
GLOBAL_CONFIG_PATH = Path.home() / ".config" / "pressline" / "config.toml"


class AffiliateRule(BaseModel):
    """A partner link offered when any keyword appears in the post body."""

    name: str
    url: str
    param: str = ""
    keywords: list[str] = Field(default_factory=list)

    @property
    def link(self) -> str:
        return f"{self.url}{self.param}"


class SiteConfig(BaseModel):
    """A single [[sites]] entry."""

    id: str
    name: str = ""
    domain: str = ""
    destination: str = ""
    active: bool = True
    affiliates: list[AffiliateRule] = Field(default_factory=list)

    @property
    def base_url(self) -> str:
        domain = self.domain.rstrip("/")
        if not domain:
            return ""
        if domain.startswith(("http://", "https://")):
            return domain
        return f"https://{domain}"


class StoreSectionConfig(BaseModel):
    """[store] section."""

    directory: str = "./.pressline"


class SelectorSectionConfig(BaseModel):
    """[selector] section."""

    quality_gate_score: float = 70
    max_promotions_per_run: int = 2
    candidate_multiplier: int = 3
    timeout_budget_seconds: float = 53.0
    min_remaining_seconds: float = 5.0
    max_affiliate_partners: int = 3


class SweeperSectionConfig(BaseModel):
    """[sweeper] section."""

    max_recoveries_per_run: int = 10
    max_phase_attempts: int = 3
    stuck_threshold_minutes: int = 60
    frozen_threshold_hours: int = 12
    rejected_lookback_hours: int = 24
    dedup_window_minutes: int = 120


class GateSectionConfig(BaseModel):
    """[gate] section: thresholds for the built-in pre-publication gate."""

    min_title_length: int = 10
    thin_content_chars: int = 300
    min_words: int = 1000
    target_words: int = 1200
    meta_title_min: int = 30
    meta_title_max: int = 160
    meta_description_min: int = 120
    meta_description_max: int = 160
    seo_score_target: float = 70
    seo_score_blocker: float = 50
    min_h2_count: int = 2


class PresslineConfig(BaseModel):
    """Top-level configuration model."""

    store: StoreSectionConfig = Field(default_factory=StoreSectionConfig)
    selector: SelectorSectionConfig = Field(default_factory=SelectorSectionConfig)
    sweeper: SweeperSectionConfig = Field(default_factory=SweeperSectionConfig)
    gate: GateSectionConfig = Field(default_factory=GateSectionConfig)
    sites: list[SiteConfig] = Field(default_factory=list)

    @property
    def active_site_ids(self) -> list[str]:
        return [s.id for s in self.sites if s.active]

    def get_site(self, site_id: str) -> SiteConfig | None:
        for site in self.sites:
            if site.id == site_id:
                return site
        return None

    @property
    def store_dir(self) -> Path:
        return Path(self.store.directory)


def load_config(path: str | Path | None = None) -> PresslineConfig:
    """Load configuration from a TOML file, then overlay env vars.

    Search order:
    1. Explicit path (if provided)
    2. .pressline.toml in CWD
    3. ~/.config/pressline/config.toml
    """
    data: dict[str, object] = {}

    if path is not None:
        toml_path = Path(path)
        if toml_path.exists():
            data = _load_toml(toml_path)
        else:
            logger.warning("Config file not found: %s", toml_path)
    else:
        for search_dir in CONFIG_SEARCH_PATHS:
            candidate = search_dir / CONFIG_FILENAME
            if candidate.exists():
                data = _load_toml(candidate)
                logger.info("Loaded config from %s", candidate)
                break
        if not data and GLOBAL_CONFIG_PATH.exists():
            data = _load_toml(GLOBAL_CONFIG_PATH)
            logger.info("Loaded config from %s", GLOBAL_CONFIG_PATH)

    try:
        config = PresslineConfig.model_validate(data) if data else PresslineConfig()
    except ValidationError as exc:
        logger.warning("Invalid config, using defaults: %s", exc)
        config = PresslineConfig()

    return _apply_env_vars(config)


def _load_toml(path: Path) -> dict[str, object]:
    """Load a TOML file and return the data dict."""
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except (tomllib.TOMLDecodeError, OSError) as exc:
        logger.warning("Failed to parse %s: %s", path, exc)
        return {}


_ENV_MAPPING: dict[str, tuple[str, str]] = {
    "PRESSLINE_STORE_DIR": ("store", "directory"),
    "PRESSLINE_QUALITY_GATE": ("selector", "quality_gate_score"),
    "PRESSLINE_MAX_PROMOTIONS": ("selector", "max_promotions_per_run"),
    "PRESSLINE_TIMEOUT_BUDGET": ("selector", "timeout_budget_seconds"),
    "PRESSLINE_MAX_RECOVERIES": ("sweeper", "max_recoveries_per_run"),
    "PRESSLINE_STUCK_MINUTES": ("sweeper", "stuck_threshold_minutes"),
}


def _apply_env_vars(config: PresslineConfig) -> PresslineConfig:
    """Apply environment variable overrides to config."""
    data = config.model_dump()

    for env_var, (section, field) in _ENV_MAPPING.items():
        value = os.environ.get(env_var)
        if value is not None:
            data[section][field] = value

    try:
        return PresslineConfig.model_validate(data)
    except ValidationError as exc:
        logger.warning("Ignoring invalid environment overrides: %s", exc)
        return config
