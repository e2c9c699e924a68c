"""Tests for pressline.config: PresslineConfig, TOML loading, env overrides."""

from pathlib import Path

import pytest
from pressline.config import PresslineConfig, SiteConfig, load_config

SAMPLE_TOML = """
[store]
directory = "/var/lib/pressline"

[selector]
quality_gate_score = 75
max_promotions_per_run = 3

[sweeper]
stuck_threshold_minutes = 45

[gate]
min_words = 800

[[sites]]
id = "yalla-london"
name = "Yalla London"
domain = "www.yalla-london.com"
destination = "London"

[[sites.affiliates]]
name = "TheFork"
url = "https://www.thefork.co.uk"
param = "?ref=yl"
keywords = ["restaurant", "dining"]

[[sites]]
id = "arabaldives"
active = false
"""

ENV_VARS = (
    "PRESSLINE_STORE_DIR",
    "PRESSLINE_QUALITY_GATE",
    "PRESSLINE_MAX_PROMOTIONS",
    "PRESSLINE_TIMEOUT_BUDGET",
    "PRESSLINE_MAX_RECOVERIES",
    "PRESSLINE_STUCK_MINUTES",
)


class TestPresslineConfigDefaults:
    """Test that PresslineConfig has sensible defaults."""

    def test_selector_defaults(self):
        cfg = PresslineConfig()
        assert cfg.selector.quality_gate_score == 70
        assert cfg.selector.max_promotions_per_run == 2
        assert cfg.selector.timeout_budget_seconds == 53.0
        assert cfg.selector.min_remaining_seconds == 5.0

    def test_sweeper_defaults(self):
        cfg = PresslineConfig()
        assert cfg.sweeper.max_recoveries_per_run == 10
        assert cfg.sweeper.max_phase_attempts == 3
        assert cfg.sweeper.stuck_threshold_minutes == 60
        assert cfg.sweeper.dedup_window_minutes == 120

    def test_no_sites(self):
        cfg = PresslineConfig()
        assert cfg.sites == []
        assert cfg.active_site_ids == []

    def test_store_dir(self):
        assert PresslineConfig().store_dir == Path("./.pressline")


class TestSiteConfig:
    def test_base_url_adds_scheme(self):
        assert SiteConfig(id="s", domain="www.example.com/").base_url == "https://www.example.com"

    def test_base_url_keeps_scheme(self):
        assert SiteConfig(id="s", domain="http://localhost:3000").base_url == "http://localhost:3000"

    def test_base_url_empty(self):
        assert SiteConfig(id="s").base_url == ""


class TestLoadConfig:
    """Test load_config with TOML files."""

    @pytest.fixture(autouse=True)
    def _clean_env(self, monkeypatch):
        """Remove env vars that _apply_env_vars reads so tests see TOML values."""
        for key in ENV_VARS:
            monkeypatch.delenv(key, raising=False)

    def test_load_from_explicit_path(self, tmp_path):
        toml_path = tmp_path / ".pressline.toml"
        toml_path.write_text(SAMPLE_TOML)

        cfg = load_config(toml_path)

        assert cfg.store.directory == "/var/lib/pressline"
        assert cfg.selector.quality_gate_score == 75
        assert cfg.selector.max_promotions_per_run == 3
        assert cfg.sweeper.stuck_threshold_minutes == 45
        assert cfg.gate.min_words == 800
        assert cfg.active_site_ids == ["yalla-london"]
        site = cfg.get_site("yalla-london")
        assert site is not None
        assert site.affiliates[0].link == "https://www.thefork.co.uk?ref=yl"
        assert cfg.get_site("missing") is None

    def test_load_missing_path_returns_defaults(self, tmp_path):
        cfg = load_config(tmp_path / "nonexistent.toml")
        assert cfg.selector.quality_gate_score == 70

    def test_load_searches_cwd(self, tmp_path, monkeypatch):
        (tmp_path / ".pressline.toml").write_text("[selector]\nmax_promotions_per_run = 5\n")
        monkeypatch.chdir(tmp_path)

        cfg = load_config()

        assert cfg.selector.max_promotions_per_run == 5

    def test_invalid_toml_returns_defaults(self, tmp_path):
        toml_path = tmp_path / "bad.toml"
        toml_path.write_text("[selector\nbroken = ")

        cfg = load_config(toml_path)

        assert cfg.selector.max_promotions_per_run == 2

    def test_invalid_values_return_defaults(self, tmp_path):
        toml_path = tmp_path / "bad.toml"
        toml_path.write_text('[selector]\nmax_promotions_per_run = "many"\n')

        cfg = load_config(toml_path)

        assert cfg.selector.max_promotions_per_run == 2


class TestEnvOverrides:
    @pytest.fixture(autouse=True)
    def _clean_env(self, monkeypatch):
        for key in ENV_VARS:
            monkeypatch.delenv(key, raising=False)

    def test_env_overrides_toml(self, tmp_path, monkeypatch):
        toml_path = tmp_path / ".pressline.toml"
        toml_path.write_text(SAMPLE_TOML)
        monkeypatch.setenv("PRESSLINE_QUALITY_GATE", "80")
        monkeypatch.setenv("PRESSLINE_STORE_DIR", str(tmp_path / "store"))
        monkeypatch.setenv("PRESSLINE_MAX_RECOVERIES", "4")

        cfg = load_config(toml_path)

        assert cfg.selector.quality_gate_score == 80
        assert cfg.store_dir == tmp_path / "store"
        assert cfg.sweeper.max_recoveries_per_run == 4
        assert cfg.active_site_ids == ["yalla-london"]

    def test_invalid_env_value_ignored(self, tmp_path, monkeypatch):
        monkeypatch.setenv("PRESSLINE_MAX_PROMOTIONS", "lots")

        cfg = load_config(tmp_path / "nonexistent.toml")

        assert cfg.selector.max_promotions_per_run == 2
