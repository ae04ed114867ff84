"""Tests for config loader."""

from __future__ import annotations

from pathlib import Path  # noqa: TCH003

import pytest

from derivbot.config.loader import ConfigError, ConfigLoader, env_sections, parse_env_value


class TestConfigLoader:
    def test_load_default(self, config_dir: Path) -> None:
        loader = ConfigLoader(config_dir=config_dir, environ={})
        sections = loader.load()
        assert sections["trading"]["threshold"] == 3
        assert sections["api"]["app_id"] == 1089
        assert loader.sources == ["default.toml"]

    def test_section_is_a_copy(self, config_loader: ConfigLoader) -> None:
        trading = config_loader.section("trading")
        trading["threshold"] = 99
        assert config_loader.section("trading")["threshold"] == 3

    def test_missing_section_is_empty(self, config_loader: ConfigLoader) -> None:
        assert config_loader.section("nonexistent") == {}

    def test_section_loads_lazily(self, config_dir: Path) -> None:
        loader = ConfigLoader(config_dir=config_dir, environ={})
        assert loader.section("connection")["request_timeout_seconds"] == 30

    def test_env_file_overlays_per_key(self, config_dir: Path) -> None:
        (config_dir / "staging.toml").write_text("[trading]\nthreshold = 5\n")
        loader = ConfigLoader(config_dir=config_dir, env="staging", environ={})
        loader.load()
        assert loader.section("trading")["threshold"] == 5
        # Other keys still present from default
        assert loader.section("trading")["currency"] == "USD"
        assert loader.sources == ["default.toml", "staging.toml"]

    def test_environment_overrides_files(self, config_dir: Path) -> None:
        (config_dir / "staging.toml").write_text("[safety]\nmax_consecutive_losses = 3\n")
        loader = ConfigLoader(
            config_dir=config_dir,
            env="staging",
            environ={"DERIVBOT__SAFETY__MAX_CONSECUTIVE_LOSSES": "5"},
        )
        loader.load()
        assert loader.section("safety")["max_consecutive_losses"] == 5
        assert loader.sources[-1] == "environment"

    def test_reads_process_environment(self, config_dir: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("DERIVBOT__trading__symbols", "R_10,R_25")
        loader = ConfigLoader(config_dir=config_dir)
        assert loader.section("trading")["symbols"] == ["R_10", "R_25"]

    def test_env_from_environment(self, config_dir: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("DERIVBOT_ENV", "production")
        assert ConfigLoader(config_dir=config_dir).env == "production"

    def test_missing_default_raises(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="Default config not found"):
            ConfigLoader(config_dir=tmp_path / "nonexistent").load()

    def test_malformed_toml_raises(self, config_dir: Path) -> None:
        (config_dir / "broken.toml").write_text("[trading\nthreshold = \n")
        with pytest.raises(ConfigError, match="broken.toml"):
            ConfigLoader(config_dir=config_dir, env="broken", environ={}).load()

    def test_top_level_scalar_rejected(self, config_dir: Path) -> None:
        (config_dir / "flat.toml").write_text("threshold = 4\n")
        with pytest.raises(ConfigError, match="must be a \\[section\\] table"):
            ConfigLoader(config_dir=config_dir, env="flat", environ={}).load()


class TestEnvironmentValues:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("5", 5),
            ("0", 0),
            ("2.5", 2.5),
            ("true", True),
            ("R_100", "R_100"),
            ('"0123"', "0123"),
            ("[0.35, 0.69]", [0.35, 0.69]),
            ("0.35,0.69", [0.35, 0.69]),
            ("R_10, 1HZ10V", ["R_10", "1HZ10V"]),
        ],
    )
    def test_parse_env_value(self, raw: str, expected: object) -> None:
        assert parse_env_value(raw) == expected

    def test_env_sections_groups_by_section(self) -> None:
        sections = env_sections(
            {
                "DERIVBOT__API__TOKEN": "abc123",
                "DERIVBOT__trading__threshold": "4",
                "DERIVBOT_ENV": "production",
                "HOME": "/root",
            }
        )
        assert sections == {"api": {"token": "abc123"}, "trading": {"threshold": 4}}

    @pytest.mark.parametrize("name", ["DERIVBOT__threshold", "DERIVBOT__trading__limits__max", "DERIVBOT____x"])
    def test_env_sections_rejects_bad_names(self, name: str) -> None:
        with pytest.raises(ConfigError, match="expected DERIVBOT__<section>__<key>"):
            env_sections({name: "1"})
