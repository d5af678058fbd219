"""Tests for memory configuration."""

from pathlib import Path

import pytest

from momentum.config import DEFAULT_DATA_PATH, MemoryConfig, config_from_env

ENV_VARS = (
    "MOMENTUM_DATA_PATH",
    "MOMENTUM_AUTOSAVE_INTERVAL",
    "MOMENTUM_EXTRACTION_TIMEOUT",
    "MOMENTUM_SUMMARY_TIMEOUT",
    "MOMENTUM_MAX_CALLS_PER_USER",
    "MOMENTUM_MAX_TOTAL_CALLS",
    "GROQ_MODEL",
)


@pytest.fixture
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestMemoryConfig:
    """Tests for MemoryConfig dataclass."""

    def test_default_values(self) -> None:
        """Should have sensible defaults."""
        config = MemoryConfig()

        assert config.data_path == DEFAULT_DATA_PATH
        assert config.data_path.name == "user_memories.json"
        assert config.autosave_interval == 30.0
        assert config.model == "llama-3.1-70b-versatile"
        assert config.max_calls_per_user == 100
        assert config.max_total_calls == 500
        assert config.min_message_length == 10
        assert config.history_limit == 50
        assert config.goals_limit == 10
        assert config.triggers_limit == 15
        assert config.problems_limit == 10
        assert config.decisions_limit == 10
        assert config.topics_limit == 20
        assert config.timeline_days == 60

    def test_expands_user(self) -> None:
        config = MemoryConfig(data_path=Path("~/memories.json"))
        assert config.data_path == Path.home() / "memories.json"

    def test_invalid_interval(self) -> None:
        with pytest.raises(ValueError, match="autosave_interval"):
            MemoryConfig(autosave_interval=0)

    def test_invalid_timeout(self) -> None:
        with pytest.raises(ValueError, match="timeouts"):
            MemoryConfig(summary_timeout=-1)

    def test_invalid_limit(self) -> None:
        """Should reject limits below 1."""
        with pytest.raises(ValueError, match="history_limit must be at least 1"):
            MemoryConfig(history_limit=0)


class TestConfigFromEnv:
    """Tests for config_from_env."""

    def test_defaults_without_env(self, clean_env) -> None:
        config = config_from_env()
        assert config == MemoryConfig()

    def test_reads_env(self, clean_env, tmp_path: Path) -> None:
        clean_env.setenv("MOMENTUM_DATA_PATH", str(tmp_path / "m.json"))
        clean_env.setenv("MOMENTUM_AUTOSAVE_INTERVAL", "5")
        clean_env.setenv("MOMENTUM_MAX_CALLS_PER_USER", "20")
        clean_env.setenv("MOMENTUM_MAX_TOTAL_CALLS", "40")
        clean_env.setenv("MOMENTUM_EXTRACTION_TIMEOUT", "2.5")
        clean_env.setenv("GROQ_MODEL", "llama-3.3-70b-versatile")

        config = config_from_env()

        assert config.data_path == tmp_path / "m.json"
        assert config.autosave_interval == 5.0
        assert config.max_calls_per_user == 20
        assert config.max_total_calls == 40
        assert config.extraction_timeout == 2.5
        assert config.model == "llama-3.3-70b-versatile"

    def test_invalid_number_falls_back(self, clean_env) -> None:
        clean_env.setenv("MOMENTUM_MAX_CALLS_PER_USER", "lots")
        clean_env.setenv("MOMENTUM_SUMMARY_TIMEOUT", "soon")

        config = config_from_env()

        assert config.max_calls_per_user == 100
        assert config.summary_timeout == 5.0
