"""
Tests for EngineConfig loading from the environment.
"""

import dataclasses
import os

import pytest

from videomix.config import EngineConfig, QUEUE_BACKEND_SQLITE


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in list(os.environ):
        if name.startswith("VIDEOMIX_"):
            monkeypatch.delenv(name)


class TestEngineConfig:

    def test_defaults_with_empty_environment(self):
        config = EngineConfig.from_env()

        assert config == EngineConfig()
        assert config.catalog_dir is None
        assert config.ffmpeg_path is None
        assert config.max_concurrent_mixes == 5
        assert config.max_attempts == 3

    def test_values_from_environment(self, monkeypatch):
        monkeypatch.setenv("VIDEOMIX_DB_PATH", "/data/mix.db")
        monkeypatch.setenv("VIDEOMIX_CATALOG_DIR", "/data/projects")
        monkeypatch.setenv("VIDEOMIX_QUEUE_BACKEND", "SQLite")
        monkeypatch.setenv("VIDEOMIX_MAX_CONCURRENT_MIXES", "8")
        monkeypatch.setenv("VIDEOMIX_TRANSCODE_TIMEOUT", "90.5")

        config = EngineConfig.from_env()

        assert config.db_path == "/data/mix.db"
        assert config.catalog_dir == "/data/projects"
        assert config.queue_backend == QUEUE_BACKEND_SQLITE
        assert config.max_concurrent_mixes == 8
        assert config.transcode_timeout == 90.5

    def test_blank_values_fall_back_to_defaults(self, monkeypatch):
        monkeypatch.setenv("VIDEOMIX_MAX_CONCURRENT_JOBS", "  ")
        monkeypatch.setenv("VIDEOMIX_FFMPEG_PATH", "")

        config = EngineConfig.from_env()

        assert config.max_concurrent_jobs == 2
        assert config.ffmpeg_path is None

    def test_non_numeric_value(self, monkeypatch):
        monkeypatch.setenv("VIDEOMIX_MAX_CONCURRENT_JOBS", "many")

        with pytest.raises(ValueError, match="VIDEOMIX_MAX_CONCURRENT_JOBS must be an integer"):
            EngineConfig.from_env()

    def test_unknown_queue_backend(self, monkeypatch):
        monkeypatch.setenv("VIDEOMIX_QUEUE_BACKEND", "redis")

        with pytest.raises(ValueError, match="Unknown queue backend"):
            EngineConfig.from_env()

    @pytest.mark.parametrize("field", ["max_concurrent_jobs", "max_concurrent_mixes", "max_attempts"])
    def test_ceilings_must_be_positive(self, field):
        with pytest.raises(ValueError):
            EngineConfig(**{field: 0})

    def test_frozen(self):
        with pytest.raises(dataclasses.FrozenInstanceError):
            EngineConfig().max_attempts = 10

    def test_ensure_directories(self, tmp_path):
        config = EngineConfig(work_dir=str(tmp_path / "w" / "x"), output_dir=str(tmp_path / "o"))

        config.ensure_directories()

        assert (tmp_path / "w" / "x").is_dir()
        assert (tmp_path / "o").is_dir()
