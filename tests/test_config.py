"""Tests for repo_importer.lib.config."""

from __future__ import annotations

import logging
import os
from pathlib import Path

import pytest

import repo_importer.lib.config as config_module
from repo_importer.lib.config import Config, validate_repo_ref

_ENV_VARS = (
    "REPO_IMPORTER_BATCH_SIZE",
    "REPO_IMPORTER_INLINE_FETCH_LIMIT",
    "REPO_IMPORTER_REQUEST_TIMEOUT",
    "REPO_IMPORTER_REDIS_URL",
    "REDIS_URL",
    "REPO_IMPORTER_VERBOSE",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(config_module, "load_dotenv", None)


class TestConfigDefaults:
    def test_defaults(self) -> None:
        config = Config()
        assert config.batch_size == 10
        assert config.inline_fetch_limit == 100_000
        assert config.request_timeout == 15
        assert config.redis_url == "redis://localhost:6379/0"
        assert config.verbose is False

    def test_from_env_without_env_matches_defaults(self) -> None:
        assert Config.from_env() == Config()

    def test_from_env_picks_up_env_vars(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("REPO_IMPORTER_BATCH_SIZE", "4")
        monkeypatch.setenv("REPO_IMPORTER_INLINE_FETCH_LIMIT", "2048")
        monkeypatch.setenv("REPO_IMPORTER_REQUEST_TIMEOUT", "30")
        monkeypatch.setenv("REPO_IMPORTER_VERBOSE", "yes")

        config = Config.from_env()

        assert config.batch_size == 4
        assert config.inline_fetch_limit == 2048
        assert config.request_timeout == 30
        assert config.verbose is True

    def test_redis_url_precedence(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("REDIS_URL", "redis://shared:6379/0")
        assert Config.from_env().redis_url == "redis://shared:6379/0"

        monkeypatch.setenv("REPO_IMPORTER_REDIS_URL", "redis://own:6379/2")
        assert Config.from_env().redis_url == "redis://own:6379/2"

    def test_overrides_beat_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("REPO_IMPORTER_BATCH_SIZE", "4")
        config = Config.from_env(overrides={"batch_size": 2, "redis_url": None})
        assert config.batch_size == 2
        assert config.redis_url == "redis://localhost:6379/0"

    def test_non_integer_env_is_ignored(
        self, monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture
    ) -> None:
        monkeypatch.setenv("REPO_IMPORTER_BATCH_SIZE", "lots")
        with caplog.at_level(logging.WARNING):
            config = Config.from_env()
        assert config.batch_size == 10
        assert "REPO_IMPORTER_BATCH_SIZE" in caplog.text

    def test_from_env_loads_dotenv(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        loaded_paths: list[Path] = []
        env_file = tmp_path / ".env"
        env_file.write_text("REPO_IMPORTER_BATCH_SIZE=7\n")

        def fake_load_dotenv(path: Path, override: bool = False) -> bool:
            loaded_paths.append(path)
            if path == env_file:
                os.environ["REPO_IMPORTER_BATCH_SIZE"] = "7"
            return True

        monkeypatch.chdir(tmp_path)
        monkeypatch.setattr(config_module, "load_dotenv", fake_load_dotenv)
        try:
            config = Config.from_env()
            assert config.batch_size == 7
            assert env_file in loaded_paths
        finally:
            os.environ.pop("REPO_IMPORTER_BATCH_SIZE", None)


class TestConfigValidation:
    @pytest.mark.parametrize(
        "field_name", ["batch_size", "inline_fetch_limit", "request_timeout"]
    )
    @pytest.mark.parametrize("value", [0, -1, True])
    def test_rejects_non_positive(self, field_name: str, value: object) -> None:
        with pytest.raises(ValueError, match=f"{field_name} must be a positive"):
            Config(**{field_name: value})


class TestValidateRepoRef:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("octocat/hello-world", "octocat/hello-world"),
            ("  octocat/hello-world  ", "octocat/hello-world"),
            ("octocat/hello-world.git", "octocat/hello-world"),
            ("my.org/repo_name", "my.org/repo_name"),
        ],
    )
    def test_accepts(self, raw: str, expected: str) -> None:
        assert validate_repo_ref(raw) == expected

    @pytest.mark.parametrize(
        "raw", ["", "octocat", "a/b/c", "https://github.com/a/b", "own er/repo"]
    )
    def test_rejects(self, raw: str) -> None:
        with pytest.raises(ValueError, match="Invalid repo"):
            validate_repo_ref(raw)
