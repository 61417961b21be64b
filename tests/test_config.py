"""Tests for configuration loading."""

from pathlib import Path

import pytest
import yaml

from assistant_stream.config import (
    API_KEY_ENV,
    AVAILABLE_MODELS,
    CONFIG_FILENAME,
    AssistantConfig,
    ProviderConfig,
    find_model,
    load_config,
)


class TestDefaults:
    def test_assistant_defaults(self):
        cfg = AssistantConfig()
        assert cfg.default_model == "claude-sonnet-4-20250514"
        assert cfg.max_tokens == 4096
        assert cfg.max_rounds == 50
        assert cfg.retry.max_retries == 3
        assert cfg.retry.default_delay == 30
        assert cfg.history.suffix == ".claude-history.json"
        assert cfg.history.version == 1
        assert cfg.preview.tools == ["write_editor", "replace_selection"]
        assert cfg.preview.field_name == "content"

    def test_provider_defaults(self):
        p = ProviderConfig()
        assert p.api_url == "https://api.anthropic.com/v1/messages"
        assert p.api_version == "2023-06-01"
        assert p.beta == "prompt-caching-2024-07-31"
        assert p.prompt_caching

    def test_api_key_env_fallback(self, monkeypatch):
        monkeypatch.setenv(API_KEY_ENV, "from-env")
        assert ProviderConfig().resolved_api_key() == "from-env"
        assert ProviderConfig(api_key="explicit").resolved_api_key() == "explicit"


class TestModels:
    def test_catalogue(self):
        ids = [m.id for m in AVAILABLE_MODELS]
        assert ids == [
            "claude-sonnet-4-20250514",
            "claude-opus-4-20250514",
            "claude-haiku-3-5-20241022",
        ]
        assert all(m.context_window == 200_000 for m in AVAILABLE_MODELS)

    def test_find_model(self):
        assert find_model("claude-opus-4-20250514").max_output_tokens == 32_000
        assert find_model("nope") is None


class TestLoadConfig:
    def test_explicit_file(self, tmp_path: Path):
        path = tmp_path / "custom.yaml"
        path.write_text(yaml.dump({
            "default_model": "claude-opus-4-20250514",
            "max_rounds": 5,
            "provider": {"api_key": "k", "beta": ""},
            "retry": {"max_retries": 1, "default_delay": 2},
        }))
        cfg, resolved = load_config(path)
        assert resolved == path.resolve()
        assert cfg.default_model == "claude-opus-4-20250514"
        assert cfg.max_rounds == 5
        assert cfg.provider.api_key == "k"
        assert cfg.provider.beta == ""
        assert cfg.retry.max_retries == 1
        # Untouched sections keep their defaults
        assert cfg.history.suffix == ".claude-history.json"

    def test_nonexistent_file(self, tmp_path: Path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "missing.yaml")

    def test_invalid_yaml(self, tmp_path: Path):
        path = tmp_path / "bad.yaml"
        path.write_text("invalid: yaml: content: [[[")
        with pytest.raises(yaml.YAMLError):
            load_config(path)

    def test_empty_file_uses_defaults(self, tmp_path: Path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        cfg, resolved = load_config(path)
        assert cfg == AssistantConfig()
        assert resolved is not None

    def test_discovered_in_cwd(self, tmp_path: Path, monkeypatch):
        (tmp_path / CONFIG_FILENAME).write_text("max_tokens: 1000\n")
        monkeypatch.chdir(tmp_path)
        cfg, resolved = load_config()
        assert cfg.max_tokens == 1000
        assert resolved == (tmp_path / CONFIG_FILENAME).resolve()

    def test_discovered_in_home(self, tmp_path: Path, monkeypatch):
        home = tmp_path / "home"
        (home / ".assistant_stream").mkdir(parents=True)
        (home / ".assistant_stream" / CONFIG_FILENAME).write_text("max_rounds: 7\n")
        work = tmp_path / "work"
        work.mkdir()
        monkeypatch.chdir(work)
        monkeypatch.setenv("HOME", str(home))
        cfg, _ = load_config()
        assert cfg.max_rounds == 7

    def test_defaults_when_nothing_found(self, tmp_path: Path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("HOME", str(tmp_path))
        cfg, resolved = load_config()
        assert resolved is None
        assert cfg.max_rounds == 50
