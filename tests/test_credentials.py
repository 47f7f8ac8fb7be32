"""Tests for API key resolution."""

import json

from capprobe.models.enums import Provider
from capprobe.services.credentials import (
    API_KEY_ENV_VARS,
    get_api_key_from_env,
    load_api_keys_from_file,
    resolve_api_keys,
)


class TestEnvironmentKeys:
    """Tests for get_api_key_from_env."""

    def test_every_provider_has_a_variable(self):
        assert set(API_KEY_ENV_VARS) == set(Provider)

    def test_reads_variable(self, monkeypatch):
        monkeypatch.setenv("ANTHROPIC_API_KEY", "ant-key")
        assert get_api_key_from_env(Provider.ANTHROPIC) == "ant-key"

    def test_empty_variable_is_missing(self, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "")
        assert get_api_key_from_env(Provider.OPENAI) is None


class TestKeysFile:
    """Tests for load_api_keys_from_file."""

    def test_loads_known_providers(self, tmp_path):
        path = tmp_path / "keys.json"
        path.write_text(json.dumps({"openai": "sk-1", "xai": "xai-1"}))

        assert load_api_keys_from_file(path) == {Provider.OPENAI: "sk-1", Provider.XAI: "xai-1"}

    def test_ignores_unknown_providers_and_non_strings(self, tmp_path):
        path = tmp_path / "keys.json"
        path.write_text(json.dumps({"openai": "sk-1", "mystery": "x", "gemini": 42}))

        assert load_api_keys_from_file(path) == {Provider.OPENAI: "sk-1"}

    def test_missing_file(self, tmp_path):
        assert load_api_keys_from_file(tmp_path / "nope.json") == {}

    def test_malformed_file(self, tmp_path):
        path = tmp_path / "keys.json"
        path.write_text("{oops")

        assert load_api_keys_from_file(path) == {}

    def test_non_object_file(self, tmp_path):
        path = tmp_path / "keys.json"
        path.write_text(json.dumps(["sk-1"]))

        assert load_api_keys_from_file(path) == {}


class TestResolveApiKeys:
    """Tests for resolve_api_keys."""

    def test_environment_wins(self, tmp_path, monkeypatch):
        path = tmp_path / "keys.json"
        path.write_text(json.dumps({"openai": "from-file", "anthropic": "ant-file"}))
        monkeypatch.setenv("OPENAI_API_KEY", "from-env")

        keys = resolve_api_keys(path)

        assert keys[Provider.OPENAI] == "from-env"
        assert keys[Provider.ANTHROPIC] == "ant-file"

    def test_environment_only(self, tmp_path, monkeypatch):
        monkeypatch.setenv("GEMINI_API_KEY", "g-key")

        assert resolve_api_keys(tmp_path / "missing.json") == {Provider.GEMINI: "g-key"}

    def test_defaults_to_configured_keys_file(self, tmp_path, monkeypatch):
        path = tmp_path / "keys.json"
        path.write_text(json.dumps({"fireworks": "fw-1"}))
        monkeypatch.setattr("capprobe.config.settings.keys_file", path)

        assert resolve_api_keys() == {Provider.FIREWORKS: "fw-1"}
