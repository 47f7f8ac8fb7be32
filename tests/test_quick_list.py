"""Tests for quick-list resolution and the shared quick-list file."""

import json

import pytest
from pydantic import ValidationError

from capprobe.models.enums import Provider
from capprobe.services.quick_list import (
    QUICK_LIST_VERSION,
    QuickListEntry,
    load_quick_list_from_file,
    parse_quick_list,
    quick_list_file_exists,
    resolve_quick_list,
    save_quick_list_to_file,
)

GPT = QuickListEntry(provider=Provider.OPENAI, model="gpt-4o")
CLAUDE = QuickListEntry(provider=Provider.ANTHROPIC, model="claude-3-5-sonnet-20241022")


class TestParseQuickList:
    """Tests for parse_quick_list."""

    def test_valid(self):
        raw = json.dumps(
            [{"provider": "openai", "model": "gpt-4o"}, {"provider": "ollama", "model": "llava:7b"}]
        )
        entries = parse_quick_list(raw)

        assert entries == [GPT, QuickListEntry(provider=Provider.OLLAMA, model="llava:7b")]

    def test_empty_array(self):
        assert parse_quick_list("[]") == []

    def test_unknown_provider(self):
        with pytest.raises(ValidationError):
            parse_quick_list('[{"provider": "skynet", "model": "t-800"}]')

    def test_malformed_json(self):
        with pytest.raises(ValidationError):
            parse_quick_list("[{")

    def test_not_an_array(self):
        with pytest.raises(ValidationError):
            parse_quick_list('{"provider": "openai", "model": "gpt-4o"}')


class TestQuickListFile:
    """Tests for loading and saving the shared file."""

    def test_round_trip(self, tmp_path):
        path = save_quick_list_to_file([GPT, CLAUDE], tmp_path / "sub" / "quick-list.json")

        assert quick_list_file_exists(path)
        assert load_quick_list_from_file(path) == [GPT, CLAUDE]

    def test_file_layout(self, tmp_path):
        path = save_quick_list_to_file([GPT], tmp_path / "quick-list.json")
        data = json.loads(path.read_text())

        assert data["version"] == QUICK_LIST_VERSION
        assert data["lastUpdated"] > 0
        assert data["models"] == [{"provider": "openai", "model": "gpt-4o"}]

    def test_missing_file(self, tmp_path):
        assert load_quick_list_from_file(tmp_path / "none.json") is None
        assert not quick_list_file_exists(tmp_path / "none.json")

    def test_invalid_file(self, tmp_path):
        path = tmp_path / "quick-list.json"
        path.write_text('{"models": [{"provider": "openai"}]}')

        assert load_quick_list_from_file(path) is None


class TestResolveQuickList:
    """Tests for resolve_quick_list precedence."""

    def test_argument_first(self, tmp_path, monkeypatch):
        monkeypatch.setenv("QUICK_LIST_JSON", '[{"provider": "xai", "model": "grok-2"}]')
        save_quick_list_to_file([CLAUDE], tmp_path / "q.json")

        argument = '[{"provider": "openai", "model": "gpt-4o"}]'
        entries = resolve_quick_list(argument, tmp_path / "q.json")

        assert entries == [GPT]

    def test_environment_second(self, tmp_path, monkeypatch):
        monkeypatch.setenv("QUICK_LIST_JSON", '[{"provider": "openai", "model": "gpt-4o"}]')
        save_quick_list_to_file([CLAUDE], tmp_path / "q.json")

        assert resolve_quick_list(None, tmp_path / "q.json") == [GPT]

    def test_file_last(self, tmp_path):
        save_quick_list_to_file([CLAUDE], tmp_path / "q.json")

        assert resolve_quick_list(None, tmp_path / "q.json") == [CLAUDE]

    def test_invalid_source_falls_through(self, tmp_path, monkeypatch):
        monkeypatch.setenv("QUICK_LIST_JSON", '[{"provider": "openai", "model": "gpt-4o"}]')

        assert resolve_quick_list("not json", tmp_path / "q.json") == [GPT]

    def test_nothing_configured(self, tmp_path):
        assert resolve_quick_list(None, tmp_path / "q.json") == []
