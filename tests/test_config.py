"""Tests for Settings configuration model."""

from pathlib import Path

import pytest

from src.config import Settings


class TestDefaults:
    def test_default_database_path(self):
        s = Settings()
        assert s.database_path == Path("data/cortex.db")

    def test_cortex_limits(self):
        s = Settings()
        assert s.cortex_history_limit == 100
        assert s.channel_transcript_limit == 50
        assert s.cortex_max_turns == 50

    def test_timeout_disabled_by_default(self):
        assert Settings().cortex_request_timeout_seconds == 0

    def test_prompts_dir_ships_templates(self):
        assert (Settings().prompts_dir / "cortex_chat.md.j2").exists()


class TestWebSearchEnabled:
    def test_disabled_without_key(self):
        assert Settings().web_search_enabled is False

    def test_whitespace_key_is_disabled(self):
        assert Settings(brave_search_api_key="  ").web_search_enabled is False

    def test_enabled_with_key(self):
        assert Settings(brave_search_api_key="abc").web_search_enabled is True


class TestExtraForbidden:
    def test_unknown_env_var_raises(self):
        with pytest.raises(ValueError, match="extra_forbidden"):
            Settings(**{"nonexistent_field": "value"})
