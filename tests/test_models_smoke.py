"""Smoke tests for Pydantic models and settings."""

import pytest
from pydantic import ValidationError

from focus_tutor.config import Settings, get_settings
from focus_tutor.models.content import GameContent
from focus_tutor.models.user import DeviceState, Roadmap, User, WeeklyGoal


def _week(i):
    return {"week": i, "theme": "t", "focus": "f", "activity": "a"}


class TestRoadmap:
    def test_weeks_are_ordered(self):
        roadmap = Roadmap.model_validate({"weeks": [_week(3), _week(1), _week(4), _week(2)]})
        assert [w.week for w in roadmap.weeks] == [1, 2, 3, 4]
        assert all(w.completed is False for w in roadmap.weeks)

    def test_needs_exactly_four_weeks(self):
        with pytest.raises(ValidationError):
            Roadmap.model_validate({"weeks": [_week(1), _week(2)]})

    def test_duplicate_week_rejected(self):
        with pytest.raises(ValidationError):
            Roadmap.model_validate({"weeks": [_week(1), _week(1), _week(2), _week(3)]})

    def test_week_index_range(self):
        with pytest.raises(ValidationError):
            WeeklyGoal(week=5, theme="t", focus="f", activity="a")


class TestUser:
    def test_defaults(self, prefs, persona, roadmap):
        user = User(id="001", name="Alex", preferences=prefs, persona=persona, roadmap=roadmap)
        assert user.warning_count == 0
        assert user.is_banned is False
        assert user.chat_history == []
        assert user.progress.last_topic == "Introduction"

    def test_negative_warnings_rejected(self, prefs, persona, roadmap):
        with pytest.raises(ValidationError):
            User(id="001", name="A", preferences=prefs, persona=persona, roadmap=roadmap, warning_count=-1)

    def test_json_round_trip(self, prefs, persona, roadmap):
        user = User(id="001", name="Alex", preferences=prefs, persona=persona, roadmap=roadmap)
        assert User.model_validate_json(user.model_dump_json()) == user

    def test_device_state_defaults(self):
        state = DeviceState()
        assert state.banned is False
        assert state.warnings == 0


class TestGameContent:
    def test_is_correct(self, game_item):
        assert game_item.is_correct("Hallo")
        assert not game_item.is_correct("Danke")

    def test_correct_answer_must_be_an_option(self, game_item):
        data = game_item.model_dump() | {"correct_answer": "Servus"}
        with pytest.raises(ValidationError):
            GameContent.model_validate(data)


class TestSettings:
    def test_defaults(self, tmp_path, monkeypatch):
        monkeypatch.delenv("GENERATION_MODEL", raising=False)
        settings = Settings(openai_api_key="test-key", project_root=tmp_path)
        assert settings.generation_model == "gpt-4o-mini"
        assert settings.storage_path == tmp_path / "data" / "local_storage.json"
        assert settings.data_dir.is_dir()

    def test_env_overrides(self, tmp_path, monkeypatch):
        monkeypatch.setenv("PORT", "9001")
        settings = Settings(openai_api_key="test-key", project_root=tmp_path)
        assert settings.port == 9001

    def test_get_settings_is_cached(self, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "test-key")
        get_settings.cache_clear()
        try:
            assert get_settings() is get_settings()
            assert get_settings().openai_api_key == "test-key"
        finally:
            get_settings.cache_clear()
