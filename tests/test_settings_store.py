"""Tests for user settings persistence and validation."""

import json

import pytest

from llmule_bot.settings import JsonSettingsRepository, SettingsStore, UserSettings
from llmule_bot.utils.exceptions import CommandValidationError, PersistenceError


@pytest.fixture
def repository(settings_path) -> JsonSettingsRepository:
    return JsonSettingsRepository(settings_path)


@pytest.fixture
def store(test_config, repository) -> SettingsStore:
    return SettingsStore(test_config.llm, test_config.conversation, repository)


class TestJsonSettingsRepository:
    """Test the JSON file repository."""

    def test_missing_file_loads_empty(self, repository):
        assert repository.load_all() == {}

    def test_save_then_load(self, repository, settings_path):
        repository.save_all({"42": {"model": "m", "memory": 3}})

        assert json.loads(settings_path.read_text()) == {"42": {"model": "m", "memory": 3}}
        assert repository.load_all() == {"42": {"model": "m", "memory": 3}}
        assert not settings_path.with_name(settings_path.name + ".tmp").exists()

    def test_corrupt_file_raises(self, repository, settings_path):
        settings_path.write_text("{not json")
        with pytest.raises(PersistenceError):
            repository.load_all()

    def test_non_object_document_raises(self, repository, settings_path):
        settings_path.write_text("[1, 2, 3]")
        with pytest.raises(PersistenceError):
            repository.load_all()


class TestSettingsStore:
    """Test the per-user settings store."""

    def test_get_or_create_uses_defaults_and_persists(self, store, settings_path):
        settings = store.get_or_create("u1")

        assert settings.model == "test-model"
        assert settings.temperature == 0.8
        assert settings.max_tokens == 644
        assert settings.memory == 2
        assert settings.system_prompt == "You are a test assistant."

        stored = json.loads(settings_path.read_text())
        assert stored["u1"]["systemPrompt"] == "You are a test assistant."

    def test_get_does_not_create(self, store):
        assert store.get("u1") is None
        assert "u1" not in store

    def test_settings_survive_reload(self, test_config, store, repository):
        store.set_model("u1", "big-model")
        store.set_memory("u1", 5)

        reloaded = SettingsStore(test_config.llm, test_config.conversation, repository)
        assert reloaded.load() == 1
        settings = reloaded.get("u1")
        assert settings.model == "big-model"
        assert settings.memory == 5

    def test_load_fills_missing_and_null_fields(self, store, settings_path):
        settings_path.write_text(json.dumps({
            "u1": {"model": "old-model", "temperature": None},
        }))

        assert store.load() == 1
        settings = store.get("u1")
        assert settings.model == "old-model"
        assert settings.temperature == 0.8
        assert settings.memory == 2

    def test_load_survives_corrupt_file(self, store, settings_path):
        settings_path.write_text("garbage")
        assert store.load() == 0
        assert len(store) == 0

    def test_load_replaces_only_invalid_fields(self, store, settings_path):
        settings_path.write_text(json.dumps({
            "good": {"model": "m"},
            "bad": {"model": "kept-model", "memory": "lots", "temperature": "warm"},
        }))

        assert store.load() == 2
        bad = store.get("bad")
        assert bad.model == "kept-model"
        assert bad.memory == 2
        assert bad.temperature == 0.8

    def test_load_legacy_fractional_max_tokens(self, store, settings_path):
        settings_path.write_text(json.dumps({
            "u1": {
                "model": "my-model",
                "temperature": 1.2,
                "max_tokens": 1500.5,
                "memory": 7,
                "systemPrompt": "pirate",
            },
        }))

        assert store.load() == 1
        assert store.get("u1") == UserSettings(
            model="my-model", temperature=1.2, max_tokens=1500, memory=7, system_prompt="pirate",
        )

    def test_load_numeric_string_memory(self, store, settings_path):
        settings_path.write_text(json.dumps({"u1": {"memory": "3", "max_tokens": "250"}}))

        store.load()
        assert store.get("u1").memory == 3
        assert store.get("u1").max_tokens == 250

    def test_set_parameter_temperature(self, store):
        settings = store.set_parameter("u1", "temperature", 1.2)
        assert settings.temperature == 1.2

    def test_set_parameter_max_tokens(self, store):
        settings = store.set_parameter("u1", "max_tokens", 1000.0)
        assert settings.max_tokens == 1000
        assert isinstance(settings.max_tokens, int)

    @pytest.mark.parametrize("name,value,message", [
        ("temperature", 2.5, "Temperature must be between 0 and 2"),
        ("temperature", -1, "Temperature must be between 0 and 2"),
        ("max_tokens", 0, "Max tokens must be between 1 and 4000"),
        ("max_tokens", 5000, "Max tokens must be between 1 and 4000"),
        ("max_tokens", 10.5, "Max tokens must be a whole number"),
    ])
    def test_set_parameter_rejects_out_of_range(self, store, name, value, message):
        """Rejected values leave the settings unchanged."""
        before = store.get_or_create("u1")
        with pytest.raises(CommandValidationError) as exc_info:
            store.set_parameter("u1", name, value)
        assert exc_info.value.message == message
        assert store.get("u1") == before

    def test_set_parameter_unknown_name(self, store):
        with pytest.raises(CommandValidationError):
            store.set_parameter("u1", "top_k", 5)

    def test_set_memory_range(self, store):
        assert store.set_memory("u1", 10).memory == 10
        with pytest.raises(CommandValidationError) as exc_info:
            store.set_memory("u1", 11)
        assert exc_info.value.message == "Memory must be between 1 and 10 messages"

    def test_set_model_rejects_empty(self, store):
        with pytest.raises(CommandValidationError):
            store.set_model("u1", "   ")

    def test_set_system_prompt(self, store):
        assert store.set_system_prompt("u1", "Talk like a pirate").system_prompt == "Talk like a pirate"

    def test_reset(self, store):
        store.set_model("u1", "big-model")
        settings = store.reset("u1")
        assert settings == store.defaults()
        assert store.get("u1").model == "test-model"

    def test_memory_for_unknown_user_is_default(self, store):
        assert store.memory_for("nobody") == 2

    def test_write_failure_keeps_memory_state(self, test_config, tmp_path):
        """A failed save is logged; the in-memory change still applies."""
        blocked = tmp_path / "blocker"
        blocked.write_text("a file, not a directory")
        store = SettingsStore(
            test_config.llm,
            test_config.conversation,
            JsonSettingsRepository(blocked / "settings.json"),
        )

        settings = store.set_model("u1", "big-model")
        assert settings.model == "big-model"
        assert store.get("u1").model == "big-model"


class TestUserSettings:
    """Test the settings model."""

    def test_json_uses_system_prompt_alias(self):
        settings = UserSettings(model="m", temperature=0.5, max_tokens=10, memory=1, system_prompt="p")
        assert settings.to_json() == {
            "model": "m",
            "temperature": 0.5,
            "max_tokens": 10,
            "memory": 1,
            "systemPrompt": "p",
        }

    def test_accepts_alias_on_input(self):
        settings = UserSettings.model_validate({
            "model": "m", "temperature": 0.5, "max_tokens": 10, "memory": 1, "systemPrompt": "p",
        })
        assert settings.system_prompt == "p"
