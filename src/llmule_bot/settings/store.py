"""
Per-user settings store.

Every user that sends a message or command gets an entry, created from
the process-wide defaults on first use and persisted immediately. Each
mutation replaces whole fields and rewrites the backing repository.
Persistence failures are logged and never interrupt the bot: the store
keeps serving from memory.
"""

from typing import Dict, Optional

from pydantic import ValidationError

from llmule_bot.config import ConversationConfig, LLMConfig
from llmule_bot.settings.models import (
    MAX_TOKENS_RANGE,
    MEMORY_RANGE,
    SETTABLE_PARAMETERS,
    TEMPERATURE_RANGE,
    UserSettings,
)
from llmule_bot.settings.repository import JsonSettingsRepository
from llmule_bot.utils.exceptions import CommandValidationError, PersistenceError
from llmule_bot.utils.logging import get_logger, log_error, log_function_call


class SettingsStore:
    """
    In-memory map of user settings backed by a repository.

    Attributes:
        llm_config: Source of the default model, prompt and sampling values
        conversation_config: Source of the default memory size
        repository: Durable storage, loaded once and rewritten on change
    """

    def __init__(
        self,
        llm_config: LLMConfig,
        conversation_config: ConversationConfig,
        repository: JsonSettingsRepository,
    ) -> None:
        self.llm_config = llm_config
        self.conversation_config = conversation_config
        self.repository = repository
        self.logger = get_logger(__name__)
        self._settings: Dict[str, UserSettings] = {}

    def __len__(self) -> int:
        return len(self._settings)

    def __contains__(self, user_id: str) -> bool:
        return user_id in self._settings

    def defaults(self) -> UserSettings:
        """A fresh settings object holding the process-wide defaults."""
        return UserSettings(
            model=self.llm_config.model_name,
            temperature=self.llm_config.temperature,
            max_tokens=self.llm_config.max_tokens,
            memory=self.conversation_config.default_memory,
            system_prompt=self.llm_config.system_prompt,
        )

    def load(self) -> int:
        """
        Replace the in-memory map with the repository contents.

        Missing keys are completed from defaults and fields that do not
        validate are replaced by their default, so one bad value never
        drops the rest of an entry. A failed read leaves the current map untouched.

        Returns:
            Number of users loaded
        """
        try:
            raw_entries = self.repository.load_all()
        except PersistenceError as e:
            log_error(e, {"operation": "load_user_settings"})
            return 0

        defaults = self.defaults().to_json()
        loaded: Dict[str, UserSettings] = {}
        for user_id, raw in raw_entries.items():
            # Older files may hold null for unset fields
            merged = {**defaults, **{k: v for k, v in raw.items() if v is not None}}
            loaded[user_id] = self._validate_entry(user_id, merged, defaults)

        self._settings = loaded
        self.logger.info("Loaded user settings", users=len(loaded))
        return len(loaded)

    def _validate_entry(self, user_id: str, merged: dict, defaults: dict) -> UserSettings:
        try:
            return UserSettings.model_validate(merged)
        except ValidationError as e:
            invalid = {str(error["loc"][0]) for error in e.errors() if error["loc"]}
            self.logger.warning(
                "Replacing invalid stored settings fields with defaults",
                user_id=user_id,
                fields=sorted(invalid),
            )
            repaired = {k: defaults[k] if k in invalid else v for k, v in merged.items()}
            return UserSettings.model_validate(repaired)

    def get(self, user_id: str) -> Optional[UserSettings]:
        """Stored settings for a user, without creating an entry."""
        return self._settings.get(user_id)

    def get_or_create(self, user_id: str) -> UserSettings:
        """Stored settings for a user, created from defaults (and persisted) if missing."""
        settings = self._settings.get(user_id)
        if settings is None:
            settings = self.defaults()
            self._settings[user_id] = settings
            log_function_call("SettingsStore.get_or_create", user_id=user_id, created=True)
            self._persist()
        return settings

    def memory_for(self, user_id: str) -> int:
        """Exchanges to keep for this user, falling back to the default size."""
        settings = self._settings.get(user_id)
        if settings is None:
            return self.conversation_config.default_memory
        return settings.memory

    def set_model(self, user_id: str, model: str) -> UserSettings:
        model = model.strip()
        if not model:
            raise CommandValidationError("Model name cannot be empty")
        return self._update(user_id, model=model)

    def set_parameter(self, user_id: str, name: str, value: float) -> UserSettings:
        """
        Set temperature or max_tokens after range checking.

        Raises:
            CommandValidationError: Unknown parameter or value out of range;
                the stored settings are left unchanged
        """
        if name == "temperature":
            low, high = TEMPERATURE_RANGE
            if not low <= value <= high:
                raise CommandValidationError(
                    f"Temperature must be between {low:g} and {high:g}",
                    context={"value": value},
                )
            return self._update(user_id, temperature=float(value))

        if name == "max_tokens":
            low, high = MAX_TOKENS_RANGE
            if not low <= value <= high:
                raise CommandValidationError(
                    f"Max tokens must be between {low} and {high}",
                    context={"value": value},
                )
            if float(value) != int(value):
                raise CommandValidationError(
                    "Max tokens must be a whole number",
                    context={"value": value},
                )
            return self._update(user_id, max_tokens=int(value))

        raise CommandValidationError(
            f"Unknown parameter {name!r}; expected one of {', '.join(SETTABLE_PARAMETERS)}",
        )

    def set_system_prompt(self, user_id: str, prompt: str) -> UserSettings:
        return self._update(user_id, system_prompt=prompt)

    def set_memory(self, user_id: str, memory: int) -> UserSettings:
        low, high = MEMORY_RANGE
        if not low <= memory <= high:
            raise CommandValidationError(
                f"Memory must be between {low} and {high} messages",
                context={"value": memory},
            )
        return self._update(user_id, memory=int(memory))

    def reset(self, user_id: str) -> UserSettings:
        """Replace a user's settings with the defaults."""
        settings = self.defaults()
        self._settings[user_id] = settings
        self._persist()
        return settings

    def _update(self, user_id: str, **changes) -> UserSettings:
        settings = self.get_or_create(user_id).model_copy(update=changes)
        self._settings[user_id] = settings
        self.logger.info("Updated user settings", user_id=user_id, fields=sorted(changes))
        self._persist()
        return settings

    def _persist(self) -> None:
        try:
            self.repository.save_all(
                {user_id: settings.to_json() for user_id, settings in self._settings.items()}
            )
        except PersistenceError as e:
            log_error(e, {"operation": "save_user_settings"})
