"""Per-user settings and their persistence."""

from llmule_bot.settings.models import UserSettings
from llmule_bot.settings.repository import JsonSettingsRepository
from llmule_bot.settings.store import SettingsStore

__all__ = ["UserSettings", "JsonSettingsRepository", "SettingsStore"]
