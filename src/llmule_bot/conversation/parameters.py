"""
Inline parameter directives and request parameter resolution.

A chat message may carry `[key:value]` directives anywhere in its text,
for keys `model`, `system`, `temperature` and `max_tokens`. They override
the request parameters for that message only. Resolution runs in two
steps: a tokenizer strips the directives and collects raw values (later
duplicates win), then typed parsing validates numbers with the same
ranges the settings commands enforce.

Precedence for every field: inline directive, then the user's stored
setting, then the process default.
"""

import math
import re
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from llmule_bot.config import LLMConfig
from llmule_bot.settings.models import MAX_TOKENS_RANGE, TEMPERATURE_RANGE, UserSettings
from llmule_bot.utils.exceptions import InvalidDirectiveError


DIRECTIVE_KEYS = ("model", "system", "temperature", "max_tokens")
DIRECTIVE_PATTERN = re.compile(r"\[(" + "|".join(DIRECTIVE_KEYS) + r"):([^\]]+)\]")


@dataclass(frozen=True)
class InlineOverrides:
    """Typed values of the directives found in one message."""

    model: Optional[str] = None
    system_prompt: Optional[str] = None
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None


@dataclass(frozen=True)
class EffectiveRequestParameters:
    """Parameters actually sent with one completion request. Never stored."""

    model: str
    temperature: float
    max_tokens: int
    system_prompt: str


def tokenize_directives(text: str) -> Tuple[str, Dict[str, str]]:
    """
    Strip every directive from the text.

    Returns:
        (cleaned text trimmed of surrounding whitespace, key -> raw value)
    """
    raw: Dict[str, str] = {}

    def _collect(match: "re.Match[str]") -> str:
        raw[match.group(1)] = match.group(2).strip()
        return ""

    cleaned = DIRECTIVE_PATTERN.sub(_collect, text)
    return cleaned.strip(), raw


def _parse_temperature(value: str) -> float:
    try:
        temperature = float(value)
    except ValueError:
        raise InvalidDirectiveError("temperature", value, "not a number")
    low, high = TEMPERATURE_RANGE
    if math.isnan(temperature) or not low <= temperature <= high:
        raise InvalidDirectiveError("temperature", value, f"must be between {low:g} and {high:g}")
    return temperature


def _parse_max_tokens(value: str) -> int:
    try:
        max_tokens = int(value)
    except ValueError:
        raise InvalidDirectiveError("max_tokens", value, "not a whole number")
    low, high = MAX_TOKENS_RANGE
    if not low <= max_tokens <= high:
        raise InvalidDirectiveError("max_tokens", value, f"must be between {low} and {high}")
    return max_tokens


def parse_overrides(raw: Dict[str, str]) -> InlineOverrides:
    """
    Turn raw directive values into typed overrides.

    Empty model/system values are ignored.

    Raises:
        InvalidDirectiveError: On a malformed or out-of-range number
    """
    return InlineOverrides(
        model=raw.get("model") or None,
        system_prompt=raw.get("system") or None,
        temperature=_parse_temperature(raw["temperature"]) if "temperature" in raw else None,
        max_tokens=_parse_max_tokens(raw["max_tokens"]) if "max_tokens" in raw else None,
    )


class ParameterResolver:
    """
    Merge inline overrides, user settings and process defaults.

    Attributes:
        defaults: Process-wide request defaults
    """

    def __init__(self, defaults: LLMConfig) -> None:
        self.defaults = defaults

    def resolve(
        self,
        raw_text: str,
        settings: Optional[UserSettings] = None,
    ) -> Tuple[str, EffectiveRequestParameters]:
        """
        Extract directives from a message and compute the request parameters.

        Args:
            raw_text: Message text, mention already removed
            settings: The author's stored settings, if any

        Returns:
            (cleaned text, effective parameters)

        Raises:
            InvalidDirectiveError: On a malformed numeric directive

        Example:
            ```python
            text, params = resolver.resolve("[temperature:0.5][max_tokens:200]Hello")
            assert text == "Hello" and params.max_tokens == 200
            ```
        """
        cleaned, raw = tokenize_directives(raw_text)
        overrides = parse_overrides(raw)

        return cleaned, EffectiveRequestParameters(
            model=_first(overrides.model, getattr(settings, "model", None), self.defaults.model_name),
            temperature=_first(
                overrides.temperature, getattr(settings, "temperature", None), self.defaults.temperature
            ),
            max_tokens=_first(
                overrides.max_tokens, getattr(settings, "max_tokens", None), self.defaults.max_tokens
            ),
            system_prompt=_first(
                overrides.system_prompt,
                getattr(settings, "system_prompt", None),
                self.defaults.system_prompt,
            ),
        )


def _first(*candidates):
    """First candidate that is set. Zero is a valid value; None and "" are not."""
    for candidate in candidates:
        if candidate is not None and candidate != "":
            return candidate
    return candidates[-1]
