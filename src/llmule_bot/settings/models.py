"""
Per-user settings model.

The JSON representation keeps the `systemPrompt` key used by existing
settings files; Python code uses `system_prompt`.
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator


TEMPERATURE_RANGE = (0.0, 2.0)
MAX_TOKENS_RANGE = (1, 4000)
MEMORY_RANGE = (1, 10)

# Names accepted by /set-parameter
SETTABLE_PARAMETERS = ("temperature", "max_tokens")


class UserSettings(BaseModel):
    """
    Settings of one user.

    Instances are immutable; the store replaces whole fields with
    `model_copy(update=...)` and persists after every change.

    Attributes:
        model: Selected completion model
        temperature: Sampling temperature, [0, 2] when set by command
        max_tokens: Response token cap, [1, 4000] when set by command
        memory: Exchanges kept per channel, [1, 10]
        system_prompt: System prompt sent before the history
    """

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        protected_namespaces=(),
        extra="ignore",
    )

    model: str
    temperature: float
    max_tokens: int
    memory: int
    system_prompt: str = Field(alias="systemPrompt")

    @field_validator("max_tokens", "memory", mode="before")
    @classmethod
    def truncate_fractional_counts(cls, v):
        """Older files may hold counts such as 1500.5 or "3"; keep the integer part."""
        if isinstance(v, (float, str)):
            try:
                return int(float(v))
            except (ValueError, OverflowError):
                return v
        return v

    def to_json(self) -> dict:
        return self.model_dump(by_alias=True)
