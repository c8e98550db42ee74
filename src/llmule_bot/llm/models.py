"""
Data models for completion API interactions.

This module defines Pydantic models for structured data exchange
with the completion API, including request/response models and the
helpers that pull the assistant text out of the response shapes
different OpenAI-compatible servers return.
"""

from typing import Any, List, Optional
from enum import Enum

from pydantic import BaseModel, Field, ValidationError


class MessageRole(str, Enum):
    """Enum for message roles in chat conversations."""
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class ChatMessage(BaseModel):
    """
    A single message in a chat conversation.

    Also used as the stored conversation turn, so the content is kept
    verbatim (no stripping, empty strings allowed).

    Attributes:
        role: The role of the message sender
        content: The text content of the message
    """

    role: MessageRole = Field(
        description="The role of the message sender"
    )
    content: str = Field(
        description="The text content of the message"
    )

    class Config:
        """Pydantic configuration."""
        use_enum_values = True
        frozen = True


class ChatRequest(BaseModel):
    """
    Request body for the chat completion endpoint.

    Attributes:
        model: The model identifier
        messages: System prompt, history and the new user message
        temperature: Sampling temperature
        max_tokens: Maximum tokens to generate
        top_p: Nucleus sampling parameter
        frequency_penalty: Frequency penalty parameter
        presence_penalty: Presence penalty parameter
    """

    model: str
    messages: List[ChatMessage] = Field(min_length=1)
    temperature: float
    max_tokens: int
    top_p: Optional[float] = None
    frequency_penalty: Optional[float] = None
    presence_penalty: Optional[float] = None


class ChatChoiceMessage(BaseModel):
    """The message inside a completion choice."""

    role: Optional[str] = None
    content: Optional[str] = None


class ChatChoice(BaseModel):
    """A single choice from a chat completion response."""

    index: int = 0
    message: Optional[ChatChoiceMessage] = None
    finish_reason: Optional[str] = None


class ChatUsage(BaseModel):
    """Token usage information from a chat completion."""

    prompt_tokens: Optional[int] = None
    completion_tokens: Optional[int] = None
    total_tokens: Optional[int] = None


class ChatResponse(BaseModel):
    """
    OpenAI-style chat completion response.

    Only the fields the bot reads are modelled; anything else the server
    sends is ignored.
    """

    id: Optional[str] = None
    model: Optional[str] = None
    choices: List[ChatChoice] = Field(default_factory=list)
    usage: Optional[ChatUsage] = None

    @property
    def content(self) -> Optional[str]:
        """Get the content of the first choice, if there is one."""
        if not self.choices or self.choices[0].message is None:
            return None
        return self.choices[0].message.content

    @property
    def finish_reason(self) -> Optional[str]:
        return self.choices[0].finish_reason if self.choices else None


class ModelInfo(BaseModel):
    """
    One entry of the model listing.

    Attributes:
        id: Model identifier to pass as `model`
        tier: Optional size tier reported by the server (small/medium/large)
    """

    id: str
    tier: Optional[str] = None

    @property
    def display_name(self) -> str:
        return f"{self.id} ({self.tier})" if self.tier else self.id


class ModelList(BaseModel):
    """Response of the model listing endpoint."""

    data: List[ModelInfo] = Field(default_factory=list)


class LLMError(BaseModel):
    """
    Error body returned by the completion API.

    Attributes:
        code: Machine-readable error code (e.g. model_not_available)
        message: Human-readable error message
        type: Error type
    """

    code: Optional[str] = None
    message: Optional[str] = None
    type: Optional[str] = None


def extract_error_message(payload: Any) -> Optional[str]:
    """Human-readable message from an `{"error": {...}}` body, if any."""
    if not isinstance(payload, dict):
        return None
    raw = payload.get("error")
    if isinstance(raw, str):
        return raw
    if isinstance(raw, dict):
        try:
            return LLMError.model_validate(raw).message
        except ValidationError:
            return None
    return None


def is_model_unavailable(payload: Any) -> bool:
    """
    Whether an error body says the requested model cannot be served.

    Recognizes `{"error": {"code": "model_not_available"}}` and the proxy
    form `{"originalError": {"code": "NO_MODELS_AVAILABLE"}}`.
    """
    if not isinstance(payload, dict):
        return False
    error = payload.get("error")
    if isinstance(error, dict) and error.get("code") == "model_not_available":
        return True
    original = payload.get("originalError")
    return isinstance(original, dict) and original.get("code") == "NO_MODELS_AVAILABLE"


def extract_content(payload: Any) -> Optional[str]:
    """
    Pull the assistant text out of a completion response body.

    Recognized shapes, in order:
    - `{"choices": [{"message": {"content": ...}}]}`
    - `{"response": ...}`
    - `{"message": "..."}`
    - a bare JSON string

    Returns:
        The text, or None when the body matches none of them
    """
    if isinstance(payload, str):
        return payload or None
    if not isinstance(payload, dict):
        return None

    if payload.get("choices"):
        try:
            content = ChatResponse.model_validate(payload).content
        except ValidationError:
            content = None
        if content:
            return content

    if isinstance(payload.get("response"), str) and payload["response"]:
        return payload["response"]

    if isinstance(payload.get("message"), str) and payload["message"]:
        return payload["message"]

    return None
