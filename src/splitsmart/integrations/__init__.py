"""SplitSmart integrations module."""

from splitsmart.integrations.anthropic_assistant import (
    AnthropicBillAssistant,
    AssistantError,
    AssistantIncompleteError,
    AssistantRefusedError,
    UnsupportedImageError,
)

__all__ = [
    "AnthropicBillAssistant",
    "AssistantError",
    "AssistantRefusedError",
    "AssistantIncompleteError",
    "UnsupportedImageError",
]
