"""Anthropic API integration for receipt extraction and command interpretation."""

import base64
import time
from pathlib import Path
from typing import Any

from anthropic import APIConnectionError, APIStatusError, AsyncAnthropic
from anthropic.types.beta import (
    BetaCacheControlEphemeralParam,
    BetaMessageParam,
    BetaTextBlockParam,
)
from jinja2 import Environment, FileSystemLoader, select_autoescape
from loguru import logger
from pydantic import BaseModel, Field
from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from splitsmart.errors import ExtractionFailedError
from splitsmart.models import Bill, Correction, Interpretation

SUPPORTED_MIME_TYPES = ("image/jpeg", "image/png", "image/gif", "image/webp")


class AssistantError(Exception):
    """Base exception for assistant errors."""


class AssistantRefusedError(AssistantError):
    """Raised when the model refuses to process the request."""


class AssistantIncompleteError(AssistantError):
    """Raised when the response is truncated due to token limits."""


class UnsupportedImageError(ExtractionFailedError):
    """Raised when the receipt image has a MIME type the API cannot read."""


class ItemPayload(BaseModel):
    """Line item as exchanged with the model."""

    id: str = Field(description="Unique ID for the item (e.g. item_1)")
    description: str = Field(description="Name or description of the item")
    price: float = Field(description="Price of the individual item")
    assigned_to: list[str] = Field(
        default_factory=list,
        description="Names of the people sharing this item; empty if unassigned",
    )


class ReceiptPayload(BaseModel):
    """Whole bill as exchanged with the model."""

    items: list[ItemPayload]
    subtotal: float = Field(description="Subtotal before tax/tip")
    tax: float = Field(description="Total tax amount")
    tip: float = Field(description="Total tip amount (0 if not on the receipt)")
    total: float = Field(description="Grand total")
    currency: str = Field(description="Currency symbol (e.g. $, €)")


class CommandPayload(BaseModel):
    """Model response to a user command."""

    updated_bill: ReceiptPayload
    response_text: str = Field(
        description="A short conversational response confirming the action"
    )
    corrections: list[Correction] = Field(
        default_factory=list,
        description=(
            "Only when the user explicitly asked to fix a description or price: "
            "the item id and the fields being corrected"
        ),
    )


def bill_to_payload(bill: Bill) -> ReceiptPayload:
    """Convert a bill to the wire shape shown to the model."""
    return ReceiptPayload(
        items=[
            ItemPayload(
                id=item.id,
                description=item.description,
                price=float(item.price),
                assigned_to=list(item.assigned_to),
            )
            for item in bill.items
        ],
        subtotal=float(bill.subtotal),
        tax=float(bill.tax),
        tip=float(bill.tip),
        total=float(bill.total),
        currency=bill.currency,
    )


def _is_retryable_error(exception: BaseException) -> bool:
    """Determine if an API exception should trigger a retry.

    Retries on connection errors and timeouts, rate limiting (429) and
    server-side errors (5xx, including 529 overloaded). Refusals, truncation
    and other client errors are not retried.
    """
    if isinstance(exception, APIConnectionError):
        return True

    if isinstance(exception, APIStatusError):
        return exception.status_code == 429 or exception.status_code >= 500

    return False


class AnthropicBillAssistant:
    """
    Anthropic-powered bill assistant using structured outputs.

    Reads receipt images into bill payloads and interprets chat commands into
    candidate bill updates. Responses are parsed against wire schemas but are
    returned as plain data: the caller still validates them against the
    current bill.
    """

    def __init__(
        self,
        api_key: str,
        model: str = "claude-haiku-4-5",
        max_tokens: int = 4096,
        temperature: float = 0.0,
        prompts_dir: str | None = None,
    ) -> None:
        """
        Initialize the assistant.

        Args:
            api_key: Anthropic API key
            model: Model to use (default: claude-haiku-4-5)
            max_tokens: Maximum tokens for response (default: 4096)
            temperature: Sampling temperature (default: 0.0 for deterministic)
            prompts_dir: Directory containing Jinja2 templates (default: ./prompts)
        """
        self.client = AsyncAnthropic(api_key=api_key)
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature

        if prompts_dir is None:
            project_root = Path(__file__).parent.parent.parent.parent
            prompts_dir = str(project_root / "prompts")

        self.jinja_env = Environment(
            loader=FileSystemLoader(prompts_dir),
            autoescape=select_autoescape(),
            trim_blocks=True,
            lstrip_blocks=True,
        )

    def _render_prompts(self, name: str, **context: Any) -> tuple[str, str]:
        """
        Render the system and user prompts for one task.

        Args:
            name: Template prefix ("extractor" or "interpreter")
            **context: Variables for the user template

        Returns:
            Tuple of (system_prompt, user_prompt)
        """
        system_template = self.jinja_env.get_template(f"{name}_system.jinja2")
        user_template = self.jinja_env.get_template(f"{name}_user.jinja2")

        return system_template.render(), user_template.render(**context)

    @retry(
        retry=retry_if_exception(_is_retryable_error),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        reraise=True,
    )
    async def _parse(
        self,
        system_prompt: str,
        messages: list[BetaMessageParam],
        output_format: type[BaseModel],
    ) -> Any:
        response = await self.client.beta.messages.parse(
            model=self.model,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
            betas=["structured-outputs-2025-11-13"],
            system=[
                BetaTextBlockParam(
                    type="text",
                    text=system_prompt,
                    cache_control=BetaCacheControlEphemeralParam(type="ephemeral"),
                )
            ],
            messages=messages,
            output_format=output_format,
        )

        if response.stop_reason == "refusal":
            raise AssistantRefusedError("Model refused to process the request")

        if response.stop_reason == "max_tokens":
            raise AssistantIncompleteError(
                "Response truncated due to token limit. Try increasing max_tokens."
            )

        logger.debug(
            "Model usage: {} input tokens, {} output tokens",
            response.usage.input_tokens,
            response.usage.output_tokens,
        )
        return response.parsed_output

    async def extract_bill(self, image_bytes: bytes, mime_type: str) -> dict[str, Any]:
        """
        Extract a bill payload from a receipt image.

        Args:
            image_bytes: Raw image bytes
            mime_type: MIME type of the image

        Returns:
            Bill payload as plain JSON-compatible data, every item unassigned

        Raises:
            UnsupportedImageError: If the MIME type is not supported
            AssistantRefusedError: If the model refuses the request
            AssistantIncompleteError: If the response is truncated
        """
        if mime_type not in SUPPORTED_MIME_TYPES:
            raise UnsupportedImageError(f"Unsupported image type: {mime_type}")

        start_time = time.time()
        system_prompt, user_prompt = self._render_prompts("extractor")

        messages: list[BetaMessageParam] = [
            {
                "role": "user",
                "content": [
                    {
                        "type": "image",
                        "source": {
                            "type": "base64",
                            "media_type": mime_type,  # type: ignore[typeddict-item]
                            "data": base64.b64encode(image_bytes).decode("ascii"),
                        },
                    },
                    {"type": "text", "text": user_prompt},
                ],
            }
        ]

        receipt: ReceiptPayload = await self._parse(
            system_prompt, messages, ReceiptPayload
        )
        logger.info(
            "Extracted {} items in {:.2f}s",
            len(receipt.items),
            time.time() - start_time,
        )
        return receipt.model_dump(mode="json")

    async def interpret_command(self, bill: Bill, text: str) -> Interpretation:
        """
        Interpret a chat command against the current bill.

        Args:
            bill: Current bill
            text: The user's message

        Returns:
            Interpretation with the candidate bill payload, the confirmation
            text and any declared corrections

        Raises:
            AssistantRefusedError: If the model refuses the request
            AssistantIncompleteError: If the response is truncated
        """
        system_prompt, user_prompt = self._render_prompts(
            "interpreter",
            BILL_JSON=bill_to_payload(bill).model_dump_json(indent=2),
            USER_MESSAGE=text,
        )
        messages: list[BetaMessageParam] = [{"role": "user", "content": user_prompt}]

        command: CommandPayload = await self._parse(
            system_prompt, messages, CommandPayload
        )
        return Interpretation(
            candidate=command.updated_bill.model_dump(mode="json"),
            response_text=command.response_text,
            corrections=command.corrections,
        )
