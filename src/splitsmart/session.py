"""Conversation session: owns one bill and its chat history."""

import asyncio
from collections.abc import Awaitable
from decimal import Decimal
from enum import Enum
from typing import Any, Protocol, TypeVar

from loguru import logger

from splitsmart.allocation import allocate_bill
from splitsmart.errors import SessionBusyError, SessionStateError
from splitsmart.models import (
    ASSISTANT_ROLE,
    DEFAULT_TOLERANCE,
    USER_ROLE,
    Allocation,
    Bill,
    ChatMessage,
    Interpretation,
    check_bill_totals,
)
from splitsmart.rendering import greeting_text
from splitsmart.validation import ingest_extracted_bill, reconcile_update

T = TypeVar("T")

EXTRACTION_FAILED_TEXT = (
    "Failed to analyze receipt. Please try again with a clearer image."
)
UPDATE_FAILED_TEXT = (
    "Sorry, I had trouble updating the bill. Could you try rephrasing that?"
)


class BillAssistant(Protocol):
    """External collaborator that reads receipts and interprets commands."""

    async def extract_bill(self, image_bytes: bytes, mime_type: str) -> Any: ...

    async def interpret_command(self, bill: Bill, text: str) -> Interpretation: ...


class SessionState(str, Enum):
    EMPTY = "empty"
    ANALYZING = "analyzing"
    READY = "ready"
    UPDATING = "updating"


class ConversationSession:
    """
    Holds the current bill and message history for one conversation.

    Only one external call (extraction or interpretation) may be in flight at
    a time; further submissions are rejected with SessionBusyError until it
    resolves. Failed calls leave the bill exactly as it was and append an
    error message to the history instead.
    """

    def __init__(
        self,
        assistant: BillAssistant,
        timeout: float | None = None,
        tolerance: Decimal = DEFAULT_TOLERANCE,
    ) -> None:
        """
        Initialize the session.

        Args:
            assistant: Collaborator used for extraction and interpretation
            timeout: Optional limit in seconds for each collaborator call;
                expiry counts as a failed call
            tolerance: Tolerance for the bill totals consistency check
        """
        self.assistant = assistant
        self.timeout = timeout
        self.tolerance = tolerance
        self._state = SessionState.EMPTY
        self._bill: Bill | None = None
        self._messages: list[ChatMessage] = []

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def bill(self) -> Bill | None:
        return self._bill

    @property
    def messages(self) -> tuple[ChatMessage, ...]:
        return tuple(self._messages)

    @property
    def busy(self) -> bool:
        return self._state in (SessionState.ANALYZING, SessionState.UPDATING)

    def allocation(self) -> Allocation | None:
        """Allocate the current bill, or return None when there is none."""
        if self._bill is None:
            return None
        return allocate_bill(self._bill)

    def warnings(self) -> list[str]:
        if self._bill is None:
            return []
        return check_bill_totals(self._bill, self.tolerance)

    def _append(self, role: str, text: str) -> ChatMessage:
        message = ChatMessage(role=role, text=text)
        self._messages.append(message)
        return message

    def _ensure_idle(self) -> None:
        if self.busy:
            raise SessionBusyError(
                f"Session is {self._state.value}; wait for the current request "
                "to finish"
            )

    async def _call(self, awaitable: Awaitable[T]) -> T:
        if self.timeout is None:
            return await awaitable
        return await asyncio.wait_for(awaitable, self.timeout)

    async def upload(self, image_bytes: bytes, mime_type: str) -> ChatMessage:
        """Analyze a receipt image and install it as the session's bill.

        Args:
            image_bytes: Raw receipt image
            mime_type: MIME type of the image

        Returns:
            The assistant message appended to the history: the bill summary
            on success or a retry prompt on failure

        Raises:
            SessionBusyError: If a request is already in flight
            SessionStateError: If the session already holds a bill; call
                reset() first
        """
        self._ensure_idle()
        if self._state is not SessionState.EMPTY:
            raise SessionStateError("A receipt has already been uploaded")

        self._state = SessionState.ANALYZING
        try:
            payload = await self._call(
                self.assistant.extract_bill(image_bytes, mime_type)
            )
            bill = ingest_extracted_bill(payload, self.tolerance)
        except asyncio.CancelledError:
            self._state = SessionState.EMPTY
            raise
        except Exception as e:
            logger.warning("Receipt extraction failed: {}", e)
            self._state = SessionState.EMPTY
            return self._append(ASSISTANT_ROLE, EXTRACTION_FAILED_TEXT)

        self._bill = bill
        self._state = SessionState.READY
        return self._append(ASSISTANT_ROLE, greeting_text(bill))

    def reset(self) -> None:
        """Drop the current bill so a new receipt can be uploaded.

        The message history is kept.

        Raises:
            SessionBusyError: If a request is in flight
        """
        self._ensure_idle()
        if self._bill is not None:
            logger.info("Discarding bill with {} items", len(self._bill.items))
        self._bill = None
        self._state = SessionState.EMPTY

    async def send_message(self, text: str) -> ChatMessage:
        """Apply a natural-language command to the bill.

        The user's message is recorded before the outcome is known. The turn
        is all-or-nothing: either the validated bill replaces the current one
        or nothing changes.

        Args:
            text: The user's message

        Returns:
            The assistant reply appended to the history

        Raises:
            ValueError: If the message is blank
            SessionBusyError: If a request is already in flight
            SessionStateError: If no bill has been uploaded yet
        """
        if not text.strip():
            raise ValueError("Message cannot be empty")
        self._ensure_idle()
        if self._bill is None:
            raise SessionStateError("Upload a receipt before sending messages")

        previous = self._bill
        self._append(USER_ROLE, text)
        self._state = SessionState.UPDATING
        try:
            interpretation = await self._call(
                self.assistant.interpret_command(previous.model_copy(deep=True), text)
            )
            result = reconcile_update(
                previous, interpretation.candidate, interpretation.corrections
            )
        except asyncio.CancelledError:
            self._state = SessionState.READY
            raise
        except Exception as e:
            logger.warning("Bill update failed: {}", e)
            self._state = SessionState.READY
            return self._append(ASSISTANT_ROLE, UPDATE_FAILED_TEXT)

        if result.drift:
            logger.info("Update applied with {} reverted changes", len(result.drift))
        self._bill = result.bill
        self._state = SessionState.READY
        return self._append(ASSISTANT_ROLE, interpretation.response_text)
