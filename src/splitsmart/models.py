"""Data models for bills, allocations and chat history."""

import uuid
from datetime import UTC, datetime
from decimal import Decimal
from fractions import Fraction
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

DEFAULT_TOLERANCE = Decimal("0.01")

USER_ROLE = "user"
ASSISTANT_ROLE = "assistant"
Role = Literal["user", "assistant"]

ProtectedField = Literal["description", "price"]


def person_key(name: str) -> str:
    """Return the key used to decide whether two names are the same person.

    Names are compared with surrounding whitespace stripped and case folded.
    No fuzzy matching is done: "Dave" and "David" are different people.
    """
    return name.strip().casefold()


class _CamelModel(BaseModel):
    """Base model accepting both snake_case names and camelCase aliases."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class BillItem(_CamelModel):
    """Single priced line item on a bill."""

    id: str = Field(min_length=1)
    description: str
    price: Decimal = Field(ge=0)
    assigned_to: list[str] = Field(default_factory=list)

    @field_validator("assigned_to")
    @classmethod
    def _names_not_blank(cls, names: list[str]) -> list[str]:
        for name in names:
            if not name.strip():
                raise ValueError("person names cannot be blank")
        return names

    @property
    def is_assigned(self) -> bool:
        return bool(self.assigned_to)


class Bill(_CamelModel):
    """Structured representation of a receipt."""

    items: list[BillItem] = Field(default_factory=list)
    subtotal: Decimal
    tax: Decimal
    tip: Decimal
    total: Decimal
    currency: str

    @model_validator(mode="after")
    def _unique_item_ids(self) -> "Bill":
        seen: set[str] = set()
        for item in self.items:
            if item.id in seen:
                raise ValueError(f"duplicate item id: {item.id}")
            seen.add(item.id)
        return self

    def item_ids(self) -> list[str]:
        return [item.id for item in self.items]

    def get_item(self, item_id: str) -> BillItem | None:
        for item in self.items:
            if item.id == item_id:
                return item
        return None

    @property
    def items_sum(self) -> Decimal:
        return sum((item.price for item in self.items), Decimal(0))


def check_bill_totals(
    bill: Bill, tolerance: Decimal = DEFAULT_TOLERANCE
) -> list[str]:
    """Report soft inconsistencies between a bill's items and its totals.

    Extracted receipts are lossy, so mismatches are returned as warnings
    instead of being raised.

    Args:
        bill: Bill to check
        tolerance: Largest difference treated as equal

    Returns:
        Human-readable warning strings, empty when the bill is consistent
    """
    warnings = []

    items_sum = bill.items_sum
    if abs(items_sum - bill.subtotal) > tolerance:
        warnings.append(
            f"Subtotal {bill.subtotal} does not match the sum of item prices "
            f"{items_sum}"
        )

    expected_total = bill.subtotal + bill.tax + bill.tip
    if abs(expected_total - bill.total) > tolerance:
        warnings.append(
            f"Total {bill.total} does not match subtotal + tax + tip "
            f"{expected_total}"
        )

    return warnings


class PersonSummary(_CamelModel):
    """Derived per-person cost breakdown. Recomputed on every allocation.

    Amounts are exact fractions; see rendering.format_money for display.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    name: str
    items_total: Fraction
    tax_share: Fraction
    tip_share: Fraction
    total_owed: Fraction


class Allocation(_CamelModel):
    """Result of allocating a bill: who owes what, and what nobody claimed."""

    model_config = ConfigDict(frozen=True)

    people: list[PersonSummary] = Field(default_factory=list)
    unassigned: list[BillItem] = Field(default_factory=list)

    @property
    def assigned_subtotal(self) -> Fraction:
        return sum((person.items_total for person in self.people), Fraction(0))

    @property
    def unassigned_total(self) -> Decimal:
        return sum((item.price for item in self.unassigned), Decimal(0))

    @property
    def total_owed(self) -> Fraction:
        return sum((person.total_owed for person in self.people), Fraction(0))


class ChatMessage(BaseModel):
    """A single entry in the append-only conversation history."""

    model_config = ConfigDict(frozen=True)

    role: Role
    text: str
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))


class Correction(BaseModel):
    """Declared intent to change protected fields of one item."""

    item_id: str
    fields: list[ProtectedField] = Field(min_length=1)


class Interpretation(BaseModel):
    """Output of interpreting a user command against the current bill.

    ``candidate`` is the untrusted bill payload as returned by the
    interpreter; it must go through the update validator before use.
    """

    candidate: dict[str, Any]
    response_text: str
    corrections: list[Correction] = Field(default_factory=list)
