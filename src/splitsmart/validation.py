"""Validation of untrusted bill payloads coming back from the assistant.

The assistant returns whole bills as loose JSON. Nothing it returns is
installed directly: extraction payloads go through
:func:`ingest_extracted_bill` and update payloads are reconciled against the
previous bill with :func:`reconcile_update`, which only lets assignment
changes (and explicitly declared corrections) through.
"""

from collections.abc import Iterable, Mapping
from decimal import Decimal
from typing import Any

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from splitsmart.errors import ExtractionFailedError, MalformedUpdateError
from splitsmart.models import (
    DEFAULT_TOLERANCE,
    Bill,
    BillItem,
    Correction,
    check_bill_totals,
)

BILL_FIELDS = ("subtotal", "tax", "tip", "total", "currency")


class FieldDrift(BaseModel):
    """A protected field the candidate changed without being asked to.

    The change is reverted; the record exists so callers can log or inspect
    what the assistant tried to alter.
    """

    model_config = ConfigDict(frozen=True)

    field: str
    item_id: str | None = None
    previous: Any = None
    candidate: Any = None


class UpdateResult(BaseModel):
    """Sanitized bill produced by reconciling a candidate update."""

    bill: Bill
    drift: list[FieldDrift] = Field(default_factory=list)


def _parse_bill(payload: Any) -> Bill:
    if isinstance(payload, Bill):
        return payload.model_copy(deep=True)
    if not isinstance(payload, Mapping):
        raise TypeError(f"expected a mapping, got {type(payload).__name__}")
    return Bill.model_validate(payload)


def ingest_extracted_bill(
    payload: Any, tolerance: Decimal = DEFAULT_TOLERANCE
) -> Bill:
    """Turn an extraction payload into the initial bill.

    Args:
        payload: Raw bill payload returned by receipt extraction
        tolerance: Tolerance for the subtotal/total consistency check

    Returns:
        Validated Bill with every item unassigned

    Raises:
        ExtractionFailedError: If the payload is not a structurally valid bill
    """
    try:
        bill = _parse_bill(payload)
    except (TypeError, ValidationError) as e:
        raise ExtractionFailedError(f"Extracted bill is invalid: {e}") from e

    for item in bill.items:
        if item.assigned_to:
            logger.warning(
                "Extracted item {} arrived pre-assigned to {}; clearing",
                item.id,
                item.assigned_to,
            )
            item.assigned_to = []

    for warning in check_bill_totals(bill, tolerance):
        logger.warning("Extracted bill is inconsistent: {}", warning)

    logger.info(
        "Ingested bill with {} items, total {}{}",
        len(bill.items),
        bill.currency,
        bill.total,
    )
    return bill


def _check_corrections(
    previous: Bill, corrections: Iterable[Correction]
) -> dict[str, set[str]]:
    allowed: dict[str, set[str]] = {}
    for correction in corrections:
        if previous.get_item(correction.item_id) is None:
            raise MalformedUpdateError(
                f"Correction refers to unknown item id: {correction.item_id}"
            )
        allowed.setdefault(correction.item_id, set()).update(correction.fields)
    return allowed


def _reconcile_item(
    previous_item: BillItem,
    candidate_item: BillItem,
    allowed_fields: set[str],
    drift: list[FieldDrift],
) -> BillItem:
    values = {
        "id": previous_item.id,
        "assigned_to": list(candidate_item.assigned_to),
    }

    for field in ("description", "price"):
        old = getattr(previous_item, field)
        new = getattr(candidate_item, field)
        if field in allowed_fields:
            if new == old:
                raise MalformedUpdateError(
                    f"Correction to {field} of item {previous_item.id} "
                    "did not change it"
                )
            values[field] = new
        else:
            if new != old:
                drift.append(
                    FieldDrift(
                        field=field,
                        item_id=previous_item.id,
                        previous=old,
                        candidate=new,
                    )
                )
            values[field] = old

    return BillItem(**values)


def reconcile_update(
    previous: Bill,
    candidate: Any,
    corrections: Iterable[Correction] = (),
) -> UpdateResult:
    """Reconcile a candidate bill against the previous one.

    Assignment lists are taken from the candidate as-is. Descriptions and
    prices only change where a correction names the item and field, and the
    declared field must actually differ. Every other change to a protected
    field is reverted and reported as drift. Bill-level amounts and the
    currency always come from ``previous``.

    Args:
        previous: Current canonical bill
        candidate: Untrusted bill payload returned by the interpreter
        corrections: Correction signals declared alongside the candidate

    Returns:
        UpdateResult with the sanitized bill and any reverted drift

    Raises:
        MalformedUpdateError: If the candidate is not a valid bill, refers to
            unknown items, or a declared correction is inconsistent
    """
    try:
        candidate_bill = _parse_bill(candidate)
    except (TypeError, ValidationError) as e:
        raise MalformedUpdateError(f"Candidate bill is invalid: {e}") from e

    allowed = _check_corrections(previous, corrections)

    previous_ids = set(previous.item_ids())
    unknown = [i for i in candidate_bill.item_ids() if i not in previous_ids]
    if unknown:
        raise MalformedUpdateError(
            f"Candidate bill contains unknown item ids: {', '.join(unknown)}"
        )

    drift: list[FieldDrift] = []
    items = []
    for previous_item in previous.items:
        candidate_item = candidate_bill.get_item(previous_item.id)
        if candidate_item is None:
            if previous_item.id in allowed:
                raise MalformedUpdateError(
                    f"Corrected item {previous_item.id} is missing from the "
                    "candidate bill"
                )
            drift.append(FieldDrift(field="item", item_id=previous_item.id))
            items.append(previous_item.model_copy(deep=True))
            continue

        items.append(
            _reconcile_item(
                previous_item,
                candidate_item,
                allowed.get(previous_item.id, set()),
                drift,
            )
        )

    for field in BILL_FIELDS:
        old = getattr(previous, field)
        new = getattr(candidate_bill, field)
        if new != old:
            drift.append(FieldDrift(field=field, previous=old, candidate=new))

    for entry in drift:
        logger.warning(
            "Reverted unrequested change to {} (item {}): {!r} -> {!r}",
            entry.field,
            entry.item_id,
            entry.previous,
            entry.candidate,
        )

    bill = Bill(
        items=items,
        subtotal=previous.subtotal,
        tax=previous.tax,
        tip=previous.tip,
        total=previous.total,
        currency=previous.currency,
    )
    return UpdateResult(bill=bill, drift=drift)
