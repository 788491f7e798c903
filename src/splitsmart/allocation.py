"""Per-person allocation of a bill's items, tax and tip."""

from fractions import Fraction

from splitsmart.models import Allocation, Bill, BillItem, PersonSummary, person_key


def allocate_bill(bill: Bill) -> Allocation:
    """Split a bill among the people its items are assigned to.

    Each assigned item is divided equally among its distinct assignees.
    Tax and tip are then distributed in proportion to each person's share of
    the *assigned* subtotal, so unassigned items add nothing to anyone's
    tax or tip until somebody claims them.

    Shares are exact fractions: a three-way split of 10 sums back to exactly
    10. Rounding is left to presentation.

    Args:
        bill: Bill to allocate

    Returns:
        Allocation with people in first-seen order and unassigned items in
        receipt order
    """
    display_names: dict[str, str] = {}
    items_totals: dict[str, Fraction] = {}
    unassigned: list[BillItem] = []

    for item in bill.items:
        if not item.assigned_to:
            unassigned.append(item.model_copy(deep=True))
            continue

        # Duplicate names on one item count once
        keys: list[str] = []
        for name in item.assigned_to:
            key = person_key(name)
            if key in keys:
                continue
            keys.append(key)
            if key not in display_names:
                display_names[key] = name.strip()
                items_totals[key] = Fraction(0)

        share = Fraction(item.price) / len(keys)
        for key in keys:
            items_totals[key] += share

    assigned_subtotal = sum(items_totals.values(), Fraction(0))
    tax = Fraction(bill.tax)
    tip = Fraction(bill.tip)

    people = []
    for key, name in display_names.items():
        items_total = items_totals[key]
        if assigned_subtotal == 0:
            tax_share = Fraction(0)
            tip_share = Fraction(0)
        else:
            tax_share = tax * items_total / assigned_subtotal
            tip_share = tip * items_total / assigned_subtotal

        people.append(
            PersonSummary(
                name=name,
                items_total=items_total,
                tax_share=tax_share,
                tip_share=tip_share,
                total_owed=items_total + tax_share + tip_share,
            )
        )

    return Allocation(people=people, unassigned=unassigned)
