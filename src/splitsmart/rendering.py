"""Plain-text rendering of bills, allocations and chat messages."""

from decimal import ROUND_HALF_UP, Decimal
from fractions import Fraction

from splitsmart.models import USER_ROLE, Allocation, Bill, ChatMessage

CENT = Decimal("0.01")


def to_cents(amount: Decimal | Fraction) -> Decimal:
    """Round an amount to cents, halves away from zero."""
    if isinstance(amount, Decimal):
        return amount.quantize(CENT, rounding=ROUND_HALF_UP)

    cents = int(abs(amount) * 100 + Fraction(1, 2))
    value = Decimal(cents).scaleb(-2)
    if amount < 0 and cents:
        return -value
    return value


def format_money(amount: Decimal | Fraction, currency: str) -> str:
    """Round to cents and attach the currency marker.

    Symbols are prefixed ("$12.50"); three-letter codes are suffixed
    ("12.50 EUR").
    """
    value = to_cents(amount)
    if len(currency) == 3 and currency.isalpha():
        return f"{value} {currency}"
    return f"{currency}{value}"


def render_totals(bill: Bill) -> str:
    parts = [
        ("Subtotal", bill.subtotal),
        ("Tax", bill.tax),
        ("Tip", bill.tip),
        ("Total", bill.total),
    ]
    return "  ".join(
        f"{label}: {format_money(amount, bill.currency)}" for label, amount in parts
    )


def render_bill(bill: Bill) -> str:
    """Render the receipt as an item / price / assignee table."""
    prices = [format_money(item.price, bill.currency) for item in bill.items]
    desc_width = max([len("Item")] + [len(item.description) for item in bill.items])
    price_width = max([len("Price")] + [len(price) for price in prices])

    lines = [f"{'Item':<{desc_width}}  {'Price':>{price_width}}  Assigned to"]
    for item, price in zip(bill.items, prices, strict=True):
        assigned = ", ".join(item.assigned_to) if item.assigned_to else "Unassigned"
        lines.append(
            f"{item.description:<{desc_width}}  {price:>{price_width}}  {assigned}"
        )

    lines.append("")
    lines.append(render_totals(bill))
    return "\n".join(lines)


def render_breakdown(allocation: Allocation, currency: str) -> str:
    """Render who owes what, followed by any unassigned items."""
    lines = ["Cost breakdown"]

    if not allocation.people:
        lines.append("  Start chatting to assign items!")
    else:
        name_width = max(len(person.name) for person in allocation.people)
        for person in allocation.people:
            extras = format_money(person.tax_share + person.tip_share, currency)
            lines.append(
                f"  {person.name:<{name_width}}  "
                f"{format_money(person.total_owed, currency)}  "
                f"(items {format_money(person.items_total, currency)} "
                f"+ {extras} tax/tip)"
            )

    if allocation.unassigned:
        lines.append(
            f"Unassigned ({format_money(allocation.unassigned_total, currency)})"
        )
        for item in allocation.unassigned:
            lines.append(
                f"  {item.description}  {format_money(item.price, currency)}"
            )

    return "\n".join(lines)


def render_message(message: ChatMessage) -> str:
    speaker = "You" if message.role == USER_ROLE else "Assistant"
    return f"{speaker}: {message.text}"


def greeting_text(bill: Bill) -> str:
    """Summary message shown once a receipt has been analyzed."""
    return (
        f"I've analyzed your receipt! I found {len(bill.items)} items totaling "
        f"{format_money(bill.total, bill.currency)}. Tell me who had what (e.g., "
        '"Mike had the steak" or "Alice and Bob shared the wine").'
    )
