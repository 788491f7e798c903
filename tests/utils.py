import re
from decimal import Decimal

from splitsmart.models import Bill, BillItem


def clean_cli_output(output: str) -> str:
    """
    Remove ANSI escape codes, Rich formatting characters, whitespace, and newlines
    from CLI output to make assertions robust against terminal wrapping.
    """
    # 1. Remove ANSI escape codes
    ansi_escape = re.compile(r"\x1B(?:[@-Z\\-_]|\[[0-?]*[ -/]*[@-~])")
    output = ansi_escape.sub("", output)

    # 2. Remove:
    # \s - all whitespace (space, tab, newline, etc.)
    # │, ╭, ╮, ╰, ╯, ─ - Rich box characters
    return re.sub(r"[\s│╭╮╰╯─]", "", output)


def make_bill(items, tax="0", tip="0", currency="$") -> Bill:
    """
    Build a consistent bill from (id, description, price, assigned_to) tuples.

    Subtotal and total are derived from the items, tax and tip.
    """
    bill_items = [
        BillItem(
            id=item_id,
            description=description,
            price=Decimal(str(price)),
            assigned_to=list(assigned_to),
        )
        for item_id, description, price, assigned_to in items
    ]
    subtotal = sum((item.price for item in bill_items), Decimal(0))
    tax = Decimal(str(tax))
    tip = Decimal(str(tip))
    return Bill(
        items=bill_items,
        subtotal=subtotal,
        tax=tax,
        tip=tip,
        total=subtotal + tax + tip,
        currency=currency,
    )
