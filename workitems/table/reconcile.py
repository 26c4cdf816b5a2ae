"""
Line-Item Reconciliation

Keeps a work-item row internally consistent after a single-field edit:

- quantity or unit price edited  -> total = round(quantity * unit price, 2)
- total price edited             -> unit price = round(total / quantity, 2),
                                    or 0 when quantity is not positive
- description edited             -> nothing recomputed

Only the derived field is rounded. The field being edited keeps exactly
what the user typed (after numeric parsing), so the table never fights
the user mid-keystroke.

CRITICAL: reconcile() never raises. Unreadable numbers degrade to 0 and
unknown field names leave the row unchanged.
"""

from typing import Any

import structlog

from workitems.models.work_item import (
    LineItem,
    LineItemField,
    parse_numeric,
    round_currency,
)


logger = structlog.get_logger(__name__)


def reconcile(
    current: LineItem,
    edited_field: LineItemField | str,
    raw_value: Any,
) -> LineItem:
    """
    Apply one edit to a row and recompute its dependent field.

    Args:
        current: The row before the edit. Never mutated.
        edited_field: Column being edited, as a LineItemField or any
            accepted spelling ("unitPrice", "price", "item", ...).
        raw_value: What the user typed, string or number.

    Returns:
        A new, consistent LineItem.
    """
    field = LineItemField.parse(edited_field)
    if field is None:
        logger.warning("unknown_line_item_field", field=str(edited_field))
        return current.model_copy()

    if field is LineItemField.DESCRIPTION:
        description = "" if raw_value is None else str(raw_value)
        return current.model_copy(update={"description": description})

    value = parse_numeric(raw_value)

    if field is LineItemField.QUANTITY:
        return current.model_copy(update={
            "quantity": value,
            "total_price": round_currency(value * current.unit_price),
        })

    if field is LineItemField.UNIT_PRICE:
        return current.model_copy(update={
            "unit_price": value,
            "total_price": round_currency(current.quantity * value),
        })

    # Total price edited: derive the unit price instead
    if current.quantity > 0:
        unit_price = round_currency(value / current.quantity)
    else:
        unit_price = 0.0
    return current.model_copy(update={
        "total_price": value,
        "unit_price": unit_price,
    })
