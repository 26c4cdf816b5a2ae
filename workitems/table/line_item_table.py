"""
Work-Item Table State

An explicit, framework-agnostic container for the rows a user is
reviewing. The Streamlit page keeps one of these in session state and
calls it from widget callbacks; tests drive it directly.

DESIGN DECISION: Every operation is total. Bad indices are ignored and
bad numbers become 0, so a stray keystroke can never leave the table in
a state the user cannot get out of.
"""

from typing import Any, Callable, Iterable, Iterator, Optional

import structlog

from workitems.models.work_item import LineItem, LineItemField
from workitems.table.reconcile import reconcile


logger = structlog.get_logger(__name__)

DEFAULT_NEW_ROW_LABEL = "new item"

ChangeListener = Callable[[list[LineItem]], None]


def _as_line_item(record: LineItem | dict) -> LineItem:
    if isinstance(record, LineItem):
        return record
    return LineItem.model_validate(record)


class LineItemTable:
    """
    Ordered, mutable sequence of LineItems.

    Rows keep insertion order and descriptions need not be unique.
    Derived values (grand_total, row_share) are recomputed on every read.
    """

    def __init__(
        self,
        rows: Optional[Iterable[LineItem | dict]] = None,
        new_row_label: str = DEFAULT_NEW_ROW_LABEL,
        on_change: Optional[ChangeListener] = None,
    ):
        """
        Initialize the table.

        Args:
            rows: Initial rows, as LineItems or wire-format records
                (e.g. straight from an extraction result).
            new_row_label: Description given to rows added by add_row().
            on_change: Called with a copy of the rows after every
                successful mutation.
        """
        self._rows: list[LineItem] = [_as_line_item(row) for row in rows or []]
        self._new_row_label = new_row_label
        self._on_change = on_change

    @classmethod
    def from_records(
        cls,
        records: Iterable[dict],
        new_row_label: str = DEFAULT_NEW_ROW_LABEL,
    ) -> "LineItemTable":
        """Seed a table from {item, quantity, unitPrice, price} records."""
        return cls(rows=records, new_row_label=new_row_label)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @property
    def rows(self) -> list[LineItem]:
        """A copy of the current rows."""
        return list(self._rows)

    @property
    def is_empty(self) -> bool:
        return not self._rows

    @property
    def grand_total(self) -> float:
        """Sum of every row's total price."""
        return sum((row.total_price for row in self._rows), 0.0)

    def row(self, index: int) -> Optional[LineItem]:
        """The row at index, or None when out of bounds."""
        if not self._in_bounds(index):
            return None
        return self._rows[index]

    def row_share(self, index: int) -> float:
        """
        Fraction of the grand total carried by one row.

        Returns 0 when the grand total is 0 or the index is out of bounds.
        """
        if not self._in_bounds(index):
            return 0.0
        total = self.grand_total
        if total == 0:
            return 0.0
        return self._rows[index].total_price / total

    def to_records(self) -> list[dict]:
        """Rows in wire format, for promotion or serialization."""
        return [row.to_record() for row in self._rows]

    def __len__(self) -> int:
        return len(self._rows)

    def __iter__(self) -> Iterator[LineItem]:
        return iter(list(self._rows))

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def add_row(self) -> LineItem:
        """Append a blank row (quantity 1, prices 0) and return it."""
        row = LineItem(
            description=self._new_row_label,
            quantity=1,
            unit_price=0,
            total_price=0,
        )
        self._rows.append(row)
        self._notify()
        return row

    def remove_row(self, index: int) -> bool:
        """Remove the row at index. Returns False (and does nothing) when out of bounds."""
        if not self._in_bounds(index):
            logger.debug("remove_row_ignored", index=index, row_count=len(self._rows))
            return False
        del self._rows[index]
        self._notify()
        return True

    def update_field(
        self,
        index: int,
        field: LineItemField | str,
        raw_value: Any,
    ) -> bool:
        """
        Apply one edit to the row at index, reconciling its derived field.

        Returns False (and does nothing) when the index is out of bounds
        or the field name is unknown.
        """
        if not self._in_bounds(index):
            logger.debug("update_field_ignored", index=index, row_count=len(self._rows))
            return False
        if LineItemField.parse(field) is None:
            logger.warning("update_field_unknown_field", field=str(field))
            return False
        self._rows[index] = reconcile(self._rows[index], field, raw_value)
        self._notify()
        return True

    def replace_rows(self, rows: Iterable[LineItem | dict]) -> None:
        """Replace every row, e.g. when a new extraction result arrives."""
        self._rows = [_as_line_item(row) for row in rows]
        self._notify()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _in_bounds(self, index: Any) -> bool:
        return (
            isinstance(index, int)
            and not isinstance(index, bool)
            and 0 <= index < len(self._rows)
        )

    def _notify(self) -> None:
        if self._on_change is not None:
            self._on_change(self.rows)
