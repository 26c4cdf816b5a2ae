"""Tests for pre-promotion validation."""

import asyncio
from datetime import date

import pytest

from workitems.models.work_item import DocumentDetails, LineItem, ProjectRecord
from workitems.services.storage import InMemoryRecordStorage
from workitems.table import LineItemTable
from workitems.validation import PromotionValidator


def complete_details(**overrides) -> DocumentDetails:
    values = {"custom_id": "DOC-1", "name": "Villa Renovation", "client": "ACME"}
    values.update(overrides)
    return DocumentDetails(**values)


def consistent_table() -> LineItemTable:
    return LineItemTable([
        LineItem(description="Paint", quantity=2, unit_price=150, total_price=300),
    ])


def validate(details, table, storage=None):
    validator = PromotionValidator(storage)
    return asyncio.run(validator.validate(details, table))


class TestHeaderValidation:
    """Stage 1: errors that block promotion."""

    def test_everything_missing(self):
        """Test missing name, client and rows are all errors."""
        result = validate(DocumentDetails(), LineItemTable())
        assert result.error_count == 3
        assert {issue.field for issue in result.issues} >= {"name", "client", "work_items"}
        assert result.can_promote is False

    def test_blank_name_is_missing(self):
        """Test a whitespace-only name counts as missing."""
        result = validate(complete_details(name="   "), consistent_table())
        assert result.error_count == 1
        assert result.issues[0].field == "name"

    def test_complete_promotion_passes(self):
        """Test a complete header and consistent rows pass cleanly."""
        result = validate(complete_details(), consistent_table())
        assert result.issues == []
        assert result.can_promote is True
        assert result.row_count == 1
        assert result.grand_total == 300.0


class TestRowValidation:
    """Stage 2: warnings that never block."""

    def test_zero_quantity_warning(self):
        """Test a zero-quantity row is flagged."""
        table = consistent_table()
        table.update_field(0, "quantity", "0")
        result = validate(complete_details(), table)
        assert result.can_promote is True
        quantity_issues = [i for i in result.issues if i.field == "quantity"]
        assert len(quantity_issues) == 1
        assert quantity_issues[0].row_index == 0

    def test_inconsistent_row_warning(self):
        """Test a total edit that leaves q x u != total is flagged."""
        table = consistent_table()
        table.update_field(0, "quantity", "3")
        table.update_field(0, "totalPrice", "100")  # unit price becomes 33.33
        result = validate(complete_details(), table)
        assert result.can_promote is True
        assert [i.issue_type for i in result.issues] == ["inconsistent"]
        assert "Paint" in result.warnings[0]

    def test_zero_grand_total_warning(self):
        """Test a table with no prices is flagged."""
        table = LineItemTable()
        table.add_row()
        result = validate(complete_details(), table)
        assert result.can_promote is True
        assert result.warnings == ["Grand total is zero"]

    def test_blank_description_warning(self):
        """Test a row without a description is flagged."""
        table = consistent_table()
        table.update_field(0, "description", "  ")
        result = validate(complete_details(), table)
        assert [i.field for i in result.issues] == ["description"]


class TestDuplicateCheck:
    """Custom ID duplicate detection against storage."""

    def test_duplicate_custom_id_warning(self):
        """Test an existing custom ID is flagged."""
        storage = InMemoryRecordStorage()
        asyncio.run(storage.save_project(ProjectRecord(
            custom_id="DOC-1",
            title="Earlier",
            client="ACME",
            start_date=date(2024, 1, 1),
            end_date=date(2024, 1, 31),
        )))

        result = validate(complete_details(), consistent_table(), storage)
        assert result.can_promote is True
        assert [i.issue_type for i in result.issues] == ["potential_duplicate"]

    def test_no_storage_skips_duplicate_check(self):
        """Test validation works without storage."""
        result = validate(complete_details(), consistent_table(), None)
        assert result.issues == []


class TestUserFriendlySummary:
    """Tests for the message shown to users."""

    def test_summary_all_clear(self):
        """Test the all-clear message."""
        validator = PromotionValidator()
        result = asyncio.run(validator.validate(complete_details(), consistent_table()))
        assert validator.get_user_friendly_summary(result).startswith("✅")

    def test_summary_lists_errors(self):
        """Test errors and fixes are listed."""
        validator = PromotionValidator()
        result = asyncio.run(validator.validate(DocumentDetails(), LineItemTable()))
        summary = validator.get_user_friendly_summary(result)
        assert "Project name is required" in summary
        assert "Client is required" in summary
        assert "Please fix the issues above" in summary


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
