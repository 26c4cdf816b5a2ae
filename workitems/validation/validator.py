"""
Two-Stage Promotion Validation

DESIGN DECISION: Before a work-item table becomes a Project and a
Contract, it is checked in two distinct stages:

STAGE 1 - HEADER VALIDATION:
- Project / contract name present
- Client present
- At least one work item
- These are ERRORS: promotion is refused until they are fixed

STAGE 2 - ROW VALIDATION:
- Rows with an empty description
- Rows with a zero quantity
- Rows whose total no longer equals quantity * unit price
  (left behind by a total-price edit)
- Zero grand total
- Custom ID already used by a stored project
- These are WARNINGS: shown to the user, never blocking

IMPORTANT: Validation NEVER silently fixes issues.
It reports them for human review.
"""

from typing import Optional

import structlog

from workitems.config import get_settings
from workitems.models.work_item import (
    DocumentDetails,
    ValidationIssue,
    ValidationResult,
    round_currency,
)
from workitems.services.storage import RecordStorageInterface
from workitems.table import LineItemTable


logger = structlog.get_logger(__name__)


class PromotionValidator:
    """
    Validates a document header and its work-item table before promotion.

    Stage 1: Header validation (can run without storage)
    Stage 2: Row validation (duplicate custom IDs need storage)
    """

    def __init__(
        self,
        record_storage: Optional[RecordStorageInterface] = None,
    ):
        """
        Initialize validator.

        Args:
            record_storage: Storage interface for duplicate checking.
                            If None, duplicate checking is skipped.
        """
        self._storage = record_storage
        self._settings = get_settings().app

    def _validate_header(
        self,
        details: DocumentDetails,
        table: LineItemTable,
    ) -> list[ValidationIssue]:
        """Stage 1: everything a project and contract cannot exist without."""
        issues = []

        if not details.name:
            issues.append(ValidationIssue(
                field="name",
                issue_type="missing",
                message="Project name is required",
                severity="error",
                suggested_fix="Enter a name for the project and contract",
            ))

        if not details.client:
            issues.append(ValidationIssue(
                field="client",
                issue_type="missing",
                message="Client is required",
                severity="error",
                suggested_fix="Enter the client's name",
            ))

        if table.is_empty:
            issues.append(ValidationIssue(
                field="work_items",
                issue_type="empty",
                message="At least one work item is required",
                severity="error",
                suggested_fix="Add a row or extract work items from a document",
            ))

        return issues

    def _validate_rows(
        self,
        table: LineItemTable,
    ) -> list[ValidationIssue]:
        """Stage 2: rows that are probably wrong but may be intended."""
        issues = []
        symbol = self._settings.currency_symbol

        for index, row in enumerate(table):
            label = row.description or f"Row {index + 1}"

            if not row.description.strip():
                issues.append(ValidationIssue(
                    field="description",
                    issue_type="missing",
                    message=f"Row {index + 1} has no description",
                    severity="warning",
                    row_index=index,
                    suggested_fix="Describe the work item",
                ))

            if row.quantity == 0:
                issues.append(ValidationIssue(
                    field="quantity",
                    issue_type="suspicious_value",
                    message=f"{label}: quantity is zero",
                    severity="warning",
                    row_index=index,
                    suggested_fix="Check the quantity or remove the row",
                ))
            elif not row.is_consistent():
                expected = round_currency(row.quantity * row.unit_price)
                issues.append(ValidationIssue(
                    field="total_price",
                    issue_type="inconsistent",
                    message=(
                        f"{label}: total ({symbol}{row.total_price:,.2f}) does not "
                        f"match quantity x unit price ({symbol}{expected:,.2f})"
                    ),
                    severity="warning",
                    row_index=index,
                    suggested_fix="Re-enter the quantity or unit price to recompute the total",
                ))

        if not table.is_empty and table.grand_total == 0:
            issues.append(ValidationIssue(
                field="grand_total",
                issue_type="suspicious_value",
                message="Grand total is zero",
                severity="warning",
                suggested_fix="Enter prices for the work items",
            ))

        return issues

    async def _check_duplicates(
        self,
        details: DocumentDetails,
    ) -> list[ValidationIssue]:
        """
        Check whether the custom ID is already taken.

        This requires storage access.
        """
        issues = []

        if self._storage is None:
            return issues

        try:
            if await self._storage.custom_id_exists(details.custom_id):
                issues.append(ValidationIssue(
                    field="custom_id",
                    issue_type="potential_duplicate",
                    message=f"A project with ID {details.custom_id} already exists",
                    severity="warning",
                    suggested_fix="Please verify this isn't a duplicate promotion",
                ))
        except Exception as e:
            # Don't fail validation due to storage errors
            logger.warning("duplicate_check_failed", error=str(e))

        return issues

    async def validate(
        self,
        details: DocumentDetails,
        table: LineItemTable,
        check_duplicates: bool = True,
    ) -> ValidationResult:
        """
        Run full two-stage validation pipeline.

        Args:
            details: The header the user filled in
            table: The reviewed work-item table
            check_duplicates: Whether to check the custom ID (requires storage)

        Returns:
            ValidationResult with all issues found
        """
        issues = self._validate_header(details, table)
        issues.extend(self._validate_rows(table))

        if check_duplicates:
            issues.extend(await self._check_duplicates(details))

        return ValidationResult(
            row_count=len(table),
            grand_total=table.grand_total,
            issues=issues,
        )

    def get_user_friendly_summary(
        self,
        result: ValidationResult,
    ) -> str:
        """
        Generate a user-friendly summary of validation results.

        This is what we show to non-technical users.
        """
        if not result.issues:
            return "✅ All checks passed! Ready to create the project and contract."

        lines = []

        if result.has_errors:
            lines.append("❌ Some required information is missing:")
            for issue in result.issues:
                if issue.severity == "error":
                    lines.append(f"   • {issue.message}")
                    if issue.suggested_fix:
                        lines.append(f"     💡 {issue.suggested_fix}")

        if result.warnings:
            if lines:
                lines.append("")
            lines.append("⚠️ Please verify the following:")
            for warning in result.warnings:
                lines.append(f"   • {warning}")

        lines.append("")
        if result.can_promote:
            lines.append("You can still proceed, but please review carefully.")
        else:
            lines.append("Please fix the issues above before continuing.")

        return "\n".join(lines)
