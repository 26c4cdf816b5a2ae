"""
Main Orchestrator for Work Items

This module ties together all the components and defines the
end-to-end flow:

    document → extract → review/edit table → export → validate → promote

DESIGN DECISION: The orchestrator enforces the boundaries:
- Extracted rows only seed the table; nothing persists without an
  explicit promotion
- Promotion is refused while validation reports errors
- Every step that leaves the session is audited

This is the "glue" that ensures the system works correctly
even when individual components might behave unexpectedly.
"""

from datetime import date, timedelta
from typing import Optional
from uuid import UUID, uuid4

import structlog

from workitems.agents import (
    EmptyDocumentError,
    ExtractionFailedError,
    UnsupportedDocumentError,
    WorkItemExtractionAgent,
)
from workitems.audit import AuditLogger, create_correlation_id
from workitems.config import get_settings
from workitems.models.work_item import (
    ContractRecord,
    DocumentDetails,
    ExportFile,
    ExtractedWorkItems,
    ProjectRecord,
    PromotionResult,
    Task,
    ValidationResult,
)
from workitems.services.storage import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsRecordStorage,
    InMemoryRecordStorage,
    RecordStorageInterface,
)
from workitems.table import LineItemTable, csv_file, json_file
from workitems.table.line_item_table import ChangeListener
from workitems.validation import PromotionValidator


logger = structlog.get_logger(__name__)

EXPORT_FORMATS = ("csv", "json")


class PromotionRejectedError(Exception):
    """Promotion refused because validation found errors."""

    def __init__(self, message: str, result: ValidationResult):
        super().__init__(message)
        self.result = result


class WorkItemsFlow:
    """
    Orchestrates the work-item flow.

    Flow:
    1. Upload → Audit the upload
    2. Extract → Gemini proposes rows
    3. Review → User edits the LineItemTable (no I/O, no audit)
    4. Export → CSV / JSON download (audited)
    5. Validate → Header errors block, row warnings inform
    6. Promote → Project + Contract persisted

    Promotion (step 6) is ALWAYS an explicit user action.
    The system NEVER auto-saves a table.
    """

    def __init__(
        self,
        extraction_agent: Optional[WorkItemExtractionAgent] = None,
        validator: Optional[PromotionValidator] = None,
        record_storage: Optional[RecordStorageInterface] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._settings = get_settings().app
        self._audit_logger = audit_logger or AuditLogger()
        self._record_storage = record_storage or InMemoryRecordStorage()
        self._validator = validator or PromotionValidator(self._record_storage)
        # Built on first extraction so export/promotion work without a Gemini key
        self._extraction_agent = extraction_agent

    @property
    def record_storage(self) -> RecordStorageInterface:
        return self._record_storage

    def _get_extraction_agent(self) -> WorkItemExtractionAgent:
        if self._extraction_agent is None:
            self._extraction_agent = WorkItemExtractionAgent(
                audit_logger=self._audit_logger,
            )
        return self._extraction_agent

    async def extract_from_document(
        self,
        document_bytes: bytes,
        file_name: str,
        mime_type: str,
        correlation_id: Optional[UUID] = None,
    ) -> ExtractedWorkItems:
        """
        Extract proposed work items from an uploaded document.

        Raises:
            EmptyDocumentError / UnsupportedDocumentError: upload refused
            ExtractionFailedError: the model call failed
        """
        correlation_id = correlation_id or create_correlation_id()

        await self._audit_logger.log_document_uploaded(
            upload_id=uuid4(),
            file_name=file_name,
            file_size=len(document_bytes),
            correlation_id=correlation_id,
        )

        try:
            return await self._get_extraction_agent().extract(
                document_bytes=document_bytes,
                mime_type=mime_type,
                file_name=file_name,
                correlation_id=correlation_id,
            )
        except (EmptyDocumentError, UnsupportedDocumentError) as e:
            await self._audit_logger.log_document_rejected(
                file_name=file_name,
                reason=str(e),
                correlation_id=correlation_id,
            )
            raise
        except ExtractionFailedError:
            # Already audited by the agent
            raise
        except Exception as e:
            await self._audit_logger.log_external_service_error(
                service="gemini",
                error_message=str(e),
                correlation_id=correlation_id,
            )
            raise

    def new_table(
        self,
        extracted: Optional[ExtractedWorkItems] = None,
        on_change: Optional[ChangeListener] = None,
    ) -> LineItemTable:
        """Create a table, empty or seeded from an extraction result."""
        return LineItemTable(
            rows=extracted.work_items if extracted else None,
            new_row_label=self._settings.new_row_label,
            on_change=on_change,
        )

    async def export(
        self,
        table: LineItemTable,
        export_format: str,
        correlation_id: Optional[UUID] = None,
    ) -> ExportFile:
        """
        Render the table for download.

        Args:
            export_format: "csv" or "json"
        """
        export_format = export_format.lower()
        if export_format not in EXPORT_FORMATS:
            raise ValueError(
                f"Unknown export format: {export_format}. "
                f"Supported: {', '.join(EXPORT_FORMATS)}"
            )

        rows = table.rows
        export_file = csv_file(rows) if export_format == "csv" else json_file(rows)

        await self._audit_logger.log_table_exported(
            export_format=export_format,
            row_count=len(rows),
            correlation_id=correlation_id,
        )
        return export_file

    async def validate_promotion(
        self,
        details: DocumentDetails,
        table: LineItemTable,
        correlation_id: Optional[UUID] = None,
    ) -> tuple[ValidationResult, str]:
        """
        Validate a table and its header before promotion.

        Returns:
            (validation_result, user_message)
        """
        correlation_id = correlation_id or create_correlation_id()

        result = await self._validator.validate(details, table)
        message = self._validator.get_user_friendly_summary(result)

        if result.has_errors:
            issues = [
                {"field": i.field, "type": i.issue_type, "message": i.message}
                for i in result.issues
                if i.severity == "error"
            ]
            await self._audit_logger.log_promotion_validation_failed(
                issues=issues,
                correlation_id=correlation_id,
            )

        return result, message

    def build_project(
        self,
        details: DocumentDetails,
        table: LineItemTable,
        start_date: Optional[date] = None,
    ) -> ProjectRecord:
        """Turn a reviewed table into a project, one task per row."""
        start_date = start_date or date.today()
        return ProjectRecord(
            custom_id=details.custom_id,
            title=details.name,
            description=f'Project created from document "{details.name}"',
            client=details.client,
            client_representative=details.client_representative,
            tasks=[Task.from_line_item(row) for row in table],
            total_value=table.grand_total,
            start_date=start_date,
            end_date=start_date + timedelta(days=self._settings.default_duration_days),
        )

    def build_contract(
        self,
        details: DocumentDetails,
        table: LineItemTable,
        start_date: Optional[date] = None,
    ) -> ContractRecord:
        """The contract that accompanies a promoted project."""
        start_date = start_date or date.today()
        return ContractRecord(
            custom_id=details.custom_id,
            name=details.name,
            contractor=self._settings.default_contractor,
            client=details.client,
            client_representative=details.client_representative,
            total_value=table.grand_total,
            scope=f'Work items based on document "{details.name}"',
            start_date=start_date,
            end_date=start_date + timedelta(days=self._settings.default_duration_days),
        )

    async def promote(
        self,
        details: DocumentDetails,
        table: LineItemTable,
        correlation_id: Optional[UUID] = None,
    ) -> PromotionResult:
        """
        Persist the table as a Project and a Contract.

        CRITICAL: This is called ONLY after the user explicitly asks
        to create the project.

        Raises:
            PromotionRejectedError: validation found errors
            StorageError: the records could not be saved
        """
        correlation_id = correlation_id or create_correlation_id()

        result, message = await self.validate_promotion(details, table, correlation_id)
        if not result.can_promote:
            raise PromotionRejectedError(message, result)

        today = date.today()
        project = self.build_project(details, table, start_date=today)
        contract = self.build_contract(details, table, start_date=today)

        try:
            await self._record_storage.save_project(project)
            await self._audit_logger.log_project_created(
                project_id=project.id,
                title=project.title,
                total_value=project.total_value,
                task_count=len(project.tasks),
                correlation_id=correlation_id,
            )

            await self._record_storage.save_contract(contract)
            await self._audit_logger.log_contract_created(
                contract_id=contract.id,
                name=contract.name,
                total_value=contract.total_value,
                correlation_id=correlation_id,
            )
        except Exception as e:
            await self._audit_logger.log_external_service_error(
                service="storage",
                error_message=str(e),
                correlation_id=correlation_id,
            )
            await self._audit_logger.log_promotion_failed(
                name=details.name,
                error_message=str(e),
                correlation_id=correlation_id,
            )
            raise

        return PromotionResult(
            project_id=project.id,
            contract_id=contract.id,
            total_value=project.total_value,
        )


def create_app_components(
    use_storage: bool = True,
) -> tuple[WorkItemsFlow, Optional[GoogleSheetsClient]]:
    """
    Factory function to create all application components.

    Args:
        use_storage: Whether to initialize Google Sheets storage.
                    Set to False to keep records in memory.

    Returns:
        (work_items_flow, sheets_client)
    """
    sheets_client = None
    record_storage = None
    audit_logger = None

    if use_storage:
        try:
            sheets_client = GoogleSheetsClient()
            record_storage = GoogleSheetsRecordStorage(sheets_client)
            audit_logger = AuditLogger(GoogleSheetsAuditStorage(sheets_client))
        except Exception as e:
            # Storage not configured - continue in memory
            logger.warning("storage_not_configured", error=str(e))
            sheets_client = None
            record_storage = None
            audit_logger = None

    flow = WorkItemsFlow(
        record_storage=record_storage or InMemoryRecordStorage(),
        audit_logger=audit_logger or AuditLogger(),  # Local-only logging
    )

    return flow, sheets_client
