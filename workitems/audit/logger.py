"""
Audit Logger

DESIGN DECISION: Every action that leaves the work-item session is logged:
uploads, AI extraction calls with their token usage, exports and
promotions. Individual table edits are not.

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (doesn't crash the app if logging fails)
- Supports correlation IDs to trace related events
"""

from typing import Optional
from uuid import UUID, uuid4

import structlog

from workitems.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from workitems.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer(ensure_ascii=False)
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage (Google Sheets or in-memory)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger()

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_document_uploaded(
        self,
        upload_id: UUID,
        file_name: str,
        file_size: int,
        correlation_id: UUID,
    ) -> None:
        """Log document upload event."""
        await self.log(AuditEventBuilder.document_uploaded(
            upload_id=upload_id,
            file_name=file_name,
            file_size=file_size,
            correlation_id=correlation_id,
        ))

    async def log_document_rejected(
        self,
        file_name: str,
        reason: str,
        correlation_id: UUID,
    ) -> None:
        """Log a document refused before extraction."""
        await self.log(AuditEventBuilder.document_rejected(
            file_name=file_name,
            reason=reason,
            correlation_id=correlation_id,
        ))

    async def log_extraction_completed(
        self,
        extraction_id: UUID,
        item_count: int,
        total_tokens: int,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.extraction_completed(
            extraction_id=extraction_id,
            item_count=item_count,
            total_tokens=total_tokens,
            correlation_id=correlation_id,
        ))

    async def log_extraction_failed(
        self,
        file_name: str,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.extraction_failed(
            file_name=file_name,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_token_usage(
        self,
        flow_name: str,
        total_tokens: int,
        status: str,
        error_message: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """
        Log AI token consumption for one flow call.

        Status is "succeeded" or "failed". Failed calls are logged with
        whatever token count was reported (usually 0).
        """
        await self.log(AuditEventBuilder.ai_token_usage(
            flow_name=flow_name,
            total_tokens=total_tokens,
            status=status,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_table_exported(
        self,
        export_format: str,
        row_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.table_exported(
            export_format=export_format,
            row_count=row_count,
            correlation_id=correlation_id,
        ))

    async def log_promotion_validation_failed(
        self,
        issues: list[dict],
        correlation_id: UUID,
    ) -> None:
        """Log promotion blocked by validation errors."""
        await self.log(AuditEventBuilder.promotion_validation_failed(
            issues=issues,
            correlation_id=correlation_id,
        ))

    async def log_project_created(
        self,
        project_id: UUID,
        title: str,
        total_value: float,
        task_count: int,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.project_created(
            project_id=project_id,
            title=title,
            total_value=total_value,
            task_count=task_count,
            correlation_id=correlation_id,
        ))

    async def log_contract_created(
        self,
        contract_id: UUID,
        name: str,
        total_value: float,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.contract_created(
            contract_id=contract_id,
            name=name,
            total_value=total_value,
            correlation_id=correlation_id,
        ))

    async def log_promotion_failed(
        self,
        name: str,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.promotion_failed(
            name=name,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        await self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))

    async def log_external_service_error(
        self,
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log external service error."""
        await self.log(AuditEventBuilder.external_service_error(
            service=service,
            error_message=error_message,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g., document upload).
    Pass it through all subsequent operations.
    """
    return uuid4()
