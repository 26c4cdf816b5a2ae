"""
Audit Models for Work Items

Every significant action in the system is logged for audit purposes:
document uploads, AI extraction calls (with their token usage),
exports and promotions.

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
Individual keystrokes in the work-item table are NOT audited; only the
actions that leave the session (export, promotion) are.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Document intake
    DOCUMENT_UPLOADED = "document_uploaded"
    DOCUMENT_REJECTED = "document_rejected"

    # AI extraction
    EXTRACTION_COMPLETED = "extraction_completed"
    EXTRACTION_FAILED = "extraction_failed"
    AI_TOKEN_USAGE = "ai_token_usage"

    # Table output
    TABLE_EXPORTED = "table_exported"

    # Promotion
    PROMOTION_VALIDATION_FAILED = "promotion_validation_failed"
    PROJECT_CREATED = "project_created"
    CONTRACT_CREATED = "contract_created"
    PROMOTION_FAILED = "promotion_failed"

    # System events
    SYSTEM_ERROR = "system_error"
    EXTERNAL_SERVICE_ERROR = "external_service_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'extraction', 'project', 'contract')"
    )
    entity_id: Optional[UUID] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., one document session)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )

    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, entity_type, entity_id,
         correlation_id, description, details_json, error_message, is_user_action]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            str(self.entity_id) if self.entity_id else "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, ensure_ascii=False) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.document_uploaded(upload_id, file_name, size, cid)
        event = AuditEventBuilder.project_created(project_id, title, total, cid)
    """

    @staticmethod
    def document_uploaded(
        upload_id: UUID,
        file_name: str,
        file_size: int,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DOCUMENT_UPLOADED,
            entity_type="document",
            entity_id=upload_id,
            correlation_id=correlation_id,
            description=f"Document uploaded: {file_name}",
            details={
                "file_name": file_name,
                "file_size_bytes": file_size,
            },
            is_user_action=True,
        )

    @staticmethod
    def document_rejected(
        file_name: str,
        reason: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DOCUMENT_REJECTED,
            severity=AuditSeverity.WARNING,
            entity_type="document",
            correlation_id=correlation_id,
            description=f"Document rejected: {file_name}",
            details={
                "file_name": file_name,
                "reason": reason,
            },
        )

    @staticmethod
    def extraction_completed(
        extraction_id: UUID,
        item_count: int,
        total_tokens: int,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTRACTION_COMPLETED,
            entity_type="extraction",
            entity_id=extraction_id,
            correlation_id=correlation_id,
            description=f"Extracted {item_count} work items",
            details={
                "item_count": item_count,
                "total_tokens": total_tokens,
            },
        )

    @staticmethod
    def extraction_failed(
        file_name: str,
        error_message: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTRACTION_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="document",
            correlation_id=correlation_id,
            description=f"Work-item extraction failed: {file_name}",
            error_message=error_message,
            details={
                "file_name": file_name,
            },
        )

    @staticmethod
    def ai_token_usage(
        flow_name: str,
        total_tokens: int,
        status: str,
        error_message: Optional[str] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.AI_TOKEN_USAGE,
            severity=AuditSeverity.INFO if status == "succeeded" else AuditSeverity.WARNING,
            entity_type="ai_flow",
            correlation_id=correlation_id,
            description=f"{flow_name} {status} using {total_tokens} tokens",
            error_message=error_message,
            details={
                "flow_name": flow_name,
                "total_tokens": total_tokens,
                "status": status,
            },
        )

    @staticmethod
    def table_exported(
        export_format: str,
        row_count: int,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TABLE_EXPORTED,
            entity_type="table",
            correlation_id=correlation_id,
            description=f"Work-item table exported as {export_format}",
            details={
                "format": export_format,
                "row_count": row_count,
            },
            is_user_action=True,
        )

    @staticmethod
    def promotion_validation_failed(
        issues: list[dict],
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PROMOTION_VALIDATION_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="table",
            correlation_id=correlation_id,
            description=f"Promotion blocked by {len(issues)} issues",
            details={
                "issues": issues,
            },
        )

    @staticmethod
    def project_created(
        project_id: UUID,
        title: str,
        total_value: float,
        task_count: int,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PROJECT_CREATED,
            entity_type="project",
            entity_id=project_id,
            correlation_id=correlation_id,
            description=f"Project created: {title}",
            details={
                "title": title,
                "total_value": total_value,
                "task_count": task_count,
            },
            is_user_action=True,
        )

    @staticmethod
    def contract_created(
        contract_id: UUID,
        name: str,
        total_value: float,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CONTRACT_CREATED,
            entity_type="contract",
            entity_id=contract_id,
            correlation_id=correlation_id,
            description=f"Contract created: {name}",
            details={
                "name": name,
                "total_value": total_value,
            },
            is_user_action=True,
        )

    @staticmethod
    def promotion_failed(
        name: str,
        error_message: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PROMOTION_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="table",
            correlation_id=correlation_id,
            description=f"Promotion failed: {name}",
            error_message=error_message,
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )

    @staticmethod
    def external_service_error(
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"External service error: {service}",
            error_message=error_message,
            details={
                "service": service,
            },
            correlation_id=correlation_id,
        )
