"""
Data Models Package

This package contains all Pydantic models used in the Work Items system.
"""

from workitems.models.work_item import (
    ContractRecord,
    ContractStatus,
    DocumentDetails,
    ExportFile,
    ExtractedWorkItems,
    LineItem,
    LineItemField,
    ProjectRecord,
    PromotionResult,
    Task,
    TaskStatus,
    ValidationIssue,
    ValidationResult,
    parse_numeric,
    round_currency,
)
from workitems.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Work-item models
    "ContractRecord",
    "ContractStatus",
    "DocumentDetails",
    "ExportFile",
    "ExtractedWorkItems",
    "LineItem",
    "LineItemField",
    "ProjectRecord",
    "PromotionResult",
    "Task",
    "TaskStatus",
    "ValidationIssue",
    "ValidationResult",
    "parse_numeric",
    "round_currency",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
