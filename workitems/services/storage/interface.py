"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Swap Google Sheets for a real database later
2. Use in-memory storage for testing and for running without credentials
3. Keep the promotion flow decoupled from storage implementation

The interface is intentionally small - just what promotion and the audit
trail need.
"""

from abc import ABC, abstractmethod
from typing import Optional
from uuid import UUID

from workitems.models.audit import AuditEvent
from workitems.models.work_item import ContractRecord, ProjectRecord


class RecordStorageInterface(ABC):
    """
    Abstract interface for project and contract storage.

    Any storage implementation (Google Sheets, Firestore, PostgreSQL, ...)
    must implement these methods.
    """

    @abstractmethod
    async def save_project(self, project: ProjectRecord) -> bool:
        """
        Save a new project.

        Returns:
            True if saved successfully

        Raises:
            StorageError: If save fails
            DuplicateError: If a project with the same id exists
        """
        pass

    @abstractmethod
    async def save_contract(self, contract: ContractRecord) -> bool:
        """
        Save a new contract.

        Returns:
            True if saved successfully

        Raises:
            StorageError: If save fails
            DuplicateError: If a contract with the same id exists
        """
        pass

    @abstractmethod
    async def get_project_by_id(self, project_id: UUID) -> Optional[ProjectRecord]:
        """Retrieve a project by its ID, or None."""
        pass

    @abstractmethod
    async def get_contract_by_id(self, contract_id: UUID) -> Optional[ContractRecord]:
        """Retrieve a contract by its ID, or None."""
        pass

    @abstractmethod
    async def list_projects(
        self,
        client: Optional[str] = None,
        limit: int = 100,
    ) -> list[ProjectRecord]:
        """
        List projects, newest first.

        Args:
            client: Filter by client name (partial, case-insensitive match)
            limit: Maximum number of results
        """
        pass

    @abstractmethod
    async def custom_id_exists(self, custom_id: str) -> bool:
        """Check whether a project already uses this custom ID."""
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Get all events for a correlation ID, in chronological order."""
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get the most recent audit events (newest first)."""
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
