"""
In-Memory Storage

Process-local implementations of the storage interfaces. Used when no
Google Sheets credentials are configured and in tests. Nothing survives
a restart.
"""

from typing import Optional
from uuid import UUID

from workitems.models.audit import AuditEvent
from workitems.models.work_item import ContractRecord, ProjectRecord
from workitems.services.storage.interface import (
    AuditStorageInterface,
    DuplicateError,
    RecordStorageInterface,
)


class InMemoryRecordStorage(RecordStorageInterface):
    """Projects and contracts kept in dicts keyed by ID."""

    def __init__(self):
        self._projects: dict[UUID, ProjectRecord] = {}
        self._contracts: dict[UUID, ContractRecord] = {}

    async def save_project(self, project: ProjectRecord) -> bool:
        if project.id in self._projects:
            raise DuplicateError(f"Project already exists: {project.id}")
        self._projects[project.id] = project
        return True

    async def save_contract(self, contract: ContractRecord) -> bool:
        if contract.id in self._contracts:
            raise DuplicateError(f"Contract already exists: {contract.id}")
        self._contracts[contract.id] = contract
        return True

    async def get_project_by_id(self, project_id: UUID) -> Optional[ProjectRecord]:
        return self._projects.get(project_id)

    async def get_contract_by_id(self, contract_id: UUID) -> Optional[ContractRecord]:
        return self._contracts.get(contract_id)

    async def list_projects(
        self,
        client: Optional[str] = None,
        limit: int = 100,
    ) -> list[ProjectRecord]:
        projects = [
            project for project in self._projects.values()
            if not client or client.lower() in project.client.lower()
        ]
        projects.sort(key=lambda p: p.created_at, reverse=True)
        return projects[:limit]

    async def custom_id_exists(self, custom_id: str) -> bool:
        return any(p.custom_id == custom_id for p in self._projects.values())


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only list of audit events."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self._events if e.correlation_id == correlation_id]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        events = sorted(self._events, key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
