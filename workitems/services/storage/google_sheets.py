"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is used as the persistent backend because:
1. Office staff can view promoted projects and contracts directly in Sheets
2. No database setup required
3. Easy to export/migrate later

TRADEOFFS:
- Not suitable for high-volume data
- No transactions (a project may be saved while its contract fails;
  the orchestrator audits that case)
- Limited query capabilities (we filter in Python)

The implementation follows the abstract interface, so the backend can be
swapped without changing the promotion flow.
"""

import json
from datetime import date, datetime
from typing import Optional
from uuid import UUID

import gspread
import structlog
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from workitems.config import get_settings
from workitems.models.audit import AuditEvent, AuditEventType, AuditSeverity
from workitems.models.work_item import (
    ContractRecord,
    ContractStatus,
    ProjectRecord,
    Task,
)
from workitems.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    RecordStorageInterface,
    StorageError,
)


logger = structlog.get_logger(__name__)


# Column mappings for Projects sheet
PROJECT_COLUMNS = [
    "id",
    "custom_id",
    "created_at",
    "title",
    "description",
    "client",
    "client_representative",
    "total_value",
    "start_date",
    "end_date",
    "tasks_json",
]

# Column mappings for Contracts sheet
CONTRACT_COLUMNS = [
    "id",
    "custom_id",
    "created_at",
    "name",
    "contractor",
    "client",
    "client_representative",
    "total_value",
    "status",
    "scope",
    "start_date",
    "end_date",
    "payments_json",
    "change_orders_json",
]

# Column mappings for Audit sheet
AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]


def _cell(row: list, index: int, default: str = "") -> str:
    """Read a cell, tolerating short rows and empty cells."""
    try:
        return row[index] if row[index] else default
    except IndexError:
        return default


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = get_settings().google_sheets

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def _get_or_create_sheet(
        self,
        title: str,
        columns: list[str],
        rows: int,
    ) -> gspread.Worksheet:
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            # Create the sheet with headers
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet

    def get_projects_sheet(self) -> gspread.Worksheet:
        """Get or create the Projects worksheet."""
        return self._get_or_create_sheet(
            self._settings.projects_sheet_name, PROJECT_COLUMNS, rows=1000
        )

    def get_contracts_sheet(self) -> gspread.Worksheet:
        """Get or create the Contracts worksheet."""
        return self._get_or_create_sheet(
            self._settings.contracts_sheet_name, CONTRACT_COLUMNS, rows=1000
        )

    def get_audit_sheet(self) -> gspread.Worksheet:
        """Get or create the Audit worksheet."""
        return self._get_or_create_sheet(
            self._settings.audit_sheet_name, AUDIT_COLUMNS, rows=5000
        )


class GoogleSheetsRecordStorage(RecordStorageInterface):
    """
    Google Sheets implementation of project and contract storage.

    One record per row. Nested fields (tasks, payments, change orders)
    are JSON-serialized into a single cell.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _project_to_row(self, project: ProjectRecord) -> list:
        return [
            str(project.id),
            project.custom_id,
            project.created_at.isoformat(),
            project.title,
            project.description,
            project.client,
            project.client_representative,
            str(project.total_value),
            project.start_date.isoformat(),
            project.end_date.isoformat(),
            json.dumps(
                [task.model_dump(mode="json") for task in project.tasks],
                ensure_ascii=False,
            ),
        ]

    def _row_to_project(self, row: list) -> ProjectRecord:
        tasks_json = _cell(row, 10)
        tasks = [Task(**task) for task in json.loads(tasks_json)] if tasks_json else []

        return ProjectRecord(
            id=UUID(_cell(row, 0)),
            custom_id=_cell(row, 1),
            created_at=datetime.fromisoformat(_cell(row, 2)),
            title=_cell(row, 3),
            description=_cell(row, 4),
            client=_cell(row, 5),
            client_representative=_cell(row, 6),
            total_value=float(_cell(row, 7, "0")),
            start_date=date.fromisoformat(_cell(row, 8)),
            end_date=date.fromisoformat(_cell(row, 9)),
            tasks=tasks,
        )

    def _contract_to_row(self, contract: ContractRecord) -> list:
        return [
            str(contract.id),
            contract.custom_id,
            contract.created_at.isoformat(),
            contract.name,
            contract.contractor,
            contract.client,
            contract.client_representative,
            str(contract.total_value),
            contract.status.value,
            contract.scope,
            contract.start_date.isoformat(),
            contract.end_date.isoformat(),
            json.dumps(contract.payments, ensure_ascii=False),
            json.dumps(contract.change_orders, ensure_ascii=False),
        ]

    def _row_to_contract(self, row: list) -> ContractRecord:
        payments_json = _cell(row, 12)
        change_orders_json = _cell(row, 13)

        return ContractRecord(
            id=UUID(_cell(row, 0)),
            custom_id=_cell(row, 1),
            created_at=datetime.fromisoformat(_cell(row, 2)),
            name=_cell(row, 3),
            contractor=_cell(row, 4),
            client=_cell(row, 5),
            client_representative=_cell(row, 6),
            total_value=float(_cell(row, 7, "0")),
            status=ContractStatus(_cell(row, 8, ContractStatus.ACTIVE.value)),
            scope=_cell(row, 9),
            start_date=date.fromisoformat(_cell(row, 10)),
            end_date=date.fromisoformat(_cell(row, 11)),
            payments=json.loads(payments_json) if payments_json else [],
            change_orders=json.loads(change_orders_json) if change_orders_json else [],
        )

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def save_project(self, project: ProjectRecord) -> bool:
        """Append a project row."""
        try:
            sheet = self._client.get_projects_sheet()
            sheet.append_row(self._project_to_row(project), value_input_option="RAW")
            return True
        except Exception as e:
            raise StorageError(f"Failed to save project: {e}")

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def save_contract(self, contract: ContractRecord) -> bool:
        """Append a contract row."""
        try:
            sheet = self._client.get_contracts_sheet()
            sheet.append_row(self._contract_to_row(contract), value_input_option="RAW")
            return True
        except Exception as e:
            raise StorageError(f"Failed to save contract: {e}")

    async def get_project_by_id(self, project_id: UUID) -> Optional[ProjectRecord]:
        try:
            sheet = self._client.get_projects_sheet()
            for row in sheet.get_all_values()[1:]:
                if row and row[0] == str(project_id):
                    return self._row_to_project(row)
            return None
        except Exception as e:
            raise StorageError(f"Failed to get project: {e}")

    async def get_contract_by_id(self, contract_id: UUID) -> Optional[ContractRecord]:
        try:
            sheet = self._client.get_contracts_sheet()
            for row in sheet.get_all_values()[1:]:
                if row and row[0] == str(contract_id):
                    return self._row_to_contract(row)
            return None
        except Exception as e:
            raise StorageError(f"Failed to get contract: {e}")

    async def list_projects(
        self,
        client: Optional[str] = None,
        limit: int = 100,
    ) -> list[ProjectRecord]:
        try:
            sheet = self._client.get_projects_sheet()
            all_rows = sheet.get_all_values()[1:]  # Skip header

            projects = []
            for row in all_rows:
                if not row or not row[0]:
                    continue
                try:
                    project = self._row_to_project(row)
                except Exception:
                    logger.warning("malformed_project_row", project_id=row[0])
                    continue
                if client and client.lower() not in project.client.lower():
                    continue
                projects.append(project)

            projects.sort(key=lambda p: p.created_at, reverse=True)
            return projects[:limit]
        except Exception as e:
            raise StorageError(f"Failed to list projects: {e}")

    async def custom_id_exists(self, custom_id: str) -> bool:
        try:
            sheet = self._client.get_projects_sheet()
            return any(
                len(row) > 1 and row[1] == custom_id
                for row in sheet.get_all_values()[1:]
            )
        except Exception as e:
            raise StorageError(f"Failed to look up custom id: {e}")


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _row_to_event(self, row: list) -> AuditEvent:
        details_json = _cell(row, 8)
        return AuditEvent(
            event_id=UUID(_cell(row, 0)),
            timestamp=datetime.fromisoformat(_cell(row, 1)),
            event_type=AuditEventType(_cell(row, 2)),
            severity=AuditSeverity(_cell(row, 3)),
            entity_type=_cell(row, 4) or None,
            entity_id=UUID(_cell(row, 5)) if _cell(row, 5) else None,
            correlation_id=UUID(_cell(row, 6)) if _cell(row, 6) else None,
            description=_cell(row, 7),
            details=json.loads(details_json) if details_json else {},
            error_message=_cell(row, 9) or None,
            is_user_action=_cell(row, 10).lower() == "true",
        )

    def _read_events(self) -> list[AuditEvent]:
        sheet = self._client.get_audit_sheet()
        events = []
        for row in sheet.get_all_values()[1:]:
            if not row or not row[0]:
                continue
            try:
                events.append(self._row_to_event(row))
            except Exception:
                logger.warning("malformed_audit_row", event_id=row[0])
        return events

    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event. Failures are logged, not raised."""
        try:
            sheet = self._client.get_audit_sheet()
            sheet.append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            logger.warning(
                "audit_sheet_write_failed",
                error=str(e),
                event_id=str(event.event_id),
            )
            return False

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        try:
            events = [
                e for e in self._read_events()
                if e.correlation_id == correlation_id
            ]
            events.sort(key=lambda e: e.timestamp)
            return events
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        try:
            events = self._read_events()
            events.sort(key=lambda e: e.timestamp, reverse=True)
            return events[:limit]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
