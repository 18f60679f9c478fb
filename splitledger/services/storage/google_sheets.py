"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is available as a storage backend because:
1. Group members can look at the raw ledger directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)

Layout mirrors the document model: one worksheet per collection, one record
per row. Splits and group rosters are embedded as JSON columns because they
are always read together with their parent.

TRADEOFFS:
- Not suitable for high-volume data (fine for a household or a trip)
- No multi-row transactions. Every ledger transaction stages a single row
  write, so a row append/update is the unit of atomicity
- Limited query capabilities (we filter in Python on the snapshot)
"""

import json
from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

import gspread
import structlog
from google.oauth2.service_account import Credentials
from tenacity import (
    retry,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from splitledger.config import get_settings
from splitledger.models.audit import AuditEvent, AuditEventType, AuditSeverity
from splitledger.models.ledger import (
    Expense,
    ExpenseCategory,
    ExpenseKind,
    Group,
    GroupMember,
    Split,
    User,
)
from splitledger.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    LedgerSnapshot,
    LedgerStorageInterface,
    NotFoundError,
    PendingWrite,
    StorageError,
    WriteOperation,
)


# Column mappings for Users sheet
USER_COLUMNS = [
    "id",
    "token_identifier",
    "name",
    "email",
    "image_url",
    "created_at",
]

# Column mappings for Groups sheet
GROUP_COLUMNS = [
    "id",
    "name",
    "description",
    "created_by",
    "created_at",
    "members_json",
]

# Column mappings for Expenses sheet
EXPENSE_COLUMNS = [
    "id",
    "kind",
    "description",
    "category",
    "amount",
    "expense_date",
    "paid_by_user_id",
    "group_id",
    "splits_json",
    "created_by",
    "created_at",
    "updated_at",
]

# Column mappings for Audit sheet
AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "entity_type",
    "entity_id",
    "actor_id",
    "correlation_id",
    "description",
    "details_json",
    "error_code",
    "error_message",
]


logger = structlog.get_logger(__name__)


def _cell(row: list, index: int, default: str = "") -> str:
    """Read a cell, tolerating short rows."""
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

    def get_worksheet(self, title: str, columns: list[str], rows: int = 1000) -> gspread.Worksheet:
        """Get or create a worksheet with a header row."""
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet

    def get_users_sheet(self) -> gspread.Worksheet:
        return self.get_worksheet(self._settings.users_sheet_name, USER_COLUMNS)

    def get_groups_sheet(self) -> gspread.Worksheet:
        return self.get_worksheet(self._settings.groups_sheet_name, GROUP_COLUMNS)

    def get_expenses_sheet(self) -> gspread.Worksheet:
        return self.get_worksheet(
            self._settings.expenses_sheet_name, EXPENSE_COLUMNS, rows=5000
        )

    def get_audit_sheet(self) -> gspread.Worksheet:
        return self.get_worksheet(
            self._settings.audit_sheet_name, AUDIT_COLUMNS, rows=5000
        )

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def read_ledger_rows(self) -> tuple[list[list], list[list], list[list]]:
        """
        Read users, groups and expenses with one batched API call.

        A single values_batch_get keeps the three collections consistent
        with each other. Header rows are stripped.
        """
        # Make sure every sheet exists before asking for its range
        self.get_users_sheet()
        self.get_groups_sheet()
        self.get_expenses_sheet()

        ranges = [
            f"'{self._settings.users_sheet_name}'",
            f"'{self._settings.groups_sheet_name}'",
            f"'{self._settings.expenses_sheet_name}'",
        ]
        response = self.get_spreadsheet().values_batch_get(ranges)
        value_ranges = response.get("valueRanges", [])

        tables = []
        for index in range(len(ranges)):
            values = value_ranges[index].get("values", []) if index < len(value_ranges) else []
            tables.append(values[1:])
        return tables[0], tables[1], tables[2]


# =============================================================================
# ROW CONVERSION
# =============================================================================

def user_to_row(user: User) -> list:
    return [
        str(user.id),
        user.token_identifier,
        user.name,
        user.email,
        user.image_url or "",
        user.created_at.isoformat(),
    ]


def row_to_user(row: list) -> User:
    return User(
        id=UUID(_cell(row, 0)),
        token_identifier=_cell(row, 1),
        name=_cell(row, 2),
        email=_cell(row, 3),
        image_url=_cell(row, 4) or None,
        created_at=datetime.fromisoformat(_cell(row, 5)),
    )


def group_to_row(group: Group) -> list:
    return [
        str(group.id),
        group.name,
        group.description,
        str(group.created_by),
        group.created_at.isoformat(),
        json.dumps([member.model_dump(mode="json") for member in group.members]),
    ]


def row_to_group(row: list) -> Group:
    members_json = _cell(row, 5)
    members = [GroupMember(**m) for m in json.loads(members_json)] if members_json else []
    return Group(
        id=UUID(_cell(row, 0)),
        name=_cell(row, 1),
        description=_cell(row, 2),
        created_by=UUID(_cell(row, 3)),
        created_at=datetime.fromisoformat(_cell(row, 4)),
        members=members,
    )


def expense_to_row(expense: Expense) -> list:
    return [
        str(expense.id),
        expense.kind.value,
        expense.description,
        expense.category.value,
        str(expense.amount),
        expense.expense_date.isoformat(),
        str(expense.paid_by_user_id),
        str(expense.group_id) if expense.group_id else "",
        json.dumps([split.model_dump(mode="json") for split in expense.splits]),
        str(expense.created_by) if expense.created_by else "",
        expense.created_at.isoformat(),
        expense.updated_at.isoformat(),
    ]


def row_to_expense(row: list) -> Expense:
    splits_json = _cell(row, 8)
    splits = [Split(**s) for s in json.loads(splits_json)] if splits_json else []
    return Expense(
        id=UUID(_cell(row, 0)),
        kind=ExpenseKind(_cell(row, 1, ExpenseKind.EXPENSE.value)),
        description=_cell(row, 2),
        category=ExpenseCategory(_cell(row, 3, ExpenseCategory.OTHER.value)),
        amount=Decimal(_cell(row, 4)),
        expense_date=date.fromisoformat(_cell(row, 5)),
        paid_by_user_id=UUID(_cell(row, 6)),
        group_id=UUID(_cell(row, 7)) if _cell(row, 7) else None,
        splits=splits,
        created_by=UUID(_cell(row, 9)) if _cell(row, 9) else None,
        created_at=datetime.fromisoformat(_cell(row, 10)),
        updated_at=datetime.fromisoformat(_cell(row, 11)),
    )


def _parse_rows(rows: list[list], parse, collection: str) -> list:
    records = []
    for row in rows:
        if not row or not row[0]:  # Skip empty rows
            continue
        try:
            records.append(parse(row))
        except Exception as e:
            logger.warning(
                "skipping_malformed_row",
                collection=collection,
                row_id=row[0],
                error=str(e),
            )
    return records


# =============================================================================
# LEDGER STORAGE
# =============================================================================

class GoogleSheetsLedgerStorage(LedgerStorageInterface):
    """
    Google Sheets implementation of ledger storage.

    Rows are located by the id in column A.
    """

    _TO_ROW = {
        "users": user_to_row,
        "groups": group_to_row,
        "expenses": expense_to_row,
    }

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        super().__init__()
        self._client = client or GoogleSheetsClient()

    def _sheet_for(self, collection: str) -> gspread.Worksheet:
        if collection == "users":
            return self._client.get_users_sheet()
        if collection == "groups":
            return self._client.get_groups_sheet()
        return self._client.get_expenses_sheet()

    async def snapshot(self) -> LedgerSnapshot:
        """Read all three collections in a single batched request."""
        try:
            user_rows, group_rows, expense_rows = self._client.read_ledger_rows()
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to read ledger: {e}")

        return LedgerSnapshot(
            users=_parse_rows(user_rows, row_to_user, "users"),
            groups=_parse_rows(group_rows, row_to_group, "groups"),
            expenses=_parse_rows(expense_rows, row_to_expense, "expenses"),
        )

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_not_exception_type(NotFoundError),
        reraise=True,
    )
    async def _apply_one(self, write: PendingWrite) -> None:
        sheet = self._sheet_for(write.collection)

        if write.operation == WriteOperation.INSERT:
            row = self._TO_ROW[write.collection](write.record)
            sheet.append_row(row, value_input_option="RAW")
            return

        # Find the row with this id (row 1 is the header)
        ids = sheet.col_values(1)
        try:
            row_number = ids.index(str(write.entity_id)) + 1
        except ValueError:
            raise NotFoundError(
                f"{write.collection} has no record {write.entity_id}"
            )

        if write.operation == WriteOperation.UPDATE:
            row = self._TO_ROW[write.collection](write.record)
            sheet.update(
                values=[row],
                range_name=f"A{row_number}",
                value_input_option="RAW",
            )
        else:
            sheet.delete_rows(row_number)

    async def apply_writes(self, writes: list[PendingWrite]) -> None:
        for write in writes:
            try:
                await self._apply_one(write)
            except StorageError:
                raise
            except Exception as e:
                raise StorageError(
                    f"Failed to {write.operation.value} {write.collection} "
                    f"{write.entity_id}: {e}"
                )


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        return AuditEvent(
            event_id=UUID(_cell(row, 0)),
            timestamp=datetime.fromisoformat(_cell(row, 1)),
            event_type=AuditEventType(_cell(row, 2)),
            severity=AuditSeverity(_cell(row, 3)),
            entity_type=_cell(row, 4) or None,
            entity_id=UUID(_cell(row, 5)) if _cell(row, 5) else None,
            actor_id=UUID(_cell(row, 6)) if _cell(row, 6) else None,
            correlation_id=UUID(_cell(row, 7)) if _cell(row, 7) else None,
            description=_cell(row, 8),
            details=json.loads(_cell(row, 9)) if _cell(row, 9) else {},
            error_code=_cell(row, 10) or None,
            error_message=_cell(row, 11) or None,
        )

    def _all_events(self) -> list[AuditEvent]:
        sheet = self._client.get_audit_sheet()
        return _parse_rows(sheet.get_all_values()[1:], self._row_to_event, "audit")

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        sheet = self._client.get_audit_sheet()
        sheet.append_row(event.to_sheets_row(), value_input_option="RAW")
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Get events by correlation ID."""
        try:
            events = [
                e for e in self._all_events() if e.correlation_id == correlation_id
            ]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        """Get events by entity."""
        try:
            events = [
                e for e in self._all_events()
                if e.entity_type == entity_type and e.entity_id == entity_id
            ]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get recent events."""
        try:
            events = self._all_events()
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
