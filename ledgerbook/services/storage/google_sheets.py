"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is used as the hosted storage backend because:
1. Non-technical users can view their data directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)
4. Easy to export/migrate later

Each collection path gets its own worksheet with two columns: the document
id and the document as JSON. A WriteBatch is validated against a fresh
snapshot of the affected worksheets and then sent as ONE
spreadsheets.batchUpdate request, which Google applies atomically.

TRADEOFFS:
- Not suitable for high-volume data (we're fine for personal use)
- Increments are resolved against the snapshot read just before the
  batchUpdate, so two writers racing on one account can still lose an update
- Limited query capabilities (we filter in Python)
"""

import asyncio
import copy
import json
from typing import Optional

import gspread
import structlog
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from ledgerbook.config import GoogleSheetsSettings, get_settings
from ledgerbook.services.storage.interface import (
    ConnectionError,
    DocumentStore,
    QueryFilter,
    StorageError,
    WriteBatch,
    apply_operation,
    apply_query_options,
    matches_filters,
)


logger = structlog.get_logger(__name__)

DOCUMENT_COLUMNS = ["id", "data_json"]

AUDIT_COLLECTION = "audit_log"


def sheet_title(collection: str) -> str:
    """Worksheet title of a collection path (books/b1/accounts -> books.b1.accounts)."""
    return collection.replace("/", ".")


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = settings or get_settings().google_sheets
        self._worksheets: dict[str, gspread.Worksheet] = {}

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

    def title_for(self, collection: str) -> str:
        if collection == AUDIT_COLLECTION:
            return self._settings.audit_sheet_name
        return sheet_title(collection)

    def get_worksheet(self, collection: str, create: bool = True) -> Optional[gspread.Worksheet]:
        """Get (or create) the worksheet holding a collection."""
        title = self.title_for(collection)
        if title in self._worksheets:
            return self._worksheets[title]

        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            if not create:
                return None
            # Create the sheet with headers
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=1000,
                cols=len(DOCUMENT_COLUMNS),
            )
            sheet.append_row(DOCUMENT_COLUMNS)
        self._worksheets[title] = sheet
        return sheet

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def read_rows(self, collection: str) -> list[list[str]]:
        """All rows of a collection's worksheet, header included."""
        sheet = self.get_worksheet(collection, create=False)
        if sheet is None:
            return [DOCUMENT_COLUMNS]
        return sheet.get_all_values()

    def batch_update(self, requests: list[dict]) -> None:
        """Send one atomic spreadsheets.batchUpdate."""
        self.get_spreadsheet().batch_update({"requests": requests})


def _row_values(doc_id: str, document: dict) -> dict:
    return {
        "values": [
            {"userEnteredValue": {"stringValue": doc_id}},
            {"userEnteredValue": {"stringValue": json.dumps(document, sort_keys=True)}},
        ]
    }


class _Snapshot:
    """Documents of one worksheet plus the sheet row each was read from."""

    def __init__(self, rows: list[list[str]]):
        self.documents: dict[str, dict] = {}
        self.row_index: dict[str, int] = {}
        for index, row in enumerate(rows[1:], start=1):  # Row 0 is the header
            if len(row) < 2 or not row[0]:
                continue
            self.documents[row[0]] = json.loads(row[1])
            self.row_index[row[0]] = index


class GoogleSheetsDocumentStore(DocumentStore):
    """
    Google Sheets implementation of the document store.

    Documents are stored as rows (id, data_json) in one worksheet per
    collection path.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()
        self._lock = asyncio.Lock()

    def _snapshot(self, collection: str) -> _Snapshot:
        try:
            return _Snapshot(self._client.read_rows(collection))
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to read {collection}: {e}")

    async def get(self, collection: str, doc_id: str) -> Optional[dict]:
        """Retrieve a document by its id."""
        document = self._snapshot(collection).documents.get(doc_id)
        return copy.deepcopy(document) if document is not None else None

    async def query(
        self,
        collection: str,
        filters: Optional[list[QueryFilter]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[dict]:
        """List documents with optional filters (filtering happens in Python)."""
        documents = [
            document
            for document in self._snapshot(collection).documents.values()
            if matches_filters(document, filters)
        ]
        return apply_query_options(documents, order_by, descending, limit)

    async def commit(self, batch: WriteBatch) -> None:
        """
        Validate a batch against fresh snapshots, then send it as one
        batchUpdate. Precondition failures are raised before anything is sent.
        """
        if not len(batch):
            return

        async with self._lock:
            collections = list(dict.fromkeys(op.collection for op in batch.operations))
            snapshots = {collection: self._snapshot(collection) for collection in collections}

            staged = {
                collection: copy.deepcopy(snapshot.documents)
                for collection, snapshot in snapshots.items()
            }
            for op in batch.operations:
                apply_operation(staged, op)

            requests = self._build_requests(snapshots, staged)
            if not requests:
                return

            try:
                self._client.batch_update(requests)
            except Exception as e:
                raise StorageError(f"Failed to commit batch: {e}")

        logger.debug("sheets_batch_committed", operations=len(batch), requests=len(requests))

    def _build_requests(
        self,
        snapshots: dict[str, _Snapshot],
        staged: dict[str, dict[str, dict]],
    ) -> list[dict]:
        """
        Translate the difference between snapshot and staged state into
        updateCells / appendCells / deleteDimension requests.

        Row updates come first, then appends, then deletes from the bottom
        up, so the row indices read from the snapshot stay valid.
        """
        updates: list[dict] = []
        appends: list[dict] = []
        deletes: list[dict] = []

        for collection, snapshot in snapshots.items():
            sheet_id = self._client.get_worksheet(collection).id
            after = staged.get(collection, {})

            new_rows = []
            for doc_id, document in after.items():
                if doc_id not in snapshot.documents:
                    new_rows.append(_row_values(doc_id, document))
                elif document != snapshot.documents[doc_id]:
                    row = snapshot.row_index[doc_id]
                    updates.append({
                        "updateCells": {
                            "range": {
                                "sheetId": sheet_id,
                                "startRowIndex": row,
                                "endRowIndex": row + 1,
                                "startColumnIndex": 0,
                                "endColumnIndex": len(DOCUMENT_COLUMNS),
                            },
                            "rows": [_row_values(doc_id, document)],
                            "fields": "userEnteredValue",
                        }
                    })
            if new_rows:
                appends.append({
                    "appendCells": {
                        "sheetId": sheet_id,
                        "rows": new_rows,
                        "fields": "userEnteredValue",
                    }
                })

            removed = [
                snapshot.row_index[doc_id]
                for doc_id in snapshot.documents
                if doc_id not in after
            ]
            for row in sorted(removed, reverse=True):
                deletes.append({
                    "deleteDimension": {
                        "range": {
                            "sheetId": sheet_id,
                            "dimension": "ROWS",
                            "startIndex": row,
                            "endIndex": row + 1,
                        }
                    }
                })

        return updates + appends + deletes
