"""
Tests for the Google Sheets document store.

The gspread client is replaced by an in-process fake, and the client wrapper
is exercised against mocked gspread objects. No API calls are made.
"""

import json
from unittest.mock import MagicMock

import gspread
import pytest

from ledgerbook.config import GoogleSheetsSettings
from ledgerbook.services.storage import (
    ConflictError,
    DuplicateError,
    GoogleSheetsDocumentStore,
    QueryFilter,
    StorageError,
)
from ledgerbook.services.storage import google_sheets
from ledgerbook.services.storage.google_sheets import (
    DOCUMENT_COLUMNS,
    GoogleSheetsClient,
    sheet_title,
)


class FakeSheetsClient:
    """Mimics GoogleSheetsClient over plain lists of rows."""

    def __init__(self, sheets=None):
        self.sheets = sheets or {}
        self.requests = []
        self.fail_updates = False
        self._ids = {}

    def read_rows(self, collection):
        return [DOCUMENT_COLUMNS] + [list(row) for row in self.sheets.get(collection, [])]

    def get_worksheet(self, collection, create=True):
        sheet = MagicMock()
        sheet.id = self._ids.setdefault(collection, len(self._ids) + 100)
        return sheet

    def batch_update(self, requests):
        if self.fail_updates:
            raise RuntimeError("quota exceeded")
        self.requests.append(requests)


def row(doc_id, **fields):
    return [doc_id, json.dumps({"id": doc_id, **fields})]


@pytest.fixture
def client():
    return FakeSheetsClient({
        "books/b1/accounts": [
            row("cash", name="Cash", balance="500", type="asset"),
            row("food", name="Food", balance="0", type="expense"),
        ],
        "books/b1/recurring": [row("rec-1", next_run="2024-01-01")],
    })


@pytest.fixture
def sheets_store(client):
    return GoogleSheetsDocumentStore(client)


def test_sheet_title():
    assert sheet_title("books/b1/accounts") == "books.b1.accounts"


class TestReads:
    """Tests for get and query."""

    async def test_get(self, sheets_store):
        doc = await sheets_store.get("books/b1/accounts", "cash")
        assert doc["balance"] == "500"
        assert await sheets_store.get("books/b1/accounts", "missing") is None

    async def test_query(self, sheets_store):
        docs = await sheets_store.query(
            "books/b1/accounts",
            filters=[QueryFilter(field="type", value="expense")],
        )
        assert [doc["id"] for doc in docs] == ["food"]

    async def test_missing_sheet_is_an_empty_collection(self, sheets_store):
        assert await sheets_store.query("books/b1/splits") == []

    async def test_read_failure_becomes_storage_error(self, client, sheets_store):
        client.read_rows = MagicMock(side_effect=RuntimeError("boom"))
        with pytest.raises(StorageError):
            await sheets_store.get("books/b1/accounts", "cash")


class TestCommit:
    """Tests for translating a batch into one batchUpdate."""

    async def test_one_request_per_batch(self, client, sheets_store):
        batch = sheets_store.batch()
        batch.create("books/b1/transactions", "t1", {"description": "Lunch"})
        batch.increment("books/b1/accounts", "cash", "balance", "-120")
        batch.increment("books/b1/accounts", "food", "balance", "120")

        await sheets_store.commit(batch)

        assert len(client.requests) == 1
        kinds = [next(iter(request)) for request in client.requests[0]]
        assert kinds == ["updateCells", "updateCells", "appendCells"]

        update = client.requests[0][0]["updateCells"]
        assert update["range"]["startRowIndex"] == 1
        written = json.loads(update["rows"][0]["values"][1]["userEnteredValue"]["stringValue"])
        assert written["balance"] == "380"

    async def test_deletes_run_bottom_up_after_updates(self, client, sheets_store):
        batch = sheets_store.batch()
        batch.delete("books/b1/accounts", "cash")
        batch.delete("books/b1/accounts", "food")

        await sheets_store.commit(batch)

        ranges = [request["deleteDimension"]["range"] for request in client.requests[0]]
        assert [r["startIndex"] for r in ranges] == [2, 1]

    async def test_failed_precondition_sends_nothing(self, client, sheets_store):
        batch = sheets_store.batch()
        batch.increment("books/b1/accounts", "cash", "balance", "-100")
        batch.update("books/b1/recurring", "rec-1", {"next_run": "2024-02-01"},
                     expected={"next_run": "2023-12-01"})

        with pytest.raises(ConflictError):
            await sheets_store.commit(batch)
        assert client.requests == []

    async def test_duplicate_create(self, client, sheets_store):
        batch = sheets_store.batch().create("books/b1/accounts", "cash", {"name": "Cash"})
        with pytest.raises(DuplicateError):
            await sheets_store.commit(batch)
        assert client.requests == []

    async def test_api_failure_becomes_storage_error(self, client, sheets_store):
        client.fail_updates = True
        batch = sheets_store.batch().increment("books/b1/accounts", "cash", "balance", "1")
        with pytest.raises(StorageError):
            await sheets_store.commit(batch)

    async def test_empty_batch_is_a_no_op(self, client, sheets_store):
        await sheets_store.commit(sheets_store.batch())
        assert client.requests == []


class TestGoogleSheetsClient:
    """Tests for the gspread wrapper with mocked gspread objects."""

    @pytest.fixture
    def spreadsheet(self, monkeypatch):
        spreadsheet = MagicMock()
        spreadsheet.worksheet.side_effect = gspread.WorksheetNotFound("missing")
        gc = MagicMock()
        gc.open_by_key.return_value = spreadsheet
        monkeypatch.setattr(google_sheets.Credentials, "from_service_account_file", MagicMock())
        monkeypatch.setattr(google_sheets.gspread, "authorize", MagicMock(return_value=gc))
        return spreadsheet

    @pytest.fixture
    def sheets_client(self, spreadsheet, tmp_path):
        credentials = tmp_path / "service_account.json"
        credentials.write_text("{}")
        settings = GoogleSheetsSettings(
            credentials_path=str(credentials),
            spreadsheet_id="sheet-123",
            audit_sheet_name="Audit Log",
        )
        return GoogleSheetsClient(settings)

    def test_creates_missing_worksheet_with_header(self, spreadsheet, sheets_client):
        sheet = sheets_client.get_worksheet("books/b1/accounts")

        spreadsheet.add_worksheet.assert_called_once_with(
            title="books.b1.accounts", rows=1000, cols=2
        )
        sheet.append_row.assert_called_once_with(DOCUMENT_COLUMNS)
        assert sheets_client.get_worksheet("books/b1/accounts") is sheet

    def test_reading_a_missing_sheet_does_not_create_it(self, spreadsheet, sheets_client):
        assert sheets_client.read_rows("books/b1/splits") == [DOCUMENT_COLUMNS]
        spreadsheet.add_worksheet.assert_not_called()

    def test_audit_collection_uses_the_configured_sheet(self, sheets_client):
        assert sheets_client.title_for("audit_log") == "Audit Log"

    def test_batch_update_wraps_requests(self, spreadsheet, sheets_client):
        sheets_client.batch_update([{"appendCells": {}}])
        spreadsheet.batch_update.assert_called_once_with({"requests": [{"appendCells": {}}]})
