"""
Shared fakes for tests.

They stand in for the third-party clients (gspread worksheets, pymongo
collections, requests sessions) so no test talks to a real service.
"""

from types import SimpleNamespace
from typing import Any, Optional

from ledger_bot.models.transaction import Transaction


def make_transaction(**overrides) -> Transaction:
    values = {
        "description": "Mercado",
        "amount": 10.5,
        "category": "Alimentação",
        "payment_type": "Crédito",
        "sender_id": "5511999999999",
    }
    values.update(overrides)
    return Transaction(**values)


# =============================================================================
# Google Sheets
# =============================================================================

class FakeWorksheet:
    """Holds cell values as strings, the way the Sheets API returns them."""

    def __init__(self, values: Optional[list[list[str]]] = None, append_error: Optional[Exception] = None):
        self.values = [list(row) for row in (values or [])]
        self.append_error = append_error
        self.appended: list[tuple[list, Optional[str]]] = []
        self.inserted: list[tuple[list, int, Optional[str]]] = []

    def get_all_values(self) -> list[list[str]]:
        return [list(row) for row in self.values]

    def append_row(self, row: list, value_input_option: Optional[str] = None):
        if self.append_error is not None:
            raise self.append_error
        self.appended.append((list(row), value_input_option))
        self.values.append([str(cell) for cell in row])

    def insert_row(self, values: list, index: int = 1, value_input_option: Optional[str] = None):
        self.inserted.append((list(values), index, value_input_option))
        self.values.insert(index - 1, [str(cell) for cell in values])


class FakeSheetsClient:
    def __init__(self, worksheet: FakeWorksheet):
        self.worksheet = worksheet

    def get_ledger_sheet(self) -> FakeWorksheet:
        return self.worksheet


# =============================================================================
# MongoDB
# =============================================================================

def _matches(document: dict, query: dict) -> bool:
    """Equality match with a case-insensitive collation and array "contains"."""
    for field, wanted in query.items():
        stored = document.get(field)
        if isinstance(wanted, dict) and "$type" in wanted:
            if isinstance(stored, bool) or not isinstance(stored, (int, float)):
                return False
            continue
        candidates = stored if isinstance(stored, list) else [stored]
        if isinstance(wanted, str):
            if not any(isinstance(c, str) and c.casefold() == wanted.casefold() for c in candidates):
                return False
        elif wanted not in candidates:
            return False
    return True


class FakeCollection:
    def __init__(self, documents: Optional[list[dict]] = None, error: Optional[Exception] = None):
        self.documents = [dict(d) for d in (documents or [])]
        self.error = error
        self.collations: list[Any] = []

    def _raise_if_broken(self):
        if self.error is not None:
            raise self.error

    def insert_one(self, document: dict):
        self._raise_if_broken()
        self.documents.append(dict(document))
        return SimpleNamespace(inserted_id=len(self.documents))

    def update_one(self, query: dict, update: dict, upsert: bool = False):
        self._raise_if_broken()
        if any(_matches(d, query) for d in self.documents):
            return SimpleNamespace(upserted_id=None, matched_count=1)
        if upsert:
            self.documents.append(dict(update["$setOnInsert"]))
            return SimpleNamespace(upserted_id=len(self.documents), matched_count=0)
        return SimpleNamespace(upserted_id=None, matched_count=0)

    def find(self, query: dict, projection: Optional[dict] = None, collation=None):
        self._raise_if_broken()
        self.collations.append(collation)
        for document in self.documents:
            if _matches(document, query):
                yield {"amount": document.get("amount")}

    def aggregate(self, pipeline: list[dict], collation=None):
        self._raise_if_broken()
        self.collations.append(collation)
        documents = self.documents
        for stage in pipeline:
            if "$match" in stage:
                documents = [d for d in documents if _matches(d, stage["$match"])]
        if not documents:
            return iter([])
        return iter([{"_id": None, "total": sum(d["amount"] for d in documents)}])


# =============================================================================
# requests (Notion and WhatsApp)
# =============================================================================

class FakeResponse:
    def __init__(self, status_code: int = 200, payload: Any = None, text: str = ""):
        self.status_code = status_code
        self._payload = payload
        self.text = text

    @property
    def ok(self) -> bool:
        return self.status_code < 400

    def json(self):
        if self._payload is None:
            raise ValueError("No JSON body")
        return self._payload


class FakeNotionSession:
    """
    Answers the two Notion endpoints the ledger uses.

    `pages` are returned by database queries, `page_size` at a time.
    """

    def __init__(self, pages: Optional[list[dict]] = None, write_status: int = 200):
        self.pages = list(pages or [])
        self.write_status = write_status
        self.calls: list[tuple[str, dict]] = []
        self.created: list[dict] = []

    def post(self, url: str, json: dict, headers: dict, timeout: float):
        self.calls.append((url, json))

        if url.endswith("/pages"):
            if self.write_status >= 400:
                return FakeResponse(self.write_status, {"message": "validation_error"}, "validation_error")
            self.created.append(json)
            return FakeResponse(200, {"id": f"page-{len(self.created)}"})

        if "filter" in json:
            wanted = json["filter"]["rich_text"]["equals"]
            prop = json["filter"]["property"]
            results = [
                page for page in self.pages
                if "".join(
                    part["plain_text"]
                    for part in page["properties"].get(prop, {}).get("rich_text", [])
                ) == wanted
            ]
            return FakeResponse(200, {"results": results[:1], "has_more": False})

        start = int(json.get("start_cursor") or 0)
        size = json["page_size"]
        batch = self.pages[start:start + size]
        has_more = start + size < len(self.pages)
        return FakeResponse(200, {
            "results": batch,
            "has_more": has_more,
            "next_cursor": str(start + size) if has_more else None,
        })


def notion_page(amount: Any, category: str, payment_types: list[str], key: str = "") -> dict:
    """A page as returned by a Notion database query."""
    return {
        "properties": {
            "Descrição": {"type": "title", "title": [{"plain_text": "Item"}]},
            "Valor": {"type": "number", "number": amount},
            "Categoria": {"type": "select", "select": {"name": category}},
            "Pagamento": {
                "type": "multi_select",
                "multi_select": [{"name": name} for name in payment_types],
            },
            "ID da mensagem": {"type": "rich_text", "rich_text": [{"plain_text": key}] if key else []},
        }
    }


class FakeWhatsAppSession:
    def __init__(self, response: Optional[FakeResponse] = None, error: Optional[Exception] = None):
        self.response = response or FakeResponse(200, {"messages": [{"id": "wamid.reply"}]})
        self.error = error
        self.calls: list[dict] = []

    def post(self, url: str, json: dict, headers: dict, timeout: float):
        self.calls.append({"url": url, "json": json, "headers": headers, "timeout": timeout})
        if self.error is not None:
            raise self.error
        return self.response
