"""
Notion Ledger Storage

Each transaction is one page in a Notion database with typed properties:

    title       -> description
    number      -> amount
    select      -> category
    select or multi_select -> payment type (per NOTION_PAYMENT_TYPE_ENCODING)
    date        -> timestamp
    rich_text   -> idempotency key (optional)

TRADEOFFS:
- Notion's select filters are case-sensitive, so query() pages through the
  whole database and filters client-side.
- Newly created pages can take a moment to show up in database queries.
- requests is synchronous, so each call runs in a worker thread.
"""

import asyncio
from typing import Any, Optional

import requests
import structlog

from ledger_bot.config.settings import NotionSettings
from ledger_bot.models.transaction import AppendAck, Dimension, Transaction
from ledger_bot.services.storage.interface import (
    LedgerStore,
    StoreError,
    StoreErrorKind,
    collect_amounts,
    label_matches,
)


logger = structlog.get_logger(__name__)

PAGE_SIZE = 100


def property_value(prop: Optional[dict]) -> Any:
    """
    Extract a plain Python value from a Notion property object.

    Returns a list of names for multi_select, None for empty or
    unsupported property types.
    """
    if not prop:
        return None

    kind = prop.get("type")
    if kind == "number":
        return prop.get("number")
    if kind == "select":
        option = prop.get("select")
        return option.get("name") if option else None
    if kind == "multi_select":
        return [option.get("name") for option in prop.get("multi_select") or []]
    if kind in ("title", "rich_text"):
        return "".join(part.get("plain_text", "") for part in prop.get(kind) or [])
    if kind == "formula":
        formula = prop.get("formula") or {}
        return formula.get(formula.get("type"))
    return None


class NotionLedgerStore(LedgerStore):
    """Notion database implementation of the ledger."""

    def __init__(
        self,
        settings: NotionSettings,
        session: Optional[requests.Session] = None,
    ):
        self._settings = settings
        self._session = session or requests.Session()
        self._headers = {
            "Authorization": f"Bearer {settings.api_token}",
            "Notion-Version": settings.api_version,
            "Content-Type": "application/json",
        }

    def _dimension_property(self, dimension: Dimension) -> str:
        if dimension == Dimension.CATEGORY:
            return self._settings.category_property
        return self._settings.payment_type_property

    def _post(self, path: str, body: dict, failure_kind: StoreErrorKind) -> dict:
        url = f"{self._settings.base_url}/{path}"
        try:
            response = self._session.post(
                url,
                json=body,
                headers=self._headers,
                timeout=self._settings.request_timeout_seconds,
            )
        except requests.RequestException as e:
            raise StoreError(failure_kind, f"Notion request failed: {e}")

        if response.status_code >= 400:
            kind = (
                StoreErrorKind.BACKEND_REJECTED
                if response.status_code == 400 and failure_kind == StoreErrorKind.WRITE_FAILED
                else failure_kind
            )
            raise StoreError(
                kind,
                f"Notion returned {response.status_code}: {response.text}",
            )
        try:
            return response.json()
        except ValueError as e:
            raise StoreError(failure_kind, f"Notion returned invalid JSON: {e}")

    def _page_properties(self, transaction: Transaction) -> dict:
        s = self._settings
        if s.payment_type_encoding == "multi_select":
            payment = {"multi_select": [{"name": transaction.payment_type}]}
        else:
            payment = {"select": {"name": transaction.payment_type}}

        properties = {
            s.title_property: {
                "title": [{"text": {"content": transaction.description}}]
            },
            s.amount_property: {"number": transaction.amount},
            s.category_property: {"select": {"name": transaction.category}},
            s.payment_type_property: payment,
            s.timestamp_property: {
                "date": {"start": transaction.timestamp.isoformat()}
            },
        }
        if s.idempotency_property and transaction.idempotency_key:
            properties[s.idempotency_property] = {
                "rich_text": [{"text": {"content": transaction.idempotency_key}}]
            }
        return properties

    def _key_exists(self, key: str) -> bool:
        body = {
            "filter": {
                "property": self._settings.idempotency_property,
                "rich_text": {"equals": key},
            },
            "page_size": 1,
        }
        data = self._post(
            f"databases/{self._settings.database_id}/query",
            body,
            StoreErrorKind.READ_FAILED,
        )
        return bool(data.get("results"))

    def _iter_pages(self):
        """Yield every page of the database, following pagination cursors."""
        body: dict[str, Any] = {"page_size": PAGE_SIZE}
        while True:
            data = self._post(
                f"databases/{self._settings.database_id}/query",
                body,
                StoreErrorKind.READ_FAILED,
            )
            yield from data.get("results", [])
            if not data.get("has_more"):
                break
            body = {"page_size": PAGE_SIZE, "start_cursor": data.get("next_cursor")}

    def _append_sync(self, transaction: Transaction) -> AppendAck:
        key = transaction.idempotency_key
        if key and self._settings.idempotency_property and self._key_exists(key):
            return AppendAck(stored=False, duplicate=True)

        self._post(
            "pages",
            {
                "parent": {"database_id": self._settings.database_id},
                "properties": self._page_properties(transaction),
            },
            StoreErrorKind.WRITE_FAILED,
        )
        return AppendAck(stored=True)

    def _query_sync(self, dimension: Dimension, value: str) -> list[float]:
        label_property = self._dimension_property(dimension)
        amount_property = self._settings.amount_property

        raw_amounts = []
        for page in self._iter_pages():
            properties = page.get("properties", {})
            if label_matches(property_value(properties.get(label_property)), value):
                raw_amounts.append(property_value(properties.get(amount_property)))

        amounts = collect_amounts(raw_amounts)
        if len(amounts) < len(raw_amounts):
            logger.warning(
                "malformed_pages_skipped",
                backend="notion",
                skipped=len(raw_amounts) - len(amounts),
            )
        return amounts

    async def append(self, transaction: Transaction) -> AppendAck:
        return await asyncio.to_thread(self._append_sync, transaction)

    async def query(self, dimension: Dimension, value: str) -> list[float]:
        return await asyncio.to_thread(self._query_sync, dimension, value)
