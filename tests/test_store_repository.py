from __future__ import annotations

import json
from typing import Any, Dict, List

import pytest
import requests

from smartbiz.domain.models import LineItem, Product, Transaction
from smartbiz.errors import MissingSchemaError, SessionExpiredError, StoreError
from smartbiz.store.client import StoreClient
from smartbiz.store.repository import ShopRepository


class _Response:
    def __init__(self, status_code: int, body: Any = None) -> None:
        self.status_code = status_code
        self._body = body
        self.content = b"" if body is None else json.dumps(body).encode("utf-8")

    def json(self) -> Any:
        if self._body is None:
            raise ValueError("no body")
        return self._body


class _Session:
    """Records requests and replays queued responses."""

    def __init__(self, *responses: _Response) -> None:
        self.headers: Dict[str, str] = {}
        self.requests: List[Dict[str, Any]] = []
        self._responses = list(responses)

    def request(self, method: str, url: str, **kwargs: Any) -> _Response:
        self.requests.append({"method": method, "url": url, **kwargs})
        item = self._responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    def close(self) -> None:
        pass


def _repo(*responses: Any) -> tuple[ShopRepository, _Session]:
    session = _Session(*responses)
    client = StoreClient("https://demo.supabase.co/", "anon-key", "user-token", session=session)
    return ShopRepository(client), session


PRODUCT_ROW = {
    "id": "7d1c",
    "user_id": "u-1",
    "name": "Basmati Rice",
    "category": "Grains",
    "stock": 12,
    "cost_price": 80,
    "selling_price": 95.5,
    "unit": "kg",
    "low_stock_threshold": 4,
}


def test_client_sends_key_and_user_token() -> None:
    _, session = _repo()
    assert session.headers["apikey"] == "anon-key"
    assert session.headers["Authorization"] == "Bearer user-token"


def test_inventory_is_ordered_by_name_and_mapped() -> None:
    repo, session = _repo(_Response(200, [PRODUCT_ROW]))

    products = repo.get_inventory()

    req = session.requests[0]
    assert req["method"] == "GET"
    assert req["url"] == "https://demo.supabase.co/rest/v1/products"
    assert req["params"] == {"select": "*", "order": "name.asc"}
    assert products == [
        Product(
            id="7d1c",
            name="Basmati Rice",
            category="Grains",
            stock=12,
            cost_price=80.0,
            selling_price=95.5,
            unit="kg",
            low_stock_threshold=4,
        )
    ]


def test_add_product_sends_columns_without_ids() -> None:
    repo, session = _repo(_Response(201, [PRODUCT_ROW]))
    draft = Product(id="temp-1", name="Basmati Rice", category="Grains", stock=12, cost_price=80, selling_price=95.5, unit="kg", low_stock_threshold=4)

    stored = repo.add_product(draft)

    req = session.requests[0]
    assert req["method"] == "POST"
    assert req["headers"] == {"Prefer": "return=representation"}
    assert "id" not in req["json"] and "user_id" not in req["json"]
    assert req["json"]["cost_price"] == 80
    assert req["json"]["low_stock_threshold"] == 4
    assert stored.id == "7d1c"


def test_update_and_delete_match_on_id() -> None:
    repo, session = _repo(_Response(204), _Response(204), _Response(204))
    p = Product(id="7d1c", name="Rice")

    repo.update_product(p)
    repo.update_stock_count("7d1c", 3)
    repo.delete_product("7d1c")

    methods = [(r["method"], r["params"]) for r in session.requests]
    assert methods == [
        ("PATCH", {"id": "eq.7d1c"}),
        ("PATCH", {"id": "eq.7d1c"}),
        ("DELETE", {"id": "eq.7d1c"}),
    ]
    assert session.requests[1]["json"] == {"stock": 3}


def test_transactions_newest_first_with_line_items() -> None:
    row = {
        "id": "t-9",
        "type": "SALE",
        "amount": 100,
        "date": "2024-08-01T10:00:00+00:00",
        "description": "Sale",
        "items": [{"productId": "p-milk", "quantity": 2, "name": "Milk"}],
    }
    repo, session = _repo(_Response(200, [row]))

    txs = repo.get_transactions()

    assert session.requests[0]["params"]["order"] == "date.desc"
    assert txs[0].items == [LineItem(product_id="p-milk", quantity=2, name="Milk")]
    assert txs[0].amount == 100.0


def test_add_transaction_stores_items_as_json_objects() -> None:
    tx = Transaction(
        id="local",
        type="SALE",
        amount=100,
        date="2024-08-01T10:00:00Z",
        description="Sale",
        items=[LineItem("p-milk", 2, "Milk"), LineItem("p-bread", 1, "Bread")],
    )
    stored_row = {"id": "t-1", "type": "SALE", "amount": 100, "date": tx.date, "description": "Sale", "items": None}
    repo, session = _repo(_Response(201, [stored_row]))

    stored = repo.add_transaction(tx)

    body = session.requests[0]["json"]
    assert body["items"] == [
        {"productId": "p-milk", "quantity": 2, "name": "Milk"},
        {"productId": "p-bread", "quantity": 1, "name": "Bread"},
    ]
    assert "id" not in body
    assert stored.id == "t-1"


@pytest.mark.parametrize(
    "body",
    [
        {"code": "42P01", "message": 'relation "public.products" does not exist'},
        {"code": "PGRST205", "message": "Could not find the table 'public.products' in the schema cache"},
    ],
)
def test_missing_table_is_reported_as_missing_schema(body: Dict[str, Any]) -> None:
    repo, _ = _repo(_Response(404, body))
    with pytest.raises(MissingSchemaError) as exc:
        repo.get_inventory()
    assert exc.value.code == body["code"]


def test_other_store_errors_keep_provider_message() -> None:
    repo, _ = _repo(_Response(403, {"code": "42501", "message": "new row violates row-level security policy"}))
    with pytest.raises(StoreError) as exc:
        repo.add_product(Product(id=None, name="Oil"))
    assert not isinstance(exc.value, MissingSchemaError)
    assert "row-level security" in exc.value.message
    assert exc.value.status == 403


def test_network_errors_become_store_errors() -> None:
    repo, _ = _repo(requests.ConnectionError("connection refused"))
    with pytest.raises(StoreError):
        repo.get_transactions()


def test_insert_without_returned_row_is_an_error() -> None:
    repo, _ = _repo(_Response(201, []))
    with pytest.raises(StoreError):
        repo.add_product(Product(id=None, name="Oil"))

def test_expired_jwt_is_reported_as_session_expired() -> None:
    repo, _ = _repo(_Response(401, {"code": "PGRST301", "message": "JWT expired"}))
    with pytest.raises(SessionExpiredError) as exc:
        repo.get_inventory()
    assert exc.value.status == 401


def test_use_token_rotates_bearer_header() -> None:
    repo, session = _repo()
    repo.use_token("fresh-token")
    assert session.headers["Authorization"] == "Bearer fresh-token"
