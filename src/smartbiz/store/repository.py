from __future__ import annotations

from typing import Any, Dict, List, Optional

from ..domain.constants import DEFAULT_LOW_STOCK_THRESHOLD, DEFAULT_UNIT
from ..domain.models import LineItem, Product, Transaction
from ..logging import get_logger
from .client import StoreClient


LOG = get_logger("repository")

PRODUCTS_TABLE = "products"
TRANSACTIONS_TABLE = "transactions"


# ---------- row <-> model mapping ----------
def product_from_row(row: Dict[str, Any]) -> Product:
    return Product(
        id=str(row["id"]) if row.get("id") is not None else None,
        name=row.get("name") or "",
        category=row.get("category") or "",
        stock=int(row.get("stock") or 0),
        cost_price=float(row.get("cost_price") or 0),
        selling_price=float(row.get("selling_price") or 0),
        unit=row.get("unit") or DEFAULT_UNIT,
        low_stock_threshold=int(row.get("low_stock_threshold") if row.get("low_stock_threshold") is not None else DEFAULT_LOW_STOCK_THRESHOLD),
    )


def product_to_row(product: Product) -> Dict[str, Any]:
    # id and user_id are assigned by the database.
    return {
        "name": product.name,
        "category": product.category,
        "stock": product.stock,
        "cost_price": product.cost_price,
        "selling_price": product.selling_price,
        "unit": product.unit,
        "low_stock_threshold": product.low_stock_threshold,
    }


def _items_from_row(raw: Any) -> Optional[List[LineItem]]:
    if not isinstance(raw, list):
        return None
    items: List[LineItem] = []
    for entry in raw:
        if not isinstance(entry, dict):
            continue
        items.append(
            LineItem(
                product_id=str(entry.get("productId")),
                quantity=int(entry.get("quantity") or 0),
                name=entry.get("name") or "",
            )
        )
    return items


def transaction_from_row(row: Dict[str, Any]) -> Transaction:
    return Transaction(
        id=str(row["id"]) if row.get("id") is not None else None,
        type=row.get("type") or "",
        amount=float(row.get("amount") or 0),
        date=row.get("date") or "",
        description=row.get("description") or "",
        items=_items_from_row(row.get("items")),
    )


def transaction_to_row(tx: Transaction) -> Dict[str, Any]:
    return {
        "type": tx.type,
        "amount": tx.amount,
        "date": tx.date,
        "description": tx.description,
        "items": [i.as_dict() for i in tx.items] if tx.items is not None else None,
    }


class ShopRepository:
    """Create/read/update/delete for the two shop collections.

    Every method raises StoreError (or MissingSchemaError) on failure; callers
    decide how to recover.
    """

    def __init__(self, client: StoreClient) -> None:
        self.client = client

    def use_token(self, access_token: str) -> None:
        """Send later requests with a refreshed access token."""
        self.client.set_access_token(access_token)

    # ---------- inventory ----------
    def get_inventory(self) -> List[Product]:
        rows = self.client.select(PRODUCTS_TABLE, order="name", ascending=True)
        return [product_from_row(r) for r in rows]

    def add_product(self, product: Product) -> Product:
        row = self.client.insert(PRODUCTS_TABLE, product_to_row(product))
        LOG.debug("Inserted product id=%s name=%r", row.get("id"), product.name)
        return product_from_row(row)

    def update_product(self, product: Product) -> None:
        self.client.update(PRODUCTS_TABLE, product_to_row(product), {"id": product.id})

    def delete_product(self, product_id: str) -> None:
        self.client.delete(PRODUCTS_TABLE, {"id": product_id})

    def update_stock_count(self, product_id: str, new_stock: int) -> None:
        self.client.update(PRODUCTS_TABLE, {"stock": new_stock}, {"id": product_id})

    # ---------- transactions ----------
    def get_transactions(self) -> List[Transaction]:
        rows = self.client.select(TRANSACTIONS_TABLE, order="date", ascending=False)
        return [transaction_from_row(r) for r in rows]

    def add_transaction(self, tx: Transaction) -> Transaction:
        row = self.client.insert(TRANSACTIONS_TABLE, transaction_to_row(tx))
        LOG.debug("Inserted %s transaction id=%s amount=%s", tx.type, row.get("id"), tx.amount)
        return transaction_from_row(row)
