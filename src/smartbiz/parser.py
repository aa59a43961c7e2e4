from __future__ import annotations

from dataclasses import replace
from typing import Any, Dict, Optional, Sequence

from .domain.constants import (
    DEFAULT_LOW_STOCK_THRESHOLD,
    DEFAULT_UNIT,
    TRANSACTION_EXPENSE,
    TRANSACTION_TYPES,
)
from .domain.models import Product, Transaction
from .errors import ValidationError
from .logging import get_logger
from .pos import Cart, build_expense


LOG = get_logger("parser")


def _norm_s(s: Any) -> Optional[str]:
    return str(s).strip() if isinstance(s, str) and s.strip() else None


def _number(v: Any, field: str, default: float) -> float:
    if v is None or v == "":
        return default
    if isinstance(v, bool):
        raise ValidationError(f"{field} must be a number")
    try:
        return float(v)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a number")


def _count(v: Any, field: str, default: int) -> int:
    value = _number(v, field, default)
    if value < 0 or not float(value).is_integer():
        raise ValidationError(f"{field} must be a non-negative whole number")
    return int(value)


def parse_product_payload(payload: Any, *, existing: Optional[Product] = None) -> Product:
    """Validate a product form submission.

    Accepts the UI's camelCase keys (costPrice, sellingPrice,
    lowStockThreshold). With ``existing`` the payload is an edit and only
    overrides the fields it carries.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Product payload must be a JSON object")

    base = existing or Product(id=None, name="")
    name = _norm_s(payload.get("name")) if "name" in payload else base.name
    if not name:
        raise ValidationError("Product name is required")

    def _pick(key: str, current: Any) -> Any:
        return payload[key] if key in payload else current

    product = replace(
        base,
        id=base.id or _norm_s(payload.get("id")),
        name=name,
        category=_norm_s(_pick("category", base.category)) or "",
        unit=_norm_s(_pick("unit", base.unit)) or DEFAULT_UNIT,
        stock=_count(_pick("stock", base.stock), "stock", 0),
        cost_price=_number(_pick("costPrice", base.cost_price), "costPrice", 0.0),
        selling_price=_number(_pick("sellingPrice", base.selling_price), "sellingPrice", 0.0),
        low_stock_threshold=_count(
            _pick("lowStockThreshold", base.low_stock_threshold), "lowStockThreshold", DEFAULT_LOW_STOCK_THRESHOLD
        ),
    )
    if product.cost_price < 0 or product.selling_price < 0:
        raise ValidationError("Prices cannot be negative")
    return product


def parse_transaction_request(payload: Any, inventory: Sequence[Product]) -> Transaction:
    """Build a SALE or EXPENSE transaction from a checkout request.

    - SALE: ``items`` is a list of ``{productId, quantity}``; prices and names
      come from the current inventory so the amount always equals the sum of
      selling price x quantity.
    - EXPENSE: ``description`` and a positive ``amount``.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Transaction payload must be a JSON object")
    kind = (_norm_s(payload.get("type")) or "").upper()
    if kind not in TRANSACTION_TYPES:
        raise ValidationError("type must be SALE or EXPENSE")

    if kind == TRANSACTION_EXPENSE:
        return build_expense(payload.get("description") or "", _number(payload.get("amount"), "amount", 0.0))

    items = payload.get("items")
    if not isinstance(items, list) or not items:
        raise ValidationError("A sale needs at least one item")
    by_id: Dict[str, Product] = {p.id: p for p in inventory if p.id}
    cart = Cart()
    for raw in items:
        if not isinstance(raw, dict):
            raise ValidationError("Each item must be an object")
        pid = _norm_s(raw.get("productId"))
        if pid is None or pid not in by_id:
            raise ValidationError(f"Unknown product: {raw.get('productId')!r}")
        qty = _count(raw.get("quantity"), "quantity", 1)
        if qty < 1:
            raise ValidationError("quantity must be at least 1")
        cart.add(by_id[pid], qty)
    tx = cart.checkout()
    LOG.debug("Parsed sale of %d line(s), amount %.2f", len(tx.items or []), tx.amount)
    return tx
