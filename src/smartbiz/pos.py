from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional, Sequence

from .domain.constants import TRANSACTION_EXPENSE, TRANSACTION_SALE
from .domain.models import LineItem, Product, Transaction
from .errors import ValidationError


def now_iso() -> str:
    """Current UTC time as an ISO-8601 string with millisecond precision."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def search_products(products: Sequence[Product], term: str) -> List[Product]:
    """Products whose name contains ``term`` (case-insensitive)."""
    needle = (term or "").lower()
    return [p for p in products if needle in p.name.lower()]


@dataclass
class CartLine:
    product: Product
    qty: int

    @property
    def line_total(self) -> float:
        return self.product.selling_price * self.qty


class Cart:
    """Point-of-sale cart. Quantities never drop below 1; remove a line instead."""

    def __init__(self) -> None:
        self.lines: List[CartLine] = []

    def __len__(self) -> int:
        return len(self.lines)

    def _find(self, product_id: Optional[str]) -> Optional[CartLine]:
        for line in self.lines:
            if line.product.id == product_id:
                return line
        return None

    def add(self, product: Product, qty: int = 1) -> None:
        line = self._find(product.id)
        if line is not None:
            line.qty += qty
        else:
            self.lines.append(CartLine(product=product, qty=qty))

    def remove(self, product_id: str) -> None:
        self.lines = [line for line in self.lines if line.product.id != product_id]

    def update_qty(self, product_id: str, delta: int) -> None:
        line = self._find(product_id)
        if line is not None:
            line.qty = max(1, line.qty + delta)

    @property
    def total(self) -> float:
        return round(sum(line.line_total for line in self.lines), 2)

    def checkout(self, *, date: Optional[str] = None) -> Transaction:
        """Turn the cart into a SALE transaction and empty it."""
        if not self.lines:
            raise ValidationError("Cart is empty")
        tx = Transaction(
            id=str(uuid.uuid4()),
            type=TRANSACTION_SALE,
            amount=self.total,
            date=date or now_iso(),
            description="Sale",
            items=[
                LineItem(product_id=line.product.id or "", quantity=line.qty, name=line.product.name)
                for line in self.lines
            ],
        )
        self.lines = []
        return tx


def build_expense(description: str, amount: float, *, date: Optional[str] = None) -> Transaction:
    if not description or not description.strip():
        raise ValidationError("Expense description is required")
    if amount is None or amount <= 0:
        raise ValidationError("Expense amount must be greater than zero")
    return Transaction(
        id=str(uuid.uuid4()),
        type=TRANSACTION_EXPENSE,
        amount=float(amount),
        date=date or now_iso(),
        description=description.strip(),
    )
