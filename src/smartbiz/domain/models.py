from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional

from .constants import (
    DEFAULT_AVATAR,
    DEFAULT_LOW_STOCK_THRESHOLD,
    DEFAULT_SHOP_NAME,
    DEFAULT_UNIT,
    DEFAULT_USER_NAME,
    TRANSACTION_SALE,
)


@dataclass(frozen=True)
class Product:
    id: Optional[str]
    name: str
    category: str = ""
    stock: int = 0
    cost_price: float = 0.0
    selling_price: float = 0.0
    unit: str = DEFAULT_UNIT
    low_stock_threshold: int = DEFAULT_LOW_STOCK_THRESHOLD

    @property
    def is_low_stock(self) -> bool:
        return self.stock <= self.low_stock_threshold

    def with_stock(self, stock: int) -> "Product":
        return replace(self, stock=stock)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "stock": self.stock,
            "costPrice": self.cost_price,
            "sellingPrice": self.selling_price,
            "unit": self.unit,
            "lowStockThreshold": self.low_stock_threshold,
            "lowStock": self.is_low_stock,
        }


@dataclass(frozen=True)
class LineItem:
    product_id: str
    quantity: int
    name: str

    def as_dict(self) -> Dict[str, Any]:
        # Same key casing as the JSONB column.
        return {"productId": self.product_id, "quantity": self.quantity, "name": self.name}


@dataclass(frozen=True)
class Transaction:
    id: Optional[str]
    type: str          # SALE | EXPENSE
    amount: float
    date: str          # ISO timestamp
    description: str
    items: Optional[List[LineItem]] = None

    @property
    def is_sale(self) -> bool:
        return self.type == TRANSACTION_SALE

    def as_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "amount": self.amount,
            "date": self.date,
            "description": self.description,
            "items": [i.as_dict() for i in self.items] if self.items is not None else None,
        }


@dataclass
class User:
    name: str
    shop_name: str
    avatar: str = DEFAULT_AVATAR

    @classmethod
    def from_auth_user(cls, user: Dict[str, Any]) -> "User":
        """Derive the display identity from an auth-provider user object."""
        meta = user.get("user_metadata") or {}
        email = user.get("email") or ""
        name = meta.get("full_name") or (email.split("@")[0] if email else "") or DEFAULT_USER_NAME
        return cls(name=name, shop_name=meta.get("shop_name") or DEFAULT_SHOP_NAME)

    def as_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "shopName": self.shop_name, "avatar": self.avatar}


@dataclass
class AppSnapshot:
    inventory: List[Product] = field(default_factory=list)
    transactions: List[Transaction] = field(default_factory=list)

    def copy(self) -> "AppSnapshot":
        return AppSnapshot(inventory=list(self.inventory), transactions=list(self.transactions))

    def find_product(self, product_id: str) -> Optional[Product]:
        for p in self.inventory:
            if p.id == product_id:
                return p
        return None

    def low_stock(self) -> List[Product]:
        return [p for p in self.inventory if p.is_low_stock]


@dataclass
class ChatMessage:
    id: str
    role: str      # user | model
    text: str
    timestamp: float

    def as_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "role": self.role, "text": self.text, "timestamp": self.timestamp}
