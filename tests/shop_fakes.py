"""In-memory stand-ins for the hosted database and auth service used across tests."""

from __future__ import annotations

import itertools
import threading
import time
from dataclasses import replace
from typing import Any, Callable, Dict, Iterable, List, Optional

from smartbiz.domain.models import Product, Transaction
from smartbiz.errors import AuthError
from smartbiz.store.auth import AuthSession


class FakeRepository:
    """Same surface as ShopRepository, backed by dicts.

    ``errors`` maps a method name to the exception it should raise;
    ``hooks`` maps a method name to a callable run before the call.
    """

    def __init__(self, products: Iterable[Product] = (), transactions: Iterable[Transaction] = ()) -> None:
        self._ids = itertools.count(1)
        self.products: Dict[str, Product] = {}
        self.transactions: List[Transaction] = []
        self.errors: Dict[str, Exception] = {}
        self.hooks: Dict[str, Callable[..., None]] = {}
        self.calls: List[str] = []
        self.tokens: List[str] = []
        self._lock = threading.Lock()
        for p in products:
            pid = p.id or f"p-{next(self._ids)}"
            self.products[pid] = replace(p, id=pid)
        for t in transactions:
            self.transactions.append(replace(t, id=t.id or f"t-{next(self._ids)}"))

    def _enter(self, name: str, *args: Any) -> None:
        with self._lock:
            self.calls.append(name)
        hook = self.hooks.get(name)
        if hook is not None:
            hook(*args)
        if name in self.errors:
            raise self.errors[name]

    def use_token(self, access_token: str) -> None:
        self.tokens.append(access_token)

    # ---------- inventory ----------
    def get_inventory(self) -> List[Product]:
        self._enter("get_inventory")
        return sorted(self.products.values(), key=lambda p: p.name)

    def add_product(self, product: Product) -> Product:
        self._enter("add_product", product)
        stored = replace(product, id=f"p-{next(self._ids)}")
        self.products[stored.id] = stored
        return stored

    def update_product(self, product: Product) -> None:
        self._enter("update_product", product)
        self.products[product.id] = product

    def delete_product(self, product_id: str) -> None:
        self._enter("delete_product", product_id)
        self.products.pop(product_id, None)

    def update_stock_count(self, product_id: str, new_stock: int) -> None:
        self._enter("update_stock_count", product_id, new_stock)
        with self._lock:
            self.products[product_id] = self.products[product_id].with_stock(new_stock)

    # ---------- transactions ----------
    def get_transactions(self) -> List[Transaction]:
        self._enter("get_transactions")
        return sorted(self.transactions, key=lambda t: t.date, reverse=True)

    def add_transaction(self, tx: Transaction) -> Transaction:
        self._enter("add_transaction", tx)
        stored = replace(tx, id=f"t-{next(self._ids)}")
        self.transactions.append(stored)
        return stored


class FakeAuthClient:
    """Accepts one email/password pair and hands out numbered tokens.

    ``lifetime`` sets how many seconds issued tokens stay valid (None: no
    expiry); ``refresh_error`` makes ``refresh`` fail.
    """

    def __init__(self, email: str = "asha@example.com", password: str = "secret", *, metadata: Optional[Dict[str, Any]] = None) -> None:
        self.email = email
        self.password = password
        self.metadata = metadata if metadata is not None else {"full_name": "Asha", "shop_name": "Asha Kirana"}
        self.signed_out: List[str] = []
        self.refreshed: List[str] = []
        self.lifetime: Optional[float] = None
        self.refresh_error: Optional[AuthError] = None
        self._tokens = itertools.count(1)

    def _session(self, email: str, metadata: Dict[str, Any]) -> AuthSession:
        return AuthSession(
            access_token=f"token-{next(self._tokens)}",
            refresh_token=f"refresh-{email}",
            user={"id": "user-1", "email": email, "user_metadata": metadata},
            expires_at=time.time() + self.lifetime if self.lifetime is not None else None,
        )

    def sign_in(self, email: str, password: str) -> AuthSession:
        if email != self.email or password != self.password:
            raise AuthError("Invalid login credentials", status=400)
        return self._session(email, self.metadata)

    def sign_up(self, email: str, password: str, name: str, shop_name: str) -> Optional[AuthSession]:
        if not name.strip() or not shop_name.strip():
            raise AuthError("Name and Shop Name are required for sign up.")
        return self._session(email, {"full_name": name, "shop_name": shop_name})

    def refresh(self, session: AuthSession) -> AuthSession:
        self.refreshed.append(session.access_token)
        if self.refresh_error is not None:
            raise self.refresh_error
        return self._session(session.user["email"], session.user["user_metadata"])

    def sign_out(self, session: AuthSession) -> None:
        self.signed_out.append(session.access_token)


def product(name: str, *, stock: int = 10, price: float = 10.0, threshold: int = 5, pid: Optional[str] = None, category: str = "General") -> Product:
    return Product(
        id=pid,
        name=name,
        category=category,
        stock=stock,
        cost_price=round(price * 0.8, 2),
        selling_price=price,
        unit="pcs",
        low_stock_threshold=threshold,
    )
