from __future__ import annotations

import threading
import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from typing import Callable, Dict, List, Optional, Tuple

from .domain.models import AppSnapshot, Product, Transaction
from .errors import MissingSchemaError, SessionExpiredError, StoreError
from .logging import get_logger
from .store.repository import ShopRepository


LOG = get_logger("state")

Listener = Callable[[AppSnapshot], None]


class ShopStateController:
    """In-memory inventory/transactions snapshot kept in step with the store.

    Every mutation is applied to the snapshot first (optimistic update), then
    written through the repository:

    - add product / add transaction reconcile the store-assigned record on
      success and reload whole collections on failure;
    - update / delete product only log failures (no rollback).

    Listeners registered with ``subscribe`` receive a copy of the snapshot
    after each change, including the optimistic one.
    """

    def __init__(self, repository: ShopRepository, *, max_workers: int = 4) -> None:
        self.repo = repository
        self.max_workers = max(1, int(max_workers))
        self.setup_required = False
        self.session_expired = False
        self._snapshot = AppSnapshot()
        self._lock = threading.RLock()
        self._listeners: List[Listener] = []

    # ---------- snapshot ----------
    @property
    def snapshot(self) -> AppSnapshot:
        with self._lock:
            return self._snapshot.copy()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a change listener; returns a callable that removes it."""
        with self._lock:
            self._listeners.append(listener)

        def _unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _unsubscribe

    def _apply(self, change: Callable[[AppSnapshot], AppSnapshot]) -> AppSnapshot:
        with self._lock:
            self._snapshot = change(self._snapshot.copy())
            current = self._snapshot.copy()
            listeners = list(self._listeners)
        for listener in listeners:
            listener(current.copy())
        return current

    def _note_failure(self, e: StoreError) -> None:
        if isinstance(e, SessionExpiredError):
            self.session_expired = True

    def clear(self) -> None:
        self.setup_required = False
        self.session_expired = False
        self._apply(lambda _: AppSnapshot())

    # ---------- loading ----------
    def _fetch_all(self) -> Tuple[List[Product], List[Transaction]]:
        with ThreadPoolExecutor(max_workers=2) as pool:
            inventory = pool.submit(self.repo.get_inventory)
            transactions = pool.submit(self.repo.get_transactions)
            return inventory.result(), transactions.result()

    def load(self) -> bool:
        """Fetch both collections in parallel and replace the snapshot.

        Returns False when the store is unreachable or not set up; in the
        latter case ``setup_required`` is raised.
        """
        self.setup_required = False
        self.session_expired = False
        try:
            inventory, transactions = self._fetch_all()
        except MissingSchemaError as e:
            LOG.error(f"Store schema missing: {e}")
            self.setup_required = True
            return False
        except StoreError as e:
            self._note_failure(e)
            LOG.error(f"Failed to fetch data: {e}")
            return False
        self._apply(lambda _: AppSnapshot(inventory=inventory, transactions=transactions))
        LOG.info("Loaded %d product(s) and %d transaction(s)", len(inventory), len(transactions))
        return True

    def _reload_inventory(self) -> None:
        try:
            inventory = self.repo.get_inventory()
        except StoreError as e:
            self._note_failure(e)
            LOG.error(f"Inventory reload failed; snapshot may be stale: {e}")
            return
        self._apply(lambda snap: replace(snap, inventory=inventory))

    def _reload_all(self) -> None:
        try:
            inventory, transactions = self._fetch_all()
        except StoreError as e:
            self._note_failure(e)
            LOG.error(f"Full reload failed; snapshot may be stale: {e}")
            return
        self._apply(lambda _: AppSnapshot(inventory=inventory, transactions=transactions))

    # ---------- inventory ----------
    def add_product(self, product: Product) -> Optional[Product]:
        temp_id = product.id or str(uuid.uuid4())
        optimistic = replace(product, id=temp_id)
        self._apply(lambda snap: replace(snap, inventory=snap.inventory + [optimistic]))

        try:
            stored = self.repo.add_product(product)
        except StoreError as e:
            self._note_failure(e)
            LOG.error(f"Error adding product {product.name!r}: {e}")
            self._reload_inventory()
            return None

        self._apply(
            lambda snap: replace(snap, inventory=[stored if p.id == temp_id else p for p in snap.inventory])
        )
        return stored

    def update_product(self, product: Product) -> bool:
        self._apply(
            lambda snap: replace(snap, inventory=[product if p.id == product.id else p for p in snap.inventory])
        )
        try:
            self.repo.update_product(product)
        except StoreError as e:
            self._note_failure(e)
            LOG.error(f"Error updating product {product.id}: {e}")
            return False
        return True

    def delete_product(self, product_id: str) -> bool:
        self._apply(lambda snap: replace(snap, inventory=[p for p in snap.inventory if p.id != product_id]))
        try:
            self.repo.delete_product(product_id)
        except StoreError as e:
            self._note_failure(e)
            LOG.error(f"Error deleting product {product_id}: {e}")
            return False
        return True

    # ---------- transactions ----------
    def add_transaction(self, tx: Transaction) -> Optional[Transaction]:
        """Record a sale or expense; a sale also decrements stock (floored at 0).

        The transaction insert and the per-product stock updates are issued
        together; any failure reloads inventory and transactions.
        """
        if not tx.id:
            tx = replace(tx, id=str(uuid.uuid4()))
        local_id = tx.id
        stock_updates: Dict[str, int] = {}

        def _optimistic(snap: AppSnapshot) -> AppSnapshot:
            inventory = list(snap.inventory)
            if tx.is_sale and tx.items:
                for item in tx.items:
                    for idx, p in enumerate(inventory):
                        if p.id == item.product_id:
                            new_stock = max(0, p.stock - item.quantity)
                            inventory[idx] = p.with_stock(new_stock)
                            stock_updates[item.product_id] = new_stock
                            break
            return AppSnapshot(inventory=inventory, transactions=[tx] + snap.transactions)

        self._apply(_optimistic)

        try:
            with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                pending = [
                    pool.submit(self.repo.update_stock_count, pid, stock)
                    for pid, stock in stock_updates.items()
                ]
                stored = self.repo.add_transaction(tx)
                for fut in pending:
                    fut.result()
        except StoreError as e:
            self._note_failure(e)
            LOG.error(f"Error adding {tx.type} transaction: {e}")
            self._reload_all()
            return None

        self._apply(
            lambda snap: replace(
                snap, transactions=[stored if t.id == local_id else t for t in snap.transactions]
            )
        )
        LOG.info(
            "Recorded %s of %.2f (%d stock update(s))", tx.type, tx.amount, len(stock_updates)
        )
        return stored
