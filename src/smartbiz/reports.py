"""Read-only views over the app snapshot: dashboard, inventory search, history, CSV."""

from __future__ import annotations

import calendar
import csv
import io
import re
from collections import OrderedDict
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Sequence

from .domain.constants import (
    DATE_RANGES,
    FILTER_ALL,
    RANGE_TODAY,
    RANGE_WEEK,
    TRANSACTION_EXPENSE,
    TRANSACTION_SALE,
    TYPE_FILTERS,
)
from .domain.models import AppSnapshot, Product, Transaction
from .errors import ValidationError
from .logging import get_logger


LOG = get_logger("reports")

CSV_HEADERS = ["Date", "Type", "Description", "Items", "Amount"]
CHART_DAYS = 7

# fromisoformat before 3.11 only takes 3 or 6 fraction digits; PostgREST trims trailing zeros.
_FRACTION_RE = re.compile(r"\.(\d+)")


# ---------- helpers ----------
def parse_timestamp(value: str) -> datetime:
    """Parse an ISO timestamp into an aware local datetime (naive means local)."""
    text = _FRACTION_RE.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), value.strip().replace("Z", "+00:00"))
    dt = datetime.fromisoformat(text)
    return dt.astimezone()


def _local_now(now: Optional[datetime]) -> datetime:
    return (now or datetime.now()).astimezone()


def _sum_amounts(transactions: Iterable[Transaction], kind: str) -> float:
    return round(sum(t.amount for t in transactions if t.type == kind), 2)


def _totals(transactions: Sequence[Transaction]) -> Dict[str, float]:
    sales = _sum_amounts(transactions, TRANSACTION_SALE)
    expenses = _sum_amounts(transactions, TRANSACTION_EXPENSE)
    return {"totalSales": sales, "totalExpenses": expenses, "netProfit": round(sales - expenses, 2)}


def _month_before(day: date) -> date:
    year, month = (day.year - 1, 12) if day.month == 1 else (day.year, day.month - 1)
    last = calendar.monthrange(year, month)[1]
    return day.replace(year=year, month=month, day=min(day.day, last))


def _format_amount(value: float) -> Any:
    return int(value) if float(value).is_integer() else round(value, 2)


def format_display_date(value: str) -> str:
    """Render like ``1 Aug 2024, 02:30 PM``; unparseable values pass through."""
    try:
        dt = parse_timestamp(value)
    except ValueError:
        return value
    return f"{dt.day} {dt:%b %Y}, {dt:%I:%M %p}"


# ---------- dashboard ----------
def top_selling_product(transactions: Sequence[Transaction]) -> Optional[Dict[str, Any]]:
    """Product with the highest sold quantity over all sale line items."""
    sold: Dict[str, Dict[str, Any]] = {}
    for t in transactions:
        if t.type != TRANSACTION_SALE or not t.items:
            continue
        for item in t.items:
            entry = sold.setdefault(item.product_id, {"productId": item.product_id, "name": item.name, "quantity": 0})
            entry["quantity"] += item.quantity
    if not sold:
        return None
    return max(sold.values(), key=lambda e: e["quantity"])


def daily_series(transactions: Sequence[Transaction], *, days: int = CHART_DAYS) -> List[Dict[str, Any]]:
    """Per-day sales/expense sums for the most recent ``days`` days with activity, oldest first."""
    buckets: "OrderedDict[date, Dict[str, Any]]" = OrderedDict()
    dated = []
    for t in transactions:
        try:
            dated.append((parse_timestamp(t.date), t))
        except ValueError:
            LOG.warning(f"Skipping transaction {t.id} with unparseable date {t.date!r}")
    for dt, t in sorted(dated, key=lambda pair: pair[0]):
        day = dt.date()
        entry = buckets.setdefault(day, {"date": f"{dt:%b} {dt.day}", "sales": 0.0, "expenses": 0.0})
        if t.type == TRANSACTION_SALE:
            entry["sales"] = round(entry["sales"] + t.amount, 2)
        else:
            entry["expenses"] = round(entry["expenses"] + t.amount, 2)
    return list(buckets.values())[-days:]


def dashboard_metrics(snapshot: AppSnapshot) -> Dict[str, Any]:
    low = snapshot.low_stock()
    metrics: Dict[str, Any] = _totals(snapshot.transactions)
    metrics.update(
        {
            "lowStockCount": len(low),
            "lowStockItems": [{"id": p.id, "name": p.name, "stock": p.stock, "unit": p.unit} for p in low],
            "chart": daily_series(snapshot.transactions),
            "topProduct": top_selling_product(snapshot.transactions),
            "inventoryCount": len(snapshot.inventory),
            "transactionCount": len(snapshot.transactions),
        }
    )
    return metrics


# ---------- inventory ----------
def filter_inventory(products: Sequence[Product], term: Optional[str]) -> List[Product]:
    """Case-insensitive match on name or category."""
    if not term:
        return list(products)
    needle = term.lower()
    return [p for p in products if needle in p.name.lower() or needle in p.category.lower()]


# ---------- history ----------
def filter_history(
    transactions: Sequence[Transaction],
    *,
    type_filter: str = FILTER_ALL,
    date_range: str = FILTER_ALL,
    search: Optional[str] = None,
    now: Optional[datetime] = None,
) -> List[Transaction]:
    """Filter by type, date range and search term; newest first."""
    type_filter = (type_filter or FILTER_ALL).upper()
    date_range = (date_range or FILTER_ALL).upper()
    if type_filter not in TYPE_FILTERS:
        raise ValidationError(f"Unknown type filter: {type_filter}")
    if date_range not in DATE_RANGES:
        raise ValidationError(f"Unknown date range: {date_range}")

    data = list(transactions)
    if type_filter != FILTER_ALL:
        data = [t for t in data if t.type == type_filter]

    if date_range != FILTER_ALL:
        today = _local_now(now).replace(hour=0, minute=0, second=0, microsecond=0)
        if date_range == RANGE_TODAY:
            start = today
        elif date_range == RANGE_WEEK:
            start = today - timedelta(days=7)
        else:
            start = datetime.combine(_month_before(today.date()), today.timetz())
        kept = []
        for t in data:
            try:
                if parse_timestamp(t.date) >= start:
                    kept.append(t)
            except ValueError:
                LOG.warning(f"Skipping transaction {t.id} with unparseable date {t.date!r}")
        data = kept

    if search:
        needle = search.lower()
        data = [
            t for t in data
            if needle in t.description.lower() or any(needle in i.name.lower() for i in (t.items or []))
        ]

    def _sort_key(t: Transaction) -> float:
        try:
            return parse_timestamp(t.date).timestamp()
        except ValueError:
            return float("-inf")

    return sorted(data, key=_sort_key, reverse=True)


def history_view(transactions: Sequence[Transaction], **filters: Any) -> Dict[str, Any]:
    rows = filter_history(transactions, **filters)
    payload: Dict[str, Any] = {"items": [t.as_dict() for t in rows], "count": len(rows)}
    payload.update(_totals(rows))
    return payload


# ---------- CSV ----------
def export_csv(transactions: Sequence[Transaction]) -> str:
    """CSV of the given (already filtered) transactions; expenses are negative."""
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(CSV_HEADERS)
    for t in transactions:
        items = "; ".join(f"{i.name} ({i.quantity})" for i in (t.items or []))
        amount = -t.amount if t.type == TRANSACTION_EXPENSE else t.amount
        writer.writerow([format_display_date(t.date), t.type, t.description, items, _format_amount(amount)])
    return buf.getvalue()


def export_filename(today: Optional[date] = None) -> str:
    return f"transactions-{(today or date.today()).isoformat()}.csv"
