from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone

from pharmacy_core.models import ReturnReason
from pharmacy_core.services.refund_math_service import RefundBreakdown, bound_return_quantity, compute_refund
from pharmacy_core.services.return_ports import (
    PurchaseRecord,
    ReturnLineRequest,
    SaleRecord,
    TransactionCache,
    TransactionLookup,
)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _contains(haystack: object, needle: str) -> bool:
    return needle in f'{haystack or ""}'.lower()


def _in_range(value: datetime, date_from: date | None, date_to: date | None) -> bool:
    day = _as_utc(value).date()
    if date_from and day < date_from:
        return False
    if date_to and day > date_to:
        return False
    return True


def within_return_window(occurred_at: datetime, *, now: datetime | None = None, days: int = 14) -> bool:
    current = _as_utc(now or datetime.now(timezone.utc))
    return current - _as_utc(occurred_at) <= timedelta(days=days)


def search_sales(
    lookup: TransactionLookup,
    *,
    reference: str | None = None,
    customer_query: str | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    cache: TransactionCache | None = None,
) -> list[SaleRecord]:
    query = (reference or '').strip()
    results: list[SaleRecord] = []
    if query:
        direct = lookup.find_sale_by_reference(query)
        if direct is not None:
            results = [direct]
    if not results:
        results = lookup.list_sales()
        if query:
            needle = query.lower()
            results = [sale for sale in results if _contains(sale.reference, needle) or _contains(sale.id, needle)]

    customer = (customer_query or '').strip().lower()
    if customer:
        results = [
            sale for sale in results if _contains(sale.customer_name, customer) or _contains(sale.customer_id, customer)
        ]
    # A specific bill number overrides the date filter.
    if not query and (date_from or date_to):
        results = [sale for sale in results if _in_range(sale.occurred_at, date_from, date_to)]

    if cache is not None:
        for sale in results:
            _remember_sale(lookup, cache, sale)
    return results


def search_purchases(
    lookup: TransactionLookup,
    *,
    supplier_id: int | None = None,
    reference: str | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    cache: TransactionCache | None = None,
) -> list[PurchaseRecord]:
    query = (reference or '').strip()
    if query:
        direct = lookup.find_purchase_by_reference(query)
        results = [direct] if direct is not None else []
        if supplier_id is not None:
            results = [purchase for purchase in results if purchase.supplier_id == supplier_id]
    else:
        results = lookup.list_purchases(supplier_id=supplier_id, date_from=date_from, date_to=date_to)

    if cache is not None:
        for purchase in results:
            _remember_purchase(lookup, cache, purchase)
    return results


def _remember_sale(lookup: TransactionLookup, cache: TransactionCache, sale: SaleRecord) -> None:
    cache.save_sale(sale)
    if sale.customer_id is not None and cache.get_customer(sale.customer_id) is None:
        party = lookup.get_customer(sale.customer_id)
        if party is not None:
            cache.save_customer(party)


def _remember_purchase(lookup: TransactionLookup, cache: TransactionCache, purchase: PurchaseRecord) -> None:
    cache.save_purchase(purchase)
    if purchase.supplier_id is not None and cache.get_supplier(purchase.supplier_id) is None:
        party = lookup.get_supplier(purchase.supplier_id)
        if party is not None:
            cache.save_supplier(party)


def load_sale(lookup: TransactionLookup, cache: TransactionCache, sale_id: int) -> SaleRecord:
    """Return the cached sale snapshot, looking it up (and caching it) on a miss."""
    sale = cache.get_sale(sale_id)
    if sale is not None:
        return sale
    sale = lookup.get_sale(sale_id)
    if sale is None:
        raise ValueError('Sale not found')
    _remember_sale(lookup, cache, sale)
    return sale


def load_purchase(lookup: TransactionLookup, cache: TransactionCache, purchase_id: int) -> PurchaseRecord:
    purchase = cache.get_purchase(purchase_id)
    if purchase is not None:
        return purchase
    purchase = lookup.get_purchase(purchase_id)
    if purchase is None:
        raise ValueError('Purchase not found')
    _remember_purchase(lookup, cache, purchase)
    return purchase


@dataclass
class LineChoice:
    quantity: int = 0
    reason: ReturnReason = ReturnReason.OTHER


class ReturnSelection:
    """Per-line return quantities chosen against one sale or purchase."""

    def __init__(self, record: SaleRecord | PurchaseRecord) -> None:
        self.record = record
        self._lines = {line.line_id: line for line in record.lines}
        self._choices: dict[int, LineChoice] = {}

    def select(self, line_id: int, quantity: int | None, reason: ReturnReason | str = ReturnReason.OTHER) -> int:
        line = self._lines.get(line_id)
        if line is None:
            raise ValueError(f'Line {line_id} is not part of record {self.record.id}')
        bounded = bound_return_quantity(quantity, line.quantity)
        self._choices[line_id] = LineChoice(quantity=bounded, reason=ReturnReason(reason))
        return bounded

    def clear(self) -> None:
        self._choices.clear()

    def requests(self) -> list[ReturnLineRequest]:
        return [
            ReturnLineRequest(line_id=line_id, quantity=choice.quantity, reason=choice.reason)
            for line_id, choice in self._choices.items()
            if choice.quantity > 0
        ]

    def refund(self) -> RefundBreakdown:
        return compute_refund(self.record.lines, self.requests())

    def can_process(self) -> bool:
        return self.refund().can_process
