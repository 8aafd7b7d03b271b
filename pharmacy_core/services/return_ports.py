from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Protocol

from pharmacy_core.models import PaymentMethod, ReturnReason, ReturnType, StockStatus


@dataclass(frozen=True)
class InventoryItemSnapshot:
    id: int
    name: str
    stock: int
    status: StockStatus | None = StockStatus.APPROVED
    unit_cost: Decimal = Decimal('0')
    unit_sale_price: Decimal | None = None


@dataclass(frozen=True)
class TransactionLine:
    line_id: int
    name: str
    quantity: int
    unit_price: Decimal
    stock_record_id: int | None = None


@dataclass(frozen=True)
class SaleRecord:
    id: int
    reference: str
    occurred_at: datetime
    lines: tuple[TransactionLine, ...]
    payment_method: PaymentMethod = PaymentMethod.CASH
    total_amount: Decimal = Decimal('0')
    customer_id: int | None = None
    customer_name: str | None = None


@dataclass(frozen=True)
class PurchaseRecord:
    id: int
    reference: str
    occurred_at: datetime
    lines: tuple[TransactionLine, ...]
    payment_method: PaymentMethod = PaymentMethod.CASH
    total_amount: Decimal = Decimal('0')
    supplier_id: int | None = None
    supplier_name: str | None = None


@dataclass(frozen=True)
class PartyBalance:
    id: int
    name: str
    balance: Decimal


@dataclass(frozen=True)
class ReturnLineRequest:
    line_id: int
    quantity: int
    reason: ReturnReason = ReturnReason.OTHER


@dataclass(frozen=True)
class ReturnRecordInput:
    return_type: ReturnType
    source_id: int
    line_id: int
    item_name: str
    quantity: int
    reason: ReturnReason
    refund_amount: Decimal
    processed_by: str = 'admin'
    created_at: datetime | None = None


class ReturnsGateway(Protocol):
    def record_return(self, *, record_id: int, items: list[ReturnLineRequest]) -> bool: ...


class InventoryGateway(Protocol):
    def fetch_inventory_snapshot(self) -> list[InventoryItemSnapshot]: ...

    def adjust_stock_quantity(self, stock_record_id: int, delta: int) -> None: ...


class TransactionLookup(Protocol):
    def get_sale(self, sale_id: int) -> SaleRecord | None: ...

    def get_purchase(self, purchase_id: int) -> PurchaseRecord | None: ...

    def find_sale_by_reference(self, reference: str) -> SaleRecord | None: ...

    def find_purchase_by_reference(self, reference: str) -> PurchaseRecord | None: ...

    def list_sales(self, *, date_from: date | None = None, date_to: date | None = None) -> list[SaleRecord]: ...

    def list_purchases(
        self,
        *,
        supplier_id: int | None = None,
        date_from: date | None = None,
        date_to: date | None = None,
    ) -> list[PurchaseRecord]: ...

    def get_customer(self, customer_id: int) -> PartyBalance | None: ...

    def get_supplier(self, supplier_id: int) -> PartyBalance | None: ...


class ReturnRecordStore(Protocol):
    def persist_return_record(self, record: ReturnRecordInput) -> int: ...


class TransactionCache(Protocol):
    def get_sale(self, sale_id: int) -> SaleRecord | None: ...

    def save_sale(self, sale: SaleRecord) -> None: ...

    def get_purchase(self, purchase_id: int) -> PurchaseRecord | None: ...

    def save_purchase(self, purchase: PurchaseRecord) -> None: ...

    def get_customer(self, customer_id: int) -> PartyBalance | None: ...

    def save_customer(self, customer: PartyBalance) -> None: ...

    def get_supplier(self, supplier_id: int) -> PartyBalance | None: ...

    def save_supplier(self, supplier: PartyBalance) -> None: ...


class InvalidationPublisher(Protocol):
    def publish(self, topic: str) -> None: ...
