from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.orm import Session, selectinload, sessionmaker

from pharmacy_core.db import SessionLocal
from pharmacy_core.models import (
    Customer,
    Purchase,
    PurchaseStatus,
    ReturnRecord,
    Sale,
    StockRecord,
    Supplier,
)
from pharmacy_core.services.return_ports import (
    InventoryItemSnapshot,
    PartyBalance,
    PurchaseRecord,
    ReturnRecordInput,
    SaleRecord,
    TransactionLine,
)

logger = logging.getLogger(__name__)


def _day_start(value: date) -> datetime:
    return datetime.combine(value, time.min, tzinfo=timezone.utc)


def sale_to_record(sale: Sale) -> SaleRecord:
    return SaleRecord(
        id=sale.id,
        reference=sale.bill_no,
        occurred_at=sale.sold_at,
        lines=tuple(
            TransactionLine(
                line_id=item.id,
                name=item.name,
                quantity=item.quantity,
                unit_price=Decimal(item.unit_price),
                stock_record_id=item.stock_record_id,
            )
            for item in sale.items
        ),
        payment_method=sale.payment_method,
        total_amount=Decimal(sale.total_amount),
        customer_id=sale.customer_id,
        customer_name=sale.customer_name,
    )


def purchase_to_record(purchase: Purchase, supplier_name: str | None = None) -> PurchaseRecord:
    return PurchaseRecord(
        id=purchase.id,
        reference=purchase.invoice_number or str(purchase.id),
        occurred_at=datetime.combine(purchase.invoice_date, time.min, tzinfo=timezone.utc),
        lines=tuple(
            TransactionLine(
                line_id=item.id,
                name=item.name,
                quantity=item.quantity,
                unit_price=Decimal(item.unit_price),
                stock_record_id=item.stock_record_id,
            )
            for item in purchase.items
        ),
        payment_method=purchase.payment_method,
        total_amount=Decimal(purchase.total_amount),
        supplier_id=purchase.supplier_id,
        supplier_name=supplier_name,
    )


def stock_to_snapshot(record: StockRecord) -> InventoryItemSnapshot:
    return InventoryItemSnapshot(
        id=record.id,
        name=record.name,
        stock=record.total_units,
        status=record.status,
        unit_cost=Decimal(record.unit_buy_price),
        unit_sale_price=Decimal(record.unit_sale_price) if record.unit_sale_price is not None else None,
    )


class SqlInventoryGateway:
    def __init__(self, session_factory: sessionmaker[Session] = SessionLocal) -> None:
        self.session_factory = session_factory

    def fetch_inventory_snapshot(self) -> list[InventoryItemSnapshot]:
        with self.session_factory() as db:
            rows = db.execute(select(StockRecord).order_by(StockRecord.id.asc())).scalars().all()
            return [stock_to_snapshot(row) for row in rows]

    def adjust_stock_quantity(self, stock_record_id: int, delta: int) -> None:
        with self.session_factory() as db:
            record = db.get(StockRecord, stock_record_id, with_for_update=True)
            if record is None:
                raise ValueError('Stock record not found')
            next_units = record.total_units + int(delta)
            if next_units < 0:
                logger.warning(
                    'Stock record %s would go negative (%s %+d); clamped to 0',
                    stock_record_id,
                    record.total_units,
                    delta,
                )
            record.total_units = max(0, next_units)
            db.commit()


class SqlTransactionLookup:
    def __init__(self, session_factory: sessionmaker[Session] = SessionLocal) -> None:
        self.session_factory = session_factory

    def _sale_query(self):
        return select(Sale).options(selectinload(Sale.items))

    def _purchase_query(self):
        return (
            select(Purchase, Supplier.name)
            .join(Supplier, Supplier.id == Purchase.supplier_id)
            .options(selectinload(Purchase.items))
        )

    def get_sale(self, sale_id: int) -> SaleRecord | None:
        with self.session_factory() as db:
            sale = db.execute(self._sale_query().where(Sale.id == sale_id)).scalar_one_or_none()
            return sale_to_record(sale) if sale else None

    def get_purchase(self, purchase_id: int) -> PurchaseRecord | None:
        with self.session_factory() as db:
            row = db.execute(self._purchase_query().where(Purchase.id == purchase_id)).one_or_none()
            if row is None:
                return None
            purchase, supplier_name = row
            return purchase_to_record(purchase, supplier_name)

    def find_sale_by_reference(self, reference: str) -> SaleRecord | None:
        ref = reference.strip()
        if not ref:
            return None
        with self.session_factory() as db:
            sale = db.execute(self._sale_query().where(Sale.bill_no == ref)).scalar_one_or_none()
            if sale is None and ref.isdigit():
                sale = db.execute(self._sale_query().where(Sale.id == int(ref))).scalar_one_or_none()
            if sale is None:
                sale = db.execute(
                    self._sale_query()
                    .where(func.lower(Sale.bill_no).contains(ref.lower(), autoescape=True))
                    .order_by(Sale.sold_at.desc(), Sale.id.desc())
                    .limit(1)
                ).scalar_one_or_none()
            return sale_to_record(sale) if sale else None

    def find_purchase_by_reference(self, reference: str) -> PurchaseRecord | None:
        ref = reference.strip()
        if not ref:
            return None
        with self.session_factory() as db:
            row = db.execute(self._purchase_query().where(Purchase.invoice_number == ref)).one_or_none()
            if row is None and ref.isdigit():
                row = db.execute(self._purchase_query().where(Purchase.id == int(ref))).one_or_none()
            if row is None:
                row = db.execute(
                    self._purchase_query()
                    .where(func.lower(Purchase.invoice_number).contains(ref.lower(), autoescape=True))
                    .order_by(Purchase.invoice_date.desc(), Purchase.id.desc())
                    .limit(1)
                ).one_or_none()
            if row is None:
                return None
            purchase, supplier_name = row
            return purchase_to_record(purchase, supplier_name)

    def list_sales(self, *, date_from: date | None = None, date_to: date | None = None) -> list[SaleRecord]:
        query = self._sale_query().order_by(Sale.sold_at.desc(), Sale.id.desc())
        if date_from:
            query = query.where(Sale.sold_at >= _day_start(date_from))
        if date_to:
            query = query.where(Sale.sold_at < _day_start(date_to + timedelta(days=1)))
        with self.session_factory() as db:
            return [sale_to_record(sale) for sale in db.execute(query).scalars().all()]

    def list_purchases(
        self,
        *,
        supplier_id: int | None = None,
        date_from: date | None = None,
        date_to: date | None = None,
    ) -> list[PurchaseRecord]:
        query = (
            self._purchase_query()
            .where(Purchase.status == PurchaseStatus.APPROVED)
            .order_by(Purchase.invoice_date.desc(), Purchase.id.desc())
        )
        if supplier_id is not None:
            query = query.where(Purchase.supplier_id == supplier_id)
        if date_from:
            query = query.where(Purchase.invoice_date >= date_from)
        if date_to:
            query = query.where(Purchase.invoice_date <= date_to)
        with self.session_factory() as db:
            return [purchase_to_record(purchase, supplier_name) for purchase, supplier_name in db.execute(query).all()]

    def get_customer(self, customer_id: int) -> PartyBalance | None:
        with self.session_factory() as db:
            customer = db.get(Customer, customer_id)
            if customer is None:
                return None
            return PartyBalance(id=customer.id, name=customer.name, balance=Decimal(customer.balance))

    def get_supplier(self, supplier_id: int) -> PartyBalance | None:
        with self.session_factory() as db:
            supplier = db.get(Supplier, supplier_id)
            if supplier is None:
                return None
            return PartyBalance(id=supplier.id, name=supplier.name, balance=Decimal(supplier.balance))


class SqlReturnRecordStore:
    def __init__(self, session_factory: sessionmaker[Session] = SessionLocal) -> None:
        self.session_factory = session_factory

    def persist_return_record(self, record: ReturnRecordInput) -> int:
        row = ReturnRecord(
            return_type=record.return_type,
            source_id=record.source_id,
            line_id=record.line_id,
            item_name=record.item_name,
            quantity=record.quantity,
            reason=record.reason,
            refund_amount=record.refund_amount,
            processed_by=record.processed_by,
        )
        if record.created_at is not None:
            row.created_at = record.created_at
        with self.session_factory() as db:
            db.add(row)
            db.commit()
            return row.id
