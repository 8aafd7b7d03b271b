from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload, sessionmaker

from pharmacy_core.db import SessionLocal
from pharmacy_core.models import (
    Customer,
    PaymentMethod,
    Purchase,
    Sale,
    StockRecord,
    StockStatus,
    Supplier,
)
from pharmacy_core.services.invoice_math_service import ZERO
from pharmacy_core.services.return_ports import ReturnLineRequest

logger = logging.getLogger(__name__)


def apply_sale_return(db: Session, *, sale_id: int, items: list[ReturnLineRequest]) -> Decimal:
    """Take returned units back against a sale in the caller's transaction and return the refund."""
    sale = db.execute(select(Sale).options(selectinload(Sale.items)).where(Sale.id == sale_id)).scalar_one_or_none()
    if not sale:
        raise ValueError('Sale not found')

    items_by_id = {item.id: item for item in sale.items}
    refund = ZERO
    for request in items:
        sale_item = items_by_id.get(request.line_id)
        if sale_item is None:
            continue
        qty = min(int(request.quantity), sale_item.quantity)
        if qty <= 0:
            continue

        if sale_item.stock_record_id is not None:
            stock = db.get(StockRecord, sale_item.stock_record_id)
            if stock is not None:
                stock.total_units += qty
            else:
                logger.warning('Sale item %s references missing stock record %s', sale_item.id, sale_item.stock_record_id)

        sale_item.quantity -= qty
        refund += Decimal(sale_item.unit_price) * qty

    sale.total_amount = max(ZERO, Decimal(sale.total_amount) - refund)

    if sale.payment_method == PaymentMethod.CREDIT and sale.customer_id is not None:
        customer = db.get(Customer, sale.customer_id)
        if customer is not None:
            customer.balance = max(ZERO, Decimal(customer.balance) - refund)

    db.flush()
    return refund


def _latest_approved_by_name(db: Session, name: str) -> StockRecord | None:
    return db.execute(
        select(StockRecord)
        .where(StockRecord.name == name, StockRecord.status == StockStatus.APPROVED)
        .order_by(StockRecord.created_at.desc(), StockRecord.id.desc())
        .limit(1)
    ).scalar_one_or_none()


def apply_purchase_return(db: Session, *, purchase_id: int, items: list[ReturnLineRequest]) -> Decimal:
    purchase = db.execute(
        select(Purchase).options(selectinload(Purchase.items)).where(Purchase.id == purchase_id)
    ).scalar_one_or_none()
    if not purchase:
        raise ValueError('Purchase not found')

    items_by_id = {item.id: item for item in purchase.items}
    refund = ZERO
    for request in items:
        qty = int(request.quantity)
        if qty <= 0:
            continue
        purchase_item = items_by_id.get(request.line_id)
        if purchase_item is None:
            continue

        refund += Decimal(purchase_item.unit_price) * qty
        purchase_item.quantity = max(0, purchase_item.quantity - qty)

        if purchase_item.stock_record_id is not None:
            stock = db.get(StockRecord, purchase_item.stock_record_id)
        else:
            stock = _latest_approved_by_name(db, purchase_item.name)
        if stock is not None:
            stock.total_units = max(0, stock.total_units - qty)

    purchase.total_amount = max(ZERO, Decimal(purchase.total_amount) - refund)

    supplier = db.get(Supplier, purchase.supplier_id)
    if supplier is not None:
        supplier.balance = max(ZERO, Decimal(supplier.balance) - refund)

    db.flush()
    return refund


class SqlSaleReturnsGateway:
    def __init__(self, session_factory: sessionmaker[Session] = SessionLocal) -> None:
        self.session_factory = session_factory

    def record_return(self, *, record_id: int, items: list[ReturnLineRequest]) -> bool:
        with self.session_factory() as db:
            apply_sale_return(db, sale_id=record_id, items=items)
            db.commit()
        return True


class SqlPurchaseReturnsGateway:
    def __init__(self, session_factory: sessionmaker[Session] = SessionLocal) -> None:
        self.session_factory = session_factory

    def record_return(self, *, record_id: int, items: list[ReturnLineRequest]) -> bool:
        with self.session_factory() as db:
            apply_purchase_return(db, purchase_id=record_id, items=items)
            db.commit()
        return True
