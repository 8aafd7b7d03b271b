from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Date,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    pass


class StockStatus(str, Enum):
    APPROVED = 'approved'
    PENDING = 'pending'


class PaymentMethod(str, Enum):
    CASH = 'cash'
    CREDIT = 'credit'


class PurchaseStatus(str, Enum):
    PENDING = 'pending'
    APPROVED = 'approved'


class ReturnType(str, Enum):
    CUSTOMER = 'customer'
    SUPPLIER = 'supplier'


class ReturnReason(str, Enum):
    EXPIRED = 'expired'
    WRONG_ITEM = 'wrong-item'
    DAMAGED = 'damaged'
    OTHER = 'other'


class FinanceEntryType(str, Enum):
    INCOME = 'income'
    EXPENSE = 'expense'


class TaxMode(str, Enum):
    PERCENT = 'percent'
    RUPEE = 'rupee'


class TaxApplyOn(str, Enum):
    GROSS = 'gross'
    AFTER_DISCOUNT = 'afterDiscount'
    POST_LINE_TAXES = 'postLineTaxes'


class Supplier(Base):
    __tablename__ = 'suppliers'

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    balance: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal('0'), server_default='0')
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Customer(Base):
    __tablename__ = 'customers'

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    balance: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal('0'), server_default='0')
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Purchase(Base):
    __tablename__ = 'purchases'

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    supplier_id: Mapped[int] = mapped_column(ForeignKey('suppliers.id'), nullable=False)
    invoice_number: Mapped[str | None] = mapped_column(String(64))
    invoice_date: Mapped[date] = mapped_column(Date, nullable=False)
    payment_method: Mapped[PaymentMethod] = mapped_column(
        SQLEnum(PaymentMethod, name='payment_method'), nullable=False, default=PaymentMethod.CASH
    )
    status: Mapped[PurchaseStatus] = mapped_column(
        SQLEnum(PurchaseStatus, name='purchase_status'), nullable=False, default=PurchaseStatus.PENDING
    )
    total_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal('0'))
    line_snapshot: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    additional_taxes_snapshot: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    totals_snapshot: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())

    items: Mapped[list[PurchaseItem]] = relationship(back_populates='purchase', order_by='PurchaseItem.id')


class StockRecord(Base):
    __tablename__ = 'stock_records'
    __table_args__ = (CheckConstraint('total_units >= 0', name='ck_stock_records_units_non_negative'),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[StockStatus] = mapped_column(
        SQLEnum(StockStatus, name='stock_status'), nullable=False, default=StockStatus.APPROVED
    )
    packs: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal('0'))
    pack_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    total_units: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    buy_price_per_pack: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal('0'))
    sale_price_per_pack: Mapped[Decimal | None] = mapped_column(Numeric(12, 2))
    unit_buy_price: Mapped[Decimal] = mapped_column(Numeric(12, 4), nullable=False, default=Decimal('0'))
    unit_sale_price: Mapped[Decimal | None] = mapped_column(Numeric(12, 4))
    expiry_date: Mapped[date | None] = mapped_column(Date)
    invoice_number: Mapped[str | None] = mapped_column(String(64))
    supplier_id: Mapped[int | None] = mapped_column(ForeignKey('suppliers.id'))
    purchase_id: Mapped[int | None] = mapped_column(ForeignKey('purchases.id'))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class PurchaseItem(Base):
    __tablename__ = 'purchase_items'

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    purchase_id: Mapped[int] = mapped_column(ForeignKey('purchases.id', ondelete='CASCADE'), nullable=False)
    stock_record_id: Mapped[int | None] = mapped_column(ForeignKey('stock_records.id'))
    name: Mapped[str] = mapped_column(Text, nullable=False)
    # Units, not packs.
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(12, 4), nullable=False)

    purchase: Mapped[Purchase] = relationship(back_populates='items')


class Sale(Base):
    __tablename__ = 'sales'

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    bill_no: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    customer_id: Mapped[int | None] = mapped_column(ForeignKey('customers.id'))
    customer_name: Mapped[str | None] = mapped_column(Text)
    payment_method: Mapped[PaymentMethod] = mapped_column(
        SQLEnum(PaymentMethod, name='payment_method'), nullable=False, default=PaymentMethod.CASH
    )
    total_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal('0'))
    sold_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())

    items: Mapped[list[SaleItem]] = relationship(back_populates='sale', order_by='SaleItem.id')


class SaleItem(Base):
    __tablename__ = 'sale_items'

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    sale_id: Mapped[int] = mapped_column(ForeignKey('sales.id', ondelete='CASCADE'), nullable=False)
    stock_record_id: Mapped[int | None] = mapped_column(ForeignKey('stock_records.id'))
    name: Mapped[str] = mapped_column(Text, nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    sale: Mapped[Sale] = relationship(back_populates='items')


class ReturnRecord(Base):
    __tablename__ = 'return_records'

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    return_type: Mapped[ReturnType] = mapped_column(SQLEnum(ReturnType, name='return_type'), nullable=False)
    source_id: Mapped[int] = mapped_column(Integer, nullable=False)
    line_id: Mapped[int] = mapped_column(Integer, nullable=False)
    item_name: Mapped[str] = mapped_column(Text, nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    reason: Mapped[ReturnReason] = mapped_column(SQLEnum(ReturnReason, name='return_reason'), nullable=False)
    refund_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    processed_by: Mapped[str] = mapped_column(String(64), nullable=False, default='admin')
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class FinanceEntry(Base):
    __tablename__ = 'finance_entries'

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    entry_type: Mapped[FinanceEntryType] = mapped_column(
        SQLEnum(FinanceEntryType, name='finance_entry_type'), nullable=False, default=FinanceEntryType.EXPENSE
    )
    category: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    entry_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    reference: Mapped[str | None] = mapped_column(Text)
