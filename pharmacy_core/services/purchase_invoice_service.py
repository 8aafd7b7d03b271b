from __future__ import annotations

import re
from datetime import date
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from pharmacy_core.models import (
    PaymentMethod,
    Purchase,
    PurchaseItem,
    PurchaseStatus,
    StockRecord,
    StockStatus,
    Supplier,
)
from pharmacy_core.services.finance_service import record_stock_expense
from pharmacy_core.services.invoice_math_service import (
    AdditionalTax,
    InvoiceLine,
    compute_invoice_totals,
    compute_unit_diagnostics,
    to_decimal,
    totals_as_dict,
)

EXPIRY_RE = re.compile(r'^\d{4}-\d{2}-\d{2}$')
CENT = Decimal('0.01')
UNIT_PRICE_STEP = Decimal('0.0001')


def _money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def _format_packs(value: Decimal) -> str:
    if value == value.to_integral_value():
        return str(value.quantize(Decimal(1)))
    return str(value.normalize())


def _parse_expiry(line: InvoiceLine) -> date | None:
    if not line.expiry:
        return None
    label = line.item.strip() or 'item'
    if not EXPIRY_RE.match(line.expiry):
        raise ValueError(f'Use YYYY-MM-DD for the expiry of {label}')
    try:
        return date.fromisoformat(line.expiry)
    except ValueError as exc:
        raise ValueError(f'Invalid expiry date for {label}') from exc


def _is_savable(line: InvoiceLine) -> bool:
    return bool(line.item.strip()) and to_decimal(line.quantity) > 0 and to_decimal(line.buy_price_per_pack) >= 0


def _creates_stock(line: InvoiceLine) -> bool:
    return bool(line.item.strip()) and to_decimal(line.quantity) > 0 and to_decimal(line.units_per_pack) > 0


def validate_invoice(*, supplier_id: int | None, lines: list[InvoiceLine]) -> dict[int, date | None]:
    if not supplier_id:
        raise ValueError('Supplier is required')
    if not any(_is_savable(line) for line in lines):
        raise ValueError('Add at least one valid line item')
    return {index: _parse_expiry(line) for index, line in enumerate(lines)}


def _line_snapshot(line: InvoiceLine) -> dict:
    return {
        'item': line.item,
        'expiry': line.expiry,
        'quantity': str(to_decimal(line.quantity)),
        'units_per_pack': str(to_decimal(line.units_per_pack)),
        'buy_price_per_pack': str(to_decimal(line.buy_price_per_pack)),
        'sale_price_per_pack': None if line.sale_price_per_pack is None else str(to_decimal(line.sale_price_per_pack)),
        'discount_pct': str(to_decimal(line.discount_pct)),
        'sales_tax_mode': getattr(line.sales_tax_mode, 'value', line.sales_tax_mode),
        'sales_tax_value': str(to_decimal(line.sales_tax_value)),
        'line_taxes': [{'name': tax.name, 'amount': str(to_decimal(tax.amount))} for tax in line.line_taxes],
    }


def _tax_snapshot(tax: AdditionalTax) -> dict:
    return {
        'name': tax.name,
        'mode': getattr(tax.mode, 'value', tax.mode),
        'rate_pct': str(to_decimal(tax.rate_pct)),
        'fixed_amount': str(to_decimal(tax.fixed_amount)),
        'apply_on': getattr(tax.apply_on, 'value', tax.apply_on),
    }


def record_purchase_invoice(
    db: Session,
    *,
    supplier_id: int | None,
    invoice_number: str | None,
    invoice_date: date,
    lines: list[InvoiceLine],
    additional_taxes: list[AdditionalTax] | None = None,
    payment_method: PaymentMethod = PaymentMethod.CASH,
) -> Purchase:
    expiries = validate_invoice(supplier_id=supplier_id, lines=lines)
    supplier = db.get(Supplier, supplier_id)
    if not supplier:
        raise ValueError('Supplier not found')

    taxes = list(additional_taxes or [])
    totals = compute_invoice_totals(lines, taxes)
    invoice_number = (invoice_number or '').strip() or None

    purchase = Purchase(
        supplier_id=supplier.id,
        invoice_number=invoice_number,
        invoice_date=invoice_date,
        payment_method=payment_method,
        status=PurchaseStatus.PENDING,
        total_amount=_money(totals.net),
        line_snapshot=[_line_snapshot(line) for line in lines],
        additional_taxes_snapshot=[_tax_snapshot(tax) for tax in taxes],
        totals_snapshot=totals_as_dict(totals),
    )
    db.add(purchase)
    db.flush()

    for index, line in enumerate(lines):
        if not _creates_stock(line):
            continue
        packs = to_decimal(line.quantity)
        diagnostics = compute_unit_diagnostics(line)
        units = int(diagnostics.total_units)
        unit_buy_price = diagnostics.unit_buy_price.quantize(UNIT_PRICE_STEP, rounding=ROUND_HALF_UP)
        stock = StockRecord(
            name=line.item.strip(),
            status=StockStatus.PENDING,
            packs=packs,
            pack_quantity=int(to_decimal(line.units_per_pack)),
            total_units=units,
            buy_price_per_pack=to_decimal(line.buy_price_per_pack),
            sale_price_per_pack=None if line.sale_price_per_pack is None else to_decimal(line.sale_price_per_pack),
            unit_buy_price=unit_buy_price,
            unit_sale_price=(
                None
                if line.sale_price_per_pack is None
                else diagnostics.unit_sale_price.quantize(UNIT_PRICE_STEP, rounding=ROUND_HALF_UP)
            ),
            expiry_date=expiries[index],
            invoice_number=invoice_number,
            supplier_id=supplier.id,
            purchase_id=purchase.id,
        )
        db.add(stock)
        db.flush()
        db.add(
            PurchaseItem(
                purchase_id=purchase.id,
                stock_record_id=stock.id,
                name=stock.name,
                quantity=units,
                unit_price=unit_buy_price,
            )
        )

    db.flush()
    return purchase


def approve_purchase(db: Session, *, purchase_id: int) -> Purchase:
    purchase = db.get(Purchase, purchase_id)
    if not purchase:
        raise ValueError('Purchase not found')
    if purchase.status == PurchaseStatus.APPROVED:
        raise ValueError('Purchase is already approved')

    supplier = db.get(Supplier, purchase.supplier_id)
    supplier_name = supplier.name if supplier else 'Unknown Supplier'

    purchase.status = PurchaseStatus.APPROVED
    stocks = db.execute(
        select(StockRecord).where(StockRecord.purchase_id == purchase.id).order_by(StockRecord.id.asc())
    ).scalars().all()
    for stock in stocks:
        if stock.status == StockStatus.PENDING:
            stock.status = StockStatus.APPROVED
    db.flush()

    for stock in stocks:
        packs = Decimal(stock.packs)
        record_stock_expense(
            db,
            stock,
            packs=packs,
            description=f'Purchase {stock.name} x{_format_packs(packs)} packs from {supplier_name}',
        )

    if purchase.payment_method == PaymentMethod.CREDIT and supplier is not None:
        supplier.balance = Decimal(supplier.balance) + Decimal(purchase.total_amount)

    db.flush()
    return purchase


def restock_stock_record(db: Session, *, stock_record_id: int, packs: Decimal | int | str) -> StockRecord:
    stock = db.get(StockRecord, stock_record_id)
    if not stock:
        raise ValueError('Stock record not found')
    if stock.status == StockStatus.PENDING:
        raise ValueError('Pending stock records cannot be restocked until approved')
    added_packs = to_decimal(packs)
    if added_packs <= 0:
        raise ValueError('Restock packs must be greater than zero')

    stock.packs = Decimal(stock.packs) + added_packs
    stock.total_units += int(added_packs * stock.pack_quantity)
    db.flush()

    record_stock_expense(
        db,
        stock,
        packs=added_packs,
        description=f'Restock {stock.name} x{_format_packs(added_packs)} packs',
    )
    return stock
