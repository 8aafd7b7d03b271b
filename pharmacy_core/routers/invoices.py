from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from pharmacy_core.db import get_db
from pharmacy_core.dependencies import get_invalidation_bus
from pharmacy_core.schemas import InvoiceIn, InvoicePreviewIn
from pharmacy_core.services.invalidation_service import InvalidationBus, InvalidationTopic
from pharmacy_core.services.invoice_math_service import (
    compute_invoice_totals,
    compute_unit_diagnostics,
    totals_as_dict,
)
from pharmacy_core.services.purchase_invoice_service import approve_purchase, record_purchase_invoice

router = APIRouter(prefix='/invoices', tags=['invoices'])


def _status_for(exc: ValueError) -> int:
    return 404 if 'not found' in str(exc).lower() else 400


@router.post('/preview')
def preview_invoice(payload: InvoicePreviewIn):
    lines = payload.invoice_lines()
    totals = compute_invoice_totals(lines, payload.invoice_taxes())
    rows = []
    for line, line_totals in zip(lines, totals.lines):
        diagnostics = compute_unit_diagnostics(line)
        rows.append(
            {
                'item': line.item,
                'base': str(line_totals.base),
                'discount': str(line_totals.discount),
                'taxable': str(line_totals.taxable),
                'line_taxes': str(line_totals.line_taxes),
                'sales_tax': str(line_totals.sales_tax),
                'total': str(line_totals.total),
                'total_units': str(diagnostics.total_units),
                'unit_buy_price': str(diagnostics.unit_buy_price),
                'unit_sale_price': str(diagnostics.unit_sale_price),
            }
        )
    return {'totals': totals_as_dict(totals), 'lines': rows}


@router.post('', status_code=201)
def create_invoice(payload: InvoiceIn, db: Session = Depends(get_db)):
    try:
        purchase = record_purchase_invoice(
            db,
            supplier_id=payload.supplier_id,
            invoice_number=payload.invoice_number,
            invoice_date=payload.invoice_date,
            lines=payload.invoice_lines(),
            additional_taxes=payload.invoice_taxes(),
            payment_method=payload.payment_method,
        )
    except ValueError as exc:
        db.rollback()
        raise HTTPException(status_code=_status_for(exc), detail=str(exc)) from exc
    db.commit()
    return {
        'id': purchase.id,
        'status': purchase.status.value,
        'invoice_number': purchase.invoice_number,
        'total_amount': str(purchase.total_amount),
        'totals': purchase.totals_snapshot,
    }


@router.post('/{purchase_id}/approve')
def approve_invoice(
    purchase_id: int,
    db: Session = Depends(get_db),
    bus: InvalidationBus = Depends(get_invalidation_bus),
):
    try:
        purchase = approve_purchase(db, purchase_id=purchase_id)
    except ValueError as exc:
        db.rollback()
        raise HTTPException(status_code=_status_for(exc), detail=str(exc)) from exc
    db.commit()
    bus.publish(InvalidationTopic.INVENTORY_CHANGED)
    bus.publish(InvalidationTopic.LEDGER_CHANGED)
    return {'id': purchase.id, 'status': purchase.status.value, 'total_amount': str(purchase.total_amount)}
