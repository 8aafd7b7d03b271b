from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from pharmacy_core.config import settings
from pharmacy_core.db import get_db
from pharmacy_core.dependencies import (
    get_customer_return_collaborators,
    get_invalidation_bus,
    get_supplier_return_collaborators,
    get_transaction_cache,
    get_transaction_lookup,
)
from pharmacy_core.models import ReturnType
from pharmacy_core.schemas import CustomerReturnIn, ServerReturnIn, SupplierReturnIn
from pharmacy_core.services.customer_return_service import process_customer_return
from pharmacy_core.services.invalidation_service import InvalidationBus, InvalidationTopic
from pharmacy_core.services.outcomes import StepOutcome, is_handled
from pharmacy_core.services.reconciliation_common import ReturnCollaborators, ReturnResult
from pharmacy_core.services.return_history_service import delete_return_record, list_returns
from pharmacy_core.services.return_ports import PurchaseRecord, SaleRecord, TransactionCache, TransactionLookup
from pharmacy_core.services.return_selection_service import (
    ReturnSelection,
    load_purchase,
    load_sale,
    search_purchases,
    search_sales,
    within_return_window,
)
from pharmacy_core.services.server_return_service import apply_purchase_return, apply_sale_return
from pharmacy_core.services.supplier_return_service import process_supplier_return

router = APIRouter(prefix='/returns', tags=['returns'])


def _status_for(exc: ValueError) -> int:
    return 404 if 'not found' in str(exc).lower() else 400


def _lines_payload(record: SaleRecord | PurchaseRecord) -> list[dict]:
    return [
        {
            'line_id': line.line_id,
            'name': line.name,
            'quantity': line.quantity,
            'unit_price': str(line.unit_price),
            'stock_record_id': line.stock_record_id,
        }
        for line in record.lines
    ]


def _sale_payload(sale: SaleRecord) -> dict:
    return {
        'id': sale.id,
        'reference': sale.reference,
        'occurred_at': sale.occurred_at.isoformat(),
        'payment_method': sale.payment_method.value,
        'total_amount': str(sale.total_amount),
        'customer_id': sale.customer_id,
        'customer_name': sale.customer_name,
        'within_return_window': within_return_window(sale.occurred_at, days=settings.return_window_days),
        'lines': _lines_payload(sale),
    }


def _purchase_payload(purchase: PurchaseRecord) -> dict:
    return {
        'id': purchase.id,
        'reference': purchase.reference,
        'occurred_at': purchase.occurred_at.isoformat(),
        'payment_method': purchase.payment_method.value,
        'total_amount': str(purchase.total_amount),
        'supplier_id': purchase.supplier_id,
        'supplier_name': purchase.supplier_name,
        'lines': _lines_payload(purchase),
    }


def _outcome_payload(outcome: StepOutcome) -> dict:
    if is_handled(outcome):
        return {'status': 'handled', 'detail': outcome.detail}
    return {'status': 'failed', 'detail': outcome.reason}


def _result_payload(result: ReturnResult) -> dict:
    return {
        'return_type': result.return_type.value,
        'source_id': result.source_id,
        'refund': str(result.refund),
        'server': _outcome_payload(result.server_outcome),
        'adjustments': [
            {
                'line_id': row.line_id,
                'stock_record_id': row.stock_record_id,
                'delta': row.delta,
                **_outcome_payload(row.outcome),
            }
            for row in result.adjustments
        ],
        'return_record_ids': list(result.return_record_ids),
        'cache': _outcome_payload(result.cache_outcome),
    }


def _selection(record: SaleRecord | PurchaseRecord, payload: ServerReturnIn) -> ReturnSelection:
    selection = ReturnSelection(record)
    for item in payload.items:
        selection.select(item.line_id, item.quantity, item.reason)
    if not selection.can_process():
        raise ValueError('Select at least one item with a return quantity')
    return selection


@router.get('/sales')
def find_sales(
    reference: str | None = None,
    customer: str | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    lookup: TransactionLookup = Depends(get_transaction_lookup),
    cache: TransactionCache = Depends(get_transaction_cache),
):
    sales = search_sales(
        lookup,
        reference=reference,
        customer_query=customer,
        date_from=date_from,
        date_to=date_to,
        cache=cache,
    )
    return [_sale_payload(sale) for sale in sales]


@router.get('/purchases')
def find_purchases(
    supplier_id: int | None = None,
    reference: str | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    lookup: TransactionLookup = Depends(get_transaction_lookup),
    cache: TransactionCache = Depends(get_transaction_cache),
):
    purchases = search_purchases(
        lookup,
        supplier_id=supplier_id,
        reference=reference,
        date_from=date_from,
        date_to=date_to,
        cache=cache,
    )
    return [_purchase_payload(purchase) for purchase in purchases]


@router.post('/customer')
def customer_return(
    payload: CustomerReturnIn,
    lookup: TransactionLookup = Depends(get_transaction_lookup),
    collaborators: ReturnCollaborators = Depends(get_customer_return_collaborators),
):
    try:
        sale = load_sale(lookup, collaborators.cache, payload.sale_id)
        selection = _selection(sale, payload)
        result = process_customer_return(
            collaborators,
            sale=sale,
            items=selection.requests(),
            processed_by=payload.processed_by,
        )
    except ValueError as exc:
        raise HTTPException(status_code=_status_for(exc), detail=str(exc)) from exc
    return _result_payload(result)


@router.post('/supplier')
def supplier_return(
    payload: SupplierReturnIn,
    lookup: TransactionLookup = Depends(get_transaction_lookup),
    collaborators: ReturnCollaborators = Depends(get_supplier_return_collaborators),
):
    try:
        purchase = load_purchase(lookup, collaborators.cache, payload.purchase_id)
        selection = _selection(purchase, payload)
        result = process_supplier_return(
            collaborators,
            purchase=purchase,
            items=selection.requests(),
            processed_by=payload.processed_by,
        )
    except ValueError as exc:
        raise HTTPException(status_code=_status_for(exc), detail=str(exc)) from exc
    return _result_payload(result)


@router.post('/server/sales/{sale_id}')
def server_sale_return(
    sale_id: int,
    payload: ServerReturnIn,
    db: Session = Depends(get_db),
    bus: InvalidationBus = Depends(get_invalidation_bus),
):
    try:
        refund = apply_sale_return(db, sale_id=sale_id, items=payload.requests())
    except ValueError as exc:
        db.rollback()
        raise HTTPException(status_code=_status_for(exc), detail=str(exc)) from exc
    db.commit()
    bus.publish(InvalidationTopic.INVENTORY_CHANGED)
    bus.publish(InvalidationTopic.LEDGER_CHANGED)
    return {'sale_id': sale_id, 'refund': str(refund)}


@router.post('/server/purchases/{purchase_id}')
def server_purchase_return(
    purchase_id: int,
    payload: ServerReturnIn,
    db: Session = Depends(get_db),
    bus: InvalidationBus = Depends(get_invalidation_bus),
):
    try:
        refund = apply_purchase_return(db, purchase_id=purchase_id, items=payload.requests())
    except ValueError as exc:
        db.rollback()
        raise HTTPException(status_code=_status_for(exc), detail=str(exc)) from exc
    db.commit()
    bus.publish(InvalidationTopic.INVENTORY_CHANGED)
    bus.publish(InvalidationTopic.LEDGER_CHANGED)
    return {'purchase_id': purchase_id, 'refund': str(refund)}


@router.get('/history')
def return_history(
    return_type: ReturnType | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    q: str | None = None,
    db: Session = Depends(get_db),
):
    rows = list_returns(db, return_type=return_type, date_from=date_from, date_to=date_to, query=q)
    for row in rows:
        row['refund_amount'] = str(row['refund_amount'])
        row['created_at'] = row['created_at'].isoformat() if row['created_at'] else None
    return rows


@router.delete('/{return_id}', status_code=204)
def delete_return(
    return_id: int,
    db: Session = Depends(get_db),
    bus: InvalidationBus = Depends(get_invalidation_bus),
):
    try:
        delete_return_record(db, return_id=return_id)
    except ValueError as exc:
        db.rollback()
        raise HTTPException(status_code=_status_for(exc), detail=str(exc)) from exc
    db.commit()
    bus.publish(InvalidationTopic.RETURNS_CHANGED)
