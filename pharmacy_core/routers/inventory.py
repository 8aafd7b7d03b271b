from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from pharmacy_core.db import get_db
from pharmacy_core.dependencies import get_invalidation_bus, get_inventory_gateway
from pharmacy_core.schemas import RestockIn
from pharmacy_core.services.invalidation_service import InvalidationBus, InvalidationTopic
from pharmacy_core.services.purchase_invoice_service import restock_stock_record
from pharmacy_core.services.return_ports import InventoryGateway

router = APIRouter(prefix='/inventory', tags=['inventory'])


@router.get('')
def list_inventory(
    include_pending: bool = False,
    inventory: InventoryGateway = Depends(get_inventory_gateway),
):
    rows = []
    for item in inventory.fetch_inventory_snapshot():
        status = getattr(item.status, 'value', item.status)
        if status == 'pending' and not include_pending:
            continue
        rows.append(
            {
                'id': item.id,
                'name': item.name,
                'stock': item.stock,
                'status': status,
                'unit_cost': str(item.unit_cost),
                'unit_sale_price': None if item.unit_sale_price is None else str(item.unit_sale_price),
            }
        )
    return rows


@router.post('/{stock_record_id}/restock')
def restock(
    stock_record_id: int,
    payload: RestockIn,
    db: Session = Depends(get_db),
    bus: InvalidationBus = Depends(get_invalidation_bus),
):
    try:
        stock = restock_stock_record(db, stock_record_id=stock_record_id, packs=payload.packs)
    except ValueError as exc:
        db.rollback()
        status_code = 404 if 'not found' in str(exc).lower() else 400
        raise HTTPException(status_code=status_code, detail=str(exc)) from exc
    db.commit()
    bus.publish(InvalidationTopic.INVENTORY_CHANGED)
    bus.publish(InvalidationTopic.LEDGER_CHANGED)
    return {'id': stock.id, 'packs': str(stock.packs), 'total_units': stock.total_units}
