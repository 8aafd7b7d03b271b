from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime

from pharmacy_core.models import PaymentMethod, ReturnType
from pharmacy_core.services.invoice_math_service import ZERO
from pharmacy_core.services.outcomes import Failed, Handled, StepOutcome, is_handled
from pharmacy_core.services.reconciliation_common import (
    ReturnCollaborators,
    ReturnResult,
    apply_local_adjustments,
    attempt_server_return,
    decrement_lines,
    persist_return_records,
    publish_invalidations,
    require_return_items,
)
from pharmacy_core.services.refund_math_service import RefundBreakdown, compute_refund
from pharmacy_core.services.return_ports import PurchaseRecord, ReturnLineRequest, TransactionCache

logger = logging.getLogger(__name__)


def _adjust_cached_purchase(cache: TransactionCache, *, purchase: PurchaseRecord, refund: RefundBreakdown) -> StepOutcome:
    try:
        cached = cache.get_purchase(purchase.id)
        if cached is not None:
            cache.save_purchase(
                replace(
                    cached,
                    lines=decrement_lines(cached.lines, refund),
                    total_amount=max(ZERO, cached.total_amount - refund.total),
                )
            )
        if purchase.payment_method == PaymentMethod.CREDIT and purchase.supplier_id is not None:
            supplier = cache.get_supplier(purchase.supplier_id)
            if supplier is not None:
                cache.save_supplier(replace(supplier, balance=max(ZERO, supplier.balance - refund.total)))
    except Exception as exc:
        logger.exception('Adjusting cached purchase %s / supplier failed', purchase.id)
        return Failed(str(exc) or exc.__class__.__name__)
    return Handled()


def process_supplier_return(
    collaborators: ReturnCollaborators,
    *,
    purchase: PurchaseRecord,
    items: list[ReturnLineRequest],
    processed_by: str = 'admin',
    now: datetime | None = None,
) -> ReturnResult:
    """Send goods back to a supplier.

    Unlike customer returns, the local stock decrement runs after the server call whatever
    its outcome. When the server reports success the same units can therefore be taken out
    twice; this is logged as a warning on every such run and left unchanged.
    """
    selected = require_return_items(purchase.lines, items)
    refund = compute_refund(purchase.lines, selected)

    server_outcome = attempt_server_return(collaborators.returns_gateway, record_id=purchase.id, items=selected)
    if is_handled(server_outcome):
        logger.warning(
            'Supplier return on purchase %s was handled server-side; local stock decrement still applied',
            purchase.id,
        )

    adjustments = apply_local_adjustments(
        collaborators.inventory,
        lines=purchase.lines,
        items=selected,
        direction=-1,
    )

    record_ids = persist_return_records(
        collaborators.record_store,
        return_type=ReturnType.SUPPLIER,
        source_id=purchase.id,
        refund=refund,
        items=selected,
        processed_by=processed_by,
        now=now,
    )

    cache_outcome = _adjust_cached_purchase(collaborators.cache, purchase=purchase, refund=refund)
    publish_invalidations(collaborators.publisher)

    logger.info('Supplier return on purchase %s processed, refund %s', purchase.id, refund.total)
    return ReturnResult(
        return_type=ReturnType.SUPPLIER,
        source_id=purchase.id,
        refund=refund.total,
        server_outcome=server_outcome,
        adjustments=adjustments,
        return_record_ids=record_ids,
        cache_outcome=cache_outcome,
    )
