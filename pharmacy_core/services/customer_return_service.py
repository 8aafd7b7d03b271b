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
from pharmacy_core.services.return_ports import ReturnLineRequest, SaleRecord, TransactionCache

logger = logging.getLogger(__name__)


def _adjust_cached_sale(cache: TransactionCache, *, sale: SaleRecord, refund: RefundBreakdown) -> StepOutcome:
    try:
        cached = cache.get_sale(sale.id)
        if cached is not None:
            cache.save_sale(
                replace(
                    cached,
                    lines=decrement_lines(cached.lines, refund),
                    total_amount=max(ZERO, cached.total_amount - refund.total),
                )
            )
        if sale.payment_method == PaymentMethod.CREDIT and sale.customer_id is not None:
            customer = cache.get_customer(sale.customer_id)
            if customer is not None:
                cache.save_customer(replace(customer, balance=max(ZERO, customer.balance - refund.total)))
    except Exception as exc:
        logger.exception('Adjusting cached sale %s / customer failed', sale.id)
        return Failed(str(exc) or exc.__class__.__name__)
    return Handled()


def process_customer_return(
    collaborators: ReturnCollaborators,
    *,
    sale: SaleRecord,
    items: list[ReturnLineRequest],
    processed_by: str = 'admin',
    now: datetime | None = None,
) -> ReturnResult:
    """Take goods back from a customer and reconcile stock, the sale and the customer ledger.

    The server-side return is attempted first. Only when it is not handled does the local
    fallback add the returned units back to stock, so stock is never credited twice.
    Failures below the whole-return level are logged and reported on the result.
    """
    selected = require_return_items(sale.lines, items)
    refund = compute_refund(sale.lines, selected)

    server_outcome = attempt_server_return(collaborators.returns_gateway, record_id=sale.id, items=selected)

    adjustments = ()
    if not is_handled(server_outcome):
        adjustments = apply_local_adjustments(
            collaborators.inventory,
            lines=sale.lines,
            items=selected,
            direction=1,
        )

    record_ids = persist_return_records(
        collaborators.record_store,
        return_type=ReturnType.CUSTOMER,
        source_id=sale.id,
        refund=refund,
        items=selected,
        processed_by=processed_by,
        now=now,
    )

    cache_outcome = _adjust_cached_sale(collaborators.cache, sale=sale, refund=refund)
    publish_invalidations(collaborators.publisher)

    logger.info('Customer return on sale %s processed, refund %s', sale.id, refund.total)
    return ReturnResult(
        return_type=ReturnType.CUSTOMER,
        source_id=sale.id,
        refund=refund.total,
        server_outcome=server_outcome,
        adjustments=adjustments,
        return_record_ids=record_ids,
        cache_outcome=cache_outcome,
    )
