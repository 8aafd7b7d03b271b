from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from decimal import Decimal

from pharmacy_core.models import ReturnType
from pharmacy_core.services.inventory_resolution_service import resolve_stock_record
from pharmacy_core.services.invalidation_service import InvalidationTopic
from pharmacy_core.services.outcomes import Failed, Handled, StepOutcome, is_handled
from pharmacy_core.services.refund_math_service import RefundBreakdown
from pharmacy_core.services.return_ports import (
    InvalidationPublisher,
    InventoryGateway,
    ReturnLineRequest,
    ReturnRecordInput,
    ReturnRecordStore,
    ReturnsGateway,
    TransactionCache,
    TransactionLine,
)

logger = logging.getLogger(__name__)

RETURN_TOPICS = (
    InvalidationTopic.INVENTORY_CHANGED,
    InvalidationTopic.LEDGER_CHANGED,
    InvalidationTopic.RETURNS_CHANGED,
)


@dataclass(frozen=True)
class ReturnCollaborators:
    returns_gateway: ReturnsGateway
    inventory: InventoryGateway
    record_store: ReturnRecordStore
    cache: TransactionCache
    publisher: InvalidationPublisher


@dataclass(frozen=True)
class LineAdjustment:
    line_id: int
    stock_record_id: int | None
    delta: int
    outcome: StepOutcome


@dataclass(frozen=True)
class ReturnResult:
    return_type: ReturnType
    source_id: int
    refund: Decimal
    server_outcome: StepOutcome
    adjustments: tuple[LineAdjustment, ...]
    return_record_ids: tuple[int, ...]
    cache_outcome: StepOutcome

    @property
    def server_handled(self) -> bool:
        return is_handled(self.server_outcome)

    @property
    def failed_adjustments(self) -> tuple[LineAdjustment, ...]:
        return tuple(row for row in self.adjustments if not is_handled(row.outcome))


def require_return_items(lines: tuple[TransactionLine, ...], items: list[ReturnLineRequest]) -> list[ReturnLineRequest]:
    """Keep positive-quantity items for known lines, one per line id.

    Repeated line ids are merged by summing quantities; the first entry's reason is kept.
    """
    known = {line.line_id for line in lines}
    merged: dict[int, ReturnLineRequest] = {}
    for item in items:
        if item.quantity <= 0 or item.line_id not in known:
            continue
        previous = merged.get(item.line_id)
        merged[item.line_id] = item if previous is None else replace(previous, quantity=previous.quantity + item.quantity)
    if not merged:
        raise ValueError('Select at least one item with a return quantity')
    return list(merged.values())


def attempt_server_return(gateway: ReturnsGateway, *, record_id: int, items: list[ReturnLineRequest]) -> StepOutcome:
    try:
        accepted = gateway.record_return(record_id=record_id, items=items)
    except Exception as exc:
        logger.warning('Server-side return for record %s failed: %s', record_id, exc)
        return Failed(str(exc) or exc.__class__.__name__)
    if not accepted:
        logger.warning('Server-side return for record %s was not accepted', record_id)
        return Failed('Server did not accept the return')
    return Handled()


def apply_local_adjustments(
    inventory: InventoryGateway,
    *,
    lines: tuple[TransactionLine, ...],
    items: list[ReturnLineRequest],
    direction: int,
) -> tuple[LineAdjustment, ...]:
    """Resolve and adjust one stock record per returned line; each line succeeds or fails on its own."""
    try:
        snapshot = inventory.fetch_inventory_snapshot()
    except Exception as exc:
        logger.exception('Inventory snapshot fetch failed; local stock adjustment skipped')
        return tuple(
            LineAdjustment(
                line_id=item.line_id,
                stock_record_id=None,
                delta=direction * item.quantity,
                outcome=Failed(f'Inventory snapshot unavailable: {exc}'),
            )
            for item in items
        )

    by_id = {line.line_id: line for line in lines}
    adjustments: list[LineAdjustment] = []
    for item in items:
        line = by_id[item.line_id]
        delta = direction * item.quantity
        resolution = resolve_stock_record(line, snapshot)
        if resolution is None:
            logger.warning('No adjustable stock record for line %s (%s); stock adjustment skipped', line.line_id, line.name)
            adjustments.append(
                LineAdjustment(
                    line_id=line.line_id,
                    stock_record_id=None,
                    delta=delta,
                    outcome=Failed('No adjustable stock record'),
                )
            )
            continue
        try:
            inventory.adjust_stock_quantity(resolution.stock_record_id, delta)
        except Exception as exc:
            logger.exception('Stock adjustment of %s on stock record %s failed', delta, resolution.stock_record_id)
            outcome: StepOutcome = Failed(str(exc) or exc.__class__.__name__)
        else:
            outcome = Handled(resolution.source.value)
        adjustments.append(
            LineAdjustment(
                line_id=line.line_id,
                stock_record_id=resolution.stock_record_id,
                delta=delta,
                outcome=outcome,
            )
        )
    return tuple(adjustments)


def persist_return_records(
    store: ReturnRecordStore,
    *,
    return_type: ReturnType,
    source_id: int,
    refund: RefundBreakdown,
    items: list[ReturnLineRequest],
    processed_by: str,
    now: datetime | None = None,
) -> tuple[int, ...]:
    created_at = now or datetime.now(timezone.utc)
    reasons = {item.line_id: item.reason for item in items}
    record_ids: list[int] = []
    for row in refund.lines:
        record_ids.append(
            store.persist_return_record(
                ReturnRecordInput(
                    return_type=return_type,
                    source_id=source_id,
                    line_id=row.line_id,
                    item_name=row.name,
                    quantity=row.quantity,
                    reason=reasons[row.line_id],
                    refund_amount=row.amount,
                    processed_by=processed_by,
                    created_at=created_at,
                )
            )
        )
    return tuple(record_ids)


def decrement_lines(lines: tuple[TransactionLine, ...], refund: RefundBreakdown) -> tuple[TransactionLine, ...]:
    returned = {row.line_id: row.quantity for row in refund.lines}
    return tuple(
        replace(line, quantity=max(0, line.quantity - returned[line.line_id])) if line.line_id in returned else line
        for line in lines
    )


def publish_invalidations(publisher: InvalidationPublisher, topics=RETURN_TOPICS) -> None:
    for topic in topics:
        try:
            publisher.publish(topic.value)
        except Exception:
            logger.exception('Publishing %s failed', topic.value)
