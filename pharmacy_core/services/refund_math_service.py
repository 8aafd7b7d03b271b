from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from pharmacy_core.services.invoice_math_service import ZERO, to_decimal
from pharmacy_core.services.return_ports import ReturnLineRequest, TransactionLine


@dataclass(frozen=True)
class RefundLine:
    line_id: int
    name: str
    quantity: int
    unit_price: Decimal
    amount: Decimal


@dataclass(frozen=True)
class RefundBreakdown:
    lines: tuple[RefundLine, ...]
    total: Decimal

    @property
    def can_process(self) -> bool:
        return self.total > 0


def bound_return_quantity(requested: int | None, original: int) -> int:
    try:
        qty = int(requested or 0)
    except (TypeError, ValueError):
        return 0
    return min(max(qty, 0), max(int(original), 0))


def compute_refund(lines: tuple[TransactionLine, ...] | list[TransactionLine], requests: list[ReturnLineRequest]) -> RefundBreakdown:
    by_id = {line.line_id: line for line in lines}
    refund_lines: list[RefundLine] = []
    for request in requests:
        line = by_id.get(request.line_id)
        if line is None or request.quantity <= 0:
            continue
        unit_price = to_decimal(line.unit_price)
        refund_lines.append(
            RefundLine(
                line_id=line.line_id,
                name=line.name,
                quantity=request.quantity,
                unit_price=unit_price,
                amount=unit_price * request.quantity,
            )
        )
    return RefundBreakdown(lines=tuple(refund_lines), total=sum((row.amount for row in refund_lines), ZERO))
