from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone

from sqlalchemy import and_, delete, func, or_, select
from sqlalchemy.orm import Session

from pharmacy_core.models import ReturnRecord, ReturnType


def list_returns(
    db: Session,
    *,
    return_type: ReturnType | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    query: str | None = None,
) -> list[dict]:
    conditions = []
    if return_type:
        conditions.append(ReturnRecord.return_type == return_type)
    if date_from:
        conditions.append(ReturnRecord.created_at >= datetime.combine(date_from, time.min, tzinfo=timezone.utc))
    if date_to:
        conditions.append(
            ReturnRecord.created_at < datetime.combine(date_to + timedelta(days=1), time.min, tzinfo=timezone.utc)
        )
    needle = (query or '').strip().lower()
    if needle:
        conditions.append(
            or_(
                func.lower(ReturnRecord.item_name).contains(needle, autoescape=True),
                func.lower(ReturnRecord.processed_by).contains(needle, autoescape=True),
            )
        )

    stmt = select(ReturnRecord).order_by(ReturnRecord.created_at.desc(), ReturnRecord.id.desc())
    if conditions:
        stmt = stmt.where(and_(*conditions))

    return [
        {
            'id': row.id,
            'return_type': row.return_type.value,
            'source_id': row.source_id,
            'line_id': row.line_id,
            'item_name': row.item_name,
            'quantity': row.quantity,
            'reason': row.reason.value,
            'refund_amount': row.refund_amount,
            'processed_by': row.processed_by,
            'created_at': row.created_at,
        }
        for row in db.execute(stmt).scalars().all()
    ]


def delete_return_record(db: Session, *, return_id: int) -> None:
    result = db.execute(delete(ReturnRecord).where(ReturnRecord.id == return_id))
    if not result.rowcount:
        raise ValueError('Return record not found')
