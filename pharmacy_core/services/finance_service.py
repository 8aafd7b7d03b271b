from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from pharmacy_core.config import settings
from pharmacy_core.models import FinanceEntry, FinanceEntryType, StockRecord

logger = logging.getLogger(__name__)


def record_finance_entry(
    db: Session,
    *,
    entry_type: FinanceEntryType,
    category: str,
    description: str,
    amount: Decimal,
    reference: str | None = None,
) -> FinanceEntry | None:
    """Append one ledger row inside a savepoint; a failed write is logged and leaves the caller's work intact."""
    try:
        with db.begin_nested():
            entry = FinanceEntry(
                entry_type=entry_type,
                category=category,
                description=description,
                amount=amount,
                reference=reference,
            )
            db.add(entry)
    except SQLAlchemyError:
        logger.warning('Failed to log %s finance entry for reference %s', entry_type.value, reference, exc_info=True)
        return None
    return entry


def record_stock_expense(
    db: Session,
    stock: StockRecord,
    *,
    packs: Decimal,
    description: str,
) -> FinanceEntry | None:
    buy_price = Decimal(stock.buy_price_per_pack)
    if packs <= 0 or buy_price <= 0:
        return None
    return record_finance_entry(
        db,
        entry_type=FinanceEntryType.EXPENSE,
        category=settings.finance_supplies_category,
        description=description,
        amount=packs * buy_price,
        reference=str(stock.id),
    )


def list_finance_entries(db: Session, *, reference: str | None = None) -> list[FinanceEntry]:
    query = select(FinanceEntry).order_by(FinanceEntry.entry_date.desc(), FinanceEntry.id.desc())
    if reference is not None:
        query = query.where(FinanceEntry.reference == reference)
    return list(db.execute(query).scalars().all())
