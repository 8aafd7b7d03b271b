from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from pharmacy_core.models import StockStatus
from pharmacy_core.services.return_ports import InventoryItemSnapshot, TransactionLine


class ResolutionSource(str, Enum):
    EXPLICIT_REFERENCE = 'EXPLICIT_REFERENCE'
    NAME_MATCH = 'NAME_MATCH'


@dataclass(frozen=True)
class StockResolution:
    stock_record_id: int
    source: ResolutionSource


def normalize_item_name(value: str | None) -> str:
    return (value or '').strip().lower()


def is_adjustable(item: InventoryItemSnapshot) -> bool:
    # Unspecified status counts as approved; pending rows are still awaiting purchase approval.
    return item.status != StockStatus.PENDING


def match_by_name(name: str | None, snapshot: list[InventoryItemSnapshot]) -> InventoryItemSnapshot | None:
    wanted = normalize_item_name(name)
    if not wanted:
        return None
    for item in snapshot:
        if not is_adjustable(item):
            continue
        if normalize_item_name(item.name) == wanted:
            return item
    return None


def resolve_stock_record(line: TransactionLine, snapshot: list[InventoryItemSnapshot]) -> StockResolution | None:
    """Map a transacted line to the stock record a return should adjust.

    The stock-record reference captured on the original line always wins. Without one,
    the first non-pending snapshot row whose name matches case-insensitively is used.
    ``None`` means the adjustment for this line is skipped.
    """
    if line.stock_record_id is not None:
        return StockResolution(stock_record_id=line.stock_record_id, source=ResolutionSource.EXPLICIT_REFERENCE)

    match = match_by_name(line.name, snapshot)
    if match is None:
        return None
    return StockResolution(stock_record_id=match.id, source=ResolutionSource.NAME_MATCH)
