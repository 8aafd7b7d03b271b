from __future__ import annotations

import unittest
from decimal import Decimal

from pharmacy_core.models import StockStatus
from pharmacy_core.services.inventory_resolution_service import ResolutionSource, resolve_stock_record
from pharmacy_core.services.return_ports import InventoryItemSnapshot, TransactionLine


def _line(name: str, stock_record_id: int | None = None) -> TransactionLine:
    return TransactionLine(line_id=1, name=name, quantity=1, unit_price=Decimal('10'), stock_record_id=stock_record_id)


class InventoryResolutionServiceTests(unittest.TestCase):
    def test_explicit_reference_beats_name_match(self) -> None:
        snapshot = [
            InventoryItemSnapshot(id=11, name='Panadol', stock=10),
            InventoryItemSnapshot(id=42, name='Something Else', stock=3),
        ]
        resolution = resolve_stock_record(_line('Panadol', stock_record_id=42), snapshot)
        self.assertEqual(resolution.stock_record_id, 42)
        self.assertEqual(resolution.source, ResolutionSource.EXPLICIT_REFERENCE)

    def test_explicit_reference_is_used_even_when_absent_from_snapshot(self) -> None:
        resolution = resolve_stock_record(_line('Panadol', stock_record_id=99), [])
        self.assertEqual(resolution.stock_record_id, 99)

    def test_name_match_is_case_insensitive_and_trimmed(self) -> None:
        snapshot = [InventoryItemSnapshot(id=7, name='  PANADOL ', stock=4)]
        resolution = resolve_stock_record(_line('panadol'), snapshot)
        self.assertEqual(resolution.stock_record_id, 7)
        self.assertEqual(resolution.source, ResolutionSource.NAME_MATCH)

    def test_pending_records_are_never_name_matched(self) -> None:
        snapshot = [InventoryItemSnapshot(id=5, name='Panadol', stock=20, status=StockStatus.PENDING)]
        self.assertIsNone(resolve_stock_record(_line('Panadol'), snapshot))

    def test_pending_record_is_skipped_for_a_later_approved_one(self) -> None:
        snapshot = [
            InventoryItemSnapshot(id=5, name='Panadol', stock=20, status=StockStatus.PENDING),
            InventoryItemSnapshot(id=6, name='panadol', stock=2, status=None),
        ]
        self.assertEqual(resolve_stock_record(_line('Panadol'), snapshot).stock_record_id, 6)

    def test_unresolved_line_returns_none(self) -> None:
        snapshot = [InventoryItemSnapshot(id=1, name='Aspirin', stock=1)]
        self.assertIsNone(resolve_stock_record(_line('Panadol'), snapshot))
        self.assertIsNone(resolve_stock_record(_line(''), snapshot))


if __name__ == '__main__':
    unittest.main()
