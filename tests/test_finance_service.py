from __future__ import annotations

import unittest
from decimal import Decimal
from unittest.mock import patch

from sqlalchemy.exc import OperationalError

from pharmacy_core.models import FinanceEntryType, StockRecord, StockStatus
from pharmacy_core.services.finance_service import list_finance_entries, record_finance_entry, record_stock_expense
from sqlite_support import make_session_factory


class FinanceServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session_factory()()
        self.stock = StockRecord(
            name='Gloves',
            status=StockStatus.APPROVED,
            pack_quantity=100,
            total_units=100,
            buy_price_per_pack=Decimal('450'),
        )
        self.db.add(self.stock)
        self.db.flush()

    def tearDown(self) -> None:
        self.db.close()

    def test_stock_expense_is_packs_times_buy_price(self) -> None:
        entry = record_stock_expense(self.db, self.stock, packs=Decimal('2'), description='Purchase Gloves x2 packs')
        self.db.commit()

        self.assertEqual(Decimal(entry.amount), Decimal('900'))
        self.assertEqual(entry.category, 'Supplies')
        self.assertEqual(entry.entry_type, FinanceEntryType.EXPENSE)
        self.assertEqual(entry.reference, str(self.stock.id))

    def test_no_expense_without_packs_or_price(self) -> None:
        self.assertIsNone(record_stock_expense(self.db, self.stock, packs=Decimal('0'), description='none'))
        self.stock.buy_price_per_pack = Decimal('0')
        self.assertIsNone(record_stock_expense(self.db, self.stock, packs=Decimal('1'), description='free'))
        self.assertEqual(list_finance_entries(self.db), [])

    def test_ledger_failure_is_logged_and_swallowed(self) -> None:
        failure = OperationalError('INSERT INTO finance_entries', {}, Exception('disk full'))
        with patch.object(self.db, 'begin_nested', side_effect=failure):
            with self.assertLogs('pharmacy_core.services.finance_service', level='WARNING'):
                entry = record_finance_entry(
                    self.db,
                    entry_type=FinanceEntryType.EXPENSE,
                    category='Supplies',
                    description='Restock Gloves x1 packs',
                    amount=Decimal('450'),
                    reference=str(self.stock.id),
                )

        self.assertIsNone(entry)
        self.assertEqual(self.db.get(StockRecord, self.stock.id).name, 'Gloves')


if __name__ == '__main__':
    unittest.main()
