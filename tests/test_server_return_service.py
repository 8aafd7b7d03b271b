from __future__ import annotations

import unittest
from datetime import date
from decimal import Decimal

from pharmacy_core.models import (
    Customer,
    PaymentMethod,
    Purchase,
    PurchaseItem,
    PurchaseStatus,
    Sale,
    SaleItem,
    StockRecord,
    StockStatus,
    Supplier,
)
from pharmacy_core.services.return_ports import ReturnLineRequest
from pharmacy_core.services.server_return_service import (
    SqlPurchaseReturnsGateway,
    SqlSaleReturnsGateway,
    apply_purchase_return,
    apply_sale_return,
)
from sqlite_support import make_session_factory


class ServerReturnServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.session_factory = make_session_factory()
        with self.session_factory() as db:
            supplier = Supplier(name='Demo Distributors', balance=Decimal('100'))
            customer = Customer(name='Ayesha', balance=Decimal('60'))
            db.add_all([supplier, customer])
            db.flush()
            stock = StockRecord(name='Panadol', status=StockStatus.APPROVED, pack_quantity=10, total_units=12)
            pending = StockRecord(name='Flagyl', status=StockStatus.PENDING, pack_quantity=10, total_units=50)
            older = StockRecord(name='Flagyl', status=StockStatus.APPROVED, pack_quantity=10, total_units=3)
            db.add_all([stock, pending, older])
            db.flush()

            sale = Sale(
                bill_no='B-1',
                customer_id=customer.id,
                payment_method=PaymentMethod.CREDIT,
                total_amount=Decimal('100'),
            )
            sale.items.append(SaleItem(stock_record_id=stock.id, name='Panadol', quantity=4, unit_price=Decimal('25')))

            purchase = Purchase(
                supplier_id=supplier.id,
                invoice_number='INV-1',
                invoice_date=date(2026, 2, 1),
                status=PurchaseStatus.APPROVED,
                total_amount=Decimal('400'),
            )
            purchase.items.append(PurchaseItem(stock_record_id=stock.id, name='Panadol', quantity=10, unit_price=Decimal('20')))
            purchase.items.append(PurchaseItem(name='Flagyl', quantity=10, unit_price=Decimal('20')))
            db.add_all([sale, purchase])
            db.commit()

            self.stock_id = stock.id
            self.pending_id = pending.id
            self.older_id = older.id
            self.customer_id = customer.id
            self.supplier_id = supplier.id
            self.sale_id = sale.id
            self.sale_item_id = sale.items[0].id
            self.purchase_id = purchase.id
            self.purchase_item_ids = [item.id for item in purchase.items]

    def test_sale_return_clamps_and_restores_stock(self) -> None:
        with self.session_factory() as db:
            refund = apply_sale_return(
                db,
                sale_id=self.sale_id,
                items=[ReturnLineRequest(line_id=self.sale_item_id, quantity=9), ReturnLineRequest(line_id=999, quantity=1)],
            )
            db.commit()

            self.assertEqual(refund, Decimal('100'))
            self.assertEqual(db.get(StockRecord, self.stock_id).total_units, 16)
            self.assertEqual(db.get(SaleItem, self.sale_item_id).quantity, 0)
            self.assertEqual(Decimal(db.get(Sale, self.sale_id).total_amount), Decimal('0'))
            self.assertEqual(Decimal(db.get(Customer, self.customer_id).balance), Decimal('0'))

    def test_sale_return_missing_sale(self) -> None:
        with self.session_factory() as db:
            with self.assertRaisesRegex(ValueError, 'Sale not found'):
                apply_sale_return(db, sale_id=999, items=[])

    def test_purchase_return_uses_reference_then_latest_approved_by_name(self) -> None:
        with self.session_factory() as db:
            refund = apply_purchase_return(
                db,
                purchase_id=self.purchase_id,
                items=[
                    ReturnLineRequest(line_id=self.purchase_item_ids[0], quantity=2),
                    ReturnLineRequest(line_id=self.purchase_item_ids[1], quantity=5),
                ],
            )
            db.commit()

            self.assertEqual(refund, Decimal('140'))
            self.assertEqual(db.get(StockRecord, self.stock_id).total_units, 10)
            self.assertEqual(db.get(StockRecord, self.pending_id).total_units, 50)
            self.assertEqual(db.get(StockRecord, self.older_id).total_units, 0)
            self.assertEqual(Decimal(db.get(Purchase, self.purchase_id).total_amount), Decimal('260'))
            self.assertEqual(Decimal(db.get(Supplier, self.supplier_id).balance), Decimal('0'))

    def test_gateways_commit_their_own_session(self) -> None:
        sale_gateway = SqlSaleReturnsGateway(self.session_factory)
        purchase_gateway = SqlPurchaseReturnsGateway(self.session_factory)

        self.assertTrue(
            sale_gateway.record_return(
                record_id=self.sale_id,
                items=[ReturnLineRequest(line_id=self.sale_item_id, quantity=1)],
            )
        )
        self.assertTrue(
            purchase_gateway.record_return(
                record_id=self.purchase_id,
                items=[ReturnLineRequest(line_id=self.purchase_item_ids[0], quantity=1)],
            )
        )

        with self.session_factory() as db:
            self.assertEqual(db.get(StockRecord, self.stock_id).total_units, 12)
            self.assertEqual(db.get(SaleItem, self.sale_item_id).quantity, 3)

    def test_gateway_propagates_missing_record(self) -> None:
        with self.assertRaises(ValueError):
            SqlSaleReturnsGateway(self.session_factory).record_return(record_id=999, items=[])


if __name__ == '__main__':
    unittest.main()
