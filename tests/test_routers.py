from __future__ import annotations

import unittest
from decimal import Decimal
from unittest.mock import Mock

from fastapi.testclient import TestClient

from pharmacy_core.db import get_db
from pharmacy_core.dependencies import (
    get_customer_return_collaborators,
    get_invalidation_bus,
    get_inventory_gateway,
    get_supplier_return_collaborators,
    get_transaction_cache,
    get_transaction_lookup,
)
from pharmacy_core.main import app
from pharmacy_core.models import PaymentMethod, ReturnRecord, Sale, SaleItem, StockRecord, StockStatus, Supplier
from pharmacy_core.services.invalidation_service import InvalidationBus
from pharmacy_core.services.reconciliation_common import ReturnCollaborators
from pharmacy_core.services.server_return_service import SqlSaleReturnsGateway
from pharmacy_core.services.sql_return_adapters import SqlInventoryGateway, SqlReturnRecordStore, SqlTransactionLookup
from pharmacy_core.services.transaction_cache import InMemoryTransactionCache
from sqlite_support import make_session_factory


class RouterTests(unittest.TestCase):
    def setUp(self) -> None:
        self.session_factory = make_session_factory()
        self.bus = InvalidationBus()
        self.published: list[str] = []
        for topic in ('inventory-changed', 'ledger-changed', 'returns-changed'):
            self.bus.subscribe(topic, self.published.append)
        self.cache = InMemoryTransactionCache()
        self.gateway = Mock()

        def _db():
            db = self.session_factory()
            try:
                yield db
            finally:
                db.close()

        def _collaborators() -> ReturnCollaborators:
            return ReturnCollaborators(
                returns_gateway=self.gateway,
                inventory=SqlInventoryGateway(self.session_factory),
                record_store=SqlReturnRecordStore(self.session_factory),
                cache=self.cache,
                publisher=self.bus,
            )

        app.dependency_overrides[get_db] = _db
        app.dependency_overrides[get_invalidation_bus] = lambda: self.bus
        app.dependency_overrides[get_transaction_cache] = lambda: self.cache
        app.dependency_overrides[get_transaction_lookup] = lambda: SqlTransactionLookup(self.session_factory)
        app.dependency_overrides[get_inventory_gateway] = lambda: SqlInventoryGateway(self.session_factory)
        app.dependency_overrides[get_customer_return_collaborators] = _collaborators
        app.dependency_overrides[get_supplier_return_collaborators] = _collaborators
        self.client = TestClient(app)

        with self.session_factory() as db:
            supplier = Supplier(name='Demo Distributors', balance=Decimal('0'))
            db.add(supplier)
            db.commit()
            self.supplier_id = supplier.id

    def tearDown(self) -> None:
        app.dependency_overrides.clear()

    def _seed_sale(self) -> tuple[int, int, int]:
        with self.session_factory() as db:
            stock = StockRecord(name='Panadol', status=StockStatus.APPROVED, pack_quantity=10, total_units=6)
            db.add(stock)
            db.flush()
            sale = Sale(bill_no='B-500', payment_method=PaymentMethod.CASH, total_amount=Decimal('100'))
            sale.items.append(SaleItem(stock_record_id=stock.id, name='Panadol', quantity=4, unit_price=Decimal('25')))
            db.add(sale)
            db.commit()
            return stock.id, sale.id, sale.items[0].id

    def test_health(self) -> None:
        self.assertEqual(self.client.get('/health').json(), {'status': 'ok'})

    def test_preview_invoice(self) -> None:
        response = self.client.post(
            '/invoices/preview',
            json={
                'lines': [
                    {
                        'item': 'Panadol',
                        'quantity': 2,
                        'units_per_pack': 10,
                        'buy_price_per_pack': 100,
                        'discount_pct': 10,
                        'sales_tax_mode': 'percent',
                        'sales_tax_value': 5,
                    }
                ],
                'additional_taxes': [{'name': 'X', 'rate_pct': 10, 'apply_on': 'gross'}],
            },
        )
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(Decimal(body['totals']['taxable_base']), Decimal('180'))
        self.assertEqual(Decimal(body['totals']['additional_taxes_total']), Decimal('20'))
        self.assertEqual(Decimal(body['lines'][0]['total']), Decimal('189'))
        self.assertEqual(Decimal(body['lines'][0]['unit_buy_price']), Decimal('10'))

    def test_create_and_approve_invoice(self) -> None:
        response = self.client.post(
            '/invoices',
            json={
                'supplier_id': self.supplier_id,
                'invoice_number': 'INV-77',
                'invoice_date': '2026-03-01',
                'lines': [{'item': 'Panadol', 'quantity': 2, 'units_per_pack': 10, 'buy_price_per_pack': 100}],
            },
        )
        self.assertEqual(response.status_code, 201)
        purchase_id = response.json()['id']
        self.assertEqual(response.json()['status'], 'pending')

        inventory = self.client.get('/inventory').json()
        self.assertEqual(inventory, [])
        self.assertEqual(len(self.client.get('/inventory', params={'include_pending': True}).json()), 1)

        approved = self.client.post(f'/invoices/{purchase_id}/approve')
        self.assertEqual(approved.status_code, 200)
        self.assertEqual(approved.json()['status'], 'approved')
        self.assertEqual(self.published, ['inventory-changed', 'ledger-changed'])

        again = self.client.post(f'/invoices/{purchase_id}/approve')
        self.assertEqual(again.status_code, 400)
        self.assertEqual(self.client.post('/invoices/999/approve').status_code, 404)

    def test_create_invoice_validation_error(self) -> None:
        response = self.client.post(
            '/invoices',
            json={'supplier_id': None, 'invoice_date': '2026-03-01', 'lines': [{'item': 'Panadol', 'quantity': 1}]},
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['detail'], 'Supplier is required')

    def test_restock_pending_is_rejected(self) -> None:
        with self.session_factory() as db:
            stock = StockRecord(name='Panadol', status=StockStatus.PENDING, pack_quantity=10, total_units=0)
            db.add(stock)
            db.commit()
            stock_id = stock.id

        response = self.client.post(f'/inventory/{stock_id}/restock', json={'packs': 1})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(self.client.post('/inventory/999/restock', json={'packs': 1}).status_code, 404)

    def test_customer_return_falls_back_when_server_rejects(self) -> None:
        stock_id, sale_id, line_id = self._seed_sale()
        self.gateway.record_return.return_value = False

        response = self.client.post(
            '/returns/customer',
            json={'sale_id': sale_id, 'items': [{'line_id': line_id, 'quantity': 9, 'reason': 'damaged'}]},
        )

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(Decimal(body['refund']), Decimal('100'))
        self.assertEqual(body['server']['status'], 'failed')
        self.assertEqual(body['adjustments'][0]['delta'], 4)
        self.assertEqual(body['adjustments'][0]['status'], 'handled')
        with self.session_factory() as db:
            self.assertEqual(db.get(StockRecord, stock_id).total_units, 10)
            self.assertEqual(db.get(ReturnRecord, body['return_record_ids'][0]).quantity, 4)
        self.assertEqual(self.cache.get_sale(sale_id).lines[0].quantity, 0)
        self.assertEqual(self.published, ['inventory-changed', 'ledger-changed', 'returns-changed'])

    def test_customer_return_with_server_gateway_does_not_double_credit(self) -> None:
        stock_id, sale_id, line_id = self._seed_sale()
        self.gateway = SqlSaleReturnsGateway(self.session_factory)

        response = self.client.post(
            '/returns/customer',
            json={'sale_id': sale_id, 'items': [{'line_id': line_id, 'quantity': 2}]},
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['server']['status'], 'handled')
        self.assertEqual(response.json()['adjustments'], [])
        with self.session_factory() as db:
            self.assertEqual(db.get(StockRecord, stock_id).total_units, 8)

    def test_customer_return_errors(self) -> None:
        _, sale_id, line_id = self._seed_sale()

        missing = self.client.post('/returns/customer', json={'sale_id': 999, 'items': []})
        self.assertEqual(missing.status_code, 404)

        empty = self.client.post('/returns/customer', json={'sale_id': sale_id, 'items': [{'line_id': line_id}]})
        self.assertEqual(empty.status_code, 400)

        unknown_line = self.client.post(
            '/returns/customer', json={'sale_id': sale_id, 'items': [{'line_id': 999, 'quantity': 1}]}
        )
        self.assertEqual(unknown_line.status_code, 400)
        self.gateway.record_return.assert_not_called()

    def test_search_sales_and_history(self) -> None:
        _, sale_id, line_id = self._seed_sale()
        self.gateway.record_return.return_value = True

        sales = self.client.get('/returns/sales', params={'reference': 'B-500'}).json()
        self.assertEqual([sale['id'] for sale in sales], [sale_id])
        self.assertIn('within_return_window', sales[0])

        self.client.post('/returns/customer', json={'sale_id': sale_id, 'items': [{'line_id': line_id, 'quantity': 1}]})
        history = self.client.get('/returns/history', params={'return_type': 'customer'}).json()
        self.assertEqual(len(history), 1)
        self.assertEqual(history[0]['item_name'], 'Panadol')

        deleted = self.client.delete(f"/returns/{history[0]['id']}")
        self.assertEqual(deleted.status_code, 204)
        self.assertEqual(self.published[-1], 'returns-changed')
        self.assertEqual(self.client.delete(f"/returns/{history[0]['id']}").status_code, 404)

    def test_server_sale_return_endpoint(self) -> None:
        stock_id, sale_id, line_id = self._seed_sale()

        response = self.client.post(f'/returns/server/sales/{sale_id}', json={'items': [{'line_id': line_id, 'quantity': 1}]})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(Decimal(response.json()['refund']), Decimal('25'))
        with self.session_factory() as db:
            self.assertEqual(db.get(StockRecord, stock_id).total_units, 7)
        self.assertEqual(self.client.post('/returns/server/sales/999', json={'items': []}).status_code, 404)


if __name__ == '__main__':
    unittest.main()
