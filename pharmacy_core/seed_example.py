import argparse
from datetime import date
from decimal import Decimal

from sqlalchemy import select

from pharmacy_core.db import SessionLocal, engine
from pharmacy_core.models import (
    Base,
    Customer,
    PaymentMethod,
    Purchase,
    Sale,
    SaleItem,
    StockRecord,
    Supplier,
)
from pharmacy_core.services.invoice_math_service import AdditionalTax, InvoiceLine
from pharmacy_core.services.purchase_invoice_service import approve_purchase, record_purchase_invoice


def seed(*, create_tables: bool = False) -> None:
    if create_tables:
        Base.metadata.create_all(engine)

    with SessionLocal() as db:
        supplier = db.execute(select(Supplier).where(Supplier.name == 'Demo Distributors')).scalar_one_or_none()
        if not supplier:
            supplier = Supplier(name='Demo Distributors', balance=Decimal('0'))
            db.add(supplier)
            db.flush()

        customer = db.execute(select(Customer).where(Customer.name == 'Walk-in Credit')).scalar_one_or_none()
        if not customer:
            customer = Customer(name='Walk-in Credit', balance=Decimal('0'))
            db.add(customer)
            db.flush()

        purchase = db.execute(select(Purchase).where(Purchase.invoice_number == 'DEMO-INV-001')).scalar_one_or_none()
        if not purchase:
            purchase = record_purchase_invoice(
                db,
                supplier_id=supplier.id,
                invoice_number='DEMO-INV-001',
                invoice_date=date.today(),
                lines=[
                    InvoiceLine(
                        item='Paracetamol 500mg',
                        quantity=10,
                        units_per_pack=10,
                        buy_price_per_pack=Decimal('120'),
                        sale_price_per_pack=Decimal('150'),
                        expiry='2027-12-31',
                    ),
                    InvoiceLine(
                        item='Amoxicillin 250mg',
                        quantity=5,
                        units_per_pack=12,
                        buy_price_per_pack=Decimal('300'),
                        sale_price_per_pack=Decimal('360'),
                        discount_pct=Decimal('5'),
                        expiry='2027-06-30',
                    ),
                ],
                additional_taxes=[AdditionalTax(name='Advance Tax', rate_pct=Decimal('0.5'))],
                payment_method=PaymentMethod.CREDIT,
            )
            approve_purchase(db, purchase_id=purchase.id)

        sale = db.execute(select(Sale).where(Sale.bill_no == 'DEMO-BILL-001')).scalar_one_or_none()
        if not sale:
            stock = db.execute(
                select(StockRecord).where(StockRecord.purchase_id == purchase.id).order_by(StockRecord.id.asc())
            ).scalars().first()
            if stock:
                unit_price = Decimal(stock.unit_sale_price or stock.unit_buy_price)
                sale = Sale(
                    bill_no='DEMO-BILL-001',
                    customer_id=customer.id,
                    customer_name=customer.name,
                    payment_method=PaymentMethod.CREDIT,
                    total_amount=unit_price * 4,
                )
                sale.items.append(SaleItem(stock_record_id=stock.id, name=stock.name, quantity=4, unit_price=unit_price))
                db.add(sale)
                stock.total_units -= 4
                customer.balance = Decimal(customer.balance) + unit_price * 4

        db.commit()


def main() -> None:
    parser = argparse.ArgumentParser(description='Insert demo suppliers, stock, a purchase and a sale.')
    parser.add_argument('--create-tables', action='store_true', help='Create missing tables before seeding.')
    args = parser.parse_args()
    seed(create_tables=args.create_tables)
    print('Seed data inserted/verified.')


if __name__ == '__main__':
    main()
