from __future__ import annotations

from pharmacy_core.services.return_ports import PartyBalance, PurchaseRecord, SaleRecord


class InMemoryTransactionCache:
    """Process-local mirror of recently looked-up sales, purchases and party balances."""

    def __init__(self) -> None:
        self.sales: dict[int, SaleRecord] = {}
        self.purchases: dict[int, PurchaseRecord] = {}
        self.customers: dict[int, PartyBalance] = {}
        self.suppliers: dict[int, PartyBalance] = {}

    def get_sale(self, sale_id: int) -> SaleRecord | None:
        return self.sales.get(sale_id)

    def save_sale(self, sale: SaleRecord) -> None:
        self.sales[sale.id] = sale

    def get_purchase(self, purchase_id: int) -> PurchaseRecord | None:
        return self.purchases.get(purchase_id)

    def save_purchase(self, purchase: PurchaseRecord) -> None:
        self.purchases[purchase.id] = purchase

    def get_customer(self, customer_id: int) -> PartyBalance | None:
        return self.customers.get(customer_id)

    def save_customer(self, customer: PartyBalance) -> None:
        self.customers[customer.id] = customer

    def get_supplier(self, supplier_id: int) -> PartyBalance | None:
        return self.suppliers.get(supplier_id)

    def save_supplier(self, supplier: PartyBalance) -> None:
        self.suppliers[supplier.id] = supplier
