from __future__ import annotations

from datetime import date
from decimal import Decimal

from pydantic import BaseModel, Field

from pharmacy_core.models import PaymentMethod, ReturnReason, TaxApplyOn, TaxMode
from pharmacy_core.services.invoice_math_service import AdditionalTax, InvoiceLine, LineTax
from pharmacy_core.services.return_ports import ReturnLineRequest


class LineTaxIn(BaseModel):
    name: str = ''
    amount: Decimal = Decimal('0')


class InvoiceLineIn(BaseModel):
    item: str = ''
    expiry: str | None = None
    quantity: Decimal = Decimal('0')
    units_per_pack: Decimal = Decimal('1')
    buy_price_per_pack: Decimal = Decimal('0')
    sale_price_per_pack: Decimal | None = None
    discount_pct: Decimal = Decimal('0')
    sales_tax_mode: TaxMode = TaxMode.PERCENT
    sales_tax_value: Decimal = Decimal('0')
    line_taxes: list[LineTaxIn] = Field(default_factory=list)

    def to_line(self) -> InvoiceLine:
        return InvoiceLine(
            item=self.item,
            expiry=self.expiry or None,
            quantity=self.quantity,
            units_per_pack=self.units_per_pack,
            buy_price_per_pack=self.buy_price_per_pack,
            sale_price_per_pack=self.sale_price_per_pack,
            discount_pct=self.discount_pct,
            sales_tax_mode=self.sales_tax_mode,
            sales_tax_value=self.sales_tax_value,
            line_taxes=tuple(LineTax(name=tax.name, amount=tax.amount) for tax in self.line_taxes),
        )


class AdditionalTaxIn(BaseModel):
    name: str = ''
    mode: TaxMode = TaxMode.PERCENT
    rate_pct: Decimal = Decimal('0')
    fixed_amount: Decimal = Decimal('0')
    apply_on: TaxApplyOn = TaxApplyOn.AFTER_DISCOUNT

    def to_tax(self) -> AdditionalTax:
        return AdditionalTax(
            name=self.name,
            mode=self.mode,
            rate_pct=self.rate_pct,
            fixed_amount=self.fixed_amount,
            apply_on=self.apply_on,
        )


class InvoicePreviewIn(BaseModel):
    lines: list[InvoiceLineIn] = Field(default_factory=list)
    additional_taxes: list[AdditionalTaxIn] = Field(default_factory=list)

    def invoice_lines(self) -> list[InvoiceLine]:
        return [line.to_line() for line in self.lines]

    def invoice_taxes(self) -> list[AdditionalTax]:
        return [tax.to_tax() for tax in self.additional_taxes]


class InvoiceIn(InvoicePreviewIn):
    supplier_id: int | None = None
    invoice_number: str | None = None
    invoice_date: date
    payment_method: PaymentMethod = PaymentMethod.CASH


class RestockIn(BaseModel):
    packs: Decimal


class ReturnItemIn(BaseModel):
    line_id: int
    quantity: int = Field(default=0, ge=0)
    reason: ReturnReason = ReturnReason.OTHER

    def to_request(self) -> ReturnLineRequest:
        return ReturnLineRequest(line_id=self.line_id, quantity=self.quantity, reason=self.reason)


class ServerReturnIn(BaseModel):
    items: list[ReturnItemIn] = Field(default_factory=list)

    def requests(self) -> list[ReturnLineRequest]:
        return [item.to_request() for item in self.items]


class CustomerReturnIn(ServerReturnIn):
    sale_id: int
    processed_by: str = 'admin'


class SupplierReturnIn(ServerReturnIn):
    purchase_id: int
    processed_by: str = 'admin'
