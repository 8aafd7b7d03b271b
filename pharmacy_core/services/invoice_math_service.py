from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from pharmacy_core.models import TaxApplyOn, TaxMode

ZERO = Decimal('0')
HUNDRED = Decimal('100')

NumberLike = Decimal | int | float | str | None


def to_decimal(value: NumberLike) -> Decimal:
    """Coerce loosely typed form input to a finite Decimal; anything malformed becomes zero."""
    if value is None or isinstance(value, bool):
        return ZERO
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            return ZERO
    if not result.is_finite():
        return ZERO
    return result


def _is_percent(mode: TaxMode | str | None) -> bool:
    if mode is None or mode == '':
        return True
    raw = mode.value if isinstance(mode, TaxMode) else str(mode).strip()
    return raw == TaxMode.PERCENT.value


def _apply_on(value: TaxApplyOn | str | None) -> TaxApplyOn | None:
    if isinstance(value, TaxApplyOn):
        return value
    try:
        return TaxApplyOn(str(value).strip())
    except ValueError:
        return None


@dataclass(frozen=True)
class LineTax:
    name: str
    amount: NumberLike = ZERO


@dataclass(frozen=True)
class InvoiceLine:
    item: str
    quantity: NumberLike = ZERO
    units_per_pack: NumberLike = 1
    buy_price_per_pack: NumberLike = ZERO
    sale_price_per_pack: NumberLike = None
    discount_pct: NumberLike = ZERO
    sales_tax_mode: TaxMode | str | None = TaxMode.PERCENT
    sales_tax_value: NumberLike = ZERO
    line_taxes: tuple[LineTax, ...] = ()
    expiry: str | None = None


@dataclass(frozen=True)
class AdditionalTax:
    name: str
    mode: TaxMode | str | None = TaxMode.PERCENT
    rate_pct: NumberLike = ZERO
    fixed_amount: NumberLike = ZERO
    apply_on: TaxApplyOn | str | None = TaxApplyOn.AFTER_DISCOUNT


@dataclass(frozen=True)
class LineTotals:
    base: Decimal
    discount: Decimal
    taxable: Decimal
    line_taxes: Decimal
    sales_tax: Decimal
    total: Decimal


@dataclass(frozen=True)
class AdditionalTaxAmount:
    name: str
    base: Decimal
    amount: Decimal


@dataclass(frozen=True)
class InvoiceTotals:
    gross: Decimal
    discount_total: Decimal
    taxable_base: Decimal
    line_taxes_total: Decimal
    sales_tax_total: Decimal
    additional_taxes_total: Decimal
    net: Decimal
    lines: tuple[LineTotals, ...] = ()
    additional_taxes: tuple[AdditionalTaxAmount, ...] = ()


@dataclass(frozen=True)
class UnitDiagnostics:
    total_units: Decimal
    unit_buy_price: Decimal
    unit_sale_price: Decimal


def compute_line_totals(line: InvoiceLine) -> LineTotals:
    # Purchase side: valued at the buy price, never the sale price.
    base = to_decimal(line.quantity) * to_decimal(line.buy_price_per_pack)
    discount = base * (to_decimal(line.discount_pct) / HUNDRED)
    taxable = max(ZERO, base - discount)
    line_taxes = sum((to_decimal(tax.amount) for tax in line.line_taxes), ZERO)
    if _is_percent(line.sales_tax_mode):
        sales_tax = taxable * (to_decimal(line.sales_tax_value) / HUNDRED)
    else:
        sales_tax = to_decimal(line.sales_tax_value)
    return LineTotals(
        base=base,
        discount=discount,
        taxable=taxable,
        line_taxes=line_taxes,
        sales_tax=sales_tax,
        total=taxable + line_taxes + sales_tax,
    )


def additional_tax_base(
    apply_on: TaxApplyOn | str | None,
    *,
    gross: Decimal,
    taxable_base: Decimal,
    line_taxes_total: Decimal,
) -> Decimal:
    resolved = _apply_on(apply_on)
    if resolved == TaxApplyOn.GROSS:
        return gross
    if resolved == TaxApplyOn.AFTER_DISCOUNT:
        return taxable_base
    if resolved == TaxApplyOn.POST_LINE_TAXES:
        return taxable_base + line_taxes_total
    return ZERO


def compute_additional_tax(
    tax: AdditionalTax,
    *,
    gross: Decimal,
    taxable_base: Decimal,
    line_taxes_total: Decimal,
) -> AdditionalTaxAmount:
    base = additional_tax_base(
        tax.apply_on,
        gross=gross,
        taxable_base=taxable_base,
        line_taxes_total=line_taxes_total,
    )
    if _is_percent(tax.mode):
        amount = base * (to_decimal(tax.rate_pct) / HUNDRED)
    else:
        amount = to_decimal(tax.fixed_amount)
    if not amount.is_finite():
        amount = ZERO
    return AdditionalTaxAmount(name=tax.name, base=base, amount=amount)


def compute_invoice_totals(
    lines: list[InvoiceLine] | tuple[InvoiceLine, ...],
    additional_taxes: list[AdditionalTax] | tuple[AdditionalTax, ...] = (),
) -> InvoiceTotals:
    line_totals = tuple(compute_line_totals(line) for line in lines)

    gross = sum((row.base for row in line_totals), ZERO)
    discount_total = sum((row.discount for row in line_totals), ZERO)
    taxable_base = max(ZERO, gross - discount_total)
    line_taxes_total = sum((row.line_taxes for row in line_totals), ZERO)
    sales_tax_total = sum((row.sales_tax for row in line_totals), ZERO)

    # Each additional tax is computed independently against its chosen base.
    extras = tuple(
        compute_additional_tax(
            tax,
            gross=gross,
            taxable_base=taxable_base,
            line_taxes_total=line_taxes_total,
        )
        for tax in additional_taxes
    )
    additional_taxes_total = sum((extra.amount for extra in extras), ZERO)

    return InvoiceTotals(
        gross=gross,
        discount_total=discount_total,
        taxable_base=taxable_base,
        line_taxes_total=line_taxes_total,
        sales_tax_total=sales_tax_total,
        additional_taxes_total=additional_taxes_total,
        net=taxable_base + line_taxes_total + sales_tax_total + additional_taxes_total,
        lines=line_totals,
        additional_taxes=extras,
    )


def compute_unit_diagnostics(line: InvoiceLine) -> UnitDiagnostics:
    quantity = to_decimal(line.quantity)
    units_per_pack = to_decimal(line.units_per_pack)
    if units_per_pack == 0:
        return UnitDiagnostics(total_units=ZERO, unit_buy_price=ZERO, unit_sale_price=ZERO)
    return UnitDiagnostics(
        total_units=quantity * units_per_pack,
        unit_buy_price=to_decimal(line.buy_price_per_pack) / units_per_pack,
        unit_sale_price=to_decimal(line.sale_price_per_pack) / units_per_pack,
    )


def totals_as_dict(totals: InvoiceTotals) -> dict[str, str]:
    return {
        'gross': str(totals.gross),
        'discount_total': str(totals.discount_total),
        'taxable_base': str(totals.taxable_base),
        'line_taxes_total': str(totals.line_taxes_total),
        'sales_tax_total': str(totals.sales_tax_total),
        'additional_taxes_total': str(totals.additional_taxes_total),
        'net': str(totals.net),
    }
