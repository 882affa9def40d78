"""
Line Value Engine - monetary totals of one order line.

Given a line whose price, incl.-tax price and quantity are resolved,
derives:

    priceDiscounted     discount applied to price (or inTaxPrice when the
                        order is tax-inclusive)
    exTaxTotal          round(qty * priceDiscounted, 2, HALF_UP)
    inTaxTotal          exTaxTotal + exTaxTotal * rate           (excl. order)
                        inTaxTotal = round(qty * priceDiscounted)
                        exTaxTotal = round(inTaxTotal / (1 + rate))  (incl. order)
    companyExTaxTotal / companyInTaxTotal
                        the same pair anchored on the company-currency total
    subTotalCostPrice   unit cost price (company currency) * qty

The tax-inclusive path divides where the exclusive path multiplies, so the
two are not exact inverses; a cent of drift between them is expected.

A line missing price, incl.-tax price or quantity is not computable yet:
``compute`` returns an empty mapping and leaves the line untouched.

Pure functions - no I/O.
"""

from __future__ import annotations

from decimal import Decimal

from sales_engines.margin import MarginCalculator
from sales_engines.tracer import traced_engine
from sales_kernel.domain.catalog import DiscountType
from sales_kernel.domain.collaborators import CurrencyConverter
from sales_kernel.domain.order import Order, OrderLine
from sales_kernel.domain.rounding import (
    DEFAULT_SCALE,
    HUNDRED,
    ONE,
    ZERO,
    divide,
    round_half_up,
)
from sales_kernel.domain.settings import SaleSettings
from sales_kernel.logging_config import get_logger

logger = get_logger("engines.line_values")


def compute_amount(quantity: Decimal, price: Decimal) -> Decimal:
    """round(quantity * price, 2, HALF_UP)."""
    return round_half_up(quantity * price, DEFAULT_SCALE)


def compute_discount(
    unit_price: Decimal,
    discount_type: DiscountType,
    discount_amount: Decimal,
    scale: int,
) -> Decimal:
    """Apply a percent or fixed discount to a unit price, rounded to ``scale``."""
    if discount_type == DiscountType.FIXED:
        return round_half_up(unit_price - discount_amount, scale)
    if discount_type == DiscountType.PERCENT:
        return divide(unit_price * (HUNDRED - discount_amount), HUNDRED, scale)
    return unit_price


def amount_in_company_currency(
    converter: CurrencyConverter,
    order: Order,
    amount: Decimal,
) -> Decimal:
    """Convert an order-currency amount to the company currency, 2 places."""
    return round_half_up(
        converter.convert(
            order.currency,
            order.company.currency,
            amount,
            order.creation_date,
        ),
        DEFAULT_SCALE,
    )


class LineValueComputer:
    """
    Derives and stores the monetary totals of a line.

    Contract:
        ``compute(order, line)`` returns a mapping of the values written on
        the line (totals, discounted price, cost subtotal and margin), or an
        empty mapping when the line is not computable yet.
    """

    def __init__(
        self,
        converter: CurrencyConverter,
        margin: MarginCalculator,
        settings: SaleSettings,
    ):
        self._converter = converter
        self._margin = margin
        self._settings = settings

    def _unit_cost_price(self, line: OrderLine) -> Decimal:
        if line.company_cost_price is not None:
            return line.company_cost_price
        return line.product.cost_price if line.product is not None else ZERO

    @traced_engine("line_values", "1.0", fingerprint_fields=("line",))
    def compute(self, order: Order, line: OrderLine) -> dict[str, Decimal]:
        if order is None or line.price is None or line.in_tax_price is None or line.qty is None:
            logger.debug("line_values_not_computable", extra={
                "line_id": str(line.id),
                "has_price": line.price is not None,
                "has_in_tax_price": line.in_tax_price is not None,
                "has_qty": line.qty is not None,
            })
            return {}

        qty = line.qty
        base_price = line.in_tax_price if order.in_ati else line.price
        price_discounted = compute_discount(
            base_price,
            line.discount_type,
            line.discount_amount,
            self._settings.unit_price_digits,
        )
        rate = line.tax_rate.fraction if line.tax_rate is not None else ZERO

        if not order.in_ati:
            ex_tax_total = compute_amount(qty, price_discounted)
            in_tax_total = ex_tax_total + ex_tax_total * rate
            company_ex_tax_total = amount_in_company_currency(
                self._converter, order, ex_tax_total
            )
            company_in_tax_total = company_ex_tax_total + company_ex_tax_total * rate
        else:
            in_tax_total = compute_amount(qty, price_discounted)
            ex_tax_total = divide(in_tax_total, rate + ONE, DEFAULT_SCALE)
            company_in_tax_total = amount_in_company_currency(
                self._converter, order, in_tax_total
            )
            company_ex_tax_total = divide(company_in_tax_total, rate + ONE, DEFAULT_SCALE)

        sub_total_cost_price = ZERO
        if line.product is not None:
            unit_cost = self._unit_cost_price(line)
            if unit_cost != 0:
                sub_total_cost_price = unit_cost * qty

        line.price_discounted = price_discounted
        line.ex_tax_total = ex_tax_total
        line.in_tax_total = in_tax_total
        line.company_ex_tax_total = company_ex_tax_total
        line.company_in_tax_total = company_in_tax_total
        line.sub_total_cost_price = sub_total_cost_price

        margin = self._margin.compute_line_margin(order, line)

        return {
            "price_discounted": price_discounted,
            "ex_tax_total": ex_tax_total,
            "in_tax_total": in_tax_total,
            "company_ex_tax_total": company_ex_tax_total,
            "company_in_tax_total": company_in_tax_total,
            "sub_total_cost_price": sub_total_cost_price,
            "sub_total_gross_margin": margin.gross_margin,
            "sub_margin_rate": margin.margin_rate,
            "sub_total_markup": margin.markup,
        }
