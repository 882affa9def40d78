"""
Margin Engine - gross margin, margin rate and markup.

Per line:
    subTotalGrossMargin = companyExTaxTotal - subTotalCostPrice
    subMarginRate       = rate(companyExTaxTotal, grossMargin)
    subTotalMarkup      = rate(subTotalCostPrice, grossMargin)

where rate(den, num) is 0 for a zero denominator, else
round(100 * num / den, 2, HALF_UP). With ``consider_zero_cost`` set, a
line with zero revenue or zero cost still gets a margin, computed on its
order-currency excl.-tax total.

Order margin sums the line contributions, skipping lines without product
and (unless ``consider_zero_cost``) lines with zero revenue.

Pure functions - no I/O.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from decimal import Decimal

from sales_engines.tracer import traced_engine
from sales_kernel.domain.collaborators import CurrencyConverter
from sales_kernel.domain.order import Order, OrderLine
from sales_kernel.domain.rounding import ZERO, compute_rate, round_half_up
from sales_kernel.domain.settings import SaleSettings
from sales_kernel.logging_config import get_logger

logger = get_logger("engines.margin")


@dataclass(frozen=True)
class LineMargin:
    gross_margin: Decimal
    margin_rate: Decimal
    markup: Decimal


@dataclass(frozen=True)
class OrderMargin:
    accounted_revenue: Decimal
    total_cost_price: Decimal
    total_gross_margin: Decimal
    margin_rate: Decimal
    markup: Decimal


class MarginCalculator:
    """
    Margin computations for lines and whole orders.

    Contract:
        ``compute_line_margin`` returns the three line margin figures and
        writes them on the line. ``compute_order_margin`` writes the order
        margin fields from the current line values.
    """

    def __init__(self, converter: CurrencyConverter, settings: SaleSettings):
        self._converter = converter
        self._settings = settings

    def _company_ex_tax_total(self, order: Order, line: OrderLine) -> Decimal:
        if line.company_ex_tax_total:
            return line.company_ex_tax_total
        if not line.ex_tax_total:
            return ZERO
        return round_half_up(
            self._converter.convert(
                order.currency,
                order.company.currency,
                line.ex_tax_total,
                order.creation_date,
            )
        )

    @traced_engine("margin_line", "1.0", fingerprint_fields=("line",))
    def compute_line_margin(self, order: Order, line: OrderLine) -> LineMargin:
        ex_tax_total = line.ex_tax_total or ZERO
        cost = line.sub_total_cost_price or ZERO
        gross_margin = ZERO
        margin_rate = ZERO

        if line.product is not None and ex_tax_total != 0 and cost != 0:
            total_wt = self._company_ex_tax_total(order, line)
            gross_margin = total_wt - cost
            margin_rate = compute_rate(total_wt, gross_margin)

        if self._settings.consider_zero_cost and (ex_tax_total == 0 or cost == 0):
            gross_margin = ex_tax_total - cost
            margin_rate = compute_rate(ex_tax_total, gross_margin)

        markup = compute_rate(cost, gross_margin)

        line.sub_total_gross_margin = gross_margin
        line.sub_margin_rate = margin_rate
        line.sub_total_markup = markup
        return LineMargin(gross_margin, margin_rate, markup)

    @traced_engine("margin_order", "1.0", fingerprint_fields=("order",))
    def compute_order_margin(self, order: Order) -> OrderMargin:
        t0 = time.monotonic()
        total_cost = ZERO
        total_gross_margin = ZERO
        accounted_revenue = ZERO
        counted = 0

        for line in order.lines:
            if line.product is None:
                continue
            if line.ex_tax_total == 0 and not self._settings.consider_zero_cost:
                continue
            total_cost += line.sub_total_cost_price
            total_gross_margin += line.sub_total_gross_margin
            accounted_revenue += line.company_ex_tax_total
            counted += 1

        result = OrderMargin(
            accounted_revenue=accounted_revenue,
            total_cost_price=total_cost,
            total_gross_margin=total_gross_margin,
            margin_rate=compute_rate(accounted_revenue, total_gross_margin),
            markup=compute_rate(total_cost, total_gross_margin),
        )
        order.accounted_revenue = result.accounted_revenue
        order.total_cost_price = result.total_cost_price
        order.total_gross_margin = result.total_gross_margin
        order.margin_rate = result.margin_rate
        order.markup = result.markup

        logger.info("order_margin_computed", extra={
            "order_id": str(order.id),
            "line_count": counted,
            "accounted_revenue": str(accounted_revenue),
            "total_gross_margin": str(total_gross_margin),
            "margin_rate": str(result.margin_rate),
            "duration_ms": round((time.monotonic() - t0) * 1000, 2),
        })
        return result
