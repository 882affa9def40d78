"""
Order Compute Engine - authoritative recompute of an order's derived fields.

Pipeline, in this order:
    1. clear the tax-line list
    2. recompute each line's company-currency excl.-tax total
    3. aggregate tax lines (TaxAggregator) into the cleared list, only
       once the order has a client
    4. re-sum exTaxTotal and companyExTaxTotal over NORMAL lines, taxTotal
       over tax lines, inTaxTotal = exTaxTotal + taxTotal
    5. advanceTotal = sum of advance payments
    6. run the capability extensions selected by the FeatureSet

Totals are never patched from a single line edit: every change goes
through ``compute_order``. Pack-subtotal bracketing is a separate pass
(``compute_pack_total``/``reset_pack_total``) that callers invoke
explicitly.

Pure functions - no I/O.
"""

from __future__ import annotations

import time
from collections.abc import Sequence
from decimal import Decimal
from typing import Protocol

from sales_engines.line_values import amount_in_company_currency
from sales_engines.tax_aggregation import TaxAggregator
from sales_engines.tracer import traced_engine
from sales_kernel.domain.catalog import LineType, SaleSupply
from sales_kernel.domain.collaborators import CurrencyConverter
from sales_kernel.domain.order import Order
from sales_kernel.domain.rounding import ZERO
from sales_kernel.domain.settings import FeatureSet
from sales_kernel.logging_config import get_logger

logger = get_logger("engines.order_compute")


class OrderComputeExtension(Protocol):
    """Optional step appended to the base order recompute."""

    name: str

    def after_totals(self, order: Order) -> None:
        ...


class SupplyChainComputeExtension:
    """
    Supply-chain additions to the order recompute.

    - ``standard_delay`` is the longest standard delay among lines supplied
      by production or purchase (0 when there is none).
    - With advance-payment invoices enabled, ``advance_total`` becomes the
      sum of the amounts paid on advance-payment invoices.
    """

    name = "supplychain"

    def __init__(self, manage_advance_payment_invoices: bool = False):
        self._manage_advance_payment_invoices = manage_advance_payment_invoices

    def after_totals(self, order: Order) -> None:
        order.standard_delay = max(
            (
                line.standard_delay or 0
                for line in order.lines
                if line.sale_supply in (SaleSupply.PRODUCE, SaleSupply.PURCHASE)
            ),
            default=0,
        )
        if self._manage_advance_payment_invoices:
            order.advance_total = sum(
                (invoice.amount_paid for invoice in order.advance_payment_invoices),
                ZERO,
            )


def extensions_for(features: FeatureSet) -> list[OrderComputeExtension]:
    """Ordered extensions implied by the installed capabilities."""
    extensions: list[OrderComputeExtension] = []
    if features.supplychain:
        extensions.append(
            SupplyChainComputeExtension(
                manage_advance_payment_invoices=features.advance_payment_invoices
            )
        )
    return extensions


class OrderComputer:
    """
    Recomputes the derived fields of an order.

    Contract:
        ``compute_order`` is idempotent: running it twice on an unchanged
        order gives the same totals. It only writes derived fields (company
        totals of lines, tax lines, order totals, notes, extension fields).
    """

    def __init__(
        self,
        converter: CurrencyConverter,
        tax_aggregator: TaxAggregator | None = None,
        extensions: Sequence[OrderComputeExtension] = (),
    ):
        self._converter = converter
        self._tax_aggregator = tax_aggregator or TaxAggregator()
        self._extensions = list(extensions)

    @classmethod
    def for_features(
        cls,
        converter: CurrencyConverter,
        features: FeatureSet,
    ) -> "OrderComputer":
        return cls(converter, TaxAggregator(), extensions_for(features))

    @traced_engine("order_compute", "1.0", fingerprint_fields=("order",))
    def compute_order(self, order: Order) -> Order:
        t0 = time.monotonic()
        logger.info("order_compute_started", extra={
            "order_id": str(order.id),
            "line_count": len(order.lines),
            "extensions": [e.name for e in self._extensions],
        })

        order.tax_lines = []

        for line in order.lines:
            line.company_ex_tax_total = amount_in_company_currency(
                self._converter, order, line.ex_tax_total or ZERO
            )

        if order.client_partner is not None:
            order.tax_lines.extend(self._tax_aggregator.aggregate(order))

        self._compute_totals(order)

        for extension in self._extensions:
            extension.after_totals(order)

        logger.info("order_compute_completed", extra={
            "order_id": str(order.id),
            "ex_tax_total": order.ex_tax_total,
            "tax_total": order.tax_total,
            "in_tax_total": order.in_tax_total,
            "company_ex_tax_total": order.company_ex_tax_total,
            "advance_total": order.advance_total,
            "tax_line_count": len(order.tax_lines),
            "duration_ms": round((time.monotonic() - t0) * 1000, 2),
        })
        return order

    def _compute_totals(self, order: Order) -> None:
        ex_tax_total = ZERO
        company_ex_tax_total = ZERO
        for line in order.lines:
            if line.is_normal:
                ex_tax_total += line.ex_tax_total
                company_ex_tax_total += line.company_ex_tax_total

        order.ex_tax_total = ex_tax_total
        order.company_ex_tax_total = company_ex_tax_total
        order.tax_total = sum((t.tax_total for t in order.tax_lines), ZERO)
        order.in_tax_total = order.ex_tax_total + order.tax_total
        order.advance_total = sum(
            (payment.amount for payment in order.advance_payments), ZERO
        )

    # ------------------------------------------------------------------
    # Pack subtotals
    # ------------------------------------------------------------------

    @traced_engine("pack_total", "1.0", fingerprint_fields=("order",))
    def compute_pack_total(self, order: Order) -> Order:
        """Write running pack subtotals into END_OF_PACK lines.

        No-op when the order has no END_OF_PACK line.
        """
        if not any(line.type_select == LineType.END_OF_PACK for line in order.lines):
            return order

        order.lines.sort(key=lambda line: line.sequence)
        running_ex = ZERO
        running_in = ZERO
        written = 0
        for line in order.lines:
            if line.type_select == LineType.NORMAL:
                running_ex += line.ex_tax_total
                running_in += line.in_tax_total
            elif line.type_select == LineType.START_OF_PACK:
                running_ex = ZERO
                running_in = ZERO
            elif line.type_select == LineType.END_OF_PACK:
                line.qty = ZERO
                line.ex_tax_total = running_ex if line.is_show_total else ZERO
                line.in_tax_total = running_in if line.is_show_total else ZERO
                running_ex = ZERO
                running_in = ZERO
                written += 1

        logger.debug("pack_totals_computed", extra={
            "order_id": str(order.id),
            "end_of_pack_count": written,
        })
        return order

    def reset_pack_total(self, order: Order) -> Order:
        """Clear END_OF_PACK display flags and totals."""
        for line in order.lines:
            if line.type_select == LineType.END_OF_PACK:
                line.is_hide_unit_amounts = False
                line.is_show_total = False
                line.ex_tax_total = ZERO
                line.in_tax_total = ZERO
        return order

    def total_order_price(self, order: Order) -> Decimal:
        """Sum of quantity times discounted unit price over all lines."""
        return sum(
            ((line.qty or ZERO) * line.price_discounted for line in order.lines),
            ZERO,
        )
