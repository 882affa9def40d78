"""
Order Split Engine - moves selected lines into a new quotation.

The new quotation copies the source header (client, company, currency,
price list, fiscal position...) and receives each selected line together
with its complementary satellites. Both orders are recomputed.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import replace
from datetime import date
from uuid import UUID, uuid4

from sales_engines.complementary import ComplementaryProductHandler
from sales_engines.margin import MarginCalculator
from sales_engines.order_compute import OrderComputer
from sales_engines.tracer import traced_engine
from sales_kernel.domain.order import Order, OrderLine, OrderStatus
from sales_kernel.domain.rounding import ZERO
from sales_kernel.exceptions import OrderLineNotFoundError
from sales_kernel.logging_config import get_logger

logger = get_logger("engines.split")


class OrderSplitter:
    def __init__(
        self,
        order_computer: OrderComputer,
        margin: MarginCalculator,
        complementary: ComplementaryProductHandler,
    ):
        self._order_computer = order_computer
        self._margin = margin
        self._complementary = complementary

    def _copy_header(self, order: Order, creation_date: date | None) -> Order:
        return replace(
            order,
            id=uuid4(),
            reference=None,
            creation_date=creation_date or order.creation_date,
            status=OrderStatus.DRAFT_QUOTATION,
            order_being_edited=False,
            lines=[],
            tax_lines=[],
            advance_payments=[],
            advance_payment_invoices=[],
            ex_tax_total=ZERO,
            tax_total=ZERO,
            in_tax_total=ZERO,
            company_ex_tax_total=ZERO,
            advance_total=ZERO,
        )

    @traced_engine("order_split", "1.0", fingerprint_fields=("order", "line_ids"))
    def separate(
        self,
        order: Order,
        line_ids: Iterable[UUID],
        creation_date: date | None = None,
    ) -> Order:
        """Move the given lines (and their satellites) to a new quotation."""
        index = order.line_index()
        moved: list[OrderLine] = []
        moved_ids: set[UUID] = set()
        for line_id in line_ids:
            line = index.get(line_id)
            if line is None:
                raise OrderLineNotFoundError(order.id, line_id)
            for candidate in [line, *self._complementary.satellites_of(order, line)]:
                if candidate.id not in moved_ids:
                    moved_ids.add(candidate.id)
                    moved.append(candidate)

        new_order = self._copy_header(order, creation_date)
        new_order.lines = moved
        order.lines = [line for line in order.lines if line.id not in moved_ids]

        for target in (new_order, order):
            self._order_computer.compute_order(target)
            self._margin.compute_order_margin(target)

        logger.info("order_split", extra={
            "order_id": str(order.id),
            "new_order_id": str(new_order.id),
            "moved_line_count": len(moved),
        })
        return new_order
