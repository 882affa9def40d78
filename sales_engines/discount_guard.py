"""
Discount Guard Engine - authorized discount ceilings per product category.

The ceiling of a line is the first non-zero ``max_discount`` found walking
up from its product's category. A line's manual discount derogation can
only raise that ceiling (``max(derogation, category ceiling)``).

Discounts are compared as percentages: a fixed discount is converted with
round(amount * 100 / price, 2, HALF_UP).

Ceilings apply while the order is a draft quotation, or a confirmed order
reopened for edition. Locked orders are not re-validated.

Pure functions - no I/O.
"""

from __future__ import annotations

import time
from collections.abc import Iterable
from decimal import Decimal
from uuid import UUID

from sales_engines.tracer import traced_engine
from sales_kernel.domain.catalog import DiscountType, ProductCategory
from sales_kernel.domain.collaborators import CategoryMaxDiscountLookup
from sales_kernel.domain.order import Order, OrderLine, OrderStatus
from sales_kernel.domain.rounding import DEFAULT_SCALE, HUNDRED, ZERO, divide
from sales_kernel.exceptions import CategoryCycleError, DiscountOffence, DiscountTooHighError
from sales_kernel.logging_config import get_logger

logger = get_logger("engines.discount_guard")

_CLOSED_STATUSES = frozenset({OrderStatus.ORDER_COMPLETED, OrderStatus.CANCELED})


class CategoryTreeMaxDiscountLookup:
    """
    In-memory category tree implementing CategoryMaxDiscountLookup.

    Guarantees:
        - Walking up or down the tree never loops: revisiting a category
          raises CategoryCycleError.
    """

    def __init__(self, categories: Iterable[ProductCategory]):
        self._by_id: dict[UUID, ProductCategory] = {c.id: c for c in categories}

    def _current(self, category: ProductCategory) -> ProductCategory:
        return self._by_id.get(category.id, category)

    def max_discount_chain(self, category: ProductCategory) -> Decimal | None:
        node: ProductCategory | None = self._current(category)
        visited: list[UUID] = []
        codes: list[str] = []
        while node is not None:
            if node.id in visited:
                codes.append(node.code)
                raise CategoryCycleError(node.code, codes)
            visited.append(node.id)
            codes.append(node.code)
            if node.max_discount > 0:
                return node.max_discount
            node = self._by_id.get(node.parent_id) if node.parent_id is not None else None
        return None

    def impacted_categories(self, category: ProductCategory) -> list[ProductCategory]:
        """``category`` and its descendants without a ceiling of their own."""
        root = self._current(category)
        impacted = [root]
        frontier = self._children_without_max(root)
        while frontier:
            next_frontier: list[ProductCategory] = []
            for child in frontier:
                if any(child.id == seen.id for seen in impacted):
                    raise CategoryCycleError(child.code, [c.code for c in impacted] + [child.code])
                impacted.append(child)
                next_frontier.extend(self._children_without_max(child))
            frontier = next_frontier
        return impacted

    def _children_without_max(self, category: ProductCategory) -> list[ProductCategory]:
        return [
            c for c in self._by_id.values()
            if c.parent_id == category.id and c.max_discount <= 0
        ]


def discount_as_percent(line: OrderLine) -> Decimal:
    """Line discount expressed as a percentage of its unit price."""
    if line.discount_type == DiscountType.PERCENT:
        return line.discount_amount
    if line.discount_type == DiscountType.FIXED:
        price = line.price or ZERO
        if price == 0:
            return ZERO
        return divide(line.discount_amount * HUNDRED, price, DEFAULT_SCALE)
    return ZERO


class DiscountGuard:
    """
    Validates line discounts against category ceilings.

    Contract:
        ``check_discounts(order)`` returns None when every line is within
        its ceiling and raises DiscountTooHighError listing every offending
        line otherwise.
    """

    def __init__(self, lookup: CategoryMaxDiscountLookup):
        self._lookup = lookup

    def compute_max_discount(self, order: Order | None, line: OrderLine) -> Decimal | None:
        """Ceiling for ``line``, or None when no ceiling applies."""
        product = line.product
        if order is None or product is None or product.category is None:
            return None
        if line.discount_type == DiscountType.NONE:
            return None
        if not order.is_editable():
            return None
        return self._lookup.max_discount_chain(product.category)

    def is_discount_greater_than(self, line: OrderLine, max_discount: Decimal) -> bool:
        if line.discount_type == DiscountType.PERCENT:
            return line.discount_amount > max_discount
        if line.discount_type == DiscountType.FIXED and line.price:
            return discount_as_percent(line) > max_discount
        return False

    @traced_engine("discount_guard", "1.0", fingerprint_fields=("order",))
    def check_discounts(self, order: Order) -> None:
        t0 = time.monotonic()
        offences: list[DiscountOffence] = []
        for line in order.lines:
            max_discount = self.compute_max_discount(order, line)
            if max_discount is None:
                continue
            if line.discount_derogation is not None:
                max_discount = max(line.discount_derogation, max_discount)
            if self.is_discount_greater_than(line, max_discount):
                offences.append(
                    DiscountOffence(
                        line_id=str(line.id),
                        sequence=line.sequence,
                        product_code=line.product.code if line.product else None,
                        discount_amount=line.discount_amount,
                        discount_type=line.discount_type.value,
                        max_discount=max_discount,
                    )
                )

        if offences:
            logger.warning("discount_ceiling_exceeded", extra={
                "order_id": str(order.id),
                "offending_line_count": len(offences),
                "sequences": [o.sequence for o in offences],
            })
            raise DiscountTooHighError(order.reference, offences)

        logger.debug("discounts_within_ceiling", extra={
            "order_id": str(order.id),
            "duration_ms": round((time.monotonic() - t0) * 1000, 2),
        })

    @traced_engine("discount_review", "1.0", fingerprint_fields=("category",))
    def flag_lines_for_review(
        self,
        category: ProductCategory,
        orders: Iterable[Order],
    ) -> list[OrderLine]:
        """Flag open lines whose discount now exceeds a changed category ceiling.

        Covers lines of ``category`` and of descendants that inherit its
        ceiling. Completed and canceled orders are left alone.
        """
        impacted_ids = {c.id for c in self._lookup.impacted_categories(category)}
        max_discount = self._lookup.max_discount_chain(category)
        flagged: list[OrderLine] = []
        if max_discount is None:
            return flagged

        for order in orders:
            if order.status in _CLOSED_STATUSES:
                continue
            for line in order.lines:
                product = line.product
                if product is None or product.category is None:
                    continue
                if product.category.id not in impacted_ids:
                    continue
                if discount_as_percent(line) > max_discount:
                    line.discounts_need_review = True
                    flagged.append(line)

        logger.info("discount_review_flagged", extra={
            "category_code": category.code,
            "impacted_category_count": len(impacted_ids),
            "flagged_line_count": len(flagged),
        })
        return flagged
