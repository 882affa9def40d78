"""
Complementary Product Engine - satellite lines generated from a main line.

Two sources of complementary products:

    product-selected   the user ticks complementary products offered on a
                       line; satellites are correlated to their origin by
                       ``parent_id == origin.manual_id``
    partner-defined    the client's complementary products, added per line
                       or once per order; satellites point at their main
                       line through ``main_line_id``

Both keys are non-owning correlation ids: the order still owns every line.
"""

from __future__ import annotations

from collections.abc import Callable
from uuid import uuid4

from sales_engines.line_pricing import LineInformationResolver
from sales_engines.line_values import LineValueComputer
from sales_engines.tracer import traced_engine
from sales_kernel.domain.catalog import ComplementaryGeneration, ComplementaryProduct
from sales_kernel.domain.order import Order, OrderLine
from sales_kernel.logging_config import get_logger

logger = get_logger("engines.complementary")


def _new_manual_id() -> str:
    return uuid4().hex


class ComplementaryProductHandler:
    """Creates, refreshes and removes complementary satellite lines."""

    def __init__(
        self,
        resolver: LineInformationResolver,
        values: LineValueComputer,
        id_factory: Callable[[], str] = _new_manual_id,
    ):
        self._resolver = resolver
        self._values = values
        self._id_factory = id_factory

    def _price(self, line: OrderLine, order: Order) -> None:
        self._resolver.resolve(line, order)
        self._values.compute(order, line)

    @traced_engine("complementary_products", "1.0", fingerprint_fields=("order",))
    def handle_complementary_products(self, order: Order) -> list[OrderLine]:
        """Sync satellites of the first line whose selection is unhandled.

        Selected products get a line right after the origin line (or have
        their existing line re-priced); deselected ones lose their line.
        Sequences are renumbered to the list position afterwards.
        """
        origin = next(
            (line for line in order.lines if line.is_complementary_products_unhandled_yet),
            None,
        )
        added = removed = 0
        if origin is not None:
            if not origin.manual_id:
                origin.manual_id = self._id_factory()

            if origin.product is not None:
                for selected in origin.selected_complementary_products:
                    existing = next(
                        (
                            line for line in order.lines
                            if line.parent_id == origin.manual_id
                            and line.product is not None
                            and line.product.id == selected.product.id
                        ),
                        None,
                    )
                    if existing is not None:
                        if selected.is_selected:
                            existing.qty = selected.qty
                            self._price(existing, order)
                        else:
                            order.lines.remove(existing)
                            removed += 1
                    elif selected.is_selected:
                        satellite = OrderLine(
                            product=selected.product,
                            qty=selected.qty,
                            parent_id=origin.manual_id,
                        )
                        self._price(satellite, order)
                        order.lines.insert(order.lines.index(origin) + 1, satellite)
                        added += 1
                origin.is_complementary_products_unhandled_yet = False

        for position, line in enumerate(order.lines):
            line.sequence = position

        logger.info("complementary_products_handled", extra={
            "order_id": str(order.id),
            "origin_line_id": str(origin.id) if origin is not None else None,
            "added": added,
            "removed": removed,
        })
        return order.lines

    def manage_complementary_line(
        self,
        complementary: ComplementaryProduct,
        order: Order,
        line: OrderLine,
    ) -> list[OrderLine]:
        """Create or refresh the satellite of ``line`` for a partner product.

        Returns the newly created satellites (not yet attached to the order).
        Satellites never get satellites of their own.
        """
        created: list[OrderLine] = []
        if line.main_line_id is not None:
            return created

        satellite = next(
            (
                candidate for candidate in order.lines
                if candidate.main_line_id == line.id
                and candidate.product is not None
                and candidate.product.id == complementary.product.id
            ),
            None,
        )
        if satellite is None:
            satellite = OrderLine(
                product=complementary.product,
                sequence=line.sequence,
                main_line_id=line.id,
            )
            created.append(satellite)

        satellite.qty = complementary.qty
        satellite.is_complementary_partner_products_handled = (
            complementary.generation == ComplementaryGeneration.PER_ORDER
        )
        self._price(satellite, order)
        return created

    @traced_engine("partner_complementary_products", "1.0", fingerprint_fields=("order",))
    def manage_partner_complementary_lines(self, order: Order) -> list[OrderLine]:
        """Add the client's complementary products to the order.

        Per-order products attach once to the last line; per-line products
        attach to every main line. Returns the lines added to the order.
        """
        client = order.client_partner
        if client is None or not order.lines or not client.complementary_products:
            return []

        created: list[OrderLine] = []
        main_lines = list(order.lines)
        for complementary in client.complementary_products:
            product = complementary.product
            if complementary.generation == ComplementaryGeneration.PER_ORDER:
                already_handled = any(
                    line.product is not None
                    and line.product.id == product.id
                    and line.is_complementary_partner_products_handled
                    for line in order.lines
                )
                if already_handled:
                    continue
                last_line = max(main_lines, key=lambda line: line.sequence)
                created.extend(self.manage_complementary_line(complementary, order, last_line))
            else:
                for line in main_lines:
                    created.extend(self.manage_complementary_line(complementary, order, line))

        order.lines.extend(created)
        logger.info("partner_complementary_lines_managed", extra={
            "order_id": str(order.id),
            "created_line_count": len(created),
        })
        return created

    def satellites_of(self, order: Order, line: OrderLine) -> list[OrderLine]:
        """Lines correlated to ``line`` by either complementary key."""
        return [
            candidate for candidate in order.lines
            if candidate.main_line_id == line.id
            or (line.manual_id and candidate.parent_id == line.manual_id)
        ]
