"""
Pack Engine - expands pack templates into order lines.

Expansion of a pack bought ``multiplier`` times:

    - components are taken in template sequence order
    - each component quantity is component.quantity * multiplier, rounded
      HALF_UP to the quantity precision
    - component prices are converted into the order currency when the pack
      is priced in another currency
    - unless the pack suppresses brackets, START_OF_PACK (named after the
      pack, quantity = multiplier) and END_OF_PACK (localized label, pack
      display flags) lines are synthesized when the template lacks them
    - sequences continue contiguously after the order's highest sequence

Changing the quantity of a START_OF_PACK line rescales every line up to the
matching END_OF_PACK: qty / old is rounded HALF_EVEN to the quantity
precision, then multiplied by new and rounded again. Explicit START_OF_PACK
components are scaled HALF_EVEN as well. Both rounding modes are part of
the observable behaviour and must not be unified.

Pure functions - collaborators are injected, no I/O.
"""

from __future__ import annotations

import time
from decimal import Decimal
from uuid import UUID

from sales_engines.line_pricing import LineInformationResolver
from sales_engines.line_values import LineValueComputer
from sales_engines.tracer import traced_engine
from sales_kernel.domain.catalog import LineType, PackLineTemplate, PackTemplate
from sales_kernel.domain.collaborators import CurrencyConverter
from sales_kernel.domain.order import Order, OrderLine
from sales_kernel.domain.rounding import ONE, ZERO, round_half_even, round_half_up
from sales_kernel.domain.settings import SaleSettings
from sales_kernel.exceptions import NotAPackHeaderError, OrderLineNotFoundError
from sales_kernel.logging_config import get_logger

logger = get_logger("engines.pack")

_BRACKETS = (LineType.START_OF_PACK, LineType.END_OF_PACK)


class PackExpander:
    """
    Turns pack templates into concrete order lines.

    Contract:
        ``expand`` returns new lines without touching the order's line list.
        ``add_pack`` appends them to the order. Neither recomputes order
        totals; callers run the order computer afterwards.

    Non-goals:
        Templates are never mutated.
    """

    def __init__(
        self,
        resolver: LineInformationResolver,
        values: LineValueComputer,
        converter: CurrencyConverter,
        settings: SaleSettings,
    ):
        self._resolver = resolver
        self._values = values
        self._converter = converter
        self._settings = settings

    def conversion_rate(self, template: PackTemplate, order: Order) -> Decimal:
        if template.currency is None or template.currency == order.currency:
            return ONE
        return self._converter.convert(
            template.currency, order.currency, ONE, order.creation_date
        )

    @traced_engine("pack_expand", "1.0", fingerprint_fields=("template", "multiplier"))
    def expand(
        self,
        template: PackTemplate,
        order: Order,
        multiplier: Decimal,
    ) -> list[OrderLine]:
        components = template.sorted_components()
        if not components:
            return []

        t0 = time.monotonic()
        sequence = order.max_sequence()
        rate = self.conversion_rate(template, order)
        component_types = template.component_types()
        suppress_brackets = template.do_not_display_header_and_end_pack

        lines: list[OrderLine] = []
        end_line: OrderLine | None = None
        if not suppress_brackets:
            if LineType.START_OF_PACK not in component_types:
                sequence += 1
                lines.append(
                    self._bracket_line(LineType.START_OF_PACK, template, multiplier, sequence)
                )
            if LineType.END_OF_PACK not in component_types:
                end_line = self._bracket_line(
                    LineType.END_OF_PACK,
                    template,
                    multiplier,
                    sequence + len(components) + 1,
                )

        for component in components:
            if suppress_brackets and component.line_type in _BRACKETS:
                continue
            sequence += 1
            line = self._component_line(component, template, order, multiplier, rate, sequence)
            if line is not None:
                lines.append(line)

        if end_line is not None:
            lines.append(end_line)

        logger.info("pack_expanded", extra={
            "order_id": str(order.id),
            "pack_name": template.name,
            "multiplier": multiplier,
            "line_count": len(lines),
            "conversion_rate": rate,
            "duration_ms": round((time.monotonic() - t0) * 1000, 2),
        })
        return lines

    def add_pack(self, order: Order, template: PackTemplate, multiplier: Decimal) -> list[OrderLine]:
        lines = self.expand(template, order, multiplier)
        order.lines.extend(lines)
        return lines

    def _bracket_line(
        self,
        line_type: LineType,
        template: PackTemplate,
        multiplier: Decimal,
        sequence: int,
        component: PackLineTemplate | None = None,
    ) -> OrderLine:
        line = OrderLine(type_select=line_type, sequence=sequence, product=None)
        if line_type == LineType.START_OF_PACK:
            line.product_name = component.product_name if component else template.name
            if component is not None and component.quantity is not None:
                line.qty = round_half_even(
                    component.quantity * multiplier, self._settings.quantity_digits
                )
            else:
                line.qty = multiplier
        else:
            line.product_name = (
                component.product_name if component else self._settings.end_of_pack_label
            )
            line.qty = ZERO
            line.is_show_total = template.is_show_total
            line.is_hide_unit_amounts = template.is_hide_unit_amounts
        return line

    def _component_line(
        self,
        component: PackLineTemplate,
        template: PackTemplate,
        order: Order,
        multiplier: Decimal,
        rate: Decimal,
        sequence: int,
    ) -> OrderLine | None:
        if component.line_type in _BRACKETS:
            return self._bracket_line(component.line_type, template, multiplier, sequence, component)
        if component.product_name is None:
            return None

        line = OrderLine(
            product=component.product,
            product_name=component.product_name,
            qty=round_half_up(
                (component.quantity or ZERO) * multiplier, self._settings.quantity_digits
            ),
            unit=component.unit,
            type_select=component.line_type,
            sequence=sequence,
            price=component.price * rate,
        )
        if component.product is not None:
            if self._settings.product_description_copy:
                line.description = component.product.description
            self._resolver.resolve_from_pack_line(line, order)
            self._values.compute(order, line)
        return line

    # ------------------------------------------------------------------
    # Pack header quantity
    # ------------------------------------------------------------------

    @traced_engine("pack_header_qty", "1.0", fingerprint_fields=("header_line_id", "new_qty"))
    def propagate_header_quantity(
        self,
        order: Order,
        header_line_id: UUID,
        new_qty: Decimal,
    ) -> list[OrderLine]:
        """Set a START_OF_PACK quantity and rescale the lines of its pack.

        Returns the NORMAL lines that were rescaled and re-priced.
        """
        header = order.find_line(header_line_id)
        if header is None:
            raise OrderLineNotFoundError(order.id, header_line_id)
        if header.type_select != LineType.START_OF_PACK:
            raise NotAPackHeaderError(order.id, header_line_id, header.type_select)

        old_qty = header.qty or ZERO
        header.qty = new_qty
        if new_qty == old_qty:
            return []

        updated: list[OrderLine] = []
        in_pack = False
        for line in order.sorted_lines():
            if line.id == header.id:
                in_pack = True
                continue
            if not in_pack:
                continue
            if line.type_select == LineType.END_OF_PACK:
                break
            if line.type_select != LineType.NORMAL:
                continue
            if old_qty != 0 and line.qty is not None:
                digits = self._settings.quantity_digits
                ratio = round_half_even(line.qty / old_qty, digits)
                line.qty = round_half_even(ratio * new_qty, digits)
            if line.product is not None:
                self._resolver.resolve_from_pack_line(line, order)
                self._values.compute(order, line)
            updated.append(line)

        logger.info("pack_header_quantity_propagated", extra={
            "order_id": str(order.id),
            "header_line_id": str(header.id),
            "old_qty": old_qty,
            "new_qty": new_qty,
            "updated_line_count": len(updated),
        })
        return updated
