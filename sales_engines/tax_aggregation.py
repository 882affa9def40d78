"""
Tax Aggregation Engine - one tax entry per tax-rate record.

Walks the order's lines in document order. NORMAL lines feed the excl.-tax
base of their tax-rate record; every line, whatever its type, is scanned
for a tax-equivalence specific note.

Grouping is by record identity: two rate records with the same numeric
value stay in separate entries.

    taxTotal   = round(exTaxBase * rate / 100, 2, HALF_UP)
    inTaxTotal = exTaxBase + taxTotal

Side effect: sets ``order.specific_notes`` to the distinct equivalence
notes joined by newlines (first-appearance order), or to the client's own
specific tax note when the fiscal position forces customer notes.

Pure functions - no I/O.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sales_engines.tracer import traced_engine
from sales_kernel.domain.catalog import TaxRate
from sales_kernel.domain.order import Order, OrderTaxLine
from sales_kernel.domain.rounding import DEFAULT_SCALE, ZERO, round_half_up
from sales_kernel.logging_config import get_logger

logger = get_logger("engines.tax_aggregation")


class TaxAggregator:
    """Builds the per-rate tax lines of an order from scratch."""

    @traced_engine("tax_aggregation", "1.0", fingerprint_fields=("order",))
    def aggregate(self, order: Order) -> list[OrderTaxLine]:
        bases: dict[UUID, tuple[TaxRate, Decimal]] = {}
        notes: list[str] = []
        customer_specific = (
            order.fiscal_position is not None
            and order.fiscal_position.customer_specific_note
        )

        for line in order.lines:
            tax_rate = line.tax_rate
            if line.is_normal and tax_rate is not None:
                _, base = bases.get(tax_rate.id, (tax_rate, ZERO))
                bases[tax_rate.id] = (tax_rate, base + (line.ex_tax_total or ZERO))

            if not customer_specific:
                equivalence = line.tax_equivalence
                if equivalence is not None and equivalence.specific_note:
                    if equivalence.specific_note not in notes:
                        notes.append(equivalence.specific_note)

        tax_lines = []
        for tax_rate, base in bases.values():
            tax_total = round_half_up(base * tax_rate.value / Decimal(100), DEFAULT_SCALE)
            tax_lines.append(
                OrderTaxLine(
                    tax_rate=tax_rate,
                    ex_tax_base=base,
                    tax_total=tax_total,
                    in_tax_total=base + tax_total,
                )
            )

        if customer_specific:
            client = order.client_partner
            order.specific_notes = client.specific_tax_note if client is not None else None
        else:
            order.specific_notes = "\n".join(notes) if notes else None

        logger.info("tax_lines_aggregated", extra={
            "order_id": str(order.id),
            "tax_line_count": len(tax_lines),
            "tax_codes": [t.tax_rate.code for t in tax_lines],
            "note_count": len(notes),
            "customer_specific_note": customer_specific,
        })
        return tax_lines
