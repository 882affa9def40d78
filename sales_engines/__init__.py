"""
Module: sales_engines
Responsibility:
    Package entrypoint re-exporting the pure sales computation engines.
    Canonical import surface for sales_modules.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import sales_kernel (domain, exceptions, logging_config) and
    sibling engine modules. MUST NOT import sales_modules or sales_config.

Invariants enforced:
    - Engines never read the clock; dates arrive as parameters.
    - Decimal-only arithmetic; floats are rejected at the boundary.
    - Order totals are only ever produced by OrderComputer.compute_order.

Audit relevance:
    Engine entry points are wrapped with ``@traced_engine`` and emit
    SALES_ENGINE_TRACE records (engine name, version, input fingerprint,
    duration).

Usage:
    from sales_engines import LineInformationResolver, LineValueComputer
    from sales_engines import OrderComputer, MarginCalculator, MergeReconciler
"""

from sales_engines.complementary import ComplementaryProductHandler
from sales_engines.discount_guard import (
    CategoryTreeMaxDiscountLookup,
    DiscountGuard,
    discount_as_percent,
)
from sales_engines.line_pricing import LineInformationResolver, convert_unit_price
from sales_engines.line_values import (
    LineValueComputer,
    amount_in_company_currency,
    compute_amount,
    compute_discount,
)
from sales_engines.margin import LineMargin, MarginCalculator, OrderMargin
from sales_engines.merge import (
    FieldSeverity,
    MergeField,
    MergeReconciler,
    MergeResult,
    MergeState,
    merge_fields_for,
)
from sales_engines.order_compute import (
    OrderComputeExtension,
    OrderComputer,
    SupplyChainComputeExtension,
    extensions_for,
)
from sales_engines.pack import PackExpander
from sales_engines.split import OrderSplitter
from sales_engines.tax_aggregation import TaxAggregator
from sales_engines.tracer import compute_input_fingerprint, traced_engine

__all__ = [
    "CategoryTreeMaxDiscountLookup",
    "ComplementaryProductHandler",
    "DiscountGuard",
    "FieldSeverity",
    "LineInformationResolver",
    "LineMargin",
    "LineValueComputer",
    "MarginCalculator",
    "MergeField",
    "MergeReconciler",
    "MergeResult",
    "MergeState",
    "OrderComputeExtension",
    "OrderComputer",
    "OrderMargin",
    "OrderSplitter",
    "PackExpander",
    "SupplyChainComputeExtension",
    "TaxAggregator",
    "amount_in_company_currency",
    "compute_amount",
    "compute_discount",
    "compute_input_fingerprint",
    "convert_unit_price",
    "discount_as_percent",
    "extensions_for",
    "merge_fields_for",
    "traced_engine",
]
