"""
Sales Order Module.

Responsibility:
    Persistence and transaction glue for quotations and sales orders.
    Delegates all computation to ``sales_engines`` and all row writes to
    ``SqlAlchemyOrderRepository``.

Invariants:
    - All monetary amounts use ``Decimal`` -- NEVER ``float``.
    - Every ``OrderService`` operation follows the single-transaction
      boundary contract: commit on success, rollback on failure.
"""

from sales_modules.order.orm import (
    AdvancePaymentModel,
    SaleOrderLineModel,
    SaleOrderModel,
    SaleOrderTaxLineModel,
)
from sales_modules.order.providers import (
    CatalogTaxRateResolver,
    NullPricingRuleEngine,
    ReferenceCatalog,
    StaticCurrencyConverter,
    StaticPriceListService,
)
from sales_modules.order.repository import SqlAlchemyOrderRepository
from sales_modules.order.service import OrderService, SalesCollaborators

__all__ = [
    "AdvancePaymentModel",
    "CatalogTaxRateResolver",
    "NullPricingRuleEngine",
    "OrderService",
    "ReferenceCatalog",
    "SaleOrderLineModel",
    "SaleOrderModel",
    "SaleOrderTaxLineModel",
    "SalesCollaborators",
    "SqlAlchemyOrderRepository",
    "StaticCurrencyConverter",
    "StaticPriceListService",
]
