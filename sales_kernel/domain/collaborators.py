"""
Collaborator interfaces consumed by the sales engines.

Exchange rates, tax determination, pricing rules, price lists and the
category discount ceilings are black boxes to the core. Engines receive
implementations through their constructors; ``sales_modules.order.providers``
ships in-memory implementations.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Protocol
from uuid import UUID

from sales_kernel.domain.catalog import (
    Company,
    DiscountType,
    FiscalPosition,
    PriceList,
    PriceListLine,
    Product,
    ProductCategory,
    TaxEquivalence,
    TaxRate,
)
from sales_kernel.domain.order import Order, OrderLine


@dataclass(frozen=True)
class PriceListDiscount:
    """Outcome of applying a price list to a unit price.

    ``price`` is a replacement unit price, or None to keep the computed one.
    """

    price: Decimal | None
    discount_amount: Decimal
    discount_type: DiscountType


class CurrencyConverter(Protocol):
    """Pluggable interface for currency conversion."""

    def convert(
        self,
        from_currency: str,
        to_currency: str,
        amount: Decimal,
        as_of: date | None,
    ) -> Decimal:
        """Convert ``amount``. Raises MissingExchangeRateError when no rate exists."""
        ...


class TaxRateResolver(Protocol):
    """Pluggable interface for tax determination."""

    def tax_line_for(
        self,
        as_of: date | None,
        product: Product,
        company: Company,
        fiscal_position: FiscalPosition | None,
    ) -> TaxRate | None:
        ...

    def tax_equivalence_for(
        self,
        product: Product,
        company: Company,
        fiscal_position: FiscalPosition | None,
    ) -> TaxEquivalence | None:
        ...


class PricingRuleEngine(Protocol):
    """Pluggable interface for pricing scales (catalog pricing rules)."""

    def match_root_rule(
        self,
        company: Company,
        product: Product,
        category: ProductCategory | None,
        context: str,
    ) -> Any | None:
        """Return the first matching root rule, or None."""
        ...

    def apply(self, rule: Any, line: OrderLine) -> None:
        """Apply ``rule`` to ``line`` in place."""
        ...


class PriceListService(Protocol):
    """Pluggable interface for price list matching."""

    def line_for(
        self,
        product: Product,
        qty: Decimal,
        price_list: PriceList,
        price: Decimal,
    ) -> PriceListLine | None:
        ...

    def discount_and_replacement_price(
        self,
        price_list: PriceList,
        price_list_line: PriceListLine | None,
        price: Decimal,
    ) -> PriceListDiscount | None:
        ...


class CategoryMaxDiscountLookup(Protocol):
    """Resolves the authorized discount ceiling of a product category."""

    def max_discount_chain(self, category: ProductCategory) -> Decimal | None:
        """First non-zero max discount walking up from ``category``, or None."""
        ...

    def impacted_categories(self, category: ProductCategory) -> list[ProductCategory]:
        """``category`` plus descendants that inherit its ceiling."""
        ...


class OrderRepository(Protocol):
    """Persistence boundary. Called by services only, never by engines."""

    def find(self, order_id: UUID) -> Order:
        ...

    def save(self, order: Order) -> None:
        ...

    def remove(self, order: Order) -> None:
        ...
