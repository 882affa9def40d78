"""
In-memory collaborator implementations (``sales_modules.order.providers``).

Responsibility:
    Concrete, dictionary-backed implementations of the collaborator
    protocols declared in ``sales_kernel.domain.collaborators``, plus the
    ``ReferenceCatalog`` used to rehydrate catalog references stored by id.

Architecture position:
    **Modules layer** -- adapters. Deployments replace these with
    implementations backed by their own rate tables, tax engine and
    price-list service; the engines only see the protocols.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID

from sales_kernel.domain.catalog import (
    Company,
    DiscountType,
    FiscalPosition,
    PackTemplate,
    Partner,
    PriceList,
    PriceListLine,
    Product,
    ProductCategory,
    TaxEquivalence,
    TaxRate,
)
from sales_kernel.domain.collaborators import PriceListDiscount
from sales_kernel.domain.order import OrderLine
from sales_kernel.exceptions import MissingExchangeRateError
from sales_kernel.logging_config import get_logger

logger = get_logger("modules.order.providers")


class StaticCurrencyConverter:
    """
    Converts with a fixed table of rates keyed by (from, to).

    Same-currency conversion is the identity. The inverse of a registered
    pair is used when the direct pair is missing. ``as_of`` is ignored.
    """

    def __init__(self, rates: Mapping[tuple[str, str], Decimal] | None = None):
        self._rates: dict[tuple[str, str], Decimal] = dict(rates or {})

    def set_rate(self, from_currency: str, to_currency: str, rate: Decimal) -> None:
        self._rates[(from_currency, to_currency)] = rate

    def rate(self, from_currency: str, to_currency: str, as_of: date | None = None) -> Decimal:
        if from_currency == to_currency:
            return Decimal("1")
        direct = self._rates.get((from_currency, to_currency))
        if direct is not None:
            return direct
        inverse = self._rates.get((to_currency, from_currency))
        if inverse:
            return Decimal("1") / inverse
        logger.warning("exchange_rate_missing", extra={
            "from_currency": from_currency,
            "to_currency": to_currency,
            "as_of": as_of,
        })
        raise MissingExchangeRateError(from_currency, to_currency, as_of)

    def convert(
        self,
        from_currency: str,
        to_currency: str,
        amount: Decimal,
        as_of: date | None,
    ) -> Decimal:
        if from_currency == to_currency:
            return amount
        return amount * self.rate(from_currency, to_currency, as_of)


class CatalogTaxRateResolver:
    """
    Resolves a product's tax rate from its ``tax_code``.

    A fiscal position with an equivalence for that code substitutes the
    target tax. The rate table is keyed by tax code; ``as_of`` selects
    nothing here because the table holds one current rate per code.
    """

    def __init__(self, tax_rates: Iterable[TaxRate]):
        self._by_code = {rate.code: rate for rate in tax_rates}

    def tax_equivalence_for(
        self,
        product: Product,
        company: Company,
        fiscal_position: FiscalPosition | None,
    ) -> TaxEquivalence | None:
        if fiscal_position is None or product.tax_code is None:
            return None
        return fiscal_position.equivalence_for(product.tax_code)

    def tax_line_for(
        self,
        as_of: date | None,
        product: Product,
        company: Company,
        fiscal_position: FiscalPosition | None,
    ) -> TaxRate | None:
        if product.tax_code is None:
            return None
        equivalence = self.tax_equivalence_for(product, company, fiscal_position)
        code = equivalence.to_tax_code if equivalence else product.tax_code
        return self._by_code.get(code)


class NullPricingRuleEngine:
    """Pricing-rule engine with no rules. Every line falls back to the catalog price."""

    def match_root_rule(
        self,
        company: Company,
        product: Product,
        category: ProductCategory | None,
        context: str,
    ) -> Any | None:
        return None

    def apply(self, rule: Any, line: OrderLine) -> None:
        return None


class StaticPriceListService:
    """
    Matches price-list lines by product code and minimum quantity.

    The line with the highest ``min_qty`` not above the ordered quantity
    wins. A replacement price on the matched line replaces the unit price;
    otherwise the line's discount applies.
    """

    def line_for(
        self,
        product: Product,
        qty: Decimal,
        price_list: PriceList,
        price: Decimal,
    ) -> PriceListLine | None:
        candidates = [
            line for line in price_list.lines
            if line.product_code == product.code and line.min_qty <= qty
        ]
        if not candidates:
            return None
        return max(candidates, key=lambda line: line.min_qty)

    def discount_and_replacement_price(
        self,
        price_list: PriceList,
        price_list_line: PriceListLine | None,
        price: Decimal,
    ) -> PriceListDiscount | None:
        if price_list_line is None:
            return None
        if price_list_line.replacement_price is not None:
            return PriceListDiscount(
                price=price_list_line.replacement_price,
                discount_amount=Decimal("0"),
                discount_type=DiscountType.NONE,
            )
        return PriceListDiscount(
            price=None,
            discount_amount=price_list_line.amount,
            discount_type=price_list_line.discount_type,
        )


@dataclass
class ReferenceCatalog:
    """
    Id-indexed registry of catalog records.

    Persistence stores catalog references by id; the repository resolves
    them back to records through this catalog.
    """

    companies: dict[UUID, Company] = field(default_factory=dict)
    partners: dict[UUID, Partner] = field(default_factory=dict)
    products: dict[UUID, Product] = field(default_factory=dict)
    categories: dict[UUID, ProductCategory] = field(default_factory=dict)
    price_lists: dict[UUID, PriceList] = field(default_factory=dict)
    fiscal_positions: dict[UUID, FiscalPosition] = field(default_factory=dict)
    tax_rates: dict[UUID, TaxRate] = field(default_factory=dict)
    pack_templates: dict[UUID, PackTemplate] = field(default_factory=dict)

    def register(self, *records: Any) -> "ReferenceCatalog":
        for record in records:
            if isinstance(record, Company):
                self.companies[record.id] = record
            elif isinstance(record, Partner):
                self.partners[record.id] = record
            elif isinstance(record, Product):
                self.products[record.id] = record
                if record.category is not None:
                    self.categories[record.category.id] = record.category
            elif isinstance(record, ProductCategory):
                self.categories[record.id] = record
            elif isinstance(record, PriceList):
                self.price_lists[record.id] = record
            elif isinstance(record, FiscalPosition):
                self.fiscal_positions[record.id] = record
            elif isinstance(record, TaxRate):
                self.tax_rates[record.id] = record
            elif isinstance(record, PackTemplate):
                self.pack_templates[record.id] = record
            else:
                raise TypeError(f"Unsupported catalog record: {type(record).__name__}")
        return self

    def tax_equivalence(self, equivalence_id: UUID | None) -> TaxEquivalence | None:
        if equivalence_id is None:
            return None
        for position in self.fiscal_positions.values():
            for equivalence in position.tax_equivalences:
                if equivalence.id == equivalence_id:
                    return equivalence
        return None

    @staticmethod
    def lookup(registry: Mapping[UUID, Any], record_id: UUID | None) -> Any | None:
        if record_id is None:
            return None
        try:
            return registry[record_id]
        except KeyError:
            raise LookupError(f"Catalog record {record_id} is not registered") from None
