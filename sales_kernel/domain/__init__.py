"""
Pure domain layer.

Catalog records, the order aggregate, settings, collaborator protocols and
rounding helpers. No dependency on the ORM, the database or the clock.
"""

from sales_kernel.domain.catalog import (
    Company,
    ComplementaryGeneration,
    ComplementaryProduct,
    DiscountType,
    FiscalPosition,
    LineType,
    PackLineTemplate,
    PackTemplate,
    Partner,
    PriceList,
    PriceListLine,
    Product,
    ProductCategory,
    SaleSupply,
    TaxEquivalence,
    TaxRate,
)
from sales_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from sales_kernel.domain.collaborators import (
    CategoryMaxDiscountLookup,
    CurrencyConverter,
    OrderRepository,
    PriceListDiscount,
    PriceListService,
    PricingRuleEngine,
    TaxRateResolver,
)
from sales_kernel.domain.order import (
    AdvancePayment,
    AdvancePaymentInvoice,
    Order,
    OrderLine,
    OrderStatus,
    OrderTaxLine,
    SelectedComplementaryProduct,
)
from sales_kernel.domain.settings import FeatureSet, SaleSettings

__all__ = [
    "AdvancePayment",
    "AdvancePaymentInvoice",
    "CategoryMaxDiscountLookup",
    "Clock",
    "Company",
    "ComplementaryGeneration",
    "ComplementaryProduct",
    "CurrencyConverter",
    "DeterministicClock",
    "DiscountType",
    "FeatureSet",
    "FiscalPosition",
    "LineType",
    "Order",
    "OrderLine",
    "OrderRepository",
    "OrderStatus",
    "OrderTaxLine",
    "PackLineTemplate",
    "PackTemplate",
    "Partner",
    "PriceList",
    "PriceListDiscount",
    "PriceListLine",
    "PriceListService",
    "PricingRuleEngine",
    "Product",
    "ProductCategory",
    "SaleSettings",
    "SaleSupply",
    "SelectedComplementaryProduct",
    "SystemClock",
    "TaxEquivalence",
    "TaxRate",
    "TaxRateResolver",
]
