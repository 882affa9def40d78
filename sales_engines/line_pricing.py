"""
Line Pricing Engine - resolves what a line sells and at which unit price.

Given a line carrying a product and the order it belongs to, the resolver
fills in:

    - product name, unit (sales unit, else base unit), optional description
    - pricing-scale effects when pricing scales are enabled
    - tax rate and tax equivalence (only when the order has a client)
    - company cost price (purchase currency -> company currency, 2 places)
    - unit price excl. and incl. tax, converted from the product's sale
      currency into the order currency at the order's creation date
    - discount from the order's price list

Lines with ``enable_freeze_fields`` keep their name, unit, prices and
discount; only the tax and cost snapshots are refreshed.

Pure functions - collaborators are injected, no I/O.

Usage:
    resolver = LineInformationResolver(converter, tax_resolver, pricing, price_lists, settings)
    resolver.resolve(line, order)
"""

from __future__ import annotations

import time
from dataclasses import replace
from decimal import Decimal

from sales_engines.tracer import traced_engine
from sales_kernel.domain.catalog import DiscountType, LineType, TaxRate
from sales_kernel.domain.collaborators import (
    CurrencyConverter,
    PriceListDiscount,
    PriceListService,
    PricingRuleEngine,
    TaxRateResolver,
)
from sales_kernel.domain.order import Order, OrderLine, SelectedComplementaryProduct
from sales_kernel.domain.rounding import (
    COMPUTATION_SCALING,
    DEFAULT_SCALE,
    HUNDRED,
    ONE,
    ZERO,
    divide,
    round_half_up,
)
from sales_kernel.domain.settings import SaleSettings
from sales_kernel.exceptions import MissingTaxConfigurationError
from sales_kernel.logging_config import get_logger

logger = get_logger("engines.line_pricing")

NO_PRICING_SCALE_LOG = "No pricing scale used for this line."
PRICING_CONTEXT = "OrderLine"


def convert_unit_price(
    price_is_ati: bool,
    tax_rate: TaxRate | None,
    price: Decimal,
    scale: int,
) -> Decimal:
    """Move a unit price across the tax boundary.

    ``price_is_ati`` True strips tax (price / (1 + rate)); False adds it
    (price + price * rate). Without a tax rate the price passes through.
    """
    if tax_rate is None:
        return price
    if price_is_ati:
        return divide(price, tax_rate.fraction + ONE, scale)
    return round_half_up(price + price * tax_rate.fraction, scale)


class LineInformationResolver:
    """
    Fills product-derived information on order lines.

    Contract:
        ``resolve(line, order)`` returns the same line, updated in place.
        Raises MissingTaxConfigurationError when the order has a client but
        no tax rate applies to the product, and propagates
        MissingExchangeRateError from the converter.

    Non-goals:
        Does not compute line totals; see LineValueComputer.
    """

    def __init__(
        self,
        converter: CurrencyConverter,
        tax_resolver: TaxRateResolver,
        pricing_engine: PricingRuleEngine,
        price_list_service: PriceListService,
        settings: SaleSettings,
    ):
        self._converter = converter
        self._tax_resolver = tax_resolver
        self._pricing_engine = pricing_engine
        self._price_lists = price_list_service
        self._settings = settings

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    @traced_engine("line_information", "1.0", fingerprint_fields=("line",))
    def resolve(self, line: OrderLine, order: Order) -> OrderLine:
        if line.product is None:
            logger.debug("line_information_skipped_no_product", extra={"line_id": str(line.id)})
            return line

        t0 = time.monotonic()
        product = line.product
        frozen = line.enable_freeze_fields

        self.reset_product_information(line)
        if not frozen:
            line.product_name = product.name
            line.unit = product.sales_unit or product.unit
            if self._settings.product_description_copy:
                line.description = product.description
        line.type_select = LineType.NORMAL
        if self._settings.features.supplychain:
            line.sale_supply = product.sale_supply
            line.standard_delay = product.standard_delay

        self.fill_price(line, order)
        self.fill_complementary_product_list(line)

        logger.info("line_information_resolved", extra={
            "line_id": str(line.id),
            "product_code": product.code,
            "frozen": frozen,
            "price": line.price,
            "in_tax_price": line.in_tax_price,
            "discount_type": line.discount_type,
            "discount_amount": line.discount_amount,
            "tax_code": line.tax_rate.code if line.tax_rate else None,
            "duration_ms": round((time.monotonic() - t0) * 1000, 2),
        })
        return line

    @traced_engine("line_information_pack", "1.0", fingerprint_fields=("line",))
    def resolve_from_pack_line(self, line: OrderLine, order: Order) -> OrderLine:
        """Price a pack component from the price already set on the line."""
        if line.product is None:
            return line
        self.fill_tax_information(line, order)
        line.company_cost_price = self.company_cost_price(order, line)
        if line.enable_freeze_fields:
            return line
        self._fill_unit_prices(line, order, from_pack=True)
        return line

    def reset_product_information(self, line: OrderLine) -> OrderLine:
        if not line.enable_freeze_fields:
            line.product_name = None
            line.price = None
            line.in_tax_price = None
            line.unit = None
            line.discount_amount = ZERO
            line.discount_type = DiscountType.NONE
            if self._settings.product_description_copy:
                line.description = None
        line.tax_rate = None
        line.tax_equivalence = None
        line.company_cost_price = None
        line.ex_tax_total = ZERO
        line.in_tax_total = ZERO
        line.company_ex_tax_total = ZERO
        line.company_in_tax_total = ZERO
        line.selected_complementary_products = []
        return line

    def reset_price(self, line: OrderLine) -> OrderLine:
        if not line.enable_freeze_fields:
            line.price = None
            line.in_tax_price = None
        return line

    # ------------------------------------------------------------------
    # Price
    # ------------------------------------------------------------------

    def fill_price(self, line: OrderLine, order: Order) -> OrderLine:
        if line.product is None:
            return line
        if self._settings.enable_pricing_scale and not line.enable_freeze_fields:
            self.compute_pricing_scale(line, order)

        self.fill_tax_information(line, order)
        line.company_cost_price = self.company_cost_price(order, line)
        if not line.enable_freeze_fields:
            self._fill_unit_prices(line, order, from_pack=False)
        return line

    def _fill_unit_prices(self, line: OrderLine, order: Order, from_pack: bool) -> None:
        digits = self._settings.unit_price_digits
        tax_rate = line.tax_rate
        if line.product.in_ati:
            in_tax_price = self.unit_price(order, line, tax_rate, True, from_pack)
            in_tax_price = self.fill_discount(line, order, in_tax_price)
            line.price = convert_unit_price(True, tax_rate, in_tax_price, digits)
            line.in_tax_price = in_tax_price
        else:
            ex_tax_price = self.unit_price(order, line, tax_rate, False, from_pack)
            ex_tax_price = self.fill_discount(line, order, ex_tax_price)
            line.price = ex_tax_price
            line.in_tax_price = convert_unit_price(False, tax_rate, ex_tax_price, digits)

    def unit_price(
        self,
        order: Order,
        line: OrderLine,
        tax_rate: TaxRate | None,
        result_in_ati: bool,
        from_pack: bool = False,
    ) -> Decimal:
        """Unit price in the order currency, incl. or excl. tax as requested.

        The line's own price wins when non-zero (set by a pricing scale or a
        pack); otherwise the catalog sale price is used. Pack components
        always use the line price, already in the order currency.
        """
        product = line.product
        sale_price = line.price if line.price is not None else ZERO
        if sale_price == 0 and not from_pack:
            sale_price = product.sale_price

        if product.in_ati == result_in_ati:
            price = sale_price
        else:
            price = convert_unit_price(product.in_ati, tax_rate, sale_price, COMPUTATION_SCALING)

        if from_pack:
            return round_half_up(price, self._settings.unit_price_digits)
        converted = self._converter.convert(
            product.sale_currency, order.currency, price, order.creation_date
        )
        return round_half_up(converted, self._settings.unit_price_digits)

    def compute_pricing_scale(self, line: OrderLine, order: Order) -> None:
        product = line.product
        rule = None
        if product is not None:
            rule = self._pricing_engine.match_root_rule(
                order.company, product, product.category, PRICING_CONTEXT
            )
        if rule is not None:
            self._pricing_engine.apply(rule, line)
            logger.debug("pricing_scale_applied", extra={"line_id": str(line.id)})
        else:
            line.pricing_scale_logs = NO_PRICING_SCALE_LOG

    # ------------------------------------------------------------------
    # Tax and cost
    # ------------------------------------------------------------------

    def fill_tax_information(self, line: OrderLine, order: Order) -> OrderLine:
        if order.client_partner is None or line.product is None:
            line.tax_rate = None
            line.tax_equivalence = None
            return line

        tax_rate = self._tax_resolver.tax_line_for(
            order.creation_date, line.product, order.company, order.fiscal_position
        )
        if tax_rate is None:
            fiscal_code = order.fiscal_position.code if order.fiscal_position else None
            logger.error("tax_configuration_missing", extra={
                "product_code": line.product.code,
                "company_code": order.company.code,
                "fiscal_position_code": fiscal_code,
            })
            raise MissingTaxConfigurationError(
                line.product.code, order.company.code, fiscal_code
            )
        line.tax_rate = tax_rate
        line.tax_equivalence = self._tax_resolver.tax_equivalence_for(
            line.product, order.company, order.fiscal_position
        )
        return line

    def company_cost_price(self, order: Order, line: OrderLine) -> Decimal:
        product = line.product
        if product is None:
            return ZERO
        return round_half_up(
            self._converter.convert(
                product.purchase_currency,
                order.company.currency,
                product.cost_price,
                order.creation_date,
            ),
            DEFAULT_SCALE,
        )

    # ------------------------------------------------------------------
    # Discount
    # ------------------------------------------------------------------

    def fill_discount(self, line: OrderLine, order: Order, price: Decimal) -> Decimal:
        """Apply the price-list outcome to the line; return the unit price to use."""
        discounts = self.discounts_from_price_lists(order, line, price)

        if discounts is not None:
            if discounts.price is not None:
                price = discounts.price
            if (
                line.product.in_ati != order.in_ati
                and discounts.discount_type != DiscountType.PERCENT
            ):
                line.discount_amount = convert_unit_price(
                    line.product.in_ati,
                    line.tax_rate,
                    discounts.discount_amount,
                    self._settings.unit_price_digits,
                )
            else:
                line.discount_amount = discounts.discount_amount
            line.discount_type = discounts.discount_type
        elif not order.template:
            line.discount_amount = ZERO
            line.discount_type = DiscountType.NONE

        return price

    def discounts_from_price_lists(
        self,
        order: Order,
        line: OrderLine,
        price: Decimal,
    ) -> PriceListDiscount | None:
        """Price-list discount for the line, or the manual one on templates.

        On template orders a manually entered discount larger than the
        price-list discount wins. The two are compared in the manual
        discount's representation (percent or fixed).
        """
        price_list = order.price_list
        if price_list is None:
            return None

        qty = line.qty if line.qty is not None else ZERO
        price_list_line = self._price_lists.line_for(line.product, qty, price_list, price)
        discounts = self._price_lists.discount_and_replacement_price(
            price_list, price_list_line, price
        )
        if discounts is None or not order.template:
            return discounts

        manual_type = line.discount_type
        manual_amount = line.discount_amount or ZERO
        list_amount = discounts.discount_amount
        if price != 0:
            if manual_type == DiscountType.PERCENT and discounts.discount_type == DiscountType.FIXED:
                list_amount = divide(list_amount * HUNDRED, price, DEFAULT_SCALE)
            elif manual_type == DiscountType.FIXED and discounts.discount_type == DiscountType.PERCENT:
                list_amount = divide(list_amount * price, HUNDRED, DEFAULT_SCALE)

        if manual_amount > list_amount:
            logger.debug("template_manual_discount_kept", extra={
                "line_id": str(line.id),
                "manual_amount": manual_amount,
                "price_list_amount": list_amount,
            })
            return replace(discounts, discount_amount=manual_amount, discount_type=manual_type)
        return discounts

    # ------------------------------------------------------------------
    # Complementary products and fiscal position
    # ------------------------------------------------------------------

    def fill_complementary_product_list(self, line: OrderLine) -> OrderLine:
        if line.product is None:
            return line
        line.selected_complementary_products = [
            SelectedComplementaryProduct(
                product=complementary.product,
                qty=complementary.qty,
                optional=complementary.optional,
                is_selected=not complementary.optional,
            )
            for complementary in line.product.complementary_products
        ]
        return line

    @traced_engine("fiscal_position_update", "1.0", fingerprint_fields=("order",))
    def update_lines_after_fiscal_position_change(self, order: Order) -> list[OrderLine]:
        """Refresh tax snapshots and incl.-tax figures after a fiscal position change."""
        digits = self._settings.unit_price_digits
        updated: list[OrderLine] = []
        for line in order.lines:
            if line.product is None:
                continue
            self.fill_tax_information(line, order)
            tax_rate = line.tax_rate
            line.in_tax_total = convert_unit_price(False, tax_rate, line.ex_tax_total, digits)
            line.company_in_tax_total = convert_unit_price(
                False, tax_rate, line.company_ex_tax_total, digits
            )
            base_price = line.price if line.price is not None else line.product.sale_price
            line.in_tax_price = convert_unit_price(False, tax_rate, base_price, digits)
            updated.append(line)

        logger.info("lines_updated_after_fiscal_position_change", extra={
            "order_id": str(order.id),
            "fiscal_position_code": order.fiscal_position.code if order.fiscal_position else None,
            "line_count": len(updated),
        })
        return updated
