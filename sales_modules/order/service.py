"""
Order Service -- Orchestrates sales-order operations via engines + repository.

Responsibility:
    Thin glue layer that connects the pure sales engines to persistence.
    All pricing, tax and margin arithmetic is delegated to
    ``sales_engines``; all row writes are delegated to the order
    repository. This service owns ONLY the transaction boundary.

Architecture:
    sales_modules -- Thin ERP glue (this layer).
    1. Loads orders through an ``OrderRepository``.
    2. Calls the engines (resolver, line values, order computer, margin,
       pack expander, discount guard, merge reconciler, splitter).
    3. Saves the result and commits.

Invariants:
    - Each public operation commits on success and rolls back on failure.
    - Order totals are only written by ``OrderComputer.compute_order``.
    - Amounts are ``Decimal`` throughout -- NEVER ``float``.

Failure modes:
    - Engine errors (MissingTaxConfigurationError, MissingExchangeRateError,
      DiscountTooHighError, MergeConflictError, ...) roll the session back
      and propagate unchanged.
    - Unknown order or line ids raise OrderNotFoundError /
      OrderLineNotFoundError.

Usage:
    service = OrderService(session, repository, settings, collaborators, clock)
    order = service.create_order(order)
    service.add_pack(order.id, template, Decimal("2"))
"""

from __future__ import annotations

import copy
import time
from collections.abc import Sequence
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Mapping
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from sales_engines.complementary import ComplementaryProductHandler
from sales_engines.discount_guard import CategoryTreeMaxDiscountLookup, DiscountGuard
from sales_engines.line_pricing import LineInformationResolver
from sales_engines.line_values import LineValueComputer
from sales_engines.margin import MarginCalculator
from sales_engines.merge import MergeReconciler, MergeResult, MergeState
from sales_engines.order_compute import OrderComputer
from sales_engines.pack import PackExpander
from sales_engines.split import OrderSplitter
from sales_kernel.domain.catalog import (
    FiscalPosition,
    PackTemplate,
    PriceList,
    ProductCategory,
)
from sales_kernel.domain.clock import Clock, SystemClock
from sales_kernel.domain.collaborators import (
    CategoryMaxDiscountLookup,
    CurrencyConverter,
    OrderRepository,
    PriceListService,
    PricingRuleEngine,
    TaxRateResolver,
)
from sales_kernel.domain.order import Order, OrderLine
from sales_kernel.domain.settings import SaleSettings
from sales_kernel.logging_config import LogContext, get_logger
from sales_modules.order.providers import NullPricingRuleEngine, StaticPriceListService

logger = get_logger("modules.order.service")


@dataclass
class SalesCollaborators:
    """External black boxes the engines are wired with."""

    converter: CurrencyConverter
    tax_resolver: TaxRateResolver
    pricing_engine: PricingRuleEngine = field(default_factory=NullPricingRuleEngine)
    price_list_service: PriceListService = field(default_factory=StaticPriceListService)
    category_lookup: CategoryMaxDiscountLookup = field(
        default_factory=lambda: CategoryTreeMaxDiscountLookup(())
    )


class OrderService:
    """
    Orchestrates sales-order operations through engines and repository.

    Contract:
        Callers supply a ``Session``, an ``OrderRepository`` bound to it,
        the ``SaleSettings``, the collaborators and an optional ``Clock``.
        Every public method owns the commit/rollback boundary.

    Guarantees:
        - Every mutating method commits on success, rolls back on any
          failure and re-raises.
        - Orders returned are the domain records as saved.

    Non-goals:
        - Does not decide which orders a user may see or edit.
        - Does not generate invoices, stock moves or documents.

    Engine composition:
        - ``LineInformationResolver`` / ``LineValueComputer``: line pricing.
        - ``OrderComputer`` (with capability extensions): order totals.
        - ``MarginCalculator``, ``DiscountGuard``, ``PackExpander``,
          ``ComplementaryProductHandler``, ``MergeReconciler``,
          ``OrderSplitter``.
    """

    def __init__(
        self,
        session: Session,
        repository: OrderRepository,
        settings: SaleSettings,
        collaborators: SalesCollaborators,
        clock: Clock | None = None,
    ):
        self._session = session
        self._repository = repository
        self._settings = settings
        self._clock = clock or SystemClock()

        converter = collaborators.converter
        self._margin = MarginCalculator(converter, settings)
        self._values = LineValueComputer(converter, self._margin, settings)
        self._resolver = LineInformationResolver(
            converter,
            collaborators.tax_resolver,
            collaborators.pricing_engine,
            collaborators.price_list_service,
            settings,
        )
        self._order_computer = OrderComputer.for_features(converter, settings.features)
        self._discount_guard = DiscountGuard(collaborators.category_lookup)
        self._packs = PackExpander(self._resolver, self._values, converter, settings)
        self._complementary = ComplementaryProductHandler(self._resolver, self._values)
        self._merger = MergeReconciler(self._order_computer, self._margin, settings.features)
        self._splitter = OrderSplitter(self._order_computer, self._margin, self._complementary)

    # =========================================================================
    # Internal helpers
    # =========================================================================

    def _run(self, operation: str, order_id: UUID | None, work):
        """Execute ``work`` in one transaction: commit on success, rollback on failure."""
        t0 = time.monotonic()
        with LogContext.bind(order_id=str(order_id) if order_id else None):
            try:
                result = work()
                self._session.commit()
            except Exception:
                self._session.rollback()
                logger.warning("order_operation_rolled_back", extra={
                    "operation": operation,
                    "order_id": str(order_id) if order_id else None,
                }, exc_info=True)
                raise
            logger.info("order_operation_committed", extra={
                "operation": operation,
                "order_id": str(order_id) if order_id else None,
                "duration_ms": round((time.monotonic() - t0) * 1000, 2),
            })
            return result

    def _price_line(self, order: Order, line: OrderLine) -> None:
        self._resolver.resolve(line, order)
        self._values.compute(order, line)

    def _finish(self, order: Order) -> Order:
        self._order_computer.compute_order(order)
        if self._settings.enable_pack_management:
            self._order_computer.compute_pack_total(order)
        else:
            self._order_computer.reset_pack_total(order)
        self._margin.compute_order_margin(order)
        self._repository.save(order)
        return order

    # =========================================================================
    # Order lifecycle
    # =========================================================================

    def create_order(self, order: Order) -> Order:
        """
        Price every product line of a new order, compute it and persist it.

        Preconditions:
            - ``order.company`` and ``order.currency`` are set.
        Postconditions:
            - Lines carry resolved prices and totals; order totals, tax
              lines and margins are computed; the order is committed.
        """
        def work() -> Order:
            if order.creation_date is None:
                order.creation_date = self._clock.today()
            for line in order.lines:
                if line.product is not None:
                    self._price_line(order, line)
            if self._settings.features.partner_relations:
                self._complementary.manage_partner_complementary_lines(order)
            return self._finish(order)

        return self._run("create_order", order.id, work)

    def recompute(self, order_id: UUID) -> Order:
        """Recompute line values, order totals, tax lines and margins."""
        def work() -> Order:
            order = self._repository.find(order_id)
            for line in order.lines:
                self._values.compute(order, line)
            if any(line.is_complementary_products_unhandled_yet for line in order.lines):
                self._complementary.handle_complementary_products(order)
            return self._finish(order)

        return self._run("recompute", order_id, work)

    # =========================================================================
    # Packs
    # =========================================================================

    def add_pack(
        self,
        order_id: UUID,
        template: PackTemplate,
        multiplier: Decimal = Decimal("1"),
    ) -> Order:
        """Expand ``template`` onto the order and recompute it."""
        def work() -> Order:
            order = self._repository.find(order_id)
            self._packs.add_pack(order, template, multiplier)
            return self._finish(order)

        return self._run("add_pack", order_id, work)

    def update_pack_header_quantity(
        self,
        order_id: UUID,
        header_line_id: UUID,
        new_qty: Decimal,
    ) -> Order:
        """Change a pack header quantity, rescaling the lines of the pack."""
        def work() -> Order:
            order = self._repository.find(order_id)
            self._packs.propagate_header_quantity(order, header_line_id, new_qty)
            return self._finish(order)

        return self._run("update_pack_header_quantity", order_id, work)

    # =========================================================================
    # Discounts
    # =========================================================================

    def validate_discounts(self, order_id: UUID) -> None:
        """Raise DiscountTooHighError when a line exceeds its category ceiling."""
        def work() -> None:
            order = self._repository.find(order_id)
            self._discount_guard.check_discounts(order)

        self._run("validate_discounts", order_id, work)

    def flag_discount_review(
        self,
        category: ProductCategory,
        orders: Sequence[UUID],
    ) -> list[OrderLine]:
        """Flag lines of the given orders whose discount now exceeds ``category``'s ceiling."""
        def work() -> list[OrderLine]:
            loaded = [self._repository.find(order_id) for order_id in orders]
            flagged = self._discount_guard.flag_lines_for_review(category, loaded)
            for order in loaded:
                self._repository.save(order)
            return flagged

        return self._run("flag_discount_review", None, work)

    # =========================================================================
    # Header changes
    # =========================================================================

    def change_fiscal_position(
        self,
        order_id: UUID,
        fiscal_position: FiscalPosition | None,
    ) -> Order:
        """Apply a new fiscal position, refresh line taxes and recompute."""
        def work() -> Order:
            order = self._repository.find(order_id)
            order.fiscal_position = fiscal_position
            self._resolver.update_lines_after_fiscal_position_change(order)
            return self._finish(order)

        return self._run("change_fiscal_position", order_id, work)

    # =========================================================================
    # Merge and split
    # =========================================================================

    def merge_orders(
        self,
        order_ids: Sequence[UUID],
        overrides: Mapping[str, Any] | None = None,
    ) -> MergeResult:
        """
        Merge quotations into a new one.

        Postconditions:
            - NEEDS_CONFIRMATION: nothing is written; the caller re-invokes
              with ``overrides`` for the listed fields.
            - MERGED: the source orders are deleted and the merged order is
              saved, in one transaction.
        """
        def work() -> MergeResult:
            orders = [self._repository.find(order_id) for order_id in order_ids]
            result = self._merger.merge(orders, self._clock.today(), overrides)
            if result.state != MergeState.MERGED:
                return result
            for source in result.source_orders:
                self._repository.remove(source)
            self._repository.save(result.order)
            return result

        return self._run("merge_orders", None, work)

    def separate_lines(self, order_id: UUID, line_ids: Sequence[UUID]) -> Order:
        """Move lines (and their complementary satellites) to a new quotation."""
        def work() -> Order:
            order = self._repository.find(order_id)
            new_order = self._splitter.separate(order, list(line_ids), self._clock.today())
            self._repository.save(order)
            self._repository.save(new_order)
            return new_order

        return self._run("separate_lines", order_id, work)

    # =========================================================================
    # Templates
    # =========================================================================

    def create_from_template(
        self,
        template_id: UUID,
        currency: str | None = None,
        price_list: PriceList | None = None,
    ) -> Order:
        """
        Instantiate a template order as a new quotation.

        The copy gets fresh order and line ids, the chosen currency and
        price list, and every product line is re-priced and recomputed.
        Manual discounts on the template survive when they are larger than
        the price-list discount.
        """
        def work() -> Order:
            template = self._repository.find(template_id)
            order = _copy_with_new_ids(template)
            order.creation_date = self._clock.today()
            if currency is not None:
                order.currency = currency
            order.price_list = price_list

            for line in order.sorted_lines():
                if line.product is None:
                    continue
                self._resolver.reset_price(line)
                self._resolver.fill_price(line, order)
                self._values.compute(order, line)

            order.template = False
            return self._finish(order)

        return self._run("create_from_template", template_id, work)


def _copy_with_new_ids(template: Order) -> Order:
    order = copy.deepcopy(template)
    order.id = uuid4()
    order.reference = None
    order.tax_lines = []
    order.advance_payments = []
    order.advance_payment_invoices = []

    new_ids: dict[UUID, UUID] = {}
    for line in order.lines:
        new_ids[line.id] = uuid4()
        line.id = new_ids[line.id]
    for line in order.lines:
        if line.main_line_id is not None:
            line.main_line_id = new_ids.get(line.main_line_id)
    return order
