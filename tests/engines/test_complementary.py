"""
Tests for the Complementary Product Handler.

Covers:
- Product-selected satellites (add, refresh, remove, sequence renumbering)
- Partner-defined satellites per line and per order
- Satellite lookup through both correlation keys
"""

from decimal import Decimal

import pytest

from sales_engines.complementary import ComplementaryProductHandler
from sales_kernel.domain.catalog import (
    ComplementaryGeneration,
    ComplementaryProduct,
    Partner,
    Product,
)
from sales_kernel.domain.order import Order, OrderLine, SelectedComplementaryProduct


@pytest.fixture
def handler(resolver, values):
    return ComplementaryProductHandler(resolver, values, id_factory=lambda: "M1")


@pytest.fixture
def origin(widget, gadget):
    return OrderLine(
        product=widget,
        product_name="Widget",
        qty=Decimal("1"),
        price=Decimal("12.00"),
        selected_complementary_products=[
            SelectedComplementaryProduct(product=gadget, qty=Decimal("2")),
        ],
        is_complementary_products_unhandled_yet=True,
    )


class TestProductSelectedComplementary:

    def test_satellite_inserted_after_origin(self, handler, order, origin, gadget, vat10):
        trailing = OrderLine(product_name="Comment")
        order.lines = [origin, trailing]

        handler.handle_complementary_products(order)

        assert len(order.lines) == 3
        satellite = order.lines[1]
        assert satellite.product == gadget
        assert satellite.parent_id == "M1"
        assert origin.manual_id == "M1"
        assert satellite.qty == Decimal("2")
        assert satellite.price == Decimal("5.00")
        assert satellite.tax_rate == vat10
        assert satellite.ex_tax_total == Decimal("10.00")
        assert [line.sequence for line in order.lines] == [0, 1, 2]
        assert origin.is_complementary_products_unhandled_yet is False

    def test_existing_manual_id_kept(self, handler, order, origin):
        origin.manual_id = "ORIGIN"
        order.lines = [origin]

        handler.handle_complementary_products(order)

        assert order.lines[1].parent_id == "ORIGIN"

    def test_existing_satellite_refreshed(self, handler, order, origin):
        order.lines = [origin]
        handler.handle_complementary_products(order)
        satellite = order.lines[1]

        origin.selected_complementary_products[0].qty = Decimal("5")
        origin.is_complementary_products_unhandled_yet = True
        handler.handle_complementary_products(order)

        assert order.lines == [origin, satellite]
        assert satellite.qty == Decimal("5")
        assert satellite.ex_tax_total == Decimal("25.00")

    def test_deselected_satellite_removed(self, handler, order, origin):
        order.lines = [origin]
        handler.handle_complementary_products(order)

        origin.selected_complementary_products[0].is_selected = False
        origin.is_complementary_products_unhandled_yet = True
        handler.handle_complementary_products(order)

        assert order.lines == [origin]

    def test_unselected_product_not_added(self, handler, order, origin):
        origin.selected_complementary_products[0].is_selected = False
        order.lines = [origin]

        handler.handle_complementary_products(order)

        assert order.lines == [origin]

    def test_nothing_unhandled_only_renumbers(self, handler, order):
        order.lines = [OrderLine(sequence=40), OrderLine(sequence=10)]

        handler.handle_complementary_products(order)

        assert [line.sequence for line in order.lines] == [0, 1]


class TestPartnerComplementary:

    def _order(self, company, generation, *lines):
        service_fee = Product(code="FEE", name="Service fee", sale_price=Decimal("3.00"),
                              tax_code="VAT20")
        client = Partner(
            name="Initech",
            complementary_products=(
                ComplementaryProduct(product=service_fee, qty=Decimal("1"),
                                     generation=generation),
            ),
        )
        order = Order(company=company, currency="EUR", client_partner=client)
        order.lines = list(lines)
        return order, service_fee

    def test_per_line(self, handler, company, widget, gadget):
        first = OrderLine(product=widget, sequence=0)
        second = OrderLine(product=gadget, sequence=1)
        order, fee = self._order(company, ComplementaryGeneration.PER_LINE, first, second)

        created = handler.manage_partner_complementary_lines(order)

        assert [line.main_line_id for line in created] == [first.id, second.id]
        assert all(line.product == fee for line in created)
        assert all(line.ex_tax_total == Decimal("3.00") for line in created)
        assert all(not line.is_complementary_partner_products_handled for line in created)
        assert order.lines == [first, second, *created]

    def test_per_line_idempotent(self, handler, company, widget):
        main = OrderLine(product=widget, sequence=0)
        order, _ = self._order(company, ComplementaryGeneration.PER_LINE, main)

        handler.manage_partner_complementary_lines(order)
        created_again = handler.manage_partner_complementary_lines(order)

        assert created_again == []
        assert len(order.lines) == 2

    def test_per_order_attached_to_last_line(self, handler, company, widget, gadget):
        first = OrderLine(product=widget, sequence=5)
        last = OrderLine(product=gadget, sequence=9)
        order, _ = self._order(company, ComplementaryGeneration.PER_ORDER, last, first)

        (satellite,) = handler.manage_partner_complementary_lines(order)

        assert satellite.main_line_id == last.id
        assert satellite.sequence == 9
        assert satellite.is_complementary_partner_products_handled is True
        assert handler.manage_partner_complementary_lines(order) == []

    def test_satellite_gets_no_satellite(self, handler, company, widget):
        main = OrderLine(product=widget)
        order, fee = self._order(company, ComplementaryGeneration.PER_LINE, main)
        satellite = OrderLine(product=fee, main_line_id=main.id)

        created = handler.manage_complementary_line(
            order.client_partner.complementary_products[0], order, satellite
        )

        assert created == []

    def test_no_client(self, handler, company, widget):
        order = Order(company=company, currency="EUR")
        order.lines = [OrderLine(product=widget)]
        assert handler.manage_partner_complementary_lines(order) == []

    def test_empty_order(self, handler, company):
        order, _ = self._order(company, ComplementaryGeneration.PER_LINE)
        assert handler.manage_partner_complementary_lines(order) == []


class TestSatellitesOf:

    def test_both_keys(self, handler, order):
        main = OrderLine(manual_id="M9")
        by_parent = OrderLine(parent_id="M9")
        by_main = OrderLine(main_line_id=main.id)
        unrelated = OrderLine(parent_id="OTHER")
        order.lines = [main, by_parent, by_main, unrelated]

        assert handler.satellites_of(order, main) == [by_parent, by_main]

    def test_line_without_manual_id(self, handler, order):
        main = OrderLine()
        orphan = OrderLine(parent_id=None)
        order.lines = [main, orphan]
        assert handler.satellites_of(order, main) == []
