"""
Tests for the Margin Calculator.

Covers:
- Line gross margin, margin rate and markup
- "Consider zero cost" policy
- Company-currency fallback for the revenue base
- Order margin roll-up and exclusions
"""

from decimal import Decimal

from sales_engines.margin import MarginCalculator
from sales_kernel.domain.catalog import Product
from sales_kernel.domain.order import Order, OrderLine
from sales_kernel.domain.settings import SaleSettings


def _line(product, ex, cost, company_ex=None):
    return OrderLine(
        product=product,
        ex_tax_total=Decimal(ex),
        company_ex_tax_total=Decimal(company_ex if company_ex is not None else ex),
        sub_total_cost_price=Decimal(cost),
    )


class TestLineMargin:

    def test_margin_figures(self, margin, order, widget):
        line = _line(widget, "100.00", "80.00")

        result = margin.compute_line_margin(order, line)

        assert result.gross_margin == Decimal("20.00")
        assert result.margin_rate == Decimal("20.00")
        assert result.markup == Decimal("25.00")
        assert line.sub_total_gross_margin == Decimal("20.00")
        assert line.sub_margin_rate == Decimal("20.00")
        assert line.sub_total_markup == Decimal("25.00")

    def test_uses_company_currency_total(self, margin, order, widget):
        line = _line(widget, "200.00", "80.00", company_ex="100.00")
        result = margin.compute_line_margin(order, line)
        assert result.gross_margin == Decimal("20.00")

    def test_company_total_converted_when_missing(self, margin, company, client, widget):
        order = Order(company=company, currency="USD", client_partner=client)
        line = _line(widget, "200.00", "80.00", company_ex="0")

        result = margin.compute_line_margin(order, line)

        assert result.gross_margin == Decimal("20.00")

    def test_no_product_no_margin(self, margin, order):
        line = _line(None, "100.00", "80.00")
        result = margin.compute_line_margin(order, line)
        assert result.gross_margin == Decimal("0")
        assert result.margin_rate == Decimal("0")

    def test_zero_cost_ignored_by_default(self, margin, order, widget):
        line = _line(widget, "100.00", "0")
        result = margin.compute_line_margin(order, line)
        assert result.gross_margin == Decimal("0")
        assert result.markup == Decimal("0")

    def test_consider_zero_cost(self, converter, order, widget):
        calculator = MarginCalculator(converter, SaleSettings(consider_zero_cost=True))
        line = _line(widget, "100.00", "0")

        result = calculator.compute_line_margin(order, line)

        assert result.gross_margin == Decimal("100.00")
        assert result.margin_rate == Decimal("100.00")
        assert result.markup == Decimal("0")

    def test_consider_zero_revenue(self, converter, order, widget):
        calculator = MarginCalculator(converter, SaleSettings(consider_zero_cost=True))
        line = _line(widget, "0", "30.00")

        result = calculator.compute_line_margin(order, line)

        assert result.gross_margin == Decimal("-30.00")
        assert result.margin_rate == Decimal("0")
        assert result.markup == Decimal("-100.00")


class TestOrderMargin:

    def test_rollup(self, margin, order, widget, gadget):
        order.lines = [
            _line(widget, "100.00", "80.00"),
            _line(gadget, "50.00", "20.00"),
        ]
        for line in order.lines:
            margin.compute_line_margin(order, line)

        result = margin.compute_order_margin(order)

        assert result.accounted_revenue == Decimal("150.00")
        assert result.total_cost_price == Decimal("100.00")
        assert result.total_gross_margin == Decimal("50.00")
        assert result.margin_rate == Decimal("33.33")
        assert result.markup == Decimal("50.00")
        assert order.margin_rate == Decimal("33.33")

    def test_lines_without_product_excluded(self, margin, order, widget):
        order.lines = [
            _line(widget, "100.00", "80.00"),
            OrderLine(product_name="Pack", ex_tax_total=Decimal("500"),
                      company_ex_tax_total=Decimal("500")),
        ]
        for line in order.lines:
            margin.compute_line_margin(order, line)

        result = margin.compute_order_margin(order)

        assert result.accounted_revenue == Decimal("100.00")

    def test_zero_revenue_lines_excluded_by_default(self, margin, order, widget):
        free = Product(code="FREE", name="Sample", cost_price=Decimal("5"))
        order.lines = [_line(widget, "100.00", "80.00"), _line(free, "0", "5.00")]
        for line in order.lines:
            margin.compute_line_margin(order, line)

        result = margin.compute_order_margin(order)

        assert result.total_cost_price == Decimal("80.00")

    def test_zero_revenue_lines_counted_with_zero_cost_policy(self, converter, order, widget):
        calculator = MarginCalculator(converter, SaleSettings(consider_zero_cost=True))
        free = Product(code="FREE", name="Sample", cost_price=Decimal("5"))
        order.lines = [_line(widget, "100.00", "80.00"), _line(free, "0", "5.00")]
        for line in order.lines:
            calculator.compute_line_margin(order, line)

        result = calculator.compute_order_margin(order)

        assert result.total_cost_price == Decimal("85.00")
        assert result.total_gross_margin == Decimal("15.00")

    def test_empty_order(self, margin, order):
        result = margin.compute_order_margin(order)
        assert result.margin_rate == Decimal("0")
        assert result.markup == Decimal("0")
