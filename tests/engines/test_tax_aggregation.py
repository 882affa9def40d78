"""
Tests for the Tax Aggregator.

Covers:
- One tax line per tax-rate record, in order of first appearance
- Non-NORMAL lines excluded from the base
- Specific notes from tax equivalences or the client
"""

from decimal import Decimal

from sales_engines.tax_aggregation import TaxAggregator
from sales_kernel.domain.catalog import FiscalPosition, LineType, Partner, TaxEquivalence, TaxRate
from sales_kernel.domain.order import Order


class TestTaxLines:

    def setup_method(self):
        self.aggregator = TaxAggregator()

    def test_groups_by_rate(self, order, priced_line, vat20):
        for price in ("27.00", "10.00"):
            line = priced_line(price, tax_rate=vat20)
            line.ex_tax_total = Decimal(price)
            order.lines.append(line)

        tax_lines = self.aggregator.aggregate(order)

        assert len(tax_lines) == 1
        assert tax_lines[0].ex_tax_base == Decimal("37.00")
        assert tax_lines[0].tax_total == Decimal("7.40")
        assert tax_lines[0].in_tax_total == Decimal("44.40")

    def test_same_value_different_records_not_merged(self, order, priced_line):
        first = TaxRate(code="VAT20-A", value=Decimal("20"))
        second = TaxRate(code="VAT20-B", value=Decimal("20"))
        for rate in (first, second):
            line = priced_line("10.00", tax_rate=rate)
            line.ex_tax_total = Decimal("10.00")
            order.lines.append(line)

        tax_lines = self.aggregator.aggregate(order)

        assert [t.tax_rate.code for t in tax_lines] == ["VAT20-A", "VAT20-B"]

    def test_order_of_first_appearance(self, order, priced_line, vat20, vat10):
        for rate in (vat10, vat20, vat10):
            line = priced_line("1.00", tax_rate=rate)
            line.ex_tax_total = Decimal("1.00")
            order.lines.append(line)

        tax_lines = self.aggregator.aggregate(order)

        assert [t.tax_rate.code for t in tax_lines] == ["VAT10", "VAT20"]
        assert tax_lines[0].ex_tax_base == Decimal("2.00")

    def test_tax_total_rounds_half_up(self, order, priced_line, vat10):
        """0.05 * 10% = 0.005 -> 0.01."""
        line = priced_line("0.05", tax_rate=vat10)
        line.ex_tax_total = Decimal("0.05")
        order.lines.append(line)

        tax_lines = self.aggregator.aggregate(order)

        assert tax_lines[0].tax_total == Decimal("0.01")

    def test_non_normal_lines_excluded(self, order, priced_line, vat20):
        normal = priced_line("10.00", tax_rate=vat20)
        normal.ex_tax_total = Decimal("10.00")
        end_of_pack = priced_line("0", tax_rate=vat20)
        end_of_pack.type_select = LineType.END_OF_PACK
        end_of_pack.ex_tax_total = Decimal("10.00")
        order.lines.extend([normal, end_of_pack])

        tax_lines = self.aggregator.aggregate(order)

        assert tax_lines[0].ex_tax_base == Decimal("10.00")

    def test_lines_without_rate_ignored(self, order, priced_line):
        line = priced_line("10.00")
        line.ex_tax_total = Decimal("10.00")
        order.lines.append(line)
        assert self.aggregator.aggregate(order) == []


class TestSpecificNotes:

    def setup_method(self):
        self.aggregator = TaxAggregator()

    def _line(self, priced_line, rate, note):
        line = priced_line("1.00", tax_rate=rate)
        line.tax_equivalence = TaxEquivalence("VAT20", rate.code, specific_note=note)
        return line

    def test_distinct_notes_joined(self, order, priced_line, vat10, vat0):
        order.lines.extend([
            self._line(priced_line, vat10, "Reduced rate"),
            self._line(priced_line, vat0, "Export exempt"),
            self._line(priced_line, vat10, "Reduced rate"),
        ])

        self.aggregator.aggregate(order)

        assert order.specific_notes == "Reduced rate\nExport exempt"

    def test_notes_scanned_on_non_normal_lines(self, order, priced_line, vat0):
        title = self._line(priced_line, vat0, "Export exempt")
        title.type_select = LineType.TITLE
        order.lines.append(title)

        self.aggregator.aggregate(order)

        assert order.specific_notes == "Export exempt"

    def test_customer_specific_note(self, company, priced_line, vat10):
        client = Partner(name="Initech", specific_tax_note="Customer exemption 42")
        order = Order(
            company=company,
            currency="EUR",
            client_partner=client,
            fiscal_position=FiscalPosition(code="CUST", customer_specific_note=True),
        )
        order.lines.append(self._line(priced_line, vat10, "Reduced rate"))

        self.aggregator.aggregate(order)

        assert order.specific_notes == "Customer exemption 42"

    def test_no_notes(self, order, priced_line, vat20):
        order.specific_notes = "stale"
        order.lines.append(priced_line("1.00", tax_rate=vat20))

        self.aggregator.aggregate(order)

        assert order.specific_notes is None
