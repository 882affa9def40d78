"""
Hypothesis property tests for the sales engines.

Properties checked:
- Order totals: inTaxTotal == exTaxTotal + taxTotal after compute_order
- Company total equals the sum of NORMAL line company totals
- Pack bracketing: reset then compute twice == compute once
- compute_amount == round(qty * price, 2, HALF_UP)
- DiscountGuard raises exactly when some line exceeds its ceiling
- Merging orders with identical headers needs no confirmation, keeps every
  line and numbers sequences strictly increasing
"""

from decimal import ROUND_HALF_UP, Decimal

from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from sales_engines.discount_guard import CategoryTreeMaxDiscountLookup, DiscountGuard
from sales_engines.line_values import LineValueComputer, compute_amount
from sales_engines.margin import MarginCalculator
from sales_engines.merge import MergeReconciler, MergeState
from sales_engines.order_compute import OrderComputer
from sales_kernel.domain.catalog import (
    Company,
    DiscountType,
    LineType,
    Partner,
    Product,
    ProductCategory,
    TaxRate,
)
from sales_kernel.domain.order import Order, OrderLine
from sales_kernel.domain.settings import SaleSettings
from sales_kernel.exceptions import DiscountTooHighError
from sales_modules.order.providers import StaticCurrencyConverter

COMPANY = Company(code="ACME", currency="EUR")
CLIENT = Partner(name="Globex")
TAX_RATES = [
    TaxRate(code="VAT20", value=Decimal("20")),
    TaxRate(code="VAT10", value=Decimal("10")),
    TaxRate(code="VAT55", value=Decimal("5.5")),
    TaxRate(code="VAT0", value=Decimal("0")),
]
CONVERTER = StaticCurrencyConverter({("USD", "EUR"): Decimal("0.9")})
SETTINGS = SaleSettings()
MARGIN = MarginCalculator(CONVERTER, SETTINGS)
VALUES = LineValueComputer(CONVERTER, MARGIN, SETTINGS)
ORDER_COMPUTER = OrderComputer.for_features(CONVERTER, SETTINGS.features)
SUPPRESSED = [HealthCheck.too_slow, HealthCheck.function_scoped_fixture]

prices = st.decimals(min_value=0, max_value=10000, places=2, allow_nan=False, allow_infinity=False)
quantities = st.decimals(min_value=0, max_value=1000, places=3, allow_nan=False, allow_infinity=False)
percent_discounts = st.integers(min_value=0, max_value=100).map(Decimal)


@st.composite
def priced_lines(draw):
    price = draw(prices)
    tax_rate = draw(st.sampled_from(TAX_RATES + [None]))
    in_tax_price = price if tax_rate is None else price + price * tax_rate.fraction
    return OrderLine(
        product_name="Line",
        qty=draw(quantities),
        price=price,
        in_tax_price=in_tax_price,
        tax_rate=tax_rate,
        discount_type=draw(st.sampled_from([DiscountType.NONE, DiscountType.PERCENT])),
        discount_amount=draw(percent_discounts),
        type_select=draw(st.sampled_from([LineType.NORMAL, LineType.NORMAL, LineType.TITLE])),
    )


def _computed_order(currency, lines):
    order = Order(company=COMPANY, currency=currency, client_partner=CLIENT)
    for sequence, line in enumerate(lines):
        line.sequence = sequence
        order.lines.append(line)
        VALUES.compute(order, line)
    ORDER_COMPUTER.compute_order(order)
    return order


class TestOrderTotals:

    @given(st.lists(priced_lines(), max_size=12), st.sampled_from(["EUR", "USD"]))
    @settings(max_examples=150, deadline=None, suppress_health_check=SUPPRESSED)
    def test_in_tax_total_is_sum(self, lines, currency):
        order = _computed_order(currency, lines)
        assert order.in_tax_total == order.ex_tax_total + order.tax_total

    @given(st.lists(priced_lines(), max_size=12), st.sampled_from(["EUR", "USD"]))
    @settings(max_examples=150, deadline=None, suppress_health_check=SUPPRESSED)
    def test_company_total_is_sum_of_normal_lines(self, lines, currency):
        order = _computed_order(currency, lines)
        assert order.company_ex_tax_total == sum(
            (line.company_ex_tax_total for line in order.lines if line.is_normal),
            Decimal("0"),
        )

    @given(st.lists(priced_lines(), max_size=12))
    @settings(max_examples=100, deadline=None, suppress_health_check=SUPPRESSED)
    def test_compute_order_idempotent(self, lines):
        order = _computed_order("EUR", lines)
        first = (order.ex_tax_total, order.tax_total, list(order.tax_lines))
        ORDER_COMPUTER.compute_order(order)
        assert (order.ex_tax_total, order.tax_total, order.tax_lines) == first


class TestPackTotals:

    @given(
        st.lists(st.tuples(prices, prices), min_size=1, max_size=8),
        st.booleans(),
    )
    @settings(max_examples=100, deadline=None, suppress_health_check=SUPPRESSED)
    def test_reset_then_compute_is_stable(self, amounts, show_total):
        order = Order(company=COMPANY, currency="EUR")
        order.lines.append(OrderLine(type_select=LineType.START_OF_PACK, qty=Decimal("2"),
                                     sequence=0))
        for sequence, (ex, incl) in enumerate(amounts, start=1):
            order.lines.append(OrderLine(sequence=sequence, ex_tax_total=ex, in_tax_total=incl))
        end = OrderLine(type_select=LineType.END_OF_PACK, sequence=len(amounts) + 1,
                        is_show_total=show_total)
        order.lines.append(end)

        ORDER_COMPUTER.compute_pack_total(order)
        once = (end.ex_tax_total, end.in_tax_total, end.qty)

        ORDER_COMPUTER.reset_pack_total(order)
        end.is_show_total = show_total
        ORDER_COMPUTER.compute_pack_total(order)
        ORDER_COMPUTER.compute_pack_total(order)

        assert (end.ex_tax_total, end.in_tax_total, end.qty) == once
        expected = sum((ex for ex, _ in amounts), Decimal("0")) if show_total else Decimal("0")
        assert end.ex_tax_total == expected
        assert end.qty == Decimal("0")


class TestComputeAmount:

    @given(quantities, prices)
    @settings(max_examples=300, suppress_health_check=SUPPRESSED)
    def test_rounded_product(self, qty, price):
        expected = (qty * price).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
        assert compute_amount(qty, price) == expected

    @given(quantities, prices)
    @settings(suppress_health_check=SUPPRESSED)
    def test_commutative(self, qty, price):
        assert compute_amount(qty, price) == compute_amount(price, qty)


class TestDiscountGuard:

    @given(
        st.integers(min_value=1, max_value=60).map(Decimal),
        st.lists(
            st.tuples(percent_discounts, st.one_of(st.none(), percent_discounts)),
            min_size=1,
            max_size=10,
        ),
    )
    @settings(max_examples=150, deadline=None, suppress_health_check=SUPPRESSED)
    def test_raises_exactly_when_ceiling_exceeded(self, ceiling, discounts):
        category = ProductCategory(code="CAT", max_discount=ceiling)
        product = Product(code="P", name="P", category=category)
        guard = DiscountGuard(CategoryTreeMaxDiscountLookup([category]))
        order = Order(company=COMPANY, currency="EUR", client_partner=CLIENT)
        for sequence, (amount, derogation) in enumerate(discounts):
            order.lines.append(OrderLine(
                product=product,
                price=Decimal("100"),
                discount_type=DiscountType.PERCENT,
                discount_amount=amount,
                discount_derogation=derogation,
                sequence=sequence,
            ))

        offending = [
            sequence for sequence, (amount, derogation) in enumerate(discounts)
            if amount > max(ceiling, derogation if derogation is not None else ceiling)
        ]

        try:
            guard.check_discounts(order)
        except DiscountTooHighError as exc:
            assert [o.sequence for o in exc.offences] == offending
        else:
            assert offending == []


class TestMerge:

    @given(st.lists(st.integers(min_value=0, max_value=6), min_size=1, max_size=5))
    @settings(max_examples=100, deadline=None, suppress_health_check=SUPPRESSED)
    def test_identical_headers_merge_directly(self, line_counts):
        orders = []
        for count in line_counts:
            order = Order(company=COMPANY, currency="EUR", client_partner=CLIENT, team="North")
            order.lines = [OrderLine(product_name="x", sequence=count - i) for i in range(count)]
            orders.append(order)

        result = MergeReconciler(ORDER_COMPUTER, MARGIN).merge(orders)

        assert result.state == MergeState.MERGED
        assert result.needs_confirmation is False
        sequences = [line.sequence for line in result.order.lines]
        assert len(sequences) == sum(line_counts)
        assert all(a < b for a, b in zip(sequences, sequences[1:]))
