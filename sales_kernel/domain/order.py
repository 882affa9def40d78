"""
Order aggregate: the sales order and the lines it owns.

Responsibility:
    Mutable working records the engines read and update. The order owns
    its line list; lines never point back at their order.

Architecture position:
    Kernel > Domain -- pure data, zero I/O.

Invariants enforced:
    - Totals, tax lines and margin fields on ``Order`` are derived caches.
      They are rebuilt from the line list by the order computer, never
      patched from a single line edit.
    - ``main_line_id`` and ``parent_id`` on a line are non-owning
      correlation keys, resolved through ``Order.line_index()`` and
      ``Order.lines_by_manual_id()``.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID, uuid4

from sales_kernel.domain.catalog import (
    Company,
    DiscountType,
    FiscalPosition,
    LineType,
    Partner,
    PriceList,
    Product,
    SaleSupply,
    TaxEquivalence,
    TaxRate,
)

_ZERO = Decimal("0")


class OrderStatus(str, Enum):
    DRAFT_QUOTATION = "draft_quotation"
    FINALIZED_QUOTATION = "finalized_quotation"
    ORDER_CONFIRMED = "order_confirmed"
    ORDER_COMPLETED = "order_completed"
    CANCELED = "canceled"


@dataclass
class SelectedComplementaryProduct:
    """Complementary product offered on a line; the user toggles ``is_selected``."""

    product: Product
    qty: Decimal = Decimal("1")
    optional: bool = False
    is_selected: bool = True


@dataclass
class OrderLine:
    product: Product | None = None
    product_name: str | None = None
    qty: Decimal | None = Decimal("1")
    type_select: LineType = LineType.NORMAL
    sequence: int = 0
    description: str | None = None
    unit: str | None = None

    price: Decimal | None = None
    in_tax_price: Decimal | None = None
    price_discounted: Decimal = _ZERO
    discount_amount: Decimal = _ZERO
    discount_type: DiscountType = DiscountType.NONE
    discount_derogation: Decimal | None = None
    tax_rate: TaxRate | None = None
    tax_equivalence: TaxEquivalence | None = None
    company_cost_price: Decimal | None = None

    ex_tax_total: Decimal = _ZERO
    in_tax_total: Decimal = _ZERO
    company_ex_tax_total: Decimal = _ZERO
    company_in_tax_total: Decimal = _ZERO

    sub_total_cost_price: Decimal = _ZERO
    sub_total_gross_margin: Decimal = _ZERO
    sub_margin_rate: Decimal = _ZERO
    sub_total_markup: Decimal = _ZERO

    is_show_total: bool = False
    is_hide_unit_amounts: bool = False
    enable_freeze_fields: bool = False
    discounts_need_review: bool = False
    pricing_scale_logs: str | None = None

    sale_supply: SaleSupply = SaleSupply.NONE
    standard_delay: int = 0

    manual_id: str | None = None
    parent_id: str | None = None
    main_line_id: UUID | None = None
    selected_complementary_products: list[SelectedComplementaryProduct] = field(
        default_factory=list
    )
    is_complementary_products_unhandled_yet: bool = False
    is_complementary_partner_products_handled: bool = False

    id: UUID = field(default_factory=uuid4)

    @property
    def is_normal(self) -> bool:
        return self.type_select == LineType.NORMAL


@dataclass(frozen=True)
class OrderTaxLine:
    """Per-tax-rate aggregate. Rebuilt on every recompute."""

    tax_rate: TaxRate
    ex_tax_base: Decimal
    tax_total: Decimal
    in_tax_total: Decimal


@dataclass(frozen=True)
class AdvancePayment:
    amount: Decimal
    id: UUID = field(default_factory=uuid4)


@dataclass(frozen=True)
class AdvancePaymentInvoice:
    amount_paid: Decimal
    id: UUID = field(default_factory=uuid4)


@dataclass
class Order:
    company: Company
    currency: str
    client_partner: Partner | None = None
    contact_partner: Partner | None = None
    price_list: PriceList | None = None
    fiscal_position: FiscalPosition | None = None
    tax_number: str | None = None
    team: str | None = None
    reference: str | None = None
    external_reference: str | None = None
    creation_date: date | None = None
    in_ati: bool = False
    template: bool = False
    status: OrderStatus = OrderStatus.DRAFT_QUOTATION
    order_being_edited: bool = False

    lines: list[OrderLine] = field(default_factory=list)
    tax_lines: list[OrderTaxLine] = field(default_factory=list)
    advance_payments: list[AdvancePayment] = field(default_factory=list)
    advance_payment_invoices: list[AdvancePaymentInvoice] = field(default_factory=list)
    specific_notes: str | None = None

    ex_tax_total: Decimal = _ZERO
    tax_total: Decimal = _ZERO
    in_tax_total: Decimal = _ZERO
    company_ex_tax_total: Decimal = _ZERO
    advance_total: Decimal = _ZERO

    accounted_revenue: Decimal = _ZERO
    total_cost_price: Decimal = _ZERO
    total_gross_margin: Decimal = _ZERO
    margin_rate: Decimal = _ZERO
    markup: Decimal = _ZERO

    # Supply chain
    stock_location: str | None = None
    incoterm: str | None = None
    invoiced_partner: Partner | None = None
    delivered_partner: Partner | None = None
    standard_delay: int = 0

    id: UUID = field(default_factory=uuid4)

    def normal_lines(self) -> list[OrderLine]:
        return [line for line in self.lines if line.is_normal]

    def sorted_lines(self) -> list[OrderLine]:
        return sorted(self.lines, key=lambda line: line.sequence)

    def max_sequence(self) -> int:
        """Highest line sequence, or -1 when the order has no line."""
        return max((line.sequence for line in self.lines), default=-1)

    def line_index(self) -> dict[UUID, OrderLine]:
        return {line.id: line for line in self.lines}

    def lines_by_manual_id(self) -> dict[str, OrderLine]:
        return {line.manual_id: line for line in self.lines if line.manual_id}

    def find_line(self, line_id: UUID) -> OrderLine | None:
        return self.line_index().get(line_id)

    def is_editable(self) -> bool:
        """Draft quotation, or confirmed order reopened for edition."""
        return self.status == OrderStatus.DRAFT_QUOTATION or (
            self.status == OrderStatus.ORDER_CONFIRMED and self.order_being_edited
        )
