"""
Sales Order ORM Persistence Models (``sales_modules.order.orm``).

Responsibility:
    SQLAlchemy ORM models that persist the sales order aggregate defined in
    ``sales_kernel.domain.order``.  Each ORM class mirrors a domain record
    and provides ``to_dto()`` / ``from_dto()`` conversion.

Architecture position:
    **Modules layer** -- persistence companions to the pure domain records.
    Inherits from ``TrackedBase`` (kernel DB base) which provides:
    id (UUID PK), created_at, updated_at, created_by_id (NOT NULL UUID),
    updated_by_id (nullable UUID).

Invariants enforced:
    - All monetary fields use Decimal (maps to Numeric(38,9)) -- NEVER float.
    - Enum fields stored as String(50) containing the enum .value string.
    - Catalog references (company, partners, products, tax rates, ...) are
      stored by id only and rehydrated from a ``ReferenceCatalog``.
    - Line order is preserved through ``position``; tax aggregation depends
      on it.
"""

import json
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from sales_kernel.db.base import TrackedBase

ADVANCE_PAYMENT = "payment"
ADVANCE_PAYMENT_INVOICE = "invoice"


# ---------------------------------------------------------------------------
# SaleOrderModel
# ---------------------------------------------------------------------------

class SaleOrderModel(TrackedBase):
    """
    ORM model for ``Order`` -- a quotation or sales order header.

    Contract:
        Owns its lines, tax lines and advance payments (delete-orphan).
        Totals and margin columns are the cached values last written by the
        order computer.
    """

    __tablename__ = "sale_orders"

    company_id: Mapped[UUID] = mapped_column(nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    client_partner_id: Mapped[UUID | None] = mapped_column(nullable=True)
    contact_partner_id: Mapped[UUID | None] = mapped_column(nullable=True)
    price_list_id: Mapped[UUID | None] = mapped_column(nullable=True)
    fiscal_position_id: Mapped[UUID | None] = mapped_column(nullable=True)
    tax_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    team: Mapped[str | None] = mapped_column(String(100), nullable=True)
    reference: Mapped[str | None] = mapped_column(String(255), nullable=True)
    external_reference: Mapped[str | None] = mapped_column(String(255), nullable=True)
    creation_date: Mapped[date | None] = mapped_column(nullable=True)
    in_ati: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    template: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="draft_quotation")
    order_being_edited: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    specific_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    ex_tax_total: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    tax_total: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    in_tax_total: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    company_ex_tax_total: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    advance_total: Mapped[Decimal] = mapped_column(default=Decimal("0"))

    accounted_revenue: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    total_cost_price: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    total_gross_margin: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    margin_rate: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    markup: Mapped[Decimal] = mapped_column(default=Decimal("0"))

    # Supply chain
    stock_location: Mapped[str | None] = mapped_column(String(100), nullable=True)
    incoterm: Mapped[str | None] = mapped_column(String(20), nullable=True)
    invoiced_partner_id: Mapped[UUID | None] = mapped_column(nullable=True)
    delivered_partner_id: Mapped[UUID | None] = mapped_column(nullable=True)
    standard_delay: Mapped[int] = mapped_column(default=0)

    lines: Mapped[list["SaleOrderLineModel"]] = relationship(
        "SaleOrderLineModel",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="SaleOrderLineModel.position",
    )
    tax_lines: Mapped[list["SaleOrderTaxLineModel"]] = relationship(
        "SaleOrderTaxLineModel",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="SaleOrderTaxLineModel.position",
    )
    advance_payments: Mapped[list["AdvancePaymentModel"]] = relationship(
        "AdvancePaymentModel",
        back_populates="order",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index("idx_sale_order_company", "company_id"),
        Index("idx_sale_order_client", "client_partner_id"),
        Index("idx_sale_order_status", "status"),
        Index("idx_sale_order_reference", "reference"),
    )

    def to_dto(self, catalog):
        from sales_kernel.domain.order import (
            AdvancePayment,
            AdvancePaymentInvoice,
            Order,
            OrderStatus,
        )
        lookup = catalog.lookup
        return Order(
            id=self.id,
            company=lookup(catalog.companies, self.company_id),
            currency=self.currency,
            client_partner=lookup(catalog.partners, self.client_partner_id),
            contact_partner=lookup(catalog.partners, self.contact_partner_id),
            price_list=lookup(catalog.price_lists, self.price_list_id),
            fiscal_position=lookup(catalog.fiscal_positions, self.fiscal_position_id),
            tax_number=self.tax_number,
            team=self.team,
            reference=self.reference,
            external_reference=self.external_reference,
            creation_date=self.creation_date,
            in_ati=self.in_ati,
            template=self.template,
            status=OrderStatus(self.status),
            order_being_edited=self.order_being_edited,
            lines=[line.to_dto(catalog) for line in self.lines],
            tax_lines=[tax_line.to_dto(catalog) for tax_line in self.tax_lines],
            advance_payments=[
                AdvancePayment(id=p.id, amount=p.amount)
                for p in self.advance_payments if p.kind == ADVANCE_PAYMENT
            ],
            advance_payment_invoices=[
                AdvancePaymentInvoice(id=p.id, amount_paid=p.amount)
                for p in self.advance_payments if p.kind == ADVANCE_PAYMENT_INVOICE
            ],
            specific_notes=self.specific_notes,
            ex_tax_total=self.ex_tax_total,
            tax_total=self.tax_total,
            in_tax_total=self.in_tax_total,
            company_ex_tax_total=self.company_ex_tax_total,
            advance_total=self.advance_total,
            accounted_revenue=self.accounted_revenue,
            total_cost_price=self.total_cost_price,
            total_gross_margin=self.total_gross_margin,
            margin_rate=self.margin_rate,
            markup=self.markup,
            stock_location=self.stock_location,
            incoterm=self.incoterm,
            invoiced_partner=lookup(catalog.partners, self.invoiced_partner_id),
            delivered_partner=lookup(catalog.partners, self.delivered_partner_id),
            standard_delay=self.standard_delay,
        )

    @classmethod
    def from_dto(cls, dto, created_by_id: UUID) -> "SaleOrderModel":
        model = cls(id=dto.id, created_by_id=created_by_id)
        model.apply_header(dto)
        model.replace_children(dto, created_by_id)
        return model

    def apply_header(self, dto) -> None:
        """Copy header, totals and margin fields from the domain order."""
        self.company_id = dto.company.id
        self.currency = dto.currency
        self.client_partner_id = _ref(dto.client_partner)
        self.contact_partner_id = _ref(dto.contact_partner)
        self.price_list_id = _ref(dto.price_list)
        self.fiscal_position_id = _ref(dto.fiscal_position)
        self.tax_number = dto.tax_number
        self.team = dto.team
        self.reference = dto.reference
        self.external_reference = dto.external_reference
        self.creation_date = dto.creation_date
        self.in_ati = dto.in_ati
        self.template = dto.template
        self.status = dto.status.value
        self.order_being_edited = dto.order_being_edited
        self.specific_notes = dto.specific_notes
        self.ex_tax_total = dto.ex_tax_total
        self.tax_total = dto.tax_total
        self.in_tax_total = dto.in_tax_total
        self.company_ex_tax_total = dto.company_ex_tax_total
        self.advance_total = dto.advance_total
        self.accounted_revenue = dto.accounted_revenue
        self.total_cost_price = dto.total_cost_price
        self.total_gross_margin = dto.total_gross_margin
        self.margin_rate = dto.margin_rate
        self.markup = dto.markup
        self.stock_location = dto.stock_location
        self.incoterm = dto.incoterm
        self.invoiced_partner_id = _ref(dto.invoiced_partner)
        self.delivered_partner_id = _ref(dto.delivered_partner)
        self.standard_delay = dto.standard_delay

    def replace_children(self, dto, created_by_id: UUID) -> None:
        """Rebuild lines, tax lines and advance payments from the domain order.

        Callers replacing the children of a persistent row must flush the
        removal before the new rows are added, since line ids are reused.
        """
        self.lines = [
            SaleOrderLineModel.from_dto(line, position, created_by_id)
            for position, line in enumerate(dto.lines)
        ]
        self.tax_lines = [
            SaleOrderTaxLineModel.from_dto(tax_line, position, created_by_id)
            for position, tax_line in enumerate(dto.tax_lines)
        ]
        self.advance_payments = [
            AdvancePaymentModel(
                id=p.id, kind=ADVANCE_PAYMENT, amount=p.amount,
                created_by_id=created_by_id,
            )
            for p in dto.advance_payments
        ] + [
            AdvancePaymentModel(
                id=p.id, kind=ADVANCE_PAYMENT_INVOICE, amount=p.amount_paid,
                created_by_id=created_by_id,
            )
            for p in dto.advance_payment_invoices
        ]

    def __repr__(self) -> str:
        return f"<SaleOrderModel {self.reference or self.id} status={self.status}>"


# ---------------------------------------------------------------------------
# SaleOrderLineModel
# ---------------------------------------------------------------------------

class SaleOrderLineModel(TrackedBase):
    """
    ORM model for ``OrderLine``.

    Contract:
        ``parent_manual_id`` stores the line's ``parent_id`` correlation key
        (a manual id string, not a foreign key). The selectable
        complementary-product list is stored as JSON text.
    """

    __tablename__ = "sale_order_lines"

    order_id: Mapped[UUID] = mapped_column(ForeignKey("sale_orders.id"), nullable=False)
    position: Mapped[int] = mapped_column(nullable=False)
    product_id: Mapped[UUID | None] = mapped_column(nullable=True)
    product_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    qty: Mapped[Decimal | None] = mapped_column(nullable=True)
    type_select: Mapped[str] = mapped_column(String(50), nullable=False, default="normal")
    sequence: Mapped[int] = mapped_column(default=0)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    unit: Mapped[str | None] = mapped_column(String(50), nullable=True)

    price: Mapped[Decimal | None] = mapped_column(nullable=True)
    in_tax_price: Mapped[Decimal | None] = mapped_column(nullable=True)
    price_discounted: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    discount_amount: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    discount_type: Mapped[str] = mapped_column(String(50), nullable=False, default="none")
    discount_derogation: Mapped[Decimal | None] = mapped_column(nullable=True)
    tax_rate_id: Mapped[UUID | None] = mapped_column(nullable=True)
    tax_equivalence_id: Mapped[UUID | None] = mapped_column(nullable=True)
    company_cost_price: Mapped[Decimal | None] = mapped_column(nullable=True)

    ex_tax_total: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    in_tax_total: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    company_ex_tax_total: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    company_in_tax_total: Mapped[Decimal] = mapped_column(default=Decimal("0"))

    sub_total_cost_price: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    sub_total_gross_margin: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    sub_margin_rate: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    sub_total_markup: Mapped[Decimal] = mapped_column(default=Decimal("0"))

    is_show_total: Mapped[bool] = mapped_column(Boolean, default=False)
    is_hide_unit_amounts: Mapped[bool] = mapped_column(Boolean, default=False)
    enable_freeze_fields: Mapped[bool] = mapped_column(Boolean, default=False)
    discounts_need_review: Mapped[bool] = mapped_column(Boolean, default=False)
    pricing_scale_logs: Mapped[str | None] = mapped_column(Text, nullable=True)

    sale_supply: Mapped[str] = mapped_column(String(50), nullable=False, default="none")
    standard_delay: Mapped[int] = mapped_column(default=0)

    manual_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    parent_manual_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    main_line_id: Mapped[UUID | None] = mapped_column(nullable=True)
    complementary_products_json: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_complementary_products_unhandled_yet: Mapped[bool] = mapped_column(Boolean, default=False)
    is_complementary_partner_products_handled: Mapped[bool] = mapped_column(Boolean, default=False)

    order: Mapped["SaleOrderModel"] = relationship("SaleOrderModel", back_populates="lines")

    __table_args__ = (
        Index("idx_sale_order_line_order", "order_id"),
        Index("idx_sale_order_line_product", "product_id"),
    )

    def to_dto(self, catalog):
        from sales_kernel.domain.catalog import DiscountType, LineType, SaleSupply
        from sales_kernel.domain.order import OrderLine, SelectedComplementaryProduct

        selected = []
        if self.complementary_products_json:
            selected = [
                SelectedComplementaryProduct(
                    product=catalog.lookup(catalog.products, UUID(item["product_id"])),
                    qty=Decimal(item["qty"]),
                    optional=item["optional"],
                    is_selected=item["is_selected"],
                )
                for item in json.loads(self.complementary_products_json)
            ]

        return OrderLine(
            id=self.id,
            product=catalog.lookup(catalog.products, self.product_id),
            product_name=self.product_name,
            qty=self.qty,
            type_select=LineType(self.type_select),
            sequence=self.sequence,
            description=self.description,
            unit=self.unit,
            price=self.price,
            in_tax_price=self.in_tax_price,
            price_discounted=self.price_discounted,
            discount_amount=self.discount_amount,
            discount_type=DiscountType(self.discount_type),
            discount_derogation=self.discount_derogation,
            tax_rate=catalog.lookup(catalog.tax_rates, self.tax_rate_id),
            tax_equivalence=catalog.tax_equivalence(self.tax_equivalence_id),
            company_cost_price=self.company_cost_price,
            ex_tax_total=self.ex_tax_total,
            in_tax_total=self.in_tax_total,
            company_ex_tax_total=self.company_ex_tax_total,
            company_in_tax_total=self.company_in_tax_total,
            sub_total_cost_price=self.sub_total_cost_price,
            sub_total_gross_margin=self.sub_total_gross_margin,
            sub_margin_rate=self.sub_margin_rate,
            sub_total_markup=self.sub_total_markup,
            is_show_total=self.is_show_total,
            is_hide_unit_amounts=self.is_hide_unit_amounts,
            enable_freeze_fields=self.enable_freeze_fields,
            discounts_need_review=self.discounts_need_review,
            pricing_scale_logs=self.pricing_scale_logs,
            sale_supply=SaleSupply(self.sale_supply),
            standard_delay=self.standard_delay,
            manual_id=self.manual_id,
            parent_id=self.parent_manual_id,
            main_line_id=self.main_line_id,
            selected_complementary_products=selected,
            is_complementary_products_unhandled_yet=self.is_complementary_products_unhandled_yet,
            is_complementary_partner_products_handled=self.is_complementary_partner_products_handled,
        )

    @classmethod
    def from_dto(cls, dto, position: int, created_by_id: UUID) -> "SaleOrderLineModel":
        selected_json = None
        if dto.selected_complementary_products:
            selected_json = json.dumps([
                {
                    "product_id": str(item.product.id),
                    "qty": str(item.qty),
                    "optional": item.optional,
                    "is_selected": item.is_selected,
                }
                for item in dto.selected_complementary_products
            ])
        return cls(
            id=dto.id,
            position=position,
            product_id=_ref(dto.product),
            product_name=dto.product_name,
            qty=dto.qty,
            type_select=dto.type_select.value,
            sequence=dto.sequence,
            description=dto.description,
            unit=dto.unit,
            price=dto.price,
            in_tax_price=dto.in_tax_price,
            price_discounted=dto.price_discounted,
            discount_amount=dto.discount_amount,
            discount_type=dto.discount_type.value,
            discount_derogation=dto.discount_derogation,
            tax_rate_id=_ref(dto.tax_rate),
            tax_equivalence_id=_ref(dto.tax_equivalence),
            company_cost_price=dto.company_cost_price,
            ex_tax_total=dto.ex_tax_total,
            in_tax_total=dto.in_tax_total,
            company_ex_tax_total=dto.company_ex_tax_total,
            company_in_tax_total=dto.company_in_tax_total,
            sub_total_cost_price=dto.sub_total_cost_price,
            sub_total_gross_margin=dto.sub_total_gross_margin,
            sub_margin_rate=dto.sub_margin_rate,
            sub_total_markup=dto.sub_total_markup,
            is_show_total=dto.is_show_total,
            is_hide_unit_amounts=dto.is_hide_unit_amounts,
            enable_freeze_fields=dto.enable_freeze_fields,
            discounts_need_review=dto.discounts_need_review,
            pricing_scale_logs=dto.pricing_scale_logs,
            sale_supply=dto.sale_supply.value,
            standard_delay=dto.standard_delay,
            manual_id=dto.manual_id,
            parent_manual_id=dto.parent_id,
            main_line_id=dto.main_line_id,
            complementary_products_json=selected_json,
            is_complementary_products_unhandled_yet=dto.is_complementary_products_unhandled_yet,
            is_complementary_partner_products_handled=dto.is_complementary_partner_products_handled,
            created_by_id=created_by_id,
        )

    def __repr__(self) -> str:
        return f"<SaleOrderLineModel seq={self.sequence} {self.product_name!r} ({self.type_select})>"


# ---------------------------------------------------------------------------
# SaleOrderTaxLineModel
# ---------------------------------------------------------------------------

class SaleOrderTaxLineModel(TrackedBase):
    """ORM model for ``OrderTaxLine`` -- one row per tax rate on an order."""

    __tablename__ = "sale_order_tax_lines"

    order_id: Mapped[UUID] = mapped_column(ForeignKey("sale_orders.id"), nullable=False)
    position: Mapped[int] = mapped_column(nullable=False)
    tax_rate_id: Mapped[UUID] = mapped_column(nullable=False)
    ex_tax_base: Mapped[Decimal] = mapped_column(nullable=False)
    tax_total: Mapped[Decimal] = mapped_column(nullable=False)
    in_tax_total: Mapped[Decimal] = mapped_column(nullable=False)

    order: Mapped["SaleOrderModel"] = relationship("SaleOrderModel", back_populates="tax_lines")

    __table_args__ = (
        Index("idx_sale_order_tax_line_order", "order_id"),
    )

    def to_dto(self, catalog):
        from sales_kernel.domain.order import OrderTaxLine
        return OrderTaxLine(
            tax_rate=catalog.lookup(catalog.tax_rates, self.tax_rate_id),
            ex_tax_base=self.ex_tax_base,
            tax_total=self.tax_total,
            in_tax_total=self.in_tax_total,
        )

    @classmethod
    def from_dto(cls, dto, position: int, created_by_id: UUID) -> "SaleOrderTaxLineModel":
        return cls(
            position=position,
            tax_rate_id=dto.tax_rate.id,
            ex_tax_base=dto.ex_tax_base,
            tax_total=dto.tax_total,
            in_tax_total=dto.in_tax_total,
            created_by_id=created_by_id,
        )

    def __repr__(self) -> str:
        return f"<SaleOrderTaxLineModel tax={self.tax_rate_id} base={self.ex_tax_base}>"


# ---------------------------------------------------------------------------
# AdvancePaymentModel
# ---------------------------------------------------------------------------

class AdvancePaymentModel(TrackedBase):
    """
    ORM model for ``AdvancePayment`` and ``AdvancePaymentInvoice``.

    ``kind`` distinguishes a recorded advance payment ("payment") from the
    paid amount of an advance-payment invoice ("invoice").
    """

    __tablename__ = "sale_order_advance_payments"

    order_id: Mapped[UUID] = mapped_column(ForeignKey("sale_orders.id"), nullable=False)
    kind: Mapped[str] = mapped_column(String(20), nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)

    order: Mapped["SaleOrderModel"] = relationship(
        "SaleOrderModel", back_populates="advance_payments",
    )

    __table_args__ = (
        Index("idx_sale_order_advance_order", "order_id"),
    )

    def __repr__(self) -> str:
        return f"<AdvancePaymentModel {self.kind} amount={self.amount}>"


def _ref(record) -> UUID | None:
    return record.id if record is not None else None
