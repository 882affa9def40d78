"""
Catalog reference records consumed by the sales engines.

Responsibility:
    Immutable snapshots of companies, partners, products, tax records,
    fiscal positions, price lists and pack templates. The engines read
    them; nothing in the core mutates them.

Architecture position:
    Kernel > Domain -- pure data, zero I/O.

Invariants enforced:
    - Records are frozen. Identity is the ``id`` field; two tax rates with
      the same numeric value but different ids are different records.
    - Monetary values are ``Decimal``.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from uuid import UUID, uuid4


class LineType(str, Enum):
    """Kind of order line (also used by pack template components)."""

    NORMAL = "normal"
    TITLE = "title"
    START_OF_PACK = "start_of_pack"
    END_OF_PACK = "end_of_pack"


class SaleSupply(str, Enum):
    """How a product is supplied when sold."""

    NONE = "none"
    STOCK = "stock"
    PURCHASE = "purchase"
    PRODUCE = "produce"


class ComplementaryGeneration(str, Enum):
    """Whether a partner complementary product is added per line or per order."""

    PER_LINE = "per_line"
    PER_ORDER = "per_order"


@dataclass(frozen=True)
class Company:
    code: str
    currency: str
    id: UUID = field(default_factory=uuid4)


@dataclass(frozen=True)
class TaxRate:
    """A dated tax rate record. ``value`` is a percentage (20 means 20%)."""

    code: str
    value: Decimal
    id: UUID = field(default_factory=uuid4)

    @property
    def fraction(self) -> Decimal:
        return self.value / Decimal(100)


@dataclass(frozen=True)
class TaxEquivalence:
    """Substitution of one tax by another under a fiscal position."""

    from_tax_code: str
    to_tax_code: str
    specific_note: str | None = None
    id: UUID = field(default_factory=uuid4)


@dataclass(frozen=True)
class FiscalPosition:
    code: str
    customer_specific_note: bool = False
    tax_equivalences: tuple[TaxEquivalence, ...] = ()
    id: UUID = field(default_factory=uuid4)

    def equivalence_for(self, tax_code: str) -> TaxEquivalence | None:
        for equivalence in self.tax_equivalences:
            if equivalence.from_tax_code == tax_code:
                return equivalence
        return None


@dataclass(frozen=True)
class ProductCategory:
    """Category node. ``parent_id`` links upward; cycles are detected at lookup."""

    code: str
    max_discount: Decimal = Decimal("0")
    parent_id: UUID | None = None
    id: UUID = field(default_factory=uuid4)


@dataclass(frozen=True)
class ComplementaryProduct:
    product: "Product"
    qty: Decimal = Decimal("1")
    optional: bool = False
    generation: ComplementaryGeneration = ComplementaryGeneration.PER_LINE


@dataclass(frozen=True)
class Product:
    code: str
    name: str
    sale_price: Decimal = Decimal("0")
    cost_price: Decimal = Decimal("0")
    sale_currency: str = "EUR"
    purchase_currency: str = "EUR"
    in_ati: bool = False
    unit: str | None = None
    sales_unit: str | None = None
    description: str | None = None
    tax_code: str | None = None
    category: ProductCategory | None = None
    sale_supply: SaleSupply = SaleSupply.NONE
    standard_delay: int = 0
    complementary_products: tuple[ComplementaryProduct, ...] = ()
    id: UUID = field(default_factory=uuid4)


@dataclass(frozen=True)
class Partner:
    name: str
    specific_tax_note: str | None = None
    complementary_products: tuple[ComplementaryProduct, ...] = ()
    id: UUID = field(default_factory=uuid4)


@dataclass(frozen=True)
class PriceList:
    code: str
    lines: tuple["PriceListLine", ...] = ()
    id: UUID = field(default_factory=uuid4)


@dataclass(frozen=True)
class PackLineTemplate:
    """One component of a pack. Bracket components carry no product."""

    sequence: int
    product_name: str | None
    quantity: Decimal | None = None
    price: Decimal = Decimal("0")
    product: Product | None = None
    unit: str | None = None
    line_type: LineType = LineType.NORMAL


@dataclass(frozen=True)
class PackTemplate:
    """Reusable bundle of products, expanded into concrete order lines."""

    name: str
    components: tuple[PackLineTemplate, ...] = ()
    currency: str | None = None
    is_show_total: bool = False
    is_hide_unit_amounts: bool = False
    do_not_display_header_and_end_pack: bool = False
    id: UUID = field(default_factory=uuid4)

    def component_types(self) -> set[LineType]:
        return {component.line_type for component in self.components}

    def sorted_components(self) -> list[PackLineTemplate]:
        return sorted(self.components, key=lambda c: c.sequence)


class DiscountType(str, Enum):
    NONE = "none"
    PERCENT = "percent"
    FIXED = "fixed"


@dataclass(frozen=True)
class PriceListLine:
    """Discount or replacement price for a product from a minimum quantity."""

    product_code: str
    min_qty: Decimal = Decimal("0")
    discount_type: DiscountType = DiscountType.NONE
    amount: Decimal = Decimal("0")
    replacement_price: Decimal | None = None
    id: UUID = field(default_factory=uuid4)
