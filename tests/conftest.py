"""
Pytest fixtures for the sales kernel test suite.

Provides:
- Structured logging setup and a ``captured_logs`` fixture
- Shared catalog records (company, partners, tax rates, products)
- Collaborators and engines wired with default settings
- SQLite in-memory sessions for module tests
"""

import json
import logging
from collections.abc import Generator
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest
from sqlalchemy.orm import Session

from sales_engines.line_pricing import LineInformationResolver
from sales_engines.line_values import LineValueComputer
from sales_engines.margin import MarginCalculator
from sales_engines.order_compute import OrderComputer
from sales_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session,
    init_engine_from_url,
    reset_engine,
)
from sales_kernel.domain.catalog import Company, Partner, Product, TaxRate
from sales_kernel.domain.clock import DeterministicClock
from sales_kernel.domain.order import Order, OrderLine
from sales_kernel.domain.settings import SaleSettings
from sales_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from sales_modules.order.providers import (
    CatalogTaxRateResolver,
    NullPricingRuleEngine,
    ReferenceCatalog,
    StaticCurrencyConverter,
    StaticPriceListService,
)
from sales_modules.order.repository import SqlAlchemyOrderRepository
from sales_modules.order.service import OrderService, SalesCollaborators

# Test actor ID for all persisted rows
TEST_ACTOR_ID = uuid4()


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture sales_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, order_computer, order):
            order_computer.compute_order(order)
            logs = captured_logs()
            assert any(r["message"] == "order_compute_completed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("sales_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Catalog fixtures
# =============================================================================


@pytest.fixture
def company():
    return Company(code="ACME", currency="EUR")


@pytest.fixture
def client():
    return Partner(name="Globex")


@pytest.fixture
def vat20():
    return TaxRate(code="VAT20", value=Decimal("20"))


@pytest.fixture
def vat10():
    return TaxRate(code="VAT10", value=Decimal("10"))


@pytest.fixture
def vat0():
    return TaxRate(code="VAT0", value=Decimal("0"))


@pytest.fixture
def widget():
    return Product(
        code="WID",
        name="Widget",
        sale_price=Decimal("12.00"),
        cost_price=Decimal("8.00"),
        unit="piece",
        tax_code="VAT20",
    )


@pytest.fixture
def gadget():
    return Product(
        code="GAD",
        name="Gadget",
        sale_price=Decimal("5.00"),
        cost_price=Decimal("2.00"),
        unit="piece",
        tax_code="VAT10",
    )


# =============================================================================
# Collaborators and engines
# =============================================================================


@pytest.fixture
def settings():
    return SaleSettings()


@pytest.fixture
def converter():
    """EUR company; 1 USD = 0.5 EUR."""
    return StaticCurrencyConverter({("USD", "EUR"): Decimal("0.5")})


@pytest.fixture
def tax_resolver(vat20, vat10, vat0):
    return CatalogTaxRateResolver([vat20, vat10, vat0])


@pytest.fixture
def margin(converter, settings):
    return MarginCalculator(converter, settings)


@pytest.fixture
def values(converter, margin, settings):
    return LineValueComputer(converter, margin, settings)


@pytest.fixture
def resolver(converter, tax_resolver, settings):
    return LineInformationResolver(
        converter,
        tax_resolver,
        NullPricingRuleEngine(),
        StaticPriceListService(),
        settings,
    )


@pytest.fixture
def order_computer(converter, settings):
    return OrderComputer.for_features(converter, settings.features)


@pytest.fixture
def order(company, client):
    """Empty EUR quotation for the default client."""
    return Order(company=company, currency="EUR", client_partner=client)


@pytest.fixture
def priced_line():
    """Build a NORMAL line with explicit prices (no resolution step)."""

    def _build(
        price,
        qty="1",
        tax_rate=None,
        product=None,
        sequence=0,
        in_tax_price=None,
    ) -> OrderLine:
        price = Decimal(price)
        if in_tax_price is None:
            in_tax_price = price
            if tax_rate is not None:
                in_tax_price = price + price * tax_rate.fraction
        return OrderLine(
            product=product,
            product_name=product.name if product else "Line",
            qty=Decimal(qty),
            price=price,
            in_tax_price=Decimal(in_tax_price),
            tax_rate=tax_rate,
            sequence=sequence,
        )

    return _build


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def db_engine():
    """Fresh in-memory SQLite engine with every sales table created."""
    eng = init_engine_from_url("sqlite://")
    create_tables()
    yield eng
    drop_tables()
    reset_engine()


@pytest.fixture
def session(db_engine) -> Generator[Session, None, None]:
    sess = get_session()
    yield sess
    sess.close()


@pytest.fixture
def catalog(company, client, vat20, vat10, vat0, widget, gadget):
    return ReferenceCatalog().register(company, client, vat20, vat10, vat0, widget, gadget)


@pytest.fixture
def repository(session, catalog):
    return SqlAlchemyOrderRepository(session, catalog, TEST_ACTOR_ID)


@pytest.fixture
def deterministic_clock():
    return DeterministicClock()


@pytest.fixture
def order_service(session, repository, settings, converter, tax_resolver, deterministic_clock):
    return OrderService(
        session,
        repository,
        settings,
        SalesCollaborators(converter=converter, tax_resolver=tax_resolver),
        deterministic_clock,
    )
