"""
Typed exception hierarchy for the sales kernel.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from SalesKernelError:

    SalesKernelError (base)
    |
    +-- ConfigurationError            non-retryable, surfaced to the caller
    |   +-- MissingTaxConfigurationError
    |   +-- MissingExchangeRateError
    |   +-- CategoryCycleError
    |   +-- InvalidSettingsError
    |
    +-- PolicyViolation               non-retryable, user-actionable
    |   +-- DiscountTooHighError
    |   +-- MergeConflictError
    |   +-- EmptyMergeSelectionError
    |   +-- InvalidMergeOverrideError
    |   +-- NotAPackHeaderError
    |
    +-- OrderNotFoundError
    +-- OrderLineNotFoundError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Configuration   | MISSING_TAX_CONFIGURATION   | No tax rate for product/company/fiscal pos.
                | MISSING_EXCHANGE_RATE       | No rate for currency pair/date
                | CATEGORY_CYCLE              | Product-category parent chain loops
                | INVALID_SETTINGS            | Settings or YAML file failed validation
----------------|-----------------------------|-----------------------------------------
Policy          | DISCOUNT_TOO_HIGH           | Line discount above authorized maximum
                | MERGE_CONFLICT              | Orders disagree on a blocking field
                | EMPTY_MERGE_SELECTION       | Merge called without source orders
                | INVALID_MERGE_OVERRIDE      | Override targets a non-resolvable field
                | NOT_A_PACK_HEADER           | Pack quantity change on a non-header line
----------------|-----------------------------|-----------------------------------------
Lookup          | ORDER_NOT_FOUND             | Repository has no order with that id
                | ORDER_LINE_NOT_FOUND        | Order has no line with that id

The core never retries. Every operation is a deterministic function of its
inputs, so retry policy (if any) belongs to the transactional caller.
"""

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal
from typing import Any


class SalesKernelError(Exception):
    """
    Base exception for all sales kernel errors.

    Every subclass defines a ``code`` class attribute and stores its
    context as public attributes so it survives logging and serialization.
    """

    code: str = "SALES_KERNEL_ERROR"


# Configuration errors


class ConfigurationError(SalesKernelError):
    """Missing or inconsistent reference configuration."""

    code: str = "CONFIGURATION_ERROR"


class MissingTaxConfigurationError(ConfigurationError):
    """No applicable tax rate could be resolved for a product."""

    code: str = "MISSING_TAX_CONFIGURATION"

    def __init__(
        self,
        product_code: str,
        company_code: str,
        fiscal_position_code: str | None = None,
    ):
        self.product_code = product_code
        self.company_code = company_code
        self.fiscal_position_code = fiscal_position_code
        where = f" under fiscal position {fiscal_position_code}" if fiscal_position_code else ""
        super().__init__(
            f"No tax rate configured for product {product_code} "
            f"in company {company_code}{where}"
        )


class MissingExchangeRateError(ConfigurationError):
    """The currency converter has no rate for the requested pair."""

    code: str = "MISSING_EXCHANGE_RATE"

    def __init__(self, from_currency: str, to_currency: str, as_of: Any = None):
        self.from_currency = from_currency
        self.to_currency = to_currency
        self.as_of = as_of
        super().__init__(
            f"No exchange rate from {from_currency} to {to_currency}"
            + (f" as of {as_of}" if as_of is not None else "")
        )


class CategoryCycleError(ConfigurationError):
    """A product-category parent chain revisits an already-visited category."""

    code: str = "CATEGORY_CYCLE"

    def __init__(self, category_code: str, chain: Sequence[str]):
        self.category_code = category_code
        self.chain = list(chain)
        super().__init__(
            f"Product category {category_code} appears twice in its parent chain: "
            + " -> ".join(self.chain)
        )


class InvalidSettingsError(ConfigurationError):
    """Sale settings failed validation."""

    code: str = "INVALID_SETTINGS"

    def __init__(self, errors: Sequence[str], source: str | None = None):
        self.errors = list(errors)
        self.source = source
        prefix = f"{source}: " if source else ""
        super().__init__(prefix + "; ".join(self.errors))


# Policy violations


class PolicyViolation(SalesKernelError):
    """A business rule rejected the operation. The user can act on it."""

    code: str = "POLICY_VIOLATION"


@dataclass(frozen=True)
class DiscountOffence:
    """One line whose discount exceeds its authorized maximum."""

    line_id: str
    sequence: int
    product_code: str | None
    discount_amount: Decimal
    discount_type: str
    max_discount: Decimal


class DiscountTooHighError(PolicyViolation):
    """One or more lines carry a discount above the authorized maximum."""

    code: str = "DISCOUNT_TOO_HIGH"

    def __init__(self, order_reference: str | None, offences: Sequence[DiscountOffence]):
        self.order_reference = order_reference
        self.offences = list(offences)
        details = ", ".join(
            f"line {o.sequence} ({o.product_code}): {o.discount_amount} > {o.max_discount}"
            for o in self.offences
        )
        super().__init__(
            f"Discount too high on {len(self.offences)} line(s) of order "
            f"{order_reference}: {details}"
        )


class MergeConflictError(PolicyViolation):
    """Source orders disagree on fields that make the merge impossible."""

    code: str = "MERGE_CONFLICT"

    def __init__(self, fields: Sequence[str], messages: Sequence[str]):
        self.fields = list(fields)
        self.messages = list(messages)
        super().__init__("\n".join(self.messages))


class EmptyMergeSelectionError(PolicyViolation):
    """Merge was requested without any source order."""

    code: str = "EMPTY_MERGE_SELECTION"

    def __init__(self) -> None:
        super().__init__("Select at least one order to merge")


class InvalidMergeOverrideError(PolicyViolation):
    """An override was supplied for a field the operator may not resolve."""

    code: str = "INVALID_MERGE_OVERRIDE"

    def __init__(self, fields: Sequence[str], allowed: Sequence[str]):
        self.fields = sorted(fields)
        self.allowed = sorted(allowed)
        super().__init__(
            f"Cannot override merge fields {', '.join(self.fields)}; "
            f"resolvable fields are {', '.join(self.allowed)}"
        )


class NotAPackHeaderError(PolicyViolation):
    """A pack quantity change targeted a line that does not open a pack."""

    code: str = "NOT_A_PACK_HEADER"

    def __init__(self, order_id: Any, line_id: Any, line_type: Any):
        self.order_id = str(order_id)
        self.line_id = str(line_id)
        self.line_type = getattr(line_type, "value", line_type)
        super().__init__(
            f"Line {line_id} of order {order_id} is not a start-of-pack line "
            f"({self.line_type})"
        )


# Lookup errors


class OrderNotFoundError(SalesKernelError):
    """Order with the given id was not found."""

    code: str = "ORDER_NOT_FOUND"

    def __init__(self, order_id: Any):
        self.order_id = str(order_id)
        super().__init__(f"Order not found: {order_id}")


class OrderLineNotFoundError(SalesKernelError):
    """Order has no line with the given id."""

    code: str = "ORDER_LINE_NOT_FOUND"

    def __init__(self, order_id: Any, line_id: Any):
        self.order_id = str(order_id)
        self.line_id = str(line_id)
        super().__init__(f"Order {order_id} has no line {line_id}")
