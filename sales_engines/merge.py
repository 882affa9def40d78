"""
Merge Engine - reconciles several orders into one new order.

States: INIT -> VALIDATING -> NEEDS_CONFIRMATION | MERGED.

Validation compares each mergeable header field across the source orders.
The first order's value is the candidate; any later order whose value
differs (None against a value counts as a difference) clears the
candidate and raises the field's diff flag.

    blocking fields      currency, client, company (also blocking when all
                         sources agree on None), tax number, fiscal position;
                         with supply chain: incoterm; with partner
                         relations: invoiced and delivered partners
    confirmable fields   contact, price list, team; with supply chain:
                         stock location

A blocking difference raises MergeConflictError listing every blocking
field. A confirmable difference stops in NEEDS_CONFIRMATION; the caller
merges again with operator overrides for exactly those fields.

The merged order takes the common header values, joins the source
references with "-" and external references with "|", and receives every
source line renumbered 10, 20, 30... across sources in source order. It is
then recomputed once. Removing the source orders is left to the caller's
transaction.

Pure functions - no I/O.
"""

from __future__ import annotations

import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any

from sales_engines.margin import MarginCalculator
from sales_engines.order_compute import OrderComputer
from sales_engines.tracer import traced_engine
from sales_kernel.domain.order import Order, OrderStatus
from sales_kernel.domain.settings import FeatureSet
from sales_kernel.exceptions import (
    EmptyMergeSelectionError,
    InvalidMergeOverrideError,
    MergeConflictError,
)
from sales_kernel.logging_config import get_logger

logger = get_logger("engines.merge")

SEQUENCE_STEP = 10


class MergeState(str, Enum):
    INIT = "init"
    VALIDATING = "validating"
    NEEDS_CONFIRMATION = "needs_confirmation"
    MERGED = "merged"


class FieldSeverity(str, Enum):
    BLOCKING = "blocking"
    CONFIRMABLE = "confirmable"


@dataclass(frozen=True)
class MergeField:
    """A header attribute of Order compared across merge sources."""

    name: str
    severity: FieldSeverity
    message: str
    required: bool = False


BASE_MERGE_FIELDS: tuple[MergeField, ...] = (
    MergeField("currency", FieldSeverity.BLOCKING,
               "The currencies are different or missing", required=True),
    MergeField("client_partner", FieldSeverity.BLOCKING,
               "The customers are different or missing", required=True),
    MergeField("company", FieldSeverity.BLOCKING,
               "The companies are different or missing", required=True),
    MergeField("tax_number", FieldSeverity.BLOCKING, "The tax numbers are different"),
    MergeField("fiscal_position", FieldSeverity.BLOCKING, "The fiscal positions are different"),
    MergeField("contact_partner", FieldSeverity.CONFIRMABLE, "The contacts are different"),
    MergeField("price_list", FieldSeverity.CONFIRMABLE, "The price lists are different"),
    MergeField("team", FieldSeverity.CONFIRMABLE, "The teams are different"),
)

SUPPLY_CHAIN_MERGE_FIELDS: tuple[MergeField, ...] = (
    MergeField("stock_location", FieldSeverity.CONFIRMABLE, "The stock locations are different"),
    MergeField("incoterm", FieldSeverity.BLOCKING, "The incoterms are different"),
)

PARTNER_RELATION_MERGE_FIELDS: tuple[MergeField, ...] = (
    MergeField("invoiced_partner", FieldSeverity.BLOCKING, "The invoiced partners are different"),
    MergeField("delivered_partner", FieldSeverity.BLOCKING, "The delivered partners are different"),
)


def merge_fields_for(features: FeatureSet) -> tuple[MergeField, ...]:
    fields_: tuple[MergeField, ...] = BASE_MERGE_FIELDS
    if features.supplychain:
        fields_ += SUPPLY_CHAIN_MERGE_FIELDS
        if features.partner_relations:
            fields_ += PARTNER_RELATION_MERGE_FIELDS
    return fields_


@dataclass
class MergeResult:
    """Outcome of a merge attempt.

    ``common`` holds the unanimous value per field (None when differing),
    ``diffs`` the per-field diff flags.
    """

    state: MergeState
    common: dict[str, Any] = field(default_factory=dict)
    diffs: dict[str, bool] = field(default_factory=dict)
    needs_confirmation: bool = False
    order: Order | None = None
    source_orders: list[Order] = field(default_factory=list)

    def differing_fields(self) -> list[str]:
        return [name for name, differs in self.diffs.items() if differs]


class MergeReconciler:
    """
    Validates and performs order merges.

    Contract:
        ``merge(orders, creation_date)`` returns a MergeResult in state
        NEEDS_CONFIRMATION (no order built) or MERGED (``order`` set, source
        lines moved onto it). Raises EmptyMergeSelectionError,
        MergeConflictError or InvalidMergeOverrideError.
    """

    def __init__(
        self,
        order_computer: OrderComputer,
        margin: MarginCalculator,
        features: FeatureSet | None = None,
    ):
        self._order_computer = order_computer
        self._margin = margin
        self._fields = merge_fields_for(features or FeatureSet())

    @property
    def fields(self) -> tuple[MergeField, ...]:
        return self._fields

    def confirmable_field_names(self) -> set[str]:
        return {f.name for f in self._fields if f.severity == FieldSeverity.CONFIRMABLE}

    def validate(self, orders: Sequence[Order]) -> MergeResult:
        """Compare header fields; raise on blocking differences."""
        if not orders:
            raise EmptyMergeSelectionError()

        result = MergeResult(state=MergeState.VALIDATING)
        first, rest = orders[0], orders[1:]
        for merge_field in self._fields:
            candidate = getattr(first, merge_field.name)
            differs = False
            for order in rest:
                value = getattr(order, merge_field.name)
                if (candidate is None) != (value is None) or (
                    candidate is not None and candidate != value
                ):
                    candidate = None
                    differs = True
            result.common[merge_field.name] = candidate
            result.diffs[merge_field.name] = differs

        blocking = [
            f for f in self._fields
            if f.severity == FieldSeverity.BLOCKING
            and (result.diffs[f.name] or (f.required and result.common[f.name] is None))
        ]
        if blocking:
            logger.warning("merge_rejected", extra={
                "order_count": len(orders),
                "blocking_fields": [f.name for f in blocking],
            })
            raise MergeConflictError(
                [f.name for f in blocking], [f.message for f in blocking]
            )

        result.needs_confirmation = any(
            result.diffs[name] for name in self.confirmable_field_names()
        )
        return result

    @traced_engine("order_merge", "1.0", fingerprint_fields=("orders", "overrides"))
    def merge(
        self,
        orders: Sequence[Order],
        creation_date: date | None = None,
        overrides: Mapping[str, Any] | None = None,
    ) -> MergeResult:
        t0 = time.monotonic()
        result = self.validate(orders)

        if overrides is None:
            if result.needs_confirmation:
                result.state = MergeState.NEEDS_CONFIRMATION
                logger.info("merge_needs_confirmation", extra={
                    "order_count": len(orders),
                    "differing_fields": result.differing_fields(),
                })
                return result
        else:
            allowed = self.confirmable_field_names()
            rejected = set(overrides) - allowed
            if rejected:
                raise InvalidMergeOverrideError(rejected, allowed)
            result.common.update(overrides)

        merged = self._build_order(orders, result.common, creation_date)
        self._order_computer.compute_order(merged)
        self._margin.compute_order_margin(merged)

        result.order = merged
        result.source_orders = list(orders)
        result.state = MergeState.MERGED
        logger.info("orders_merged", extra={
            "order_count": len(orders),
            "merged_order_id": str(merged.id),
            "merged_reference": merged.reference,
            "line_count": len(merged.lines),
            "overridden_fields": sorted(overrides) if overrides else [],
            "duration_ms": round((time.monotonic() - t0) * 1000, 2),
        })
        return result

    def _build_order(
        self,
        orders: Sequence[Order],
        common: Mapping[str, Any],
        creation_date: date | None,
    ) -> Order:
        first = orders[0]
        references = [o.reference for o in orders if o.reference]
        external_references = [o.external_reference for o in orders if o.external_reference]

        merged = Order(
            company=common["company"],
            currency=common["currency"],
            client_partner=common["client_partner"],
            creation_date=creation_date,
            in_ati=first.in_ati,
            status=OrderStatus.DRAFT_QUOTATION,
            reference="-".join(references) or None,
            external_reference="|".join(external_references) or None,
        )
        for merge_field in self._fields:
            setattr(merged, merge_field.name, common.get(merge_field.name))

        position = 0
        for source in orders:
            for line in source.sorted_lines():
                position += 1
                line.sequence = position * SEQUENCE_STEP
                merged.lines.append(line)
            source.lines = []
        return merged
