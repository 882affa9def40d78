"""
Sale settings and installed capabilities.

Defines the knobs the sales engines read (precision, margin policy,
pricing-scale switch) and the ``FeatureSet`` that tells each component
which optional capabilities are installed. Both are passed explicitly to
the components that need them; nothing looks them up globally.
"""

from dataclasses import dataclass, field, fields
from typing import Any, Self

from sales_kernel.exceptions import InvalidSettingsError
from sales_kernel.logging_config import get_logger

logger = get_logger("domain.settings")

MAX_DIGITS = 10


@dataclass(frozen=True)
class FeatureSet:
    """Optional capabilities layered on top of the base sales pipeline."""

    # Stock location, incoterm, supply delays
    supplychain: bool = False
    # Invoiced/delivered partners on orders (requires supplychain)
    partner_relations: bool = False
    # Advance total from paid advance-payment invoices (requires supplychain)
    advance_payment_invoices: bool = False

    def enabled(self) -> list[str]:
        return [f.name for f in fields(self) if getattr(self, f.name)]

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        unknown = set(data) - {f.name for f in fields(cls)}
        if unknown:
            raise InvalidSettingsError(
                [f"unknown feature '{name}'" for name in sorted(unknown)]
            )
        return cls(**{k: bool(v) for k, v in data.items()})


@dataclass
class SaleSettings:
    """
    Configuration for the sales engines.

        settings = SaleSettings(
            unit_price_digits=4,
            consider_zero_cost=True,
            features=FeatureSet(supplychain=True),
        )
    """

    unit_price_digits: int = 2
    quantity_digits: int = 2

    # Margin on lines with zero cost or zero revenue
    consider_zero_cost: bool = False

    # Line pricing
    enable_pricing_scale: bool = False
    product_description_copy: bool = False
    end_of_pack_label: str = "End of pack"

    # END_OF_PACK subtotals on every save; off clears them instead
    enable_pack_management: bool = True

    features: FeatureSet = field(default_factory=FeatureSet)

    def __post_init__(self):
        errors: list[str] = []
        for name in ("unit_price_digits", "quantity_digits"):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool):
                errors.append(f"{name} must be an integer, got {value!r}")
            elif not 0 <= value <= MAX_DIGITS:
                errors.append(f"{name} must be between 0 and {MAX_DIGITS}, got {value}")
        if not self.end_of_pack_label or not self.end_of_pack_label.strip():
            errors.append("end_of_pack_label cannot be empty")
        features = self.features
        if (features.partner_relations or features.advance_payment_invoices) and not features.supplychain:
            errors.append("partner_relations and advance_payment_invoices require supplychain")
        if errors:
            logger.warning("sale_settings_invalid", extra={"errors": errors})
            raise InvalidSettingsError(errors)

        logger.info(
            "sale_settings_initialized",
            extra={
                "unit_price_digits": self.unit_price_digits,
                "quantity_digits": self.quantity_digits,
                "consider_zero_cost": self.consider_zero_cost,
                "enable_pricing_scale": self.enable_pricing_scale,
                "enable_pack_management": self.enable_pack_management,
                "features": features.enabled(),
            },
        )

    @classmethod
    def with_defaults(cls) -> Self:
        logger.info("sale_settings_created_with_defaults")
        return cls()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        """Create settings from a mapping (e.g. a parsed YAML document)."""
        logger.info("sale_settings_loading_from_dict", extra={"keys": sorted(data.keys())})
        data = dict(data)
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise InvalidSettingsError([f"unknown setting '{name}'" for name in unknown])
        features = data.get("features")
        if isinstance(features, dict):
            data["features"] = FeatureSet.from_dict(features)
        elif features is None:
            data.pop("features", None)
        elif not isinstance(features, FeatureSet):
            raise InvalidSettingsError(["features must be a mapping"])
        return cls(**data)
