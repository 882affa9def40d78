"""
Tests for SaleSettings and FeatureSet validation.
"""

import pytest

from sales_kernel.domain.settings import MAX_DIGITS, FeatureSet, SaleSettings
from sales_kernel.exceptions import InvalidSettingsError


class TestSaleSettings:

    def test_defaults(self):
        settings = SaleSettings.with_defaults()
        assert settings.unit_price_digits == 2
        assert settings.quantity_digits == 2
        assert settings.consider_zero_cost is False
        assert settings.end_of_pack_label == "End of pack"
        assert settings.enable_pack_management is True
        assert settings.features.enabled() == []

    @pytest.mark.parametrize("digits", [-1, MAX_DIGITS + 1])
    def test_digits_out_of_range(self, digits):
        with pytest.raises(InvalidSettingsError, match="quantity_digits must be between"):
            SaleSettings(quantity_digits=digits)

    def test_digits_must_be_int(self):
        with pytest.raises(InvalidSettingsError) as exc_info:
            SaleSettings(unit_price_digits=True)
        assert exc_info.value.errors == ["unit_price_digits must be an integer, got True"]

    def test_blank_end_of_pack_label(self):
        with pytest.raises(InvalidSettingsError, match="end_of_pack_label"):
            SaleSettings(end_of_pack_label="  ")

    def test_every_error_reported(self):
        with pytest.raises(InvalidSettingsError) as exc_info:
            SaleSettings(unit_price_digits=99, quantity_digits=-3, end_of_pack_label="")
        assert len(exc_info.value.errors) == 3

    def test_dependent_features_require_supplychain(self):
        with pytest.raises(InvalidSettingsError, match="require supplychain"):
            SaleSettings(features=FeatureSet(advance_payment_invoices=True))

    def test_from_dict(self):
        settings = SaleSettings.from_dict({
            "unit_price_digits": 3,
            "features": {"supplychain": True, "advance_payment_invoices": True},
        })
        assert settings.unit_price_digits == 3
        assert settings.features.enabled() == ["supplychain", "advance_payment_invoices"]

    def test_from_dict_null_features(self):
        assert SaleSettings.from_dict({"features": None}).features == FeatureSet()

    def test_from_dict_unknown_keys_sorted(self):
        with pytest.raises(InvalidSettingsError) as exc_info:
            SaleSettings.from_dict({"zeta": 1, "alpha": 2})
        assert exc_info.value.errors == ["unknown setting 'alpha'", "unknown setting 'zeta'"]


class TestFeatureSet:

    def test_from_dict_coerces_to_bool(self):
        features = FeatureSet.from_dict({"supplychain": 1})
        assert features.supplychain is True

    def test_unknown_feature(self):
        with pytest.raises(InvalidSettingsError, match="unknown feature 'crm'"):
            FeatureSet.from_dict({"crm": True})

    def test_frozen(self):
        features = FeatureSet()
        with pytest.raises(AttributeError):
            features.supplychain = True
