"""
Tests for the YAML settings loader.

Covers:
- Full document parsed into SaleSettings and FeatureSet
- Empty document -> defaults
- Unknown keys, bad root, out-of-range values -> InvalidSettingsError with source
- Deterministic checksum
"""

import pytest
import yaml

from sales_config import compute_checksum, load_settings, load_yaml_file, settings_from_mapping
from sales_kernel.domain.settings import FeatureSet
from sales_kernel.exceptions import InvalidSettingsError

FULL_DOCUMENT = """\
unit_price_digits: 4
quantity_digits: 3
consider_zero_cost: true
enable_pricing_scale: true
product_description_copy: true
end_of_pack_label: "Fin du pack"
enable_pack_management: false
features:
  supplychain: true
  partner_relations: true
"""


def _write(tmp_path, text, name="sales.yaml"):
    path = tmp_path / name
    path.write_text(text)
    return path


class TestLoadSettings:

    def test_full_document(self, tmp_path):
        settings = load_settings(_write(tmp_path, FULL_DOCUMENT))

        assert settings.unit_price_digits == 4
        assert settings.quantity_digits == 3
        assert settings.consider_zero_cost is True
        assert settings.enable_pricing_scale is True
        assert settings.product_description_copy is True
        assert settings.end_of_pack_label == "Fin du pack"
        assert settings.enable_pack_management is False
        assert settings.features == FeatureSet(supplychain=True, partner_relations=True)

    def test_empty_document_gives_defaults(self, tmp_path):
        settings = load_settings(_write(tmp_path, ""))
        assert settings.unit_price_digits == 2
        assert settings.features == FeatureSet()

    def test_string_path_accepted(self, tmp_path):
        path = _write(tmp_path, "quantity_digits: 0\n")
        assert load_settings(str(path)).quantity_digits == 0

    def test_load_logged_with_checksum(self, tmp_path, captured_logs):
        path = _write(tmp_path, FULL_DOCUMENT)

        load_settings(path)

        (record,) = [r for r in captured_logs() if r["message"] == "settings_loaded"]
        assert record["source"] == str(path)
        assert record["checksum"] == compute_checksum(yaml.safe_load(FULL_DOCUMENT))
        assert record["features"] == ["supplychain", "partner_relations"]


class TestInvalidDocuments:

    def test_unknown_setting(self, tmp_path):
        path = _write(tmp_path, "unit_price_digits: 2\nrounding_mode: banker\n")

        with pytest.raises(InvalidSettingsError) as exc_info:
            load_settings(path)

        assert exc_info.value.errors == ["unknown setting 'rounding_mode'"]
        assert exc_info.value.source == str(path)
        assert exc_info.value.code == "INVALID_SETTINGS"

    def test_unknown_feature(self, tmp_path):
        path = _write(tmp_path, "features:\n  invoicing: true\n")

        with pytest.raises(InvalidSettingsError) as exc_info:
            load_settings(path)

        assert exc_info.value.errors == ["unknown feature 'invoicing'"]

    def test_features_not_a_mapping(self, tmp_path):
        with pytest.raises(InvalidSettingsError, match="features must be a mapping"):
            load_settings(_write(tmp_path, "features: [supplychain]\n"))

    def test_root_not_a_mapping(self, tmp_path):
        path = _write(tmp_path, "- unit_price_digits\n")

        with pytest.raises(InvalidSettingsError) as exc_info:
            load_yaml_file(path)

        assert "document root must be a mapping" in exc_info.value.errors[0]
        assert exc_info.value.source == str(path)

    def test_out_of_range_digits(self, tmp_path):
        with pytest.raises(InvalidSettingsError, match="unit_price_digits must be between"):
            load_settings(_write(tmp_path, "unit_price_digits: 42\n"))

    def test_partner_relations_need_supplychain(self, tmp_path):
        path = _write(tmp_path, "features:\n  partner_relations: true\n")
        with pytest.raises(InvalidSettingsError, match="require supplychain"):
            load_settings(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_settings(tmp_path / "absent.yaml")

    def test_malformed_yaml(self, tmp_path):
        with pytest.raises(yaml.YAMLError):
            load_settings(_write(tmp_path, "features: [unclosed\n"))


class TestSettingsFromMapping:

    def test_without_source(self):
        with pytest.raises(InvalidSettingsError) as exc_info:
            settings_from_mapping({"colour": "blue"})
        assert exc_info.value.source is None

    def test_source_attached(self):
        with pytest.raises(InvalidSettingsError) as exc_info:
            settings_from_mapping({"colour": "blue"}, source="inline")
        assert exc_info.value.source == "inline"
        assert str(exc_info.value).startswith("inline: ")


class TestChecksum:

    def test_key_order_irrelevant(self):
        assert compute_checksum({"a": 1, "b": {"c": 2, "d": 3}}) == compute_checksum(
            {"b": {"d": 3, "c": 2}, "a": 1}
        )

    def test_value_change_detected(self):
        assert compute_checksum({"a": 1}) != compute_checksum({"a": 2})

    def test_sha256_hex(self):
        assert len(compute_checksum({})) == 64
