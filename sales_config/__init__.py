"""
Sales configuration loading.

YAML documents describing ``SaleSettings`` and the installed
``FeatureSet`` are parsed here. The engines never read files; they
receive the resulting settings object.
"""

from sales_config.loader import (
    compute_checksum,
    load_settings,
    load_yaml_file,
    settings_from_mapping,
)

__all__ = [
    "compute_checksum",
    "load_settings",
    "load_yaml_file",
    "settings_from_mapping",
]
