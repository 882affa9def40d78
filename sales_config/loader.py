"""
Configuration Loader (``sales_config.loader``).

Responsibility
--------------
Loads a YAML settings document and parses it into a validated
``SaleSettings`` instance (including its ``FeatureSet``).

Architecture position
---------------------
**Config layer** -- infrastructure tooling. Depends on
``sales_kernel.domain.settings`` only; engines and modules receive the
parsed settings object and never call the loader.

Invariants enforced
-------------------
* Unknown keys (settings or features) raise ``InvalidSettingsError``.
* ``compute_checksum`` produces a deterministic SHA-256 hash for
  configuration identity and change detection; it is logged with every
  load.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Root document not a mapping, unknown keys, out-of-range digits
  -> ``InvalidSettingsError`` naming the source file.

Example document::

    unit_price_digits: 4
    quantity_digits: 2
    consider_zero_cost: false
    enable_pricing_scale: true
    end_of_pack_label: "End of pack"
    features:
      supplychain: true
      partner_relations: true
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from sales_kernel.domain.settings import SaleSettings
from sales_kernel.exceptions import InvalidSettingsError
from sales_kernel.logging_config import get_logger

logger = get_logger("config.loader")


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        InvalidSettingsError: if the document root is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise InvalidSettingsError(
            [f"document root must be a mapping, got {type(data).__name__}"],
            source=str(path),
        )
    return data


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def settings_from_mapping(
    data: dict[str, Any],
    source: str | None = None,
) -> SaleSettings:
    """
    Build ``SaleSettings`` from a parsed mapping.

    Postconditions:
        - Returns validated settings; a ``settings_loaded`` event records
          the source, the checksum and the enabled features.
    Raises:
        InvalidSettingsError: on unknown keys or invalid values. The error
        carries ``source`` when one was given.
    """
    try:
        settings = SaleSettings.from_dict(data)
    except InvalidSettingsError as exc:
        if source is not None and exc.source is None:
            raise InvalidSettingsError(exc.errors, source=source) from exc
        raise
    except TypeError as exc:
        raise InvalidSettingsError([str(exc)], source=source) from exc

    logger.info("settings_loaded", extra={
        "source": source,
        "checksum": compute_checksum(data),
        "features": settings.features.enabled(),
    })
    return settings


def load_settings(path: Path | str) -> SaleSettings:
    """Load and validate ``SaleSettings`` from a YAML file."""
    path = Path(path)
    return settings_from_mapping(load_yaml_file(path), source=str(path))
