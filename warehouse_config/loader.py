"""
Configuration loader (``warehouse_config.loader``).

Loads a YAML profile and parses it into ``WarehouseSettings``.  Build and
test tooling only; runtime callers go through
``warehouse_config.get_active_config()``.

Failure modes:
    * Missing file -> ``FileNotFoundError`` propagates.
    * Malformed YAML -> ``yaml.YAMLError`` propagates.
    * Unknown keys or invalid values -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import fields
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from warehouse_config.schema import WarehouseSettings

_SETTING_KEYS = frozenset(f.name for f in fields(WarehouseSettings)) - {"profile", "checksum"}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load one YAML file; an empty file yields an empty dict."""
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_settings(profile: str, data: dict[str, Any]) -> WarehouseSettings:
    """
    Build WarehouseSettings from a parsed profile.

    Keys absent from ``data`` keep their defaults.  Unknown keys are
    rejected so a typo never silently falls back to a default.
    """
    if not isinstance(data, dict):
        raise ValueError(f"Profile {profile!r} must be a mapping, got {type(data).__name__}")
    unknown = set(data) - _SETTING_KEYS
    if unknown:
        raise ValueError(f"Unknown settings in profile {profile!r}: {sorted(unknown)}")

    kwargs: dict[str, Any] = dict(data)
    if "reservable_order_statuses" in kwargs:
        statuses = kwargs["reservable_order_statuses"]
        if isinstance(statuses, str):
            statuses = [statuses]
        kwargs["reservable_order_statuses"] = tuple(statuses)
    if "over_capacity_ratio" in kwargs:
        try:
            kwargs["over_capacity_ratio"] = Decimal(str(kwargs["over_capacity_ratio"]))
        except InvalidOperation as exc:
            raise ValueError(
                f"over_capacity_ratio must be a number, got {data['over_capacity_ratio']!r}"
            ) from exc
    for key in ("version", "allocation_grace_days", "default_page_limit", "max_page_limit"):
        if key in kwargs and (isinstance(kwargs[key], bool) or not isinstance(kwargs[key], int)):
            raise ValueError(f"{key} must be an integer, got {kwargs[key]!r}")
    if "require_invoice_for_finalize" in kwargs and not isinstance(
        kwargs["require_invoice_for_finalize"], bool
    ):
        raise ValueError("require_invoice_for_finalize must be true or false")

    return WarehouseSettings(profile=profile, checksum=compute_checksum(data), **kwargs)


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON form of ``data``.  Deterministic."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
