"""
warehouse_config -- single public entrypoint for warehouse configuration.

Responsibility:
    ``get_active_config()`` is the only way to obtain configuration at
    runtime.  It loads a YAML profile from ``sets/``, validates it into a
    frozen ``WarehouseSettings`` and records which profile is in force.

Architecture position:
    Configuration sits above ``warehouse_kernel``.  The kernel MUST NEVER
    import from ``warehouse_config``; ``bridges.build_stock_policy``
    converts settings into the kernel's ``StockPolicy``.

Failure modes:
    - ``FileNotFoundError`` -- no such profile.
    - ``ValueError`` -- unknown keys or invalid values.
    - ``yaml.YAMLError`` -- malformed YAML.

Audit relevance:
    Every successful call logs ``warehouse_config_trace`` with the profile,
    version and checksum, tying each run to the exact settings it used.
"""

from __future__ import annotations

import logging
from pathlib import Path

from warehouse_config.loader import load_yaml_file, parse_settings
from warehouse_config.schema import WarehouseSettings

_logger = logging.getLogger("warehouse_kernel.config")

_DEFAULT_CONFIG_DIR = Path(__file__).parent / "sets"


def get_active_config(
    profile: str = "default",
    config_dir: Path | None = None,
) -> WarehouseSettings:
    """Load, validate and return the settings of ``profile``.

    Args:
        profile: Name of the YAML file (without extension) under
            ``config_dir``.
        config_dir: Override path to the profiles directory.  Defaults to
            warehouse_config/sets/.

    Raises:
        FileNotFoundError: If the profile does not exist.
        ValueError: If validation fails.
    """
    sets_dir = Path(config_dir) if config_dir is not None else _DEFAULT_CONFIG_DIR
    path = sets_dir / f"{profile}.yaml"
    if not path.is_file():
        raise FileNotFoundError(f"Configuration profile not found: {path}")

    settings = parse_settings(profile, load_yaml_file(path))

    _logger.info(
        "warehouse_config_trace",
        extra={
            "profile": settings.profile,
            "config_version": settings.version,
            "checksum": settings.checksum,
            "reservable_order_statuses": list(settings.reservable_order_statuses),
            "over_capacity_ratio": str(settings.over_capacity_ratio),
        },
    )
    return settings


__all__ = ["WarehouseSettings", "get_active_config"]
