"""
tlc_config -- single public entrypoint for regulatory rate configuration.

Responsibility:
    Provides the ONLY way to obtain the active ``RateConfig`` at runtime:
    ``get_active_rate_config()``.  Engines receive the config as an argument
    and never read files themselves.

Architecture position:
    Configuration -- sits above ``tlc_kernel`` and below ``tlc_engines`` /
    ``tlc_services``.  The kernel never imports from here.

Invariants enforced:
    - Loaded exactly once per (directory, name) and cached; the frozen
      ``RateConfig`` is never mutated.
    - Every first load emits a ``TLC_CONFIG_TRACE`` log entry with the name,
      effective date and checksum, tying computed adjustments back to the
      exact rate set that produced them.

Failure modes:
    - ``RateConfigError`` if the set is missing or invalid.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path

from tlc_config.loader import load_rate_config
from tlc_config.schema import (
    AuditTolerances,
    FeeCondition,
    FeeDefinition,
    FeeKind,
    RateConfig,
)

__all__ = [
    "AuditTolerances",
    "FeeCondition",
    "FeeDefinition",
    "FeeKind",
    "RateConfig",
    "get_active_rate_config",
    "reset_rate_config_cache",
]

_logger = logging.getLogger("tlc_kernel.config")

_DEFAULT_CONFIG_DIR = Path(__file__).parent / "sets"
DEFAULT_RATE_SET = "nyc_hvfhv"

_cache: dict[tuple[Path, str], RateConfig] = {}
_cache_lock = threading.Lock()


def get_active_rate_config(
    name: str = DEFAULT_RATE_SET,
    config_dir: Path | None = None,
) -> RateConfig:
    """
    Return the rate set ``name`` from ``config_dir`` (default: tlc_config/sets/).

    Args:
        name: File stem of the YAML rate set.
        config_dir: Override directory, mainly for tests.

    Raises:
        RateConfigError: If the file is missing or fails validation.
    """
    sets_dir = (config_dir or _DEFAULT_CONFIG_DIR).resolve()
    key = (sets_dir, name)
    with _cache_lock:
        cached = _cache.get(key)
        if cached is not None:
            return cached

        config = load_rate_config(sets_dir / f"{name}.yaml")
        _cache[key] = config

    _logger.info(
        "TLC_CONFIG_TRACE",
        extra={
            "trace_type": "TLC_CONFIG_TRACE",
            "rate_set": config.name,
            "jurisdiction": config.jurisdiction,
            "effective_date": config.effective_date,
            "checksum": config.checksum,
            "fee_count": len(config.fees),
        },
    )
    return config


def reset_rate_config_cache() -> None:
    """Forget cached rate sets. FOR TESTING ONLY."""
    with _cache_lock:
        _cache.clear()
