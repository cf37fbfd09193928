"""
Rate configuration loader (``tlc_config.loader``).

Responsibility
--------------
Loads a YAML rate set and parses it into ``tlc_config.schema`` dataclasses.
Runtime callers go through ``tlc_config.get_active_rate_config()``; this
module is the parsing layer underneath it and is used directly by tests.

Invariants enforced
-------------------
* All parse errors raise ``RateConfigError`` with the offending path; no
  silent defaults for required fields.
* Numbers are read as strings and converted with ``Decimal`` so YAML floats
  never leak into money arithmetic.
* ``compute_checksum`` produces a deterministic SHA-256 hash for
  configuration identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``RateConfigError``.
* Malformed YAML  -> ``RateConfigError`` chained from ``yaml.YAMLError``.
* Missing required keys or bad values  -> ``RateConfigError``.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from tlc_config.schema import (
    AuditTolerances,
    FeeCondition,
    FeeDefinition,
    FeeKind,
    RateConfig,
)
from tlc_kernel.exceptions import RateConfigError
from tlc_kernel.utils.hashing import hash_payload


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        RateConfigError: if the file is missing, unreadable YAML, or not a
            mapping at the top level.
    """
    if not path.exists():
        raise RateConfigError("file not found", str(path))
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as exc:
        raise RateConfigError(f"malformed YAML: {exc}", str(path)) from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise RateConfigError("top level must be a mapping", str(path))
    return data


def parse_decimal(value: Any, name: str) -> Decimal:
    """Parse a YAML scalar into a Decimal via its string form."""
    if isinstance(value, bool) or value is None:
        raise RateConfigError(f"{name} must be numeric, got {value!r}")
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise RateConfigError(f"{name} must be numeric, got {value!r}") from exc


def parse_date(value: Any, name: str) -> date:
    """Parse an ISO date string (or a YAML date) into a date."""
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except ValueError as exc:
        raise RateConfigError(f"{name} must be an ISO date, got {value!r}") from exc


def _require(data: dict[str, Any], key: str, where: str) -> Any:
    if key not in data:
        raise RateConfigError(f"missing required key {where}{key}")
    return data[key]


def parse_fee(data: dict[str, Any]) -> FeeDefinition:
    """Parse one fee entry."""
    name = str(_require(data, "name", "fees[]."))
    try:
        kind = FeeKind(data.get("kind", FeeKind.FLAT.value))
        condition = FeeCondition(data.get("condition", FeeCondition.ALWAYS.value))
    except ValueError as exc:
        raise RateConfigError(f"fee {name!r}: {exc}") from exc

    threshold = data.get("threshold_miles")
    return FeeDefinition(
        name=name,
        field=str(_require(data, "field", f"fees[{name}].")),
        kind=kind,
        amount=parse_decimal(_require(data, "amount", f"fees[{name}]."), f"fee {name} amount"),
        condition=condition,
        finding_category=str(data.get("finding_category", "tlc_fee_error")),
        threshold_miles=(
            parse_decimal(threshold, f"fee {name} threshold_miles")
            if threshold is not None
            else None
        ),
        description=str(data.get("description", "")),
    )


def parse_tolerances(data: dict[str, Any] | None) -> AuditTolerances:
    """Parse the tolerances block; omitted keys keep their defaults."""
    if not data:
        return AuditTolerances()
    known = set(AuditTolerances.__dataclass_fields__)
    unknown = set(data) - known
    if unknown:
        raise RateConfigError(f"unknown tolerance keys: {sorted(unknown)}")
    return AuditTolerances(
        **{key: parse_decimal(value, f"tolerance {key}") for key, value in data.items()}
    )


def parse_rate_config(data: dict[str, Any], checksum: str = "") -> RateConfig:
    """Parse a whole rate set document."""
    pay = _require(data, "minimum_pay", "")
    if not isinstance(pay, dict):
        raise RateConfigError("minimum_pay must be a mapping")

    rides = _require(pay, "weekly_min_rides", "minimum_pay.")
    if isinstance(rides, bool) or not isinstance(rides, int):
        raise RateConfigError(f"minimum_pay.weekly_min_rides must be an integer, got {rides!r}")

    fees = data.get("fees") or []
    if not isinstance(fees, list):
        raise RateConfigError("fees must be a list")

    return RateConfig(
        name=str(data.get("name", "custom")),
        jurisdiction=str(data.get("jurisdiction", "")),
        currency=str(data.get("currency", "USD")),
        effective_date=parse_date(_require(data, "effective_date", ""), "effective_date"),
        per_minute_rate=parse_decimal(
            _require(pay, "per_minute_rate", "minimum_pay."), "per_minute_rate"
        ),
        per_mile_rate=parse_decimal(
            _require(pay, "per_mile_rate", "minimum_pay."), "per_mile_rate"
        ),
        hourly_minimum_rate=parse_decimal(
            _require(pay, "hourly_minimum_rate", "minimum_pay."), "hourly_minimum_rate"
        ),
        weekly_min_rides=rides,
        weekly_min_online_hours=parse_decimal(
            _require(pay, "weekly_min_online_hours", "minimum_pay."),
            "weekly_min_online_hours",
        ),
        fees=tuple(parse_fee(fee) for fee in fees),
        tolerances=parse_tolerances(data.get("tolerances")),
        checksum=checksum,
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON of a parsed YAML document."""
    return hash_payload(data)


def load_rate_config(path: Path) -> RateConfig:
    """Load, checksum and parse one rate set file."""
    data = load_yaml_file(path)
    try:
        return parse_rate_config(data, checksum=compute_checksum(data))
    except RateConfigError as exc:
        if exc.path is None:
            raise RateConfigError(exc.reason, str(path)) from exc
        raise
