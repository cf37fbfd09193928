"""
SHA-256 helpers for rate-config checksums and the reconciliation audit chain.

Payloads are hashed over canonical JSON: sorted keys, no whitespace,
Decimals normalized (``5.30`` and ``5.3`` hash the same), dates in ISO
format, enums by value.
"""

import hashlib
import json
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

GENESIS_HASH = "GENESIS"


def _canonical_value(obj: Any) -> Any:
    if isinstance(obj, Decimal):
        return str(obj.normalize())
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, UUID):
        return str(obj)
    raise TypeError(f"{type(obj).__name__} has no canonical JSON form")


def _sha256(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def canonicalize_json(data: Any) -> str:
    return json.dumps(data, sort_keys=True, separators=(",", ":"), default=_canonical_value)


def hash_payload(payload: dict) -> str:
    return _sha256(canonicalize_json(payload))


def hash_audit_log_entry(
    batch_id: str,
    action: str,
    payload_hash: str,
    prev_hash: str | None,
) -> str:
    """
    ``sha256(batch_id|action|payload_hash|prev_hash)``.

    The first entry in a chain uses ``GENESIS_HASH`` in place of the
    previous hash, so rewriting any entry changes every hash after it.
    """
    return _sha256("|".join((str(batch_id), action, payload_hash, prev_hash or GENESIS_HASH)))
