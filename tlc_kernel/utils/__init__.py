"""Utility modules for the TLC kernel."""

from tlc_kernel.utils.hashing import (
    GENESIS_HASH,
    canonicalize_json,
    hash_audit_log_entry,
    hash_payload,
)

__all__ = [
    "GENESIS_HASH",
    "canonicalize_json",
    "hash_audit_log_entry",
    "hash_payload",
]
