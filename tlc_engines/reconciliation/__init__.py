"""Reconciliation: fixed fix-policy table and the pure trip reconciler."""

from tlc_engines.reconciliation.policy import (
    FIX_POLICY,
    FixPolicy,
    policy_for,
    resolve_fix_status,
)
from tlc_engines.reconciliation.reconciler import TripReconciler

__all__ = [
    "FIX_POLICY",
    "FixPolicy",
    "TripReconciler",
    "policy_for",
    "resolve_fix_status",
]
