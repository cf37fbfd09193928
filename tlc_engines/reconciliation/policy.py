"""
Reconciliation fix policy.

A fixed, exhaustive mapping from finding category to what reconciliation is
allowed to do about it.  Not configurable per call.

    Category                                         Policy
    ------------------------------------------------ --------------
    fare / TLC fee / airport fee / toll mismatch     AUTO_FIX
    driver-pay mismatch / underpaid driver           MANUAL_REVIEW
    zone / time-distance / suspicious earnings       MANUAL_REVIEW
    missing record                                   UNFIXABLE

Money owed to a person is never rewritten automatically, and ambiguous
signals are never downgraded to an automatic fix.
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
from types import MappingProxyType

from tlc_engines.audit.types import AuditCategory, AuditFinding, FixStatus


class FixPolicy(str, Enum):
    AUTO_FIX = "auto_fix"
    MANUAL_REVIEW = "manual_review"
    UNFIXABLE = "unfixable"


FIX_POLICY: Mapping[AuditCategory, FixPolicy] = MappingProxyType(
    {
        AuditCategory.FARE_MISMATCH: FixPolicy.AUTO_FIX,
        AuditCategory.TLC_FEE_ERROR: FixPolicy.AUTO_FIX,
        AuditCategory.AIRPORT_FEE_ERROR: FixPolicy.AUTO_FIX,
        AuditCategory.TOLL_MISMATCH: FixPolicy.AUTO_FIX,
        AuditCategory.DRIVER_PAY_MISMATCH: FixPolicy.MANUAL_REVIEW,
        AuditCategory.UNDERPAID_DRIVER: FixPolicy.MANUAL_REVIEW,
        AuditCategory.ZONE_MISMATCH: FixPolicy.MANUAL_REVIEW,
        AuditCategory.TIME_DISTANCE_ERROR: FixPolicy.MANUAL_REVIEW,
        AuditCategory.SUSPICIOUS_EARNINGS: FixPolicy.MANUAL_REVIEW,
        AuditCategory.MISSING_RECORD: FixPolicy.UNFIXABLE,
    }
)

_unmapped = set(AuditCategory) - set(FIX_POLICY)
if _unmapped:
    raise RuntimeError(
        f"Fix policy table is missing categories: {sorted(c.value for c in _unmapped)}"
    )


def policy_for(category: AuditCategory) -> FixPolicy:
    return FIX_POLICY[category]


def resolve_fix_status(finding: AuditFinding) -> FixStatus:
    """
    Disposition for one finding.

    AUTO_FIX findings are auto-fixed only when they carry a deterministic
    expected value and name the field to write; otherwise they go to review.
    """
    policy = FIX_POLICY[finding.category]
    if policy == FixPolicy.UNFIXABLE:
        return FixStatus.UNFIXABLE
    if policy == FixPolicy.MANUAL_REVIEW:
        return FixStatus.REQUIRES_REVIEW
    if finding.expected_value is None or finding.field is None:
        return FixStatus.REQUIRES_REVIEW
    return FixStatus.AUTO_FIXED
