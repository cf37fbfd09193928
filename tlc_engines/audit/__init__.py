"""Per-trip audit: domain types and the pure checker engine."""

from tlc_engines.audit.checker import TripAuditChecker
from tlc_engines.audit.types import (
    AppliedFix,
    AuditCategory,
    AuditFinding,
    AuditResult,
    AuditSeverity,
    AuditSummary,
    FixStatus,
    ReconciliationOutcome,
    ReviewItem,
    TripCategory,
    TripLocation,
    TripRecordReport,
    worst_severity,
)

__all__ = [
    "AppliedFix",
    "AuditCategory",
    "AuditFinding",
    "AuditResult",
    "AuditSeverity",
    "AuditSummary",
    "FixStatus",
    "ReconciliationOutcome",
    "ReviewItem",
    "TripAuditChecker",
    "TripCategory",
    "TripLocation",
    "TripRecordReport",
    "worst_severity",
]
