"""
Imperative shell for the compliance engine.

Services own state (driver sessions), concurrency (per-driver locks, batch
worker pools) and collaborators (trip sources, audit log sinks); the
calculations themselves live in ``tlc_engines``.
"""

from tlc_services.audit_log import (
    AuditLogEntry,
    AuditLogSink,
    InMemoryAuditLogSink,
    SqlAlchemyAuditLogSink,
)
from tlc_services.audit_service import TripAuditService, TripRecordFilter, TripRecordSource
from tlc_services.reconciliation_service import (
    AutoReconciliationService,
    ReconciliationBatchSummary,
)
from tlc_services.session_store import (
    ArchivedSession,
    DriverComplianceSnapshot,
    DriverSessionSnapshot,
    DriverSessionStore,
    HourlyAdjustmentRecord,
    RideAdjustmentRecord,
)
from tlc_services.settlement import ClosedWeek, SettlementProcessor, WeeklySettlement

__all__ = [
    "ArchivedSession",
    "AuditLogEntry",
    "AuditLogSink",
    "AutoReconciliationService",
    "ClosedWeek",
    "DriverComplianceSnapshot",
    "DriverSessionSnapshot",
    "DriverSessionStore",
    "HourlyAdjustmentRecord",
    "InMemoryAuditLogSink",
    "ReconciliationBatchSummary",
    "RideAdjustmentRecord",
    "SettlementProcessor",
    "SqlAlchemyAuditLogSink",
    "TripAuditService",
    "TripRecordFilter",
    "TripRecordSource",
    "WeeklySettlement",
]
