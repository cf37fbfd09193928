"""
AutoReconciliationService -- Batch auto-reconcile with an audit trail entry.

Composes TripAuditService (audit + inline reconcile) with an AuditLogSink.

Architecture: tlc_services -- imperative shell.

Invariants enforced:
    - Every trip in the batch goes through the fixed fix-policy table.
    - Exactly one ``auto_reconcile`` entry is appended per batch, carrying
      trip, success, review, auto-fixed and unfixable counts.
    - auto_fixed_count counts only findings resolved AUTO_FIXED, which
      only auto-fixable categories can be.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from uuid import uuid4

from tlc_engines.audit.types import ReconciliationOutcome, TripRecordReport
from tlc_engines.reconciliation.reconciler import TripReconciler
from tlc_kernel.logging_config import LogContext, get_logger
from tlc_services.audit_log import AuditLogEntry, AuditLogSink
from tlc_services.audit_service import TripAuditService

logger = get_logger("services.auto_reconciliation")

AUTO_RECONCILE_ACTION = "auto_reconcile"


@dataclass(frozen=True)
class ReconciliationBatchSummary:
    """Outcome of one auto-reconcile batch."""

    batch_id: str
    trip_count: int
    success_count: int
    review_count: int
    auto_fixed_count: int
    unfixable_count: int
    outcomes: tuple[ReconciliationOutcome, ...]
    log_entry: AuditLogEntry


def _payload(batch_id, trip_count, success_count, review_count, auto_fixed_count, unfixable_count):
    return {
        "batch_id": batch_id,
        "trip_count": trip_count,
        "success_count": success_count,
        "review_count": review_count,
        "auto_fixed_count": auto_fixed_count,
        "unfixable_count": unfixable_count,
    }


class AutoReconciliationService:
    """Reconciles many trips and records the batch in the audit log.

    Non-goals:
        - Does NOT write corrected trips back; outcomes carry them for the
          caller to persist.
    """

    def __init__(
        self,
        audit_service: TripAuditService,
        audit_log: AuditLogSink,
        reconciler: TripReconciler | None = None,
    ) -> None:
        self._audit_service = audit_service
        self._audit_log = audit_log
        self._reconciler = reconciler or TripReconciler()

    def auto_reconcile(
        self,
        trips: Sequence[TripRecordReport],
        performed_by: str,
        batch_id: str | None = None,
    ) -> ReconciliationBatchSummary:
        batch_id = batch_id or str(uuid4())
        with LogContext.bind(batch_id=batch_id, actor_id=performed_by):
            logger.info("auto_reconcile_started", extra={"trip_count": len(trips)})

            results = self._audit_service.audit_trips(trips, reconcile=True)
            outcomes: list[ReconciliationOutcome] = []
            for trip, result in zip(trips, results):
                if result.reconciliation is not None:
                    outcomes.append(result.reconciliation)
                else:
                    # Clean trip: nothing to fix.
                    outcomes.append(self._reconciler.reconcile(trip=trip, findings=()))

            trip_count = len(outcomes)
            success_count = sum(1 for o in outcomes if o.success)
            review_count = sum(1 for o in outcomes if o.requires_manual_review)
            auto_fixed_count = sum(o.auto_fixed_count for o in outcomes)
            unfixable_count = sum(o.unfixable_count for o in outcomes)

            entry = self._audit_log.append(
                batch_id=batch_id,
                action=AUTO_RECONCILE_ACTION,
                performed_by=performed_by,
                payload=_payload(
                    batch_id,
                    trip_count,
                    success_count,
                    review_count,
                    auto_fixed_count,
                    unfixable_count,
                ),
            )

            logger.info(
                "auto_reconcile_completed",
                extra={
                    "trip_count": trip_count,
                    "success_count": success_count,
                    "review_count": review_count,
                    "auto_fixed_count": auto_fixed_count,
                    "unfixable_count": unfixable_count,
                    "audit_log_seq": entry.seq,
                },
            )

        return ReconciliationBatchSummary(
            batch_id=batch_id,
            trip_count=trip_count,
            success_count=success_count,
            review_count=review_count,
            auto_fixed_count=auto_fixed_count,
            unfixable_count=unfixable_count,
            outcomes=tuple(outcomes),
            log_entry=entry,
        )
