"""
TripReconciler -- Pure engine applying the fix policy to one trip's findings.

Architecture: tlc_engines -- pure, zero I/O.  Produces a corrected copy of
the trip; the original TripRecordReport is never mutated and nothing is
persisted here.

Invariants enforced:
    - Only AUTO_FIX categories with a deterministic expected value are
      written; everything else becomes a review item or is unfixable.
    - After component fixes the final fare is recomputed from the corrected
      components, so a fee fix never leaves the total stale.
"""

from __future__ import annotations

from dataclasses import replace
from decimal import Decimal

from tlc_engines.audit.types import (
    AppliedFix,
    AuditCategory,
    AuditFinding,
    FixStatus,
    ReconciliationOutcome,
    ReviewItem,
    TripRecordReport,
)
from tlc_engines.reconciliation.policy import resolve_fix_status
from tlc_engines.tracer import traced_engine
from tlc_kernel.domain.values import round_currency
from tlc_kernel.logging_config import get_logger

logger = get_logger("engines.reconciliation.reconciler")

_FINAL_FARE = "final_fare"


class TripReconciler:
    """Decides and applies fixes for one trip.

    Usage:
        outcome = TripReconciler().reconcile(trip, audit_result.findings)
        if outcome.requires_manual_review:
            queue_for_review(outcome.review_items)
    """

    @traced_engine("trip_reconciliation", "1.0", fingerprint_fields=("trip", "findings"))
    def reconcile(
        self,
        trip: TripRecordReport,
        findings: tuple[AuditFinding, ...],
    ) -> ReconciliationOutcome:
        resolved: list[AuditFinding] = []
        fixes: list[AppliedFix] = []
        review_items: list[ReviewItem] = []
        updates: dict[str, Decimal] = {}
        fare_flagged = False

        for finding in findings:
            status = resolve_fix_status(finding)
            resolved.append(replace(finding, fix_status=status))

            if status == FixStatus.AUTO_FIXED:
                if finding.field == _FINAL_FARE:
                    fare_flagged = True
                    continue
                updates[finding.field] = finding.expected_value
                fixes.append(
                    AppliedFix(
                        field=finding.field,
                        old_value=getattr(trip, finding.field),
                        new_value=finding.expected_value,
                        category=finding.category,
                        reason=finding.message,
                    )
                )
            elif status == FixStatus.REQUIRES_REVIEW:
                owed = (finding.details or {}).get("owed_amount")
                review_items.append(
                    ReviewItem(
                        category=finding.category,
                        message=finding.message,
                        field=finding.field,
                        owed_amount=owed,
                    )
                )

        corrected = replace(trip, **updates) if updates else trip

        if fare_flagged or updates:
            recomputed = round_currency(corrected.component_total)
            if recomputed != corrected.final_fare:
                fixes.append(
                    AppliedFix(
                        field=_FINAL_FARE,
                        old_value=corrected.final_fare,
                        new_value=recomputed,
                        category=AuditCategory.FARE_MISMATCH,
                        reason="Final fare recomputed from corrected components",
                    )
                )
                corrected = replace(corrected, final_fare=recomputed)

        statuses = {f.fix_status for f in resolved}
        outcome = ReconciliationOutcome(
            trip_id=trip.trip_id,
            success=FixStatus.UNFIXABLE not in statuses,
            requires_manual_review=bool(
                statuses & {FixStatus.REQUIRES_REVIEW, FixStatus.UNFIXABLE}
            ),
            applied_fixes=tuple(fixes),
            review_items=tuple(review_items),
            findings=tuple(resolved),
            corrected_trip=corrected,
        )

        logger.info(
            "trip_reconciled",
            extra={
                "trip_id": trip.trip_id,
                "applied_fix_count": len(fixes),
                "review_item_count": len(review_items),
                "success": outcome.success,
            },
        )
        return outcome
