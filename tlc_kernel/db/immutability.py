"""
ORM-level immutability enforcement for the reconciliation audit log.

SQLAlchemy fires mapper events before UPDATE/DELETE statements reach the
database.  Listeners registered here intercept them for audit log rows and
raise ImmutabilityViolationError, aborting the flush:

    session.flush()
         |
         v
    [before_update] --> _check_audit_log_immutability() --> ImmutabilityViolationError
    [before_delete] --> _check_audit_log_delete() --------> ImmutabilityViolationError

Entity                   | When Immutable
-------------------------|------------------------
ReconciliationAuditLog   | ALWAYS (from creation)
"""

from sqlalchemy import event

from tlc_kernel.exceptions import ImmutabilityViolationError
from tlc_kernel.logging_config import get_logger
from tlc_kernel.models.audit_log import ReconciliationAuditLog

logger = get_logger("db.immutability")

_registered = False


def _blocked(target: ReconciliationAuditLog, operation: str, reason: str) -> None:
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": "ReconciliationAuditLog",
            "entity_id": str(target.id),
            "operation": operation,
        },
    )
    raise ImmutabilityViolationError(
        entity_type="ReconciliationAuditLog",
        entity_id=str(target.id),
        reason=reason,
    )


def _check_audit_log_immutability(mapper, connection, target):
    """Prevent any update to audit log rows."""
    _blocked(target, "UPDATE", "Audit log entries are immutable and cannot be modified")


def _check_audit_log_delete(mapper, connection, target):
    """Prevent deletion of audit log rows."""
    _blocked(target, "DELETE", "Audit log entries cannot be deleted")


def register_immutability_listeners() -> None:
    """Register the listeners (idempotent)."""
    global _registered
    if _registered:
        return
    event.listen(ReconciliationAuditLog, "before_update", _check_audit_log_immutability)
    event.listen(ReconciliationAuditLog, "before_delete", _check_audit_log_delete)
    _registered = True


def unregister_immutability_listeners() -> None:
    """
    Remove the listeners.

    WARNING: Only use this in tests that tamper with rows on purpose to
    verify chain verification catches it.
    """
    global _registered
    if not _registered:
        return
    event.remove(ReconciliationAuditLog, "before_update", _check_audit_log_immutability)
    event.remove(ReconciliationAuditLog, "before_delete", _check_audit_log_delete)
    _registered = False
