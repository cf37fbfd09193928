"""SQLAlchemy ORM models."""

from tlc_kernel.models.audit_log import ReconciliationAuditLog

__all__ = ["ReconciliationAuditLog"]
