"""
Module: tlc_kernel.models.audit_log
Responsibility: ORM persistence for the hash-chained reconciliation audit log.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Rows are append-only; no UPDATE or DELETE (db/immutability.py).
    - hash = H(batch_id | action | payload_hash | prev_hash).  Computed and
      verified by SqlAlchemyAuditLogSink.
    - seq is unique and strictly increasing.

Audit relevance:
    Every auto-reconcile batch writes exactly one row summarising trip,
    success, review, auto-fixed and unfixable counts.  The chain makes any
    retroactive edit detectable.
"""

from datetime import datetime

from sqlalchemy import JSON, BigInteger, DateTime, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from tlc_kernel.db.base import Base


class ReconciliationAuditLog(Base):
    """
    One reconciliation batch summary in the tamper-evident chain.

    Guarantees:
        - prev_hash is None only for the genesis row.
    """

    __tablename__ = "reconciliation_audit_log"
    __table_args__ = (
        Index("idx_recon_audit_batch", "batch_id"),
        Index("idx_recon_audit_recorded", "recorded_at"),
    )

    seq: Mapped[int] = mapped_column(BigInteger, nullable=False, unique=True)

    batch_id: Mapped[str] = mapped_column(String(64), nullable=False)

    action: Mapped[str] = mapped_column(String(50), nullable=False)

    performed_by: Mapped[str] = mapped_column(String(100), nullable=False)

    recorded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    payload: Mapped[dict] = mapped_column(JSON, nullable=False)

    payload_hash: Mapped[str] = mapped_column(String(64), nullable=False)

    prev_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)

    hash: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)

    def __repr__(self) -> str:
        return f"<ReconciliationAuditLog seq={self.seq} batch={self.batch_id} {self.action}>"
