"""
Reconciliation audit log sinks.

An ``AuditLogSink`` records one entry per reconciliation batch in an
append-only, hash-chained log:

    hash = H(batch_id | action | payload_hash | prev_hash)

Two implementations share the chaining rules:

* ``InMemoryAuditLogSink`` -- lock-guarded list, for tests and for callers
  that forward entries elsewhere.
* ``SqlAlchemyAuditLogSink`` -- ``ReconciliationAuditLog`` rows written
  through a caller-supplied Session; the caller owns the transaction
  (``session_scope()``).

``verify_chain()`` on either sink recomputes every hash and raises
``AuditLogChainBrokenError`` at the first mismatch.
"""

from __future__ import annotations

import threading
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from tlc_kernel.domain.clock import Clock, SystemClock
from tlc_kernel.exceptions import AuditLogChainBrokenError
from tlc_kernel.logging_config import get_logger
from tlc_kernel.models.audit_log import ReconciliationAuditLog
from tlc_kernel.utils.hashing import hash_audit_log_entry, hash_payload

logger = get_logger("services.audit_log")


@dataclass(frozen=True)
class AuditLogEntry:
    """One chained audit log entry."""

    seq: int
    batch_id: str
    action: str
    performed_by: str
    recorded_at: datetime
    payload: Mapping[str, Any]
    payload_hash: str
    prev_hash: str | None
    hash: str


class AuditLogSink(Protocol):
    """Where reconciliation batch summaries are recorded."""

    def append(
        self,
        batch_id: str,
        action: str,
        performed_by: str,
        payload: Mapping[str, Any],
    ) -> AuditLogEntry: ...

    def entries(self) -> tuple[AuditLogEntry, ...]: ...

    def verify_chain(self) -> bool: ...


def _verify(entries: tuple[AuditLogEntry, ...]) -> bool:
    prev_hash: str | None = None
    for entry in entries:
        payload_hash = hash_payload(dict(entry.payload))
        if payload_hash != entry.payload_hash:
            raise AuditLogChainBrokenError(entry.seq, payload_hash, entry.payload_hash)
        if entry.prev_hash != prev_hash:
            raise AuditLogChainBrokenError(entry.seq, prev_hash or "GENESIS", entry.prev_hash or "GENESIS")
        expected = hash_audit_log_entry(entry.batch_id, entry.action, payload_hash, prev_hash)
        if expected != entry.hash:
            raise AuditLogChainBrokenError(entry.seq, expected, entry.hash)
        prev_hash = entry.hash
    return True


class InMemoryAuditLogSink:
    """Append-only in-process audit log."""

    def __init__(self, clock: Clock | None = None) -> None:
        self._clock = clock or SystemClock()
        self._entries: list[AuditLogEntry] = []
        self._lock = threading.Lock()

    def append(
        self,
        batch_id: str,
        action: str,
        performed_by: str,
        payload: Mapping[str, Any],
    ) -> AuditLogEntry:
        payload = dict(payload)
        payload_hash = hash_payload(payload)
        with self._lock:
            prev_hash = self._entries[-1].hash if self._entries else None
            entry = AuditLogEntry(
                seq=len(self._entries) + 1,
                batch_id=batch_id,
                action=action,
                performed_by=performed_by,
                recorded_at=self._clock.now(),
                payload=payload,
                payload_hash=payload_hash,
                prev_hash=prev_hash,
                hash=hash_audit_log_entry(batch_id, action, payload_hash, prev_hash),
            )
            self._entries.append(entry)

        logger.info(
            "audit_log_entry_appended",
            extra={"seq": entry.seq, "batch_id": batch_id, "action": action},
        )
        return entry

    def entries(self) -> tuple[AuditLogEntry, ...]:
        with self._lock:
            return tuple(self._entries)

    def verify_chain(self) -> bool:
        return _verify(self.entries())


class SqlAlchemyAuditLogSink:
    """Audit log persisted as ReconciliationAuditLog rows.

    Contract:
        - ``append()`` adds and flushes a row; committing is the caller's
          job.
        - Rows are protected by the ORM immutability listeners once
          ``register_immutability_listeners()`` has run.
    """

    def __init__(self, session: Session, clock: Clock | None = None) -> None:
        self._session = session
        self._clock = clock or SystemClock()

    def append(
        self,
        batch_id: str,
        action: str,
        performed_by: str,
        payload: Mapping[str, Any],
    ) -> AuditLogEntry:
        payload = dict(payload)
        payload_hash = hash_payload(payload)

        last = self._session.execute(
            select(ReconciliationAuditLog)
            .order_by(ReconciliationAuditLog.seq.desc())
            .limit(1)
        ).scalar_one_or_none()
        prev_hash = last.hash if last is not None else None
        seq = (last.seq + 1) if last is not None else 1

        row = ReconciliationAuditLog(
            seq=seq,
            batch_id=batch_id,
            action=action,
            performed_by=performed_by,
            recorded_at=self._clock.now(),
            payload=payload,
            payload_hash=payload_hash,
            prev_hash=prev_hash,
            hash=hash_audit_log_entry(batch_id, action, payload_hash, prev_hash),
        )
        self._session.add(row)
        self._session.flush()

        logger.info(
            "audit_log_entry_appended",
            extra={"seq": seq, "batch_id": batch_id, "action": action, "persisted": True},
        )
        return _to_entry(row)

    def entries(self) -> tuple[AuditLogEntry, ...]:
        rows = self._session.execute(
            select(ReconciliationAuditLog).order_by(ReconciliationAuditLog.seq)
        ).scalars()
        return tuple(_to_entry(row) for row in rows)

    def count(self) -> int:
        return self._session.execute(
            select(func.count()).select_from(ReconciliationAuditLog)
        ).scalar_one()

    def verify_chain(self) -> bool:
        return _verify(self.entries())


def _to_entry(row: ReconciliationAuditLog) -> AuditLogEntry:
    return AuditLogEntry(
        seq=row.seq,
        batch_id=row.batch_id,
        action=row.action,
        performed_by=row.performed_by,
        recorded_at=row.recorded_at,
        payload=dict(row.payload),
        payload_hash=row.payload_hash,
        prev_hash=row.prev_hash,
        hash=row.hash,
    )
