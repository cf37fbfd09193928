"""
Typed exception hierarchy for the TLC compliance engine.

Every error has a typed class (catch by type, not message), a stable ``code``
attribute (machine-readable, API-safe) and structured attributes instead of
data baked into the message.

    TLCComplianceError (base)
    |
    +-- ValidationError
    |   +-- InvalidInputError
    |   +-- SessionIntegrityError
    |
    +-- ConfigurationError
    |   +-- RateConfigError
    |
    +-- AuditLogError
        +-- AuditLogChainBrokenError
        +-- ImmutabilityViolationError

Category        | Code                     | When Raised
----------------|--------------------------|------------------------------------------
Validation      | INVALID_INPUT            | Negative, non-numeric or out-of-range value
                | SESSION_INTEGRITY        | Waiting minutes would exceed online minutes
----------------|--------------------------|------------------------------------------
Configuration   | RATE_CONFIG_INVALID      | Rate set missing, malformed or negative
----------------|--------------------------|------------------------------------------
Audit log       | AUDIT_LOG_CHAIN_BROKEN   | Hash chain verification failed
                | IMMUTABILITY_VIOLATION   | UPDATE/DELETE on an audit log row

Missing prerequisite data (no session, no trip) is NOT an error here: those
paths return zero-activity results.  Validation errors map to 400-class
responses at the HTTP boundary; anything else is a 500.
"""

from decimal import Decimal
from typing import Any


class TLCComplianceError(Exception):
    """Base exception for all compliance engine errors."""

    code: str = "TLC_COMPLIANCE_ERROR"


# Validation


class ValidationError(TLCComplianceError):
    """Base exception for rejected input."""

    code: str = "VALIDATION_ERROR"


class InvalidInputError(ValidationError):
    """An input value is non-numeric, negative or otherwise out of range."""

    code: str = "INVALID_INPUT"

    def __init__(self, field: str, value: Any, reason: str):
        self.field = field
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid {field}={value!r}: {reason}")


class SessionIntegrityError(ValidationError):
    """
    A session update would leave waiting time above online time.

    The update is rejected and the session left untouched.
    """

    code: str = "SESSION_INTEGRITY"

    def __init__(
        self,
        driver_id: str,
        total_online_minutes: Decimal,
        total_waiting_minutes: Decimal,
    ):
        self.driver_id = driver_id
        self.total_online_minutes = total_online_minutes
        self.total_waiting_minutes = total_waiting_minutes
        super().__init__(
            f"Session for driver {driver_id} would record "
            f"{total_waiting_minutes} waiting minutes against "
            f"{total_online_minutes} online minutes"
        )


# Configuration


class ConfigurationError(TLCComplianceError):
    """Base exception for configuration problems."""

    code: str = "CONFIGURATION_ERROR"


class RateConfigError(ConfigurationError):
    """A rate configuration document is missing or invalid."""

    code: str = "RATE_CONFIG_INVALID"

    def __init__(self, reason: str, path: str | None = None):
        self.reason = reason
        self.path = path
        where = f" ({path})" if path else ""
        super().__init__(f"Invalid rate configuration{where}: {reason}")


# Audit log


class AuditLogError(TLCComplianceError):
    """Base exception for reconciliation audit log errors."""

    code: str = "AUDIT_LOG_ERROR"


class AuditLogChainBrokenError(AuditLogError):
    """Audit log hash chain validation failed."""

    code: str = "AUDIT_LOG_CHAIN_BROKEN"

    def __init__(self, seq: int, expected_hash: str, actual_hash: str):
        self.seq = seq
        self.expected_hash = expected_hash
        self.actual_hash = actual_hash
        super().__init__(
            f"Audit log chain broken at seq {seq}: "
            f"expected {expected_hash}, found {actual_hash}"
        )


class ImmutabilityViolationError(AuditLogError):
    """Attempted to modify or delete an append-only audit log record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
