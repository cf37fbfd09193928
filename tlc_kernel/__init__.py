"""
TLC Kernel - shared infrastructure for the minimum-pay compliance engine.

- Structured JSON logging with request-scoped context
- Typed exceptions with stable error codes
- Decimal-only money helpers and geo values
- Injectable clock
- Append-only, hash-chained reconciliation audit log
"""

__version__ = "0.1.0"
