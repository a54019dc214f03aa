"""Custom exceptions for the ledger test harness."""
from typing import Optional, Any, Dict


class LedgerHarnessError(Exception):
    """Base exception for all harness errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self):
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(LedgerHarnessError):
    """Raised when configuration or participant credentials are invalid or missing."""

    def __init__(self, message: str, config_key: Optional[str] = None,
                 config_file: Optional[str] = None, **kwargs):
        details = {"config_key": config_key, "config_file": config_file}
        details.update(kwargs)
        super().__init__(message, details)


class PreconditionError(LedgerHarnessError):
    """Raised when a step references a role or resource not yet bound in the scenario."""

    def __init__(self, message: str, role: Optional[str] = None,
                 resource: Optional[str] = None, **kwargs):
        details = {"role": role, "resource": resource}
        details.update(kwargs)
        super().__init__(message, details)


class PolicyViolation(LedgerHarnessError):
    """Raised when an operation breaks a locally checkable ledger rule."""

    def __init__(self, message: str, operation: Optional[str] = None,
                 rule: Optional[str] = None, **kwargs):
        details = {"operation": operation, "rule": rule}
        details.update(kwargs)
        super().__init__(message, details)


class NetworkRejection(LedgerHarnessError):
    """Raised when the network reports a non-success status for a well-formed operation."""

    def __init__(self, message: str, status: Optional[str] = None,
                 transaction_id: Optional[str] = None, **kwargs):
        details = {"status": status, "transaction_id": transaction_id}
        details.update(kwargs)
        super().__init__(message, details)
        self.status = status


class DataValidationError(LedgerHarnessError):
    """Raised when observed ledger state does not match the expectation."""

    def __init__(self, message: str, expected: Optional[Any] = None,
                 actual: Optional[Any] = None, **kwargs):
        details = {"expected": expected, "actual": actual}
        details.update(kwargs)
        super().__init__(message, details)
        self.expected = expected
        self.actual = actual


class TimeoutError(LedgerHarnessError):
    """Raised when an expected asynchronous event is not observed in time."""

    def __init__(self, message: str, timeout_seconds: Optional[float] = None,
                 operation: Optional[str] = None, **kwargs):
        details = {"timeout_seconds": timeout_seconds, "operation": operation}
        details.update(kwargs)
        super().__init__(message, details)
