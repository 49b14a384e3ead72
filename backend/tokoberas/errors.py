# Overview: Domain error taxonomy shared by services and routes.

"""
Error taxonomy (authoritative)

- ConfigurationError: the system is set up wrong for the request (no active
  account for a payment method). Fatal to the request, never defaulted.
- InsufficientResourceError: not enough stock or account balance. Fatal to the
  request; the caller may retry after fixing the underlying condition.
- StatePreconditionError: business rule violation on a document's lifecycle
  (paying an unapproved payroll, editing a completed sale).
- ValidationError: malformed input.

Every error carries a message and optional structured details. Routes render
them as {"error": ..., "details": ...} with `status_code`.
"""


class DomainError(Exception):
    """Base class for business errors surfaced to callers."""

    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class ValidationError(DomainError):
    """400-level input problem."""


class ConfigurationError(DomainError):
    status_code = 400


class AccountNotFoundError(ConfigurationError):
    status_code = 404


class InsufficientResourceError(DomainError):
    status_code = 409


class InsufficientStockError(InsufficientResourceError):
    pass


class InsufficientBalanceError(InsufficientResourceError):
    pass


class StatePreconditionError(DomainError):
    status_code = 409


class NotFoundError(DomainError):
    status_code = 404
