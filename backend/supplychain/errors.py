# Overview: Domain error taxonomy shared by the service layer and the API.

"""
Supply Chain Errors

Every rejected operation raises exactly one of these. Services raise them
before mutating anything where possible; callers roll back the session on
any exception so a failed call never leaves partial state behind.

status_code is the HTTP status the API layer answers with.
error_code is the stable, machine-readable kind surfaced to clients.
"""

from __future__ import annotations


class SupplyChainError(Exception):
    """Base class for all rejected supply chain operations."""
    status_code = 400
    error_code = "SUPPLY_CHAIN_ERROR"

    def __init__(self, message: str | None = None, **details):
        super().__init__(message or self.error_code)
        self.message = message or self.error_code
        self.details = details

    def to_dict(self) -> dict:
        payload = {"error": self.error_code, "message": self.message}
        payload.update(self.details)
        return payload


class UnauthorizedError(SupplyChainError):
    """Caller lacks the role required for the operation (or is frozen)."""
    status_code = 403
    error_code = "UNAUTHORIZED"

    def __init__(self, address: str, role: str, message: str | None = None):
        super().__init__(
            message or f"Account {address} is missing role {role}",
            address=address,
            role=role,
        )
        self.address = address
        self.role = role


class ZeroAddressError(SupplyChainError):
    status_code = 400
    error_code = "ZERO_ADDRESS"


class InvalidPartyError(SupplyChainError):
    """Escrow payer or payee is the null address."""
    status_code = 400
    error_code = "INVALID_PARTY"


class InvalidAddressError(SupplyChainError):
    status_code = 400
    error_code = "INVALID_ADDRESS"


class InvalidStateError(SupplyChainError):
    """Operation is not valid for the record's current status."""
    status_code = 409
    error_code = "INVALID_STATE"


class ExpiredInputError(SupplyChainError):
    status_code = 400
    error_code = "EXPIRED_INPUT"


class BatchExpiredError(ExpiredInputError):
    """Batch expiry passed before a purchase was attempted."""
    status_code = 409
    error_code = "EXPIRED"


class InsufficientPaymentError(SupplyChainError):
    status_code = 402
    error_code = "INSUFFICIENT_PAYMENT"


class AlreadyAssignedError(SupplyChainError):
    status_code = 409
    error_code = "ALREADY_ASSIGNED"

    def __init__(self, role: str, address: str):
        super().__init__(f"{role} {address} already exists", role=role, address=address)
        self.role = role
        self.address = address


class AlreadyReleasedError(SupplyChainError):
    status_code = 409
    error_code = "ALREADY_RELEASED"


class NotFoundError(SupplyChainError):
    status_code = 404
    error_code = "NOT_FOUND"


class ReentrancyError(SupplyChainError):
    """A vault mutation was attempted from inside a payout."""
    status_code = 409
    error_code = "REENTRANT_CALL"
