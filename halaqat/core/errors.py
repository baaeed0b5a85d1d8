from __future__ import annotations


class NotFoundError(LookupError):
    """Raised when a referenced row does not exist or is outside the caller's center."""


class ConflictError(ValueError):
    """Raised for state-machine violations and duplicate submissions."""


class ValidationFailedError(ValueError):
    pass


class InsufficientBalanceError(ValueError):
    pass


class AccessDeniedError(PermissionError):
    pass


def error_kind(exc: Exception) -> str:
    if isinstance(exc, PermissionError):
        return 'forbidden'
    if isinstance(exc, NotFoundError):
        return 'not_found'
    if isinstance(exc, ConflictError):
        return 'conflict'
    if isinstance(exc, InsufficientBalanceError):
        return 'insufficient_balance'
    return 'validation'


HTTP_STATUS_BY_KIND = {
    'forbidden': 403,
    'not_found': 404,
    'conflict': 409,
    'insufficient_balance': 400,
    'validation': 400,
}


def http_status_for(exc: Exception) -> int:
    return HTTP_STATUS_BY_KIND[error_kind(exc)]
