"""
Exception hierarchy shared by all services.

Each service defines its own concrete errors on top of one of the category
bases below; the category decides the HTTP status used by the handler
registered in main.py.
"""

from __future__ import annotations


class CostGuardError(Exception):
    """Base exception for all domain errors."""

    status_code = 400


class NotFoundError(CostGuardError):
    """Referenced violation, escalation, payout, order or agent is missing."""

    status_code = 404


class StateConflictError(CostGuardError):
    """Attempted transition does not match the current state."""

    status_code = 409


class AuthorizationError(CostGuardError):
    """Caller's role is not allowed to perform this action."""

    status_code = 403


class DomainValidationError(CostGuardError):
    """Input is well-formed JSON but semantically invalid."""

    status_code = 422
