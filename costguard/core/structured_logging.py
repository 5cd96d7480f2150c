"""Structured logging helpers (PII-safe)."""

from typing import Any


def build_log_context(
    *,
    user_id: int | str | None = None,
    role: str | None = None,
    request_id: str | None = None,
    route: str | None = None,
    method: str | None = None,
    **ids: Any,
) -> dict[str, Any]:
    """
    Return a PII-safe log context dict.

    Extra keyword arguments are accepted for entity ids (payout_id,
    escalation_id, ...); empty values are dropped.
    """
    context: dict[str, Any] = {}
    if user_id:
        context["user_id"] = str(user_id)
    if role:
        context["role"] = role
    if request_id:
        context["request_id"] = request_id
    if route:
        context["route"] = route
    if method:
        context["method"] = method
    for key, value in ids.items():
        if value is not None and value != "":
            context[key] = value
    return context
