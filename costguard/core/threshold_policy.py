"""
Cost threshold rules.

The rule table is plain data passed to ``CostThresholdPolicy`` at
construction. ``DEFAULT_RULES`` holds the company's current limits; tests
and callers with different limits build their own table.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Mapping

from costguard.core.exceptions import DomainValidationError
from costguard.db.enums import CostType, Role


class InvalidCostType(DomainValidationError):
    """cost_type outside logistics/expense/bonus."""


class InvalidCostAmount(DomainValidationError):
    """Negative amount or unusable quantity."""


# Rule key for a cost type's fallback limit
DEFAULT_CATEGORY = None


@dataclass(frozen=True)
class ThresholdRule:
    """
    Limit for one (cost_type, category).

    approvers: when set, replaces the ratio-derived approver set for
        escalations raised under this rule.
    per_unit: limit applies per unit; effective limit = limit * context["quantity"].
    """

    limit: Decimal
    approvers: frozenset[str] | None = None
    per_unit: bool = False
    category: str | None = None


@dataclass(frozen=True)
class ThresholdEvaluation:
    within_limit: bool
    limit: Decimal
    overage: Decimal
    cost_type: str
    category: str | None
    approvers: frozenset[str] | None = None
    quantity: int | None = None


def _rule(limit, approvers=None, per_unit=False, category=None) -> ThresholdRule:
    return ThresholdRule(
        limit=Decimal(str(limit)),
        approvers=frozenset(r.value for r in approvers) if approvers else None,
        per_unit=per_unit,
        category=category,
    )


DEFAULT_RULES: dict[tuple[str, str | None], ThresholdRule] = {
    # Logistics: fare per unit moved, plus fixed per-trip caps
    (CostType.LOGISTICS.value, DEFAULT_CATEGORY): _rule(100, per_unit=True, category="cost_per_unit"),
    (CostType.LOGISTICS.value, "cost_per_unit"): _rule(100, per_unit=True, category="cost_per_unit"),
    (CostType.LOGISTICS.value, "storekeeper_fee"): _rule(1000, category="storekeeper_fee"),
    (CostType.LOGISTICS.value, "transport_fare"): _rule(1500, category="transport_fare"),
    (CostType.LOGISTICS.value, "package_total"): _rule(12000, category="package_total"),
    # Expenses above the GM's limit always escalate
    (CostType.EXPENSE.value, DEFAULT_CATEGORY): _rule(10000),
    (CostType.EXPENSE.value, "equipment_repair"): _rule(
        7500, approvers=[Role.GM, Role.CEO], category="equipment_repair"
    ),
    (CostType.EXPENSE.value, "vehicle_maintenance"): _rule(
        15000, approvers=[Role.FC, Role.GM], category="vehicle_maintenance"
    ),
    # High-value bonuses need dual approval
    (CostType.BONUS.value, DEFAULT_CATEGORY): _rule(10000, approvers=[Role.FC, Role.GM]),
}


@dataclass
class CostThresholdPolicy:
    """Answers whether an amount breaches its configured limit, and by how much."""

    rules: Mapping[tuple[str, str | None], ThresholdRule] = field(
        default_factory=lambda: dict(DEFAULT_RULES)
    )

    def __post_init__(self) -> None:
        for cost_type in CostType:
            if (cost_type.value, DEFAULT_CATEGORY) not in self.rules:
                raise ValueError(f"No default rule configured for cost type '{cost_type.value}'")

    def rule_for(self, cost_type: str, category: str | None) -> ThresholdRule:
        if not CostType.has_value(cost_type):
            raise InvalidCostType(
                f"Unknown cost type '{cost_type}'. Expected one of: "
                + ", ".join(t.value for t in CostType)
            )
        return self.rules.get((cost_type, category)) or self.rules[(cost_type, DEFAULT_CATEGORY)]

    def evaluate(
        self,
        cost_type: str,
        category: str | None,
        amount: Decimal | int | float | str,
        context: Mapping[str, Any] | None = None,
    ) -> ThresholdEvaluation:
        rule = self.rule_for(cost_type, category)
        amount = Decimal(str(amount))
        if amount < 0:
            raise InvalidCostAmount("Amount must be zero or greater")

        limit = rule.limit
        quantity = None
        if rule.per_unit:
            raw = (context or {}).get("quantity")
            try:
                quantity = 1 if raw is None else int(raw)
            except (TypeError, ValueError):
                raise InvalidCostAmount(f"Quantity must be a whole number, got {raw!r}")
            if quantity < 1:
                raise InvalidCostAmount("Quantity must be at least 1")
            limit = rule.limit * quantity

        overage = amount - limit
        return ThresholdEvaluation(
            within_limit=amount <= limit,
            limit=limit,
            overage=overage if overage > 0 else Decimal("0"),
            cost_type=cost_type,
            category=rule.category if rule.category is not None else category,
            approvers=rule.approvers,
            quantity=quantity,
        )
