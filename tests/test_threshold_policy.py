"""Tests for the cost threshold rule table."""

from decimal import Decimal

import pytest

from costguard.core.threshold_policy import (
    DEFAULT_CATEGORY,
    CostThresholdPolicy,
    InvalidCostAmount,
    InvalidCostType,
    ThresholdRule,
)


@pytest.fixture
def policy() -> CostThresholdPolicy:
    return CostThresholdPolicy()


def test_expense_within_default_limit(policy):
    result = policy.evaluate("expense", None, 10000)

    assert result.within_limit is True
    assert result.limit == Decimal("10000")
    assert result.overage == Decimal("0")


def test_expense_over_default_limit_reports_overage(policy):
    result = policy.evaluate("expense", None, Decimal("12500.50"))

    assert result.within_limit is False
    assert result.overage == Decimal("2500.50")
    assert result.approvers is None


def test_logistics_per_unit_limit_scales_with_quantity(policy):
    within = policy.evaluate("logistics", "cost_per_unit", 450, {"quantity": 5})
    over = policy.evaluate("logistics", "cost_per_unit", 650, {"quantity": 5})

    assert within.within_limit is True
    assert within.limit == Decimal("500")
    assert within.quantity == 5
    assert over.within_limit is False
    assert over.overage == Decimal("150")


def test_logistics_per_unit_defaults_to_single_unit(policy):
    result = policy.evaluate("logistics", None, 150)

    assert result.limit == Decimal("100")
    assert result.quantity == 1
    assert result.category == "cost_per_unit"


def test_logistics_fixed_category_limits(policy):
    assert policy.evaluate("logistics", "storekeeper_fee", 1000).within_limit is True
    assert policy.evaluate("logistics", "transport_fare", 1600).overage == Decimal("100")
    assert policy.evaluate("logistics", "package_total", 12001).within_limit is False


def test_category_rule_carries_its_approvers(policy):
    result = policy.evaluate("expense", "equipment_repair", 9000)

    assert result.within_limit is False
    assert result.limit == Decimal("7500")
    assert result.approvers == frozenset({"gm", "ceo"})


def test_unknown_category_falls_back_to_type_default(policy):
    result = policy.evaluate("expense", "office_party", 11000)

    assert result.limit == Decimal("10000")
    assert result.category == "office_party"


def test_bonus_requires_dual_approval(policy):
    result = policy.evaluate("bonus", None, 15000)

    assert result.approvers == frozenset({"fc", "gm"})
    assert result.overage == Decimal("5000")


def test_unknown_cost_type_is_rejected(policy):
    with pytest.raises(InvalidCostType):
        policy.evaluate("travel", None, 100)


def test_negative_amount_is_rejected(policy):
    with pytest.raises(InvalidCostAmount):
        policy.evaluate("expense", None, -1)


def test_non_positive_quantity_is_rejected(policy):
    with pytest.raises(InvalidCostAmount):
        policy.evaluate("logistics", "cost_per_unit", 100, {"quantity": -2})


def test_zero_quantity_is_not_treated_as_one(policy):
    with pytest.raises(InvalidCostAmount):
        policy.evaluate("logistics", "cost_per_unit", 100, {"quantity": 0})


@pytest.mark.parametrize("quantity", ["abc", "2.5", [3], {"n": 1}])
def test_non_numeric_quantity_is_rejected(policy, quantity):
    with pytest.raises(InvalidCostAmount):
        policy.evaluate("logistics", "cost_per_unit", 500, {"quantity": quantity})


def test_numeric_string_quantity_is_accepted(policy):
    result = policy.evaluate("logistics", "cost_per_unit", 250, {"quantity": "3"})

    assert result.quantity == 3
    assert result.limit == Decimal("300")


def test_injected_rule_table_overrides_defaults():
    rules = {
        ("logistics", DEFAULT_CATEGORY): ThresholdRule(limit=Decimal("10"), per_unit=True),
        ("expense", DEFAULT_CATEGORY): ThresholdRule(limit=Decimal("50")),
        ("bonus", DEFAULT_CATEGORY): ThresholdRule(limit=Decimal("5")),
    }
    policy = CostThresholdPolicy(rules=rules)

    result = policy.evaluate("expense", None, 60)

    assert result.limit == Decimal("50")
    assert result.overage == Decimal("10")


def test_rule_table_without_type_default_is_refused():
    with pytest.raises(ValueError):
        CostThresholdPolicy(rules={("expense", DEFAULT_CATEGORY): ThresholdRule(limit=Decimal("1"))})
