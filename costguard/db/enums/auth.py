"""Auth-related enums."""

from enum import Enum


class Role(str, Enum):
    """
    Staff roles.

    - CEO: final sign-off on critical overages, may unlock payouts
    - COMPLIANCE: payout verification, may unlock payouts
    - FC: financial controller, first-line approver
    - GM: general manager
    - ACCOUNTANT / STAFF: may submit costs, no approval rights
    """

    CEO = "ceo"
    COMPLIANCE = "compliance"
    FC = "fc"
    GM = "gm"
    ACCOUNTANT = "accountant"
    STAFF = "staff"

    @classmethod
    def has_value(cls, value: str) -> bool:
        """Check if value is a valid role."""
        return value in cls._value2member_map_
