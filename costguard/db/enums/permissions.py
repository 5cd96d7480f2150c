"""Role permission helper sets."""

from costguard.db.enums.auth import Role

# Roles that can use the threshold and payout operations endpoints
ROLES_CAN_OPERATE = [Role.CEO, Role.COMPLIANCE, Role.FC, Role.GM]

# Roles that can unlock a payout out of a terminal state
ROLES_CAN_UNLOCK_PAYOUT = [Role.CEO, Role.COMPLIANCE]

# Roles that can process or cancel a pending salary deduction
ROLES_CAN_SETTLE_DEDUCTIONS = [Role.CEO, Role.COMPLIANCE, Role.FC]
