"""Auth-related Pydantic schemas."""

from pydantic import BaseModel

from costguard.db.enums import Role


class UserSession(BaseModel):
    """Authenticated caller context resolved from the bearer token."""

    user_id: int
    role: Role
    name: str
    email: str
