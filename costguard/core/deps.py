"""FastAPI dependencies for authentication, authorization, and database access."""

from typing import Generator

import jwt
from fastapi import Depends, HTTPException, Request
from sqlalchemy.orm import Session

from costguard.core.security import decode_access_token
from costguard.core.threshold_policy import CostThresholdPolicy
from costguard.db.session import SessionLocal


BEARER_PREFIX = "bearer "


def get_db() -> Generator[Session, None, None]:
    """
    Database session dependency.

    Yields a database session and ensures it's closed after the request.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


_policy = CostThresholdPolicy()


def get_threshold_policy() -> CostThresholdPolicy:
    """Threshold policy dependency (override in tests to inject other limits)."""
    return _policy


def _bearer_token(request: Request) -> str | None:
    header = request.headers.get("Authorization", "")
    if header.lower().startswith(BEARER_PREFIX):
        return header[len(BEARER_PREFIX):].strip() or None
    return None


def get_current_user(
    request: Request,
    db: Session = Depends(get_db)
):
    """
    Get authenticated user from the Authorization header.

    Validates:
    - Bearer token present
    - JWT is valid and not expired
    - User exists and is active

    Raises:
        HTTPException 401: Authentication failed
    """
    # Import here to avoid circular imports
    from costguard.db.models import User

    token = _bearer_token(request)
    if not token:
        raise HTTPException(status_code=401, detail="Not authenticated")

    try:
        payload = decode_access_token(token)
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")

    try:
        user_id = int(payload["sub"])
    except (KeyError, TypeError, ValueError):
        raise HTTPException(status_code=401, detail="Invalid token")

    user = db.get(User, user_id)
    if not user:
        raise HTTPException(status_code=401, detail="User not found")

    if not user.is_active:
        raise HTTPException(status_code=401, detail="Account disabled")

    return user


def get_current_session(
    request: Request,
    db: Session = Depends(get_db)
):
    """
    Get caller context: user_id, role, name.

    The role comes from the user row, not the token, so a role change takes
    effect on the next request.

    Raises:
        HTTPException 401: Not authenticated
        HTTPException 403: Unknown role
    """
    from costguard.db.enums import Role
    from costguard.schemas.auth import UserSession

    user = get_current_user(request, db)

    # Validate role is a known enum value - return 403 not 500
    if not Role.has_value(user.role):
        raise HTTPException(
            status_code=403,
            detail=f"Unknown role '{user.role}'. Contact administrator."
        )

    return UserSession(
        user_id=user.id,
        role=Role(user.role),
        name=user.name,
        email=user.email,
    )


def require_roles(allowed_roles: list):
    """
    Dependency factory for role-based authorization.

    Uses enum values (not strings) to prevent drift.

    Usage:
        @router.post("/unlock", dependencies=[Depends(require_roles([Role.CEO, Role.COMPLIANCE]))])
    """
    def dependency(request: Request, db: Session = Depends(get_db)):
        session = get_current_session(request, db)
        if session.role not in allowed_roles:
            raise HTTPException(
                status_code=403,
                detail=f"Role '{session.role.value}' not authorized for this action"
            )
        return session
    return dependency
