"""
Role checks backed by the membership tables.

Policy lives in the database; these helpers only read it.
"""

from typing import Literal

from fastapi import Depends, HTTPException, status

from app.auth.verify import current_user_id
from app.db.helpers import fetch_one
from app.db.pool import DatabasePoolManager, get_db
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

ParishRole = Literal["student", "instructor", "parish_admin"]

ROLE_RANK: dict[str, int] = {
    "student": 1,
    "instructor": 2,
    "parish_admin": 3,
}


async def require_diocese_admin(
    user_id: str = Depends(current_user_id),
    db: DatabasePoolManager = Depends(get_db),
) -> str:
    row = await fetch_one(
        db,
        "SELECT clerk_user_id FROM diocese_admins WHERE clerk_user_id = %s",
        (user_id,),
    )
    if not row:
        logger.warning("Diocese admin check failed", user_id=user_id)
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Diocese admin required")
    return user_id


async def require_parish_role(
    db: DatabasePoolManager, clerk_user_id: str, parish_id: str, min_role: ParishRole
) -> ParishRole:
    """Return the caller's role in the parish or raise 403 if below min_role."""
    row = await fetch_one(
        db,
        "SELECT role FROM parish_memberships WHERE parish_id = %s AND clerk_user_id = %s",
        (parish_id, clerk_user_id),
    )
    if not row:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid parish context")

    role = row["role"]
    if ROLE_RANK.get(role, 0) < ROLE_RANK[min_role]:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient parish role")
    return role
