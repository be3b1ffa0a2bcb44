"""
User lookup by Clerk user ID.

Admins may look up any user; everyone else only themselves.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from jnx_os.auth.middleware import require_session
from jnx_os.auth.session import SessionContext
from jnx_os.database.session import get_db_session
from jnx_os.services.identity_store import IdentityStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/users", tags=["users"])


@router.get("/{clerk_user_id}")
def get_user(
    clerk_user_id: str,
    session: SessionContext = Depends(require_session),
    db: Session = Depends(get_db_session),
):
    if not session.is_admin and session.clerk_user_id != clerk_user_id:
        logger.warning(
            "User lookup denied",
            extra={"clerk_user_id": session.clerk_user_id, "requested": clerk_user_id},
        )
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")

    user = IdentityStore(db).get_user_by_clerk_id(clerk_user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    return user.to_summary()
