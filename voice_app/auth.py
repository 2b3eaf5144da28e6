"""
Bearer token authentication against users.api_token.
"""

import logging
from typing import Optional

from fastapi import Depends, Header
from sqlalchemy.orm import Session

from voice_engine.errors import AuthError

from .database import User, get_db

logger = logging.getLogger(__name__)


def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


async def get_current_user_id(
    authorization: Optional[str] = Header(default=None),
    db: Session = Depends(get_db),
) -> str:
    """Resolve the caller's user id or raise AuthError (401)."""
    token = _bearer_token(authorization)
    if token is None:
        raise AuthError()

    user = db.query(User).filter(User.api_token == token).first()
    if user is None:
        logger.warning("Rejected request with unknown API token")
        raise AuthError()
    return user.id
