import logging
from typing import Optional

from fastapi import Depends, Header, Request
from sqlalchemy.orm import Session

from dreamcatcher.core.exceptions import AuthenticationError
from dreamcatcher.db.session import get_db
from dreamcatcher.models.user import User
from dreamcatcher.utils.auth import get_user_id_from_token

logger = logging.getLogger(__name__)


def get_current_user_id(
    request: Request,
    authorization: Optional[str] = Header(None),
    db: Session = Depends(get_db),
) -> int:
    """
    FastAPI dependency that verifies the Bearer token and returns the user ID.
    The ID is also stored on request.state for error logging.
    """
    if not authorization:
        raise AuthenticationError("Authorization header missing")

    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise AuthenticationError("Invalid authorization header format. Expected: Bearer <token>")

    user_id = get_user_id_from_token(token.strip())
    if user_id is None:
        raise AuthenticationError("Invalid or expired token")

    if not db.query(User.id).filter(User.id == user_id).first():
        logger.warning("Token for unknown user %s", user_id)
        raise AuthenticationError("User not found")

    request.state.user_id = user_id
    return user_id


def get_current_user(
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> User:
    return db.query(User).filter(User.id == user_id).first()
