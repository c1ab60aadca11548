import logging

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from .database import get_db
from .models import User
from .security_utils import verify_access_token

logger = logging.getLogger(__name__)

security = HTTPBearer()

ROLE_ADMIN = "admin"
ROLE_CLEANER = "user"
ROLE_CUSTOMER = "guest"
VALID_ROLES = {ROLE_ADMIN, ROLE_CLEANER, ROLE_CUSTOMER}


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    """Get current user from the bearer access token"""

    if not credentials:
        logger.error("❌ No credentials provided")
        raise HTTPException(
            status_code=401,
            detail="Not authenticated. Please provide a valid Bearer token in the Authorization header.",
        )

    token = credentials.credentials
    if len(token.split(".")) != 3:
        logger.warning(f"⚠️ Malformed token received, token length: {len(token)}")
        raise HTTPException(
            status_code=401, detail="Invalid token format. Expected a valid JWT token."
        )

    payload = verify_access_token(token)
    if not payload or not payload.get("sub"):
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    try:
        user_id = int(payload["sub"])
    except (TypeError, ValueError) as e:
        raise HTTPException(status_code=401, detail="Invalid token claims") from e

    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        logger.warning(f"⚠️ Token for unknown user id {user_id}")
        raise HTTPException(status_code=401, detail="User not found")

    if not user.is_active:
        logger.warning(f"⚠️ Inactive account attempted access: {user.email}")
        raise HTTPException(status_code=403, detail="Account is disabled")

    return user


async def require_admin(user: User = Depends(get_current_user)) -> User:
    """Office staff only"""
    if user.role != ROLE_ADMIN:
        logger.warning(f"🚫 Non-admin {user.email} attempted an admin action")
        raise HTTPException(status_code=403, detail="Admin access required")
    return user


async def require_staff(user: User = Depends(get_current_user)) -> User:
    """Office staff or cleaners"""
    if user.role not in (ROLE_ADMIN, ROLE_CLEANER):
        raise HTTPException(status_code=403, detail="Staff access required")
    return user


async def require_cleaner(user: User = Depends(get_current_user)) -> User:
    if user.role != ROLE_CLEANER or not user.cleaner_id:
        raise HTTPException(status_code=403, detail="Cleaner account required")
    return user


async def require_customer(user: User = Depends(get_current_user)) -> User:
    if user.role != ROLE_CUSTOMER or not user.customer_id:
        raise HTTPException(status_code=403, detail="Customer account required")
    return user
