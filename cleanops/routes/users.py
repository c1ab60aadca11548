import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from ..auth import ROLE_CUSTOMER, require_admin
from ..database import get_db
from ..models import User
from ..services import account_service
from ..services.activity_logger import log_activity
from ..shared.validators import validate_email
from .auth import UserResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["Users"])


class UserCreate(BaseModel):
    email: str
    password: str
    firstName: Optional[str] = None
    lastName: Optional[str] = None
    role: str = ROLE_CUSTOMER

    @field_validator("email")
    @classmethod
    def check_email(cls, v):
        return validate_email(v)

    @field_validator("password")
    @classmethod
    def check_password(cls, v):
        if len(v) < 8:
            raise ValueError("Password must be at least 8 characters")
        return v


class UserUpdate(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None
    firstName: Optional[str] = None
    lastName: Optional[str] = None
    role: Optional[str] = None
    isActive: Optional[bool] = None

    @field_validator("email")
    @classmethod
    def check_email(cls, v):
        return validate_email(v)


@router.get("", response_model=list[UserResponse])
async def list_users(
    role: Optional[str] = Query(None),
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """All login accounts with their linked customer/cleaner ids"""
    query = db.query(User)
    if role:
        query = query.filter(User.role == role)
    return query.order_by(User.created_at.desc(), User.id.desc()).all()


@router.post("", response_model=UserResponse)
async def create_user(
    data: UserCreate,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    user = account_service.create_user(
        db,
        email=data.email,
        password=data.password,
        first_name=data.firstName,
        last_name=data.lastName,
        role=data.role,
    )
    log_activity(db, "user_created", entity_type="user", entity_id=user.id, user_id=current_user.id)
    return user


@router.patch("/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: int,
    data: UserUpdate,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    user = account_service.update_user(
        db,
        user_id,
        email=data.email,
        password=data.password,
        first_name=data.firstName,
        last_name=data.lastName,
        role=data.role,
        is_active=data.isActive,
    )
    log_activity(db, "user_updated", entity_type="user", entity_id=user.id, user_id=current_user.id)
    return user


@router.delete("/by-email")
async def delete_user_by_email(
    email: str = Query(...),
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    account_service.delete_user_by_email(db, email)
    log_activity(db, "user_deleted", entity_type="user", details={"email": email}, user_id=current_user.id)
    return {"message": "User deleted"}


@router.delete("/{user_id}")
async def delete_user(
    user_id: int,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Remove a login. The linked customer or cleaner record is kept"""
    account_service.delete_user(db, user_id)
    log_activity(db, "user_deleted", entity_type="user", entity_id=user_id, user_id=current_user.id)
    return {"message": "User deleted"}


@router.post("/customer-account/{customer_id}", response_model=UserResponse)
async def create_customer_account(
    customer_id: int,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Give an existing customer a portal login and email them the credentials"""
    user = await account_service.create_customer_account(db, customer_id)
    log_activity(
        db,
        "customer_account_created",
        entity_type="customer",
        entity_id=customer_id,
        user_id=current_user.id,
    )
    return user
