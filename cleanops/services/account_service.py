"""
Account Service
Login accounts for office staff, cleaners and customers
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import HTTPException
from sqlalchemy import func
from sqlalchemy.orm import Session

from ..auth import ROLE_CLEANER, ROLE_CUSTOMER, VALID_ROLES
from ..config import FRONTEND_URL
from ..email_service import send_account_credentials_email, send_password_reset_email
from ..models import Cleaner, Customer, User
from ..security_utils import (
    create_access_token,
    generate_temporary_password,
    generate_timed_token,
    hash_password,
    verify_password,
    verify_timed_token,
)

logger = logging.getLogger(__name__)

PASSWORD_RESET_MAX_AGE = 3600


def password_fingerprint(user: User) -> str:
    """Tail of the password hash; a reset link is valid only while it still matches"""
    return (user.hashed_password or "")[-16:]


def get_user_by_email(db: Session, email: str) -> Optional[User]:
    return db.query(User).filter(func.lower(User.email) == email.strip().lower()).first()


def authenticate(db: Session, email: str, password: str) -> dict:
    """
    Check credentials and issue an access token.

    Raises:
        HTTPException(401) wrong email or password
        HTTPException(403) disabled account
    """
    user = get_user_by_email(db, email)
    if not user or not verify_password(password, user.hashed_password):
        logger.warning(f"🚫 Failed login for {email}")
        raise HTTPException(status_code=401, detail="Invalid email or password")
    if not user.is_active:
        raise HTTPException(status_code=403, detail="Account is disabled")

    user.last_login_at = datetime.utcnow()
    db.commit()

    token = create_access_token({"sub": str(user.id), "role": user.role})
    logger.info(f"✅ Login: {user.email} ({user.role})")
    return {"access_token": token, "token_type": "bearer", "user": user}


def create_user(
    db: Session,
    email: str,
    password: str,
    first_name: Optional[str] = None,
    last_name: Optional[str] = None,
    role: str = ROLE_CUSTOMER,
) -> User:
    """
    Create a login account.

    Customers (guest) are linked to the customer record with the same email,
    which is created when missing. Cleaners (user) are linked to the cleaner
    with the same email when one exists.
    """
    if role not in VALID_ROLES:
        raise HTTPException(status_code=400, detail=f"Invalid role: {role}")

    email = email.strip().lower()
    if get_user_by_email(db, email):
        raise HTTPException(status_code=400, detail="A user with this email already exists")

    user = User(
        email=email,
        hashed_password=hash_password(password),
        first_name=first_name,
        last_name=last_name,
        role=role,
    )

    if role == ROLE_CUSTOMER:
        customer = db.query(Customer).filter(func.lower(Customer.email) == email).first()
        if not customer:
            customer = Customer(
                first_name=first_name, last_name=last_name, email=email, client_status="New"
            )
            db.add(customer)
            db.flush()
            logger.info(f"👤 Created customer {customer.id} for new account {email}")
        user.customer_id = customer.id
    elif role == ROLE_CLEANER:
        cleaner = db.query(Cleaner).filter(func.lower(Cleaner.email) == email).first()
        if cleaner:
            user.cleaner_id = cleaner.id
        else:
            logger.warning(f"⚠️ No cleaner record found for {email}; account created unlinked")

    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info(f"✅ User created: {email} ({role})")
    return user


def update_user(db: Session, user_id: int, **fields) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    password = fields.pop("password", None)
    if password:
        user.hashed_password = hash_password(password)

    role = fields.get("role")
    if role is not None and role not in VALID_ROLES:
        raise HTTPException(status_code=400, detail=f"Invalid role: {role}")

    email = fields.get("email")
    if email:
        email = email.strip().lower()
        existing = get_user_by_email(db, email)
        if existing and existing.id != user.id:
            raise HTTPException(status_code=400, detail="A user with this email already exists")
        fields["email"] = email

    for key, value in fields.items():
        if value is not None and hasattr(user, key):
            setattr(user, key, value)

    db.commit()
    db.refresh(user)
    return user


def delete_user(db: Session, user_id: int) -> None:
    """Remove the login only. Linked customer/cleaner records are kept"""
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    db.delete(user)
    db.commit()
    logger.info(f"🗑️ User {user_id} deleted")


def delete_user_by_email(db: Session, email: str) -> None:
    user = get_user_by_email(db, email)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    delete_user(db, user.id)


async def create_customer_account(db: Session, customer_id: int) -> User:
    """Give an existing customer a login and email them a temporary password"""
    customer = db.query(Customer).filter(Customer.id == customer_id).first()
    if not customer:
        raise HTTPException(status_code=404, detail="Customer not found")
    if not customer.email:
        raise HTTPException(status_code=400, detail="Customer has no email address")
    if db.query(User).filter(User.customer_id == customer.id).first():
        raise HTTPException(status_code=400, detail="Customer already has an account")

    temporary_password = generate_temporary_password()
    user = create_user(
        db,
        email=customer.email,
        password=temporary_password,
        first_name=customer.first_name,
        last_name=customer.last_name,
        role=ROLE_CUSTOMER,
    )

    try:
        await send_account_credentials_email(
            customer.email, customer.first_name or "there", temporary_password
        )
    except Exception as e:
        logger.error(f"❌ Account created for {customer.email} but credentials email failed: {e}")

    return user


async def request_password_reset(db: Session, email: str) -> None:
    """Email a signed reset link. Unknown emails are ignored silently"""
    user = get_user_by_email(db, email)
    if not user:
        logger.info(f"ℹ️ Password reset requested for unknown email {email}")
        return

    token = generate_timed_token({"user_id": user.id, "pwd": password_fingerprint(user)})
    await send_password_reset_email(user.email, f"{FRONTEND_URL}/reset-password?token={token}")


def reset_password(db: Session, token: str, new_password: str) -> None:
    payload = verify_timed_token(token, max_age=PASSWORD_RESET_MAX_AGE)
    if not payload:
        raise HTTPException(status_code=400, detail="Reset link is invalid or has expired")

    user = db.query(User).filter(User.id == payload.get("user_id")).first()
    if not user or payload.get("pwd") != password_fingerprint(user):
        raise HTTPException(status_code=400, detail="Reset link is invalid or has expired")

    user.hashed_password = hash_password(new_password)
    db.commit()
    logger.info(f"🔑 Password reset for {user.email}")
