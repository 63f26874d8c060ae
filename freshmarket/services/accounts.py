# freshmarket/services/accounts.py
import logging
from typing import Optional

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from freshmarket.errors import ValidationError, UnauthorizedError, NotFoundError
from freshmarket.models.users import User, Role
from freshmarket.schemas.user import UserCreate
from freshmarket.utils.hashing import get_password_hash, verify_password

logger = logging.getLogger(__name__)


def find_by_id(db: Session, user_id: int) -> User:
    user = db.get(User, user_id)
    if user is None:
        raise NotFoundError("Account not found")
    return user


def find_by_email(db: Session, email: str) -> Optional[User]:
    return db.query(User).filter(func.lower(User.email) == email.strip().lower()).first()


def register_user(db: Session, payload: UserCreate) -> User:
    email = payload.email.strip().lower()
    phone = payload.phone.strip()

    existing = db.query(User).filter(or_(func.lower(User.email) == email, User.phone == phone)).first()
    if existing:
        raise ValidationError("Email or phone already in use")

    user = User(
        name=payload.name.strip(),
        phone=phone,
        email=email,
        password_hash=get_password_hash(payload.password),
        role=payload.role,
        city=payload.location.city,
        district=payload.location.district,
        # Only suppliers declare what they grow
        product_type=payload.product_type if payload.role == Role.SUPPLIER.value else None,
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        # Lost a race against a concurrent registration
        db.rollback()
        raise ValidationError("Email or phone already in use")
    db.refresh(user)
    logger.info("Registered %s account %s", user.role, user.id)
    return user


def authenticate(db: Session, email: str, password: str) -> User:
    user = find_by_email(db, email)
    if user is None or not verify_password(password, user.password_hash):
        raise UnauthorizedError("Invalid email or password")
    return user
