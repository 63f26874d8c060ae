# freshmarket/routes/auth.py
from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from freshmarket.database import get_db
from freshmarket.errors import MarketError
from freshmarket.models.users import User
from freshmarket.schemas.base import Location
from freshmarket.schemas.user import UserCreate, UserLogin, UserResponse, AuthResponse
from freshmarket.services import accounts
from freshmarket.utils.audit import write_log, client_ip
from freshmarket.utils.tokenJWT import token_for, get_current_user

router = APIRouter(prefix="/auth", tags=["Auth"])


def _user_to_out(user: User) -> UserResponse:
    return UserResponse(
        id=user.id, name=user.name, phone=user.phone, email=user.email, role=user.role,
        location=Location(city=user.city, district=user.district),
        product_type=user.product_type,
    )


# Register a new buyer or supplier account
@router.post("/register", response_model=AuthResponse, status_code=201)
def register(payload: UserCreate, request: Request, db: Session = Depends(get_db)):
    try:
        user = accounts.register_user(db, payload)
    except MarketError as e:
        write_log(db, user_id=None, action="REGISTER", resource="auth", status="FAIL",
                  ip=client_ip(request), meta={"email": payload.email, "reason": e.message})
        raise

    write_log(db, user_id=user.id, action="REGISTER", resource="auth", status="SUCCESS",
              ip=client_ip(request), meta={"email": user.email, "role": user.role})
    return AuthResponse(token=token_for(user), user=_user_to_out(user))


# Authenticate and issue a JWT
@router.post("/login", response_model=AuthResponse)
def login(payload: UserLogin, request: Request, db: Session = Depends(get_db)):
    try:
        user = accounts.authenticate(db, payload.email, payload.password)
    except MarketError:
        write_log(db, user_id=None, action="LOGIN", resource="auth", status="FAIL",
                  ip=client_ip(request), meta={"email": payload.email})
        raise

    write_log(db, user_id=user.id, action="LOGIN", resource="auth", status="SUCCESS",
              ip=client_ip(request), meta={"email": user.email})
    return AuthResponse(token=token_for(user), user=_user_to_out(user))


# Current authenticated account
@router.get("/me", response_model=UserResponse)
def me(current_user: User = Depends(get_current_user)):
    return _user_to_out(current_user)
