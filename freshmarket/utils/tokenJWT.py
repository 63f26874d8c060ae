# freshmarket/utils/tokenJWT.py
from datetime import datetime, timedelta, timezone

from jose import jwt, JWTError
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from freshmarket.config import settings
from freshmarket.database import get_db
from freshmarket.errors import ForbiddenError, NotFoundError
from freshmarket.models.users import User
from freshmarket.services.accounts import find_by_id

bearer_scheme = HTTPBearer()


# Generate a new JWT access token
def create_access_token(data: dict, expires_delta: timedelta = None):
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def token_for(user: User) -> str:
    # python-jose wants a string subject
    return create_access_token({"sub": str(user.id), "role": user.role})


# Retrieve the currently authenticated account from the bearer token
def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
    db: Session = Depends(get_db)
) -> User:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = jwt.decode(credentials.credentials, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        user_id = int(payload.get("sub"))
    except (JWTError, TypeError, ValueError):
        raise credentials_exception

    try:
        return find_by_id(db, user_id)
    except NotFoundError:
        raise credentials_exception


# Dependency factory for role-based access control
def role_required(*allowed_roles):
    allowed = {getattr(r, "value", r) for r in allowed_roles}

    def _checker(current_user: User = Depends(get_current_user)) -> User:
        if allowed and current_user.role not in allowed:
            raise ForbiddenError(f"Reserved for: {', '.join(sorted(allowed))}")
        return current_user
    return _checker
