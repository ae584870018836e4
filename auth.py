from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
import jwt
from fastapi import Depends, Header, HTTPException
from pydantic import BaseModel, EmailStr

from config import Config
from database import get_collection, to_object_id

MAX_PASSWORD_BYTES = 72


class AuthUser(BaseModel):
    id: str
    name: str
    email: EmailStr
    avatar: Optional[str] = None
    is_admin: bool = False


def hash_password(password: str) -> str:
    salt = bcrypt.gensalt(rounds=10)
    return bcrypt.hashpw(password.encode(), salt).decode()


def verify_password(password: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode(), hashed.encode())
    except ValueError:
        return False


def create_token(user_id: str, expires_delta: Optional[timedelta] = None) -> str:
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(days=Config.JWT_EXPIRE_DAYS))
    return jwt.encode({"sub": user_id, "exp": expire}, Config.JWT_SECRET, algorithm=Config.JWT_ALGORITHM)


def get_user_from_token(authorization: Optional[str]) -> Optional[AuthUser]:
    if not authorization:
        return None
    parts = authorization.split()
    if len(parts) == 2 and parts[0].lower() == "bearer":
        token = parts[1]
    else:
        token = authorization
    try:
        payload = jwt.decode(token, Config.JWT_SECRET, algorithms=[Config.JWT_ALGORITHM])
    except jwt.PyJWTError:
        return None
    oid = to_object_id(payload.get("sub"))
    if oid is None:
        return None
    u = get_collection("user").find_one({"_id": oid})
    if not u:
        return None
    return AuthUser(
        id=str(u["_id"]),
        name=u.get("name"),
        email=u.get("email"),
        avatar=u.get("avatar"),
        is_admin=u.get("is_admin", False),
    )


async def get_current_user(authorization: Optional[str] = Header(None)) -> AuthUser:
    user = get_user_from_token(authorization)
    if not user:
        raise HTTPException(status_code=401, detail="Not authorized, token failed")
    return user


async def require_admin(current: AuthUser = Depends(get_current_user)) -> AuthUser:
    if not current.is_admin:
        raise HTTPException(status_code=403, detail="Not authorized as an admin")
    return current
