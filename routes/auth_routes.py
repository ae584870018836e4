import logging

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, EmailStr, Field, field_validator
from pymongo.errors import DuplicateKeyError

from auth import MAX_PASSWORD_BYTES, create_token, hash_password, verify_password
from database import create_document, get_collection, now
from schemas import User as UserSchema

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


class RegisterBody(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(..., min_length=6)

    @field_validator("password")
    @classmethod
    def fits_bcrypt(cls, value: str) -> str:
        # bcrypt only hashes the first 72 bytes and refuses longer input
        if len(value.encode()) > MAX_PASSWORD_BYTES:
            raise ValueError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")
        return value


class LoginBody(BaseModel):
    email: EmailStr
    password: str


def _auth_payload(user_id: str, user: dict) -> dict:
    return {
        "id": user_id,
        "name": user.get("name"),
        "email": user.get("email"),
        "is_admin": user.get("is_admin", False),
        "token": create_token(user_id),
    }


@router.post("/register", status_code=201)
def register(body: RegisterBody):
    users = get_collection("user")
    email = body.email.lower()
    if users.find_one({"email": email}):
        raise HTTPException(status_code=400, detail="User already exists")
    user = UserSchema(name=body.name, email=email, password_hash=hash_password(body.password))
    try:
        user_id = create_document("user", user)
    except DuplicateKeyError:
        raise HTTPException(status_code=400, detail="User already exists")
    logger.info("Registered user %s", user_id)
    return _auth_payload(user_id, user.model_dump())


@router.post("/login")
def login(body: LoginBody):
    users = get_collection("user")
    u = users.find_one({"email": body.email.lower()})
    if not u or not verify_password(body.password, u.get("password_hash", "")):
        raise HTTPException(status_code=400, detail="Invalid credentials")
    users.update_one({"_id": u["_id"]}, {"$set": {"last_login": now()}})
    return _auth_payload(str(u["_id"]), u)
