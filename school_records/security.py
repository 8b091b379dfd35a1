import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from bson import ObjectId
from fastapi import Depends, HTTPException
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from motor.motor_asyncio import AsyncIOMotorDatabase
from passlib.context import CryptContext

from . import config
from .database import USER_COLLECTION, get_db

logger = logging.getLogger(__name__)

SUPER_ADMIN = "super_admin"
USER_ADMIN = "user_admin"
STAFF = "staff"
STUDENT = "student"

ADMINS = (SUPER_ADMIN, USER_ADMIN)
MANAGERS = (SUPER_ADMIN, USER_ADMIN, STAFF)
READERS = (SUPER_ADMIN, USER_ADMIN, STAFF, STUDENT)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None):
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=config.ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, config.SECRET_KEY, algorithm=config.ALGORITHM)


async def get_current_user(
    token: str = Depends(oauth2_scheme), db: AsyncIOMotorDatabase = Depends(get_db)
):
    try:
        payload = jwt.decode(token, config.SECRET_KEY, algorithms=[config.ALGORITHM])
        user_id: Optional[str] = payload.get("sub")
        if not user_id or not ObjectId.is_valid(user_id):
            raise HTTPException(status_code=401, detail="Invalid token")
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid token")

    user = await db[USER_COLLECTION].find_one({"_id": ObjectId(user_id)})
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    if not user.get("is_active", True):
        raise HTTPException(status_code=401, detail="User account is deactivated")
    user["id"] = str(user["_id"])
    return user


def require_roles(*roles: str):
    """Dependency allowing only accounts whose role is one of ``roles``."""

    async def checker(current=Depends(get_current_user)):
        if current.get("role") not in roles:
            logger.info("Denied %s (role %s); requires %s", current["id"], current.get("role"), ", ".join(roles))
            raise HTTPException(status_code=403, detail="Not authorized")
        return current

    return checker
