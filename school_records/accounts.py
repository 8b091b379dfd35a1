import logging

from fastapi import APIRouter, Depends, HTTPException
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING
from pymongo.errors import DuplicateKeyError

from .database import USER_COLLECTION, get_db, insert_document
from .schemas import LoginRequest, PublicUser, RegisterRequest, Token
from .security import create_access_token, get_current_user, get_password_hash, verify_password

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


async def ensure_indexes(db: AsyncIOMotorDatabase) -> None:
    await db[USER_COLLECTION].create_index([("email", ASCENDING)], unique=True, name="uniq_email")


def public_user(user: dict) -> PublicUser:
    return PublicUser(
        id=str(user["_id"]), username=user.get("username", ""), email=user["email"], role=user["role"]
    )


@router.post("/register", response_model=PublicUser)
async def register(req: RegisterRequest, db: AsyncIOMotorDatabase = Depends(get_db)):
    email = str(req.email).lower()
    if await db[USER_COLLECTION].find_one({"email": email}):
        raise HTTPException(status_code=400, detail="Email already registered")
    doc = {
        "username": req.username,
        "email": email,
        "password_hash": get_password_hash(req.password),
        "role": req.role,
        "is_active": True,
    }
    try:
        user = await insert_document(db[USER_COLLECTION], doc)
    except DuplicateKeyError:
        raise HTTPException(status_code=400, detail="Email already registered")
    logger.info("Registered account %s with role %s", user["_id"], req.role)
    return public_user(user)


@router.post("/login", response_model=Token)
async def login(payload: LoginRequest, db: AsyncIOMotorDatabase = Depends(get_db)):
    user = await db[USER_COLLECTION].find_one({"email": str(payload.email).lower()})
    if not user:
        raise HTTPException(status_code=400, detail="Incorrect email or password")
    if not verify_password(payload.password, user.get("password_hash", "")):
        raise HTTPException(status_code=400, detail="Incorrect email or password")
    token = create_access_token({"sub": str(user["_id"]), "email": user["email"], "role": user["role"]})
    return Token(access_token=token)


@router.get("/me", response_model=PublicUser)
async def me(current=Depends(get_current_user)):
    return public_user(current)
