import logging
from typing import Optional

from fastapi import APIRouter, status
from pydantic import EmailStr, Field
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from matziplog.database import USERS, create_document
from matziplog.dependencies import DB
from matziplog.errors import AccountLocked, NotFound, ValidationFailed
from matziplog.schemas import CamelModel, User as UserSchema, utcnow
from matziplog.security import AuthUser, PasswordService, TokenDep
from matziplog.serializers import sanitize_user

logger = logging.getLogger(__name__)

router = APIRouter()

LOCK_MAX = 5
INVALID_CREDENTIALS = "Invalid email or password"


class RegisterRequest(CamelModel):
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)
    display_name: Optional[str] = Field(None, max_length=60, alias="displayName")
    phone_number: Optional[str] = Field(None, max_length=30, alias="phoneNumber")


class LoginRequest(CamelModel):
    email: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class ChangePasswordRequest(CamelModel):
    current_password: str = Field(..., min_length=1, alias="currentPassword")
    new_password: str = Field(..., min_length=1, max_length=128, alias="newPassword")


@router.post("/register", status_code=status.HTTP_201_CREATED)
def register(payload: RegisterRequest, db: DB, hasher: PasswordService):
    email = payload.email.lower()
    if db[USERS].find_one({"email": email}):
        raise ValidationFailed("Email already registered")
    user = UserSchema(
        email=email,
        password_hash=hasher.hash(payload.password),
        display_name=payload.display_name or "",
        phone_number=payload.phone_number or "",
        role="user",
    )
    try:
        user_doc = create_document(db, USERS, user)
    except DuplicateKeyError:
        raise ValidationFailed("Email already registered")
    logger.info("Registered user %s", user_doc["_id"])
    return {"user": sanitize_user(user_doc)}


@router.post("/login")
def login(payload: LoginRequest, db: DB, hasher: PasswordService, tokens: TokenDep):
    # locked accounts are excluded, so they look exactly like unknown emails
    user = db[USERS].find_one({"email": payload.email.lower(), "is_active": True})
    if not user:
        raise ValidationFailed(
            INVALID_CREDENTIALS,
            loginAttempts=None,
            remainingAttempts=None,
            locked=False,
        )

    if not hasher.verify(payload.password, user.get("password_hash", "")):
        updated = db[USERS].find_one_and_update(
            {"_id": user["_id"], "is_active": True},
            {"$inc": {"login_attempts": 1}, "$set": {"updated_at": utcnow()}},
            return_document=ReturnDocument.AFTER,
        )
        if updated is None:
            raise ValidationFailed(
                INVALID_CREDENTIALS,
                loginAttempts=None,
                remainingAttempts=None,
                locked=False,
            )
        attempts = updated["login_attempts"]
        if attempts >= LOCK_MAX:
            db[USERS].update_one({"_id": user["_id"]}, {"$set": {"is_active": False}})
            logger.warning("Account %s locked after %d failed logins", user["_id"], attempts)
            raise AccountLocked(
                "Account locked after too many failed login attempts. Contact an administrator.",
                loginAttempts=attempts,
                remainingAttempts=0,
                locked=True,
            )
        logger.info("Failed login for %s (%d/%d)", user["_id"], attempts, LOCK_MAX)
        raise ValidationFailed(
            INVALID_CREDENTIALS,
            loginAttempts=attempts,
            remainingAttempts=max(0, LOCK_MAX - attempts),
            locked=False,
        )

    now = utcnow()
    user = db[USERS].find_one_and_update(
        {"_id": user["_id"]},
        {"$set": {"login_attempts": 0, "last_login_at": now, "updated_at": now}},
        return_document=ReturnDocument.AFTER,
    )
    return {
        "user": sanitize_user(user),
        "token": tokens.create_access_token(user),
        "loginAttempts": 0,
        "remainingAttempts": LOCK_MAX,
        "locked": False,
    }


@router.get("/me")
def me(current_user: AuthUser, db: DB):
    user = db[USERS].find_one({"_id": current_user.oid})
    if not user or not user.get("is_active", True):
        raise NotFound("User not found or inactive")
    return sanitize_user(user)


@router.put("/password")
def change_password(payload: ChangePasswordRequest, current_user: AuthUser, db: DB, hasher: PasswordService):
    user = db[USERS].find_one({"_id": current_user.oid, "is_active": True})
    if not user:
        raise NotFound("User not found or inactive")
    if not hasher.verify(payload.current_password, user.get("password_hash", "")):
        raise ValidationFailed("Current password is incorrect")
    db[USERS].update_one(
        {"_id": user["_id"]},
        {"$set": {"password_hash": hasher.hash(payload.new_password), "updated_at": utcnow()}},
    )
    logger.info("Password changed for user %s", user["_id"])
    return {"message": "Password updated"}
