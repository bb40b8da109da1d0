"""Password hashing, bearer tokens and the request guards built on them.

``get_current_user`` trusts a token once its signature and expiry check out;
it does not go back to the user collection. Handlers that must see the
current account state (e.g. ``/auth/me``) re-read it themselves.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Annotated, Any, Dict, Optional

from bson import ObjectId
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from pydantic import BaseModel

from matziplog.config import Settings
from matziplog.errors import Forbidden, Unauthenticated

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


class CurrentUser(BaseModel):
    """Claims carried by a verified bearer token."""

    id: str
    role: str
    email: str

    @property
    def oid(self) -> ObjectId:
        return ObjectId(self.id)

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


class PasswordHasher:
    def __init__(self, rounds: int = 10):
        self._context = CryptContext(
            schemes=["bcrypt"],
            deprecated="auto",
            bcrypt__rounds=rounds,
        )

    def hash(self, password: str) -> str:
        return self._context.hash(password)

    def verify(self, password: str, hashed: str) -> bool:
        if not hashed:
            return False
        try:
            return self._context.verify(password, hashed)
        except ValueError:
            logger.warning("Stored password hash could not be parsed")
            return False


class TokenService:
    def __init__(self, secret: str, algorithm: str = "HS256", expire_days: int = 7):
        self._secret = secret
        self._algorithm = algorithm
        self._expires = timedelta(days=expire_days)

    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenService":
        return cls(
            secret=settings.jwt_secret.get_secret_value(),
            algorithm=settings.jwt_algorithm,
            expire_days=settings.jwt_expire_days,
        )

    def create_access_token(self, user: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
        expire = datetime.now(timezone.utc) + (expires_delta or self._expires)
        to_encode = {
            "sub": str(user["_id"]),
            "role": user.get("role", "user"),
            "email": user.get("email", ""),
            "exp": expire,
        }
        return jwt.encode(to_encode, self._secret, algorithm=self._algorithm)

    def decode(self, token: str) -> CurrentUser:
        try:
            payload = jwt.decode(token, self._secret, algorithms=[self._algorithm])
        except JWTError as e:
            raise Unauthenticated("Invalid or expired token", error=str(e))
        user_id = payload.get("sub")
        if not user_id or not ObjectId.is_valid(user_id):
            raise Unauthenticated("Invalid or expired token")
        return CurrentUser(
            id=user_id,
            role=payload.get("role", "user"),
            email=payload.get("email", ""),
        )


def get_password_hasher(request: Request) -> PasswordHasher:
    return request.app.state.password_hasher


def get_token_service(request: Request) -> TokenService:
    return request.app.state.token_service


def get_current_user(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(bearer_scheme)],
    tokens: Annotated[TokenService, Depends(get_token_service)],
) -> CurrentUser:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise Unauthenticated("Missing or malformed Authorization header")
    if not credentials.credentials:
        raise Unauthenticated("No token provided")
    return tokens.decode(credentials.credentials)


def require_role(*roles: str):
    def role_dep(current_user: Annotated[CurrentUser, Depends(get_current_user)]) -> CurrentUser:
        if current_user.role not in roles:
            raise Forbidden("Insufficient permissions: administrators only")
        return current_user
    return role_dep


def owned_by(resource_id: ObjectId, current_user: CurrentUser) -> Dict[str, Any]:
    """Filter matching a resource only when the caller owns it.

    A miss is reported as "not found" so other users' ids cannot be probed.
    """
    return {"_id": resource_id, "owner": current_user.oid}


def visible_to(resource_id: ObjectId, current_user: CurrentUser) -> Dict[str, Any]:
    """Filter matching a photo that is public or owned by the caller."""
    return {
        "_id": resource_id,
        "$or": [{"is_public": True}, {"owner": current_user.oid}],
    }


AuthUser = Annotated[CurrentUser, Depends(get_current_user)]
AdminUser = Annotated[CurrentUser, Depends(require_role("admin"))]
PasswordService = Annotated[PasswordHasher, Depends(get_password_hasher)]
TokenDep = Annotated[TokenService, Depends(get_token_service)]
