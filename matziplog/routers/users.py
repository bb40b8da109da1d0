import logging
from typing import Any, Dict, Optional

from bson import ObjectId
from fastapi import APIRouter
from pydantic import Field
from pymongo import ReturnDocument
from pymongo.database import Database

from matziplog.database import PHOTOS, REPORTS, USERS, to_obj_id
from matziplog.dependencies import DB
from matziplog.errors import NotFound, ValidationFailed
from matziplog.queries import USER_PROJECTION, user_list_sort
from matziplog.schemas import CamelModel, Role, utcnow
from matziplog.security import AdminUser, AuthUser
from matziplog.serializers import sanitize_user

logger = logging.getLogger(__name__)

router = APIRouter()


class UpdateUserRequest(CamelModel):
    display_name: Optional[str] = Field(None, max_length=60, alias="displayName")
    role: Optional[Role] = None
    is_active: Optional[bool] = Field(None, alias="isActive")


def delete_user_cascade(db: Database, user_id: ObjectId) -> Dict[str, int]:
    """Delete an account and everything it owns.

    Photos owned by the user go with it; their comments and likes on other
    photos are pulled, and reports they filed are removed. Reports about
    their content stay behind pointing at ids that no longer resolve. These
    are separate writes, so a failure part way leaves the rest in place.
    """
    photos = db[PHOTOS].delete_many({"owner": user_id}).deleted_count
    db[PHOTOS].update_many({"comments.owner": user_id}, {"$pull": {"comments": {"owner": user_id}}})
    db[PHOTOS].update_many({"likes": user_id}, {"$pull": {"likes": user_id}})
    reports = db[REPORTS].delete_many({"reporter": user_id}).deleted_count
    db[USERS].delete_one({"_id": user_id})
    logger.info("Deleted user %s with %d photos and %d reports", user_id, photos, reports)
    return {"photos": photos, "reports": reports}


@router.get("")
def list_users(_admin: AdminUser, db: DB):
    users = db[USERS].find({}, USER_PROJECTION).sort(user_list_sort())
    return [sanitize_user(u) for u in users]


@router.delete("/me")
def delete_me(current_user: AuthUser, db: DB):
    if not db[USERS].find_one({"_id": current_user.oid}, {"_id": 1}):
        raise NotFound("User not found")
    delete_user_cascade(db, current_user.oid)
    return {"message": "Your account has been deleted"}


@router.put("/{user_id}")
def update_user(user_id: str, payload: UpdateUserRequest, admin: AdminUser, db: DB):
    uid = to_obj_id(user_id)
    user = db[USERS].find_one({"_id": uid})
    if not user:
        raise NotFound("User not found")

    demoting = payload.role is not None and payload.role != "admin"
    deactivating = payload.is_active is False
    if uid == admin.oid and user.get("role") == "admin" and (demoting or deactivating):
        if db[USERS].count_documents({"role": "admin", "is_active": True}) <= 1:
            raise ValidationFailed("The only active administrator cannot demote or deactivate themselves")

    updates: Dict[str, Any] = {}
    if payload.display_name is not None:
        updates["display_name"] = payload.display_name
    if payload.role is not None:
        updates["role"] = payload.role
    if payload.is_active is not None:
        updates["is_active"] = payload.is_active
        if payload.is_active:
            # unlocking also clears the failed-login counter
            updates["login_attempts"] = 0
    updates["updated_at"] = utcnow()

    user = db[USERS].find_one_and_update(
        {"_id": uid},
        {"$set": updates},
        return_document=ReturnDocument.AFTER,
    )
    logger.info("Admin %s updated user %s: %s", admin.id, user_id, sorted(updates))
    return sanitize_user(user)


@router.delete("/{user_id}")
def delete_user(user_id: str, admin: AdminUser, db: DB):
    uid = to_obj_id(user_id)
    if uid == admin.oid:
        raise ValidationFailed("Administrators cannot delete their own account here")
    if not db[USERS].find_one({"_id": uid}, {"_id": 1}):
        raise NotFound("User not found")
    delete_user_cascade(db, uid)
    return {"message": "User deleted"}
