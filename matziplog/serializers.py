"""Turn stored documents into the camelCase JSON the front end consumes.

Password hashes never leave this module: ``sanitize_user`` builds its output
from an allow-list of fields.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Mapping, Optional

from bson import ObjectId
from pymongo.database import Database

from matziplog.database import USERS


def iso(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat().replace("+00:00", "Z")


def oid_str(value: Any) -> Optional[str]:
    return str(value) if value is not None else None


def sanitize_user(doc: Mapping[str, Any]) -> Dict[str, Any]:
    if not doc:
        return doc
    return {
        "id": oid_str(doc.get("_id")),
        "email": doc.get("email"),
        "displayName": doc.get("display_name", ""),
        "phoneNumber": doc.get("phone_number", ""),
        "role": doc.get("role", "user"),
        "isActive": doc.get("is_active", True),
        "loginAttempts": doc.get("login_attempts", 0),
        "lastLoginAt": iso(doc.get("last_login_at")),
        "createdAt": iso(doc.get("created_at")),
        "updatedAt": iso(doc.get("updated_at")),
    }


def user_summary(doc: Optional[Mapping[str, Any]]) -> Optional[Dict[str, Any]]:
    if not doc:
        return None
    return {
        "id": oid_str(doc.get("_id")),
        "email": doc.get("email"),
        "displayName": doc.get("display_name", ""),
    }


def load_user_summaries(db: Database, user_ids: Iterable[ObjectId]) -> Dict[ObjectId, Dict[str, Any]]:
    """Fetch display summaries for a batch of user ids in one query."""
    ids = list({uid for uid in user_ids if uid is not None})
    if not ids:
        return {}
    cursor = db[USERS].find({"_id": {"$in": ids}}, {"email": 1, "display_name": 1})
    return {u["_id"]: user_summary(u) for u in cursor}


def _owner_ref(owner: Any, users: Optional[Mapping[ObjectId, Dict[str, Any]]]) -> Any:
    if users is None:
        return oid_str(owner)
    return users.get(owner) or {"id": oid_str(owner), "email": None, "displayName": ""}


def serialize_comment(doc: Mapping[str, Any], users: Optional[Mapping[ObjectId, Dict[str, Any]]] = None) -> Dict[str, Any]:
    return {
        "id": oid_str(doc.get("_id")),
        "text": doc.get("text"),
        "owner": _owner_ref(doc.get("owner"), users),
        "createdAt": iso(doc.get("created_at")),
        "updatedAt": iso(doc.get("updated_at")),
    }


def serialize_photo(doc: Mapping[str, Any], users: Optional[Mapping[ObjectId, Dict[str, Any]]] = None) -> Dict[str, Any]:
    comments = doc.get("comments") or []
    likes = doc.get("likes") or []
    location = doc.get("location") or {}
    return {
        "id": oid_str(doc.get("_id")),
        "owner": _owner_ref(doc.get("owner"), users),
        "name": doc.get("name"),
        "memo": doc.get("memo", ""),
        "location": {
            "address": location.get("address"),
            "lat": location.get("lat"),
            "lng": location.get("lng"),
        },
        "rating": doc.get("rating"),
        "imageUrl": doc.get("image_url"),
        "tags": list(doc.get("tags") or []),
        "visited": doc.get("visited", True),
        "isPublic": doc.get("is_public", False),
        "priceRange": doc.get("price_range"),
        "visitedDate": iso(doc.get("visited_date")),
        "comments": [serialize_comment(c, users) for c in comments],
        "likes": [oid_str(u) for u in likes],
        "likeCount": len(likes),
        "commentCount": len(comments),
        "createdAt": iso(doc.get("created_at")),
        "updatedAt": iso(doc.get("updated_at")),
    }


def serialize_photos(db: Database, docs: Iterable[Mapping[str, Any]]) -> list:
    """Serialize a batch with photo and comment owners as user summaries."""
    docs = list(docs)
    ids = []
    for d in docs:
        ids.append(d.get("owner"))
        ids.extend(c.get("owner") for c in d.get("comments") or [])
    users = load_user_summaries(db, ids)
    return [serialize_photo(d, users) for d in docs]


def serialize_report(
    doc: Mapping[str, Any],
    reporter: Optional[Dict[str, Any]] = None,
    target_title: Optional[str] = None,
) -> Dict[str, Any]:
    return {
        "id": oid_str(doc.get("_id")),
        "reporter": reporter if reporter is not None else oid_str(doc.get("reporter")),
        "targetType": doc.get("target_type"),
        "targetId": oid_str(doc.get("target_id")),
        "targetPhotoId": oid_str(doc.get("target_photo_id")),
        "targetTitle": target_title,
        "reason": doc.get("reason"),
        "status": doc.get("status"),
        "resolvedBy": oid_str(doc.get("resolved_by")),
        "resolvedAt": iso(doc.get("resolved_at")),
        "createdAt": iso(doc.get("created_at")),
        "updatedAt": iso(doc.get("updated_at")),
    }
