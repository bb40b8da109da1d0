import json
import logging
from datetime import date
from typing import Annotated, Any, Dict, List, Optional

from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile, status
from pydantic import Field, ValidationError, field_validator
from pymongo import DESCENDING, ReturnDocument

from matziplog.database import PHOTOS, USERS, create_document, to_obj_id
from matziplog.dependencies import DB, AppSettings, Storage
from matziplog.errors import NotFound, ValidationFailed, validation_message
from matziplog.queries import (
    ListingParams,
    my_records_query,
    public_feed_query,
    public_profile_query,
    run_listing,
)
from matziplog.schemas import (
    CamelModel,
    Comment,
    Location,
    Photo as PhotoSchema,
    PriceRange,
    as_datetime,
    utcnow,
)
from matziplog.security import AuthUser, owned_by, visible_to
from matziplog.serializers import (
    load_user_summaries,
    serialize_comment,
    serialize_photos,
    user_summary,
)
from matziplog.storage import store_upload

logger = logging.getLogger(__name__)

router = APIRouter()


def parse_tags(raw: Any) -> List[str]:
    """Decode the JSON-encoded tag list sent with multipart forms.

    Entries are trimmed and blanks dropped. Duplicates are kept as sent.
    """
    if raw is None or raw == "":
        return []
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError:
            raise ValueError("tags must be a JSON array of strings")
    if not isinstance(raw, list) or not all(isinstance(t, str) for t in raw):
        raise ValueError("tags must be a JSON array of strings")
    return [t.strip() for t in raw if t.strip()]


class PhotoChanges(CamelModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    address: Optional[str] = Field(None, min_length=1, max_length=300)
    lat: Optional[float] = Field(None, ge=-90, le=90)
    lng: Optional[float] = Field(None, ge=-180, le=180)
    rating: Optional[int] = Field(None, ge=1, le=5)
    memo: Optional[str] = Field(None, max_length=2000)
    tags: Optional[List[str]] = None
    visited: Optional[bool] = None
    is_public: Optional[bool] = Field(None, alias="isPublic")
    price_range: Optional[PriceRange] = Field(None, alias="priceRange")
    visited_date: Optional[date] = Field(None, alias="visitedDate")

    @field_validator("tags", mode="before")
    @classmethod
    def _parse_tags(cls, v: Any) -> List[str]:
        return parse_tags(v)


class PhotoFields(PhotoChanges):
    name: str = Field(..., min_length=1, max_length=100)
    address: str = Field(..., min_length=1, max_length=300)
    rating: int = Field(..., ge=1, le=5)
    memo: str = Field("", max_length=2000)
    tags: List[str] = Field(default_factory=list)
    visited: bool = True
    is_public: bool = Field(False, alias="isPublic")


class CommentRequest(CamelModel):
    text: str = Field(..., min_length=1, max_length=500)


def _validate_form(model, raw: Dict[str, Optional[str]]):
    # blank form fields arrive as None here; see _blank_clears for updates
    data = {key: value for key, value in raw.items() if value is not None}
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise ValidationFailed(validation_message(e.errors()))


# update fields that are cleared, not ignored, when sent blank
_BLANK_CLEARS = {
    "memo": ("memo", ""),
    "tags": ("tags", []),
    "priceRange": ("price_range", None),
    "visitedDate": ("visited_date", None),
    "lat": ("location.lat", None),
    "lng": ("location.lng", None),
}


async def sent_form_fields(request: Request) -> Dict[str, str]:
    """Text fields of the submitted form exactly as sent, blanks included."""
    form = await request.form()
    return {key: value for key, value in form.items() if isinstance(value, str)}


def _blank_clears(sent: Dict[str, str]) -> Dict[str, Any]:
    return {
        path: cleared
        for field, (path, cleared) in _BLANK_CLEARS.items()
        if field in sent and not sent[field].strip()
    }


def _listing_response(db, page) -> Dict[str, Any]:
    return {
        "photos": serialize_photos(db, page.items),
        "totalPages": page.total_pages,
        "currentPage": page.page,
        "totalCount": page.total_count,
    }


@router.get("")
def list_my_photos(
    current_user: AuthUser,
    db: DB,
    search: Optional[str] = None,
    tag: Optional[str] = None,
    visited: Optional[str] = None,
    price_range: Optional[str] = Query(None, alias="priceRange"),
    sort: Optional[str] = None,
    page: Optional[str] = None,
    limit: Optional[str] = None,
):
    params = ListingParams(search, tag, visited, price_range, sort, page, limit)
    result = run_listing(db[PHOTOS], my_records_query(current_user.oid, params))
    return _listing_response(db, result)


@router.get("/feed")
def public_feed(
    current_user: AuthUser,
    db: DB,
    search: Optional[str] = None,
    tag: Optional[str] = None,
    visited: Optional[str] = None,
    price_range: Optional[str] = Query(None, alias="priceRange"),
    sort: Optional[str] = None,
    page: Optional[str] = None,
    limit: Optional[str] = None,
):
    params = ListingParams(search, tag, visited, price_range, sort, page, limit)
    result = run_listing(db[PHOTOS], public_feed_query(params))
    return _listing_response(db, result)


@router.get("/public/{user_id}")
def public_profile(user_id: str, db: DB):
    owner_id = to_obj_id(user_id)
    user = db[USERS].find_one({"_id": owner_id, "is_active": True})
    if not user:
        raise NotFound("User not found")
    cursor = db[PHOTOS].find(public_profile_query(owner_id)).sort([("created_at", DESCENDING), ("_id", DESCENDING)])
    return {
        "photos": serialize_photos(db, cursor),
        "user": user_summary(user),
    }


@router.get("/{photo_id}")
def get_photo(photo_id: str, current_user: AuthUser, db: DB):
    photo = db[PHOTOS].find_one(visible_to(to_obj_id(photo_id), current_user))
    if not photo:
        raise NotFound("Photo not found")
    return serialize_photos(db, [photo])[0]


@router.post("", status_code=status.HTTP_201_CREATED)
def create_photo(
    current_user: AuthUser,
    db: DB,
    storage: Storage,
    settings: AppSettings,
    name: Optional[str] = Form(None),
    address: Optional[str] = Form(None),
    lat: Optional[str] = Form(None),
    lng: Optional[str] = Form(None),
    rating: Optional[str] = Form(None),
    memo: Optional[str] = Form(None),
    tags: Optional[str] = Form(None),
    visited: Optional[str] = Form(None),
    is_public: Optional[str] = Form(None, alias="isPublic"),
    price_range: Optional[str] = Form(None, alias="priceRange"),
    visited_date: Optional[str] = Form(None, alias="visitedDate"),
    image: Optional[UploadFile] = File(None),
):
    fields = _validate_form(
        PhotoFields,
        {
            "name": name,
            "address": address,
            "lat": lat,
            "lng": lng,
            "rating": rating,
            "memo": memo,
            "tags": tags,
            "visited": visited,
            "isPublic": is_public,
            "priceRange": price_range,
            "visitedDate": visited_date,
        },
    )
    if image is None or not image.filename:
        raise ValidationFailed("An image file is required")
    image_url = store_upload(storage, image, settings.max_upload_bytes)

    photo = PhotoSchema(
        owner=current_user.oid,
        name=fields.name,
        memo=fields.memo,
        location=Location(address=fields.address, lat=fields.lat, lng=fields.lng),
        rating=fields.rating,
        image_url=image_url,
        tags=fields.tags,
        visited=fields.visited,
        is_public=fields.is_public,
        price_range=fields.price_range,
        visited_date=as_datetime(fields.visited_date),
    )
    doc = create_document(db, PHOTOS, photo)
    logger.info("User %s created photo %s", current_user.id, doc["_id"])
    return serialize_photos(db, [doc])[0]


@router.put("/{photo_id}")
def update_photo(
    photo_id: str,
    current_user: AuthUser,
    db: DB,
    storage: Storage,
    settings: AppSettings,
    sent: Annotated[Dict[str, str], Depends(sent_form_fields)],
    name: Optional[str] = Form(None),
    address: Optional[str] = Form(None),
    lat: Optional[str] = Form(None),
    lng: Optional[str] = Form(None),
    rating: Optional[str] = Form(None),
    memo: Optional[str] = Form(None),
    tags: Optional[str] = Form(None),
    visited: Optional[str] = Form(None),
    is_public: Optional[str] = Form(None, alias="isPublic"),
    price_range: Optional[str] = Form(None, alias="priceRange"),
    visited_date: Optional[str] = Form(None, alias="visitedDate"),
    image: Optional[UploadFile] = File(None),
):
    pid = to_obj_id(photo_id)
    changes = _validate_form(
        PhotoChanges,
        {
            "name": name,
            "address": address,
            "lat": lat,
            "lng": lng,
            "rating": rating,
            "memo": memo,
            "tags": tags,
            "visited": visited,
            "isPublic": is_public,
            "priceRange": price_range,
            "visitedDate": visited_date,
        },
    )
    if not db[PHOTOS].find_one(owned_by(pid, current_user), {"_id": 1}):
        raise NotFound("Photo not found")

    update: Dict[str, Any] = {}
    for key, value in changes.model_dump(exclude_unset=True).items():
        if key in ("address", "lat", "lng"):
            update[f"location.{key}"] = value
        elif key == "visited_date":
            update[key] = as_datetime(value)
        elif key == "price_range":
            update[key] = value.value if value is not None else None
        else:
            update[key] = value
    update.update(_blank_clears(sent))
    if image is not None and image.filename:
        update["image_url"] = store_upload(storage, image, settings.max_upload_bytes)
    update["updated_at"] = utcnow()

    doc = db[PHOTOS].find_one_and_update(
        owned_by(pid, current_user),
        {"$set": update},
        return_document=ReturnDocument.AFTER,
    )
    if doc is None:
        raise NotFound("Photo not found")
    logger.info("User %s updated photo %s", current_user.id, pid)
    return serialize_photos(db, [doc])[0]


@router.delete("/{photo_id}")
def delete_photo(photo_id: str, current_user: AuthUser, db: DB):
    res = db[PHOTOS].delete_one(owned_by(to_obj_id(photo_id), current_user))
    if res.deleted_count == 0:
        raise NotFound("Photo not found")
    logger.info("User %s deleted photo %s", current_user.id, photo_id)
    return {"message": "Photo deleted"}


@router.post("/{photo_id}/like")
def toggle_like(photo_id: str, current_user: AuthUser, db: DB):
    pid = to_obj_id(photo_id)
    photo = db[PHOTOS].find_one(visible_to(pid, current_user), {"likes": 1})
    if not photo:
        raise NotFound("Photo not found")
    liked = current_user.oid in (photo.get("likes") or [])
    op = "$pull" if liked else "$addToSet"
    doc = db[PHOTOS].find_one_and_update(
        {"_id": pid},
        {op: {"likes": current_user.oid}},
        projection={"likes": 1},
        return_document=ReturnDocument.AFTER,
    )
    if doc is None:
        raise NotFound("Photo not found")
    return {"liked": not liked, "likeCount": len(doc.get("likes") or [])}


@router.post("/{photo_id}/comments", status_code=status.HTTP_201_CREATED)
def add_comment(photo_id: str, payload: CommentRequest, current_user: AuthUser, db: DB):
    pid = to_obj_id(photo_id)
    comment = Comment(text=payload.text, owner=current_user.oid).model_dump(by_alias=True)
    res = db[PHOTOS].update_one(visible_to(pid, current_user), {"$push": {"comments": comment}})
    if res.matched_count == 0:
        raise NotFound("Photo not found")
    users = load_user_summaries(db, [current_user.oid])
    return serialize_comment(comment, users)


def _comment_filter(pid, cid, current_user) -> Dict[str, Any]:
    return {"_id": pid, "comments": {"$elemMatch": {"_id": cid, "owner": current_user.oid}}}


@router.put("/{photo_id}/comments/{comment_id}")
def edit_comment(photo_id: str, comment_id: str, payload: CommentRequest, current_user: AuthUser, db: DB):
    pid, cid = to_obj_id(photo_id), to_obj_id(comment_id)
    if not db[PHOTOS].find_one(_comment_filter(pid, cid, current_user), {"_id": 1}):
        raise NotFound("Comment not found")
    doc = db[PHOTOS].find_one_and_update(
        {"_id": pid, "comments._id": cid},
        {"$set": {"comments.$.text": payload.text, "comments.$.updated_at": utcnow()}},
        projection={"comments": 1},
        return_document=ReturnDocument.AFTER,
    )
    comment = next((c for c in (doc or {}).get("comments", []) if c["_id"] == cid), None)
    if comment is None:
        raise NotFound("Comment not found")
    return serialize_comment(comment, load_user_summaries(db, [current_user.oid]))


@router.delete("/{photo_id}/comments/{comment_id}")
def delete_comment(photo_id: str, comment_id: str, current_user: AuthUser, db: DB):
    pid, cid = to_obj_id(photo_id), to_obj_id(comment_id)
    res = db[PHOTOS].update_one(
        _comment_filter(pid, cid, current_user),
        {"$pull": {"comments": {"_id": cid, "owner": current_user.oid}}},
    )
    if res.matched_count == 0:
        raise NotFound("Comment not found")
    return {"message": "Comment deleted"}
