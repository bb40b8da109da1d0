"""
Database Schemas for Matzip-Log

MongoDB collections are defined below using Pydantic models. Each class name is
converted to lowercase for the collection name (User -> "user").

We will use these collections:
- user: accounts (role "user" or "admin")
- photo: restaurant records, with comments and likes embedded
- report: moderation reports against photos or comments

Comments are not a collection of their own; they live in photo.comments.
"""

from datetime import date, datetime, timezone
from enum import Enum
from typing import List, Literal, Optional

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, Field

Role = Literal["admin", "user"]


def utcnow() -> datetime:
    """Naive UTC timestamp, the form pymongo hands back on reads."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class PriceRange(str, Enum):
    ONE = "$"
    TWO = "$$"
    THREE = "$$$"
    FOUR = "$$$$"


class TargetType(str, Enum):
    PHOTO = "Photo"
    COMMENT = "Comment"


class ReportStatus(str, Enum):
    PENDING = "Pending"
    RESOLVED = "Resolved"
    DISMISSED = "Dismissed"


class Document(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True, use_enum_values=True, validate_default=True)

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class User(Document):
    email: str = Field(..., description="Lower-cased, unique")
    password_hash: str = Field(..., description="BCrypt hash of password")
    display_name: str = Field("", max_length=60)
    phone_number: str = Field("", max_length=30)
    role: Role = Field("user")
    is_active: bool = Field(True)
    login_attempts: int = Field(0, ge=0)
    last_login_at: Optional[datetime] = None


class Location(BaseModel):
    address: str = Field(..., min_length=1, max_length=300)
    lat: Optional[float] = Field(None, ge=-90, le=90)
    lng: Optional[float] = Field(None, ge=-180, le=180)


class Comment(Document):
    model_config = ConfigDict(arbitrary_types_allowed=True, populate_by_name=True)

    id: ObjectId = Field(default_factory=ObjectId, alias="_id")
    text: str = Field(..., min_length=1, max_length=500)
    owner: ObjectId = Field(..., description="Reference to user _id")


class Photo(Document):
    owner: ObjectId = Field(..., description="Reference to user _id, immutable")
    name: str = Field(..., min_length=1, max_length=100)
    memo: str = Field("", max_length=2000)
    location: Location
    rating: int = Field(..., ge=1, le=5)
    image_url: str = Field(..., min_length=1)
    tags: List[str] = Field(default_factory=list)
    visited: bool = Field(True, description="True: visited, False: want to go")
    is_public: bool = Field(False)
    price_range: Optional[PriceRange] = None
    visited_date: Optional[datetime] = None
    comments: List[Comment] = Field(default_factory=list)
    likes: List[ObjectId] = Field(default_factory=list)


class Report(Document):
    reporter: ObjectId = Field(..., description="Reference to user _id")
    target_type: TargetType
    target_id: ObjectId
    target_photo_id: ObjectId = Field(..., description="Photo holding the target")
    reason: str = Field(..., min_length=5, max_length=500)
    status: ReportStatus = Field(ReportStatus.PENDING)
    resolved_by: Optional[ObjectId] = None
    resolved_at: Optional[datetime] = None


def as_datetime(value: Optional[date]) -> Optional[datetime]:
    """BSON stores datetimes only, so calendar dates are widened to midnight."""
    if value is None or isinstance(value, datetime):
        return value
    return datetime(value.year, value.month, value.day)


class CamelModel(BaseModel):
    """Base for request bodies, which arrive with camelCase keys."""

    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)
