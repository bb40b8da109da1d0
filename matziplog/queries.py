"""Filter, sort and pagination building for the listing endpoints.

Each listing turns its request parameters into a ``ListingQuery``: a MongoDB
filter, a sort specification and a skip/limit window. Running the query
returns the page plus the pre-pagination total.

Every sort ends with ``created_at`` descending and then ``_id`` descending,
so records with equal primary keys always come back in the same order.
"""

import math
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from bson import ObjectId
from pymongo import ASCENDING, DESCENDING
from pymongo.collection import Collection

from matziplog.schemas import PriceRange

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 12
DEFAULT_SORT = "latest"

SortSpec = List[Tuple[str, int]]

_NEWEST_FIRST: SortSpec = [("created_at", DESCENDING), ("_id", DESCENDING)]

SORT_PRESETS: Dict[str, SortSpec] = {
    "latest": _NEWEST_FIRST,
    "rating_desc": [("rating", DESCENDING)] + _NEWEST_FIRST,
    "rating_asc": [("rating", ASCENDING)] + _NEWEST_FIRST,
    "name_asc": [("name", ASCENDING)] + _NEWEST_FIRST,
    "price_asc": [("price_range", ASCENDING)] + _NEWEST_FIRST,
    "price_desc": [("price_range", DESCENDING)] + _NEWEST_FIRST,
}

SEARCH_FIELDS = ("name", "location.address", "memo", "tags")


def _positive_int(value: Any, default: int) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    return number if number >= 1 else default


def _parse_bool(value: Optional[str]) -> Optional[bool]:
    if value == "true":
        return True
    if value == "false":
        return False
    return None


def _parse_price_range(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    try:
        return PriceRange(value).value
    except ValueError:
        return None


@dataclass
class ListingParams:
    """Raw listing parameters as they arrive on the query string."""

    search: Optional[str] = None
    tag: Optional[str] = None
    visited: Optional[str] = None
    price_range: Optional[str] = None
    sort: Optional[str] = None
    page: Any = None
    limit: Any = None

    @property
    def page_number(self) -> int:
        return _positive_int(self.page, DEFAULT_PAGE)

    @property
    def page_size(self) -> int:
        return _positive_int(self.limit, DEFAULT_LIMIT)


@dataclass
class ListingQuery:
    filter: Dict[str, Any]
    sort: SortSpec = field(default_factory=lambda: list(_NEWEST_FIRST))
    page: int = DEFAULT_PAGE
    limit: int = DEFAULT_LIMIT

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.limit


@dataclass
class Page:
    items: List[Dict[str, Any]]
    total_count: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return page_count(self.total_count, self.limit)


def page_count(total: int, limit: int) -> int:
    return math.ceil(total / limit) if limit else 0


def resolve_sort(sort: Optional[str]) -> SortSpec:
    """Map a sort preset name to a sort spec; unknown names get the default."""
    return list(SORT_PRESETS.get(sort or DEFAULT_SORT, SORT_PRESETS[DEFAULT_SORT]))


def search_clause(term: str) -> Dict[str, Any]:
    """Case-insensitive substring match over name, address, memo and tags."""
    pattern = re.escape(term)
    return {"$or": [{f: {"$regex": pattern, "$options": "i"}} for f in SEARCH_FIELDS]}


def build_photo_filter(base: Dict[str, Any], params: ListingParams) -> Dict[str, Any]:
    """Layer the optional filters on top of a non-overridable base filter."""
    q: Dict[str, Any] = {}
    search = (params.search or "").strip()
    if search:
        q.update(search_clause(search))
    tag = (params.tag or "").strip()
    if tag:
        q["tags"] = tag
    visited = _parse_bool(params.visited)
    if visited is not None:
        q["visited"] = visited
    price_range = _parse_price_range(params.price_range)
    if price_range is not None:
        q["price_range"] = price_range
    # base keys are applied last so no parameter can replace them
    q.update(base)
    return q


def my_records_query(owner_id: ObjectId, params: ListingParams) -> ListingQuery:
    return ListingQuery(
        filter=build_photo_filter({"owner": owner_id}, params),
        sort=resolve_sort(params.sort),
        page=params.page_number,
        limit=params.page_size,
    )


def public_feed_query(params: ListingParams) -> ListingQuery:
    return ListingQuery(
        filter=build_photo_filter({"is_public": True}, params),
        sort=resolve_sort(params.sort),
        page=params.page_number,
        limit=params.page_size,
    )


def public_profile_query(owner_id: ObjectId) -> Dict[str, Any]:
    return {"owner": owner_id, "is_public": True}


def user_list_sort() -> SortSpec:
    return list(_NEWEST_FIRST)


USER_PROJECTION = {"password_hash": 0}


def run_listing(collection: Collection, query: ListingQuery, projection: Optional[Dict[str, Any]] = None) -> Page:
    total = collection.count_documents(query.filter)
    cursor = (
        collection.find(query.filter, projection)
        .sort(query.sort)
        .skip(query.skip)
        .limit(query.limit)
    )
    return Page(items=list(cursor), total_count=total, page=query.page, limit=query.limit)
