"""Report lifecycle: creation, admin listing and status transitions.

A report starts ``Pending`` and moves once, to ``Resolved`` or
``Dismissed``. Both are terminal. Resolving a report changes only the
report; the reported photo or comment is left in place.
"""

import logging
from typing import Any, Dict, Optional

from bson import ObjectId
from pymongo import DESCENDING, ReturnDocument
from pymongo.database import Database

from matziplog.database import PHOTOS, REPORTS, create_document
from matziplog.errors import NotFound, ValidationFailed
from matziplog.queries import ListingQuery, Page, run_listing
from matziplog.schemas import Report, ReportStatus, TargetType, utcnow
from matziplog.security import CurrentUser, visible_to
from matziplog.serializers import load_user_summaries, serialize_report

logger = logging.getLogger(__name__)

TRANSITIONS: Dict[ReportStatus, frozenset] = {
    ReportStatus.PENDING: frozenset({ReportStatus.RESOLVED, ReportStatus.DISMISSED}),
    ReportStatus.RESOLVED: frozenset(),
    ReportStatus.DISMISSED: frozenset(),
}


def can_transition(current: ReportStatus, new: ReportStatus) -> bool:
    return new in TRANSITIONS[current]


def is_terminal(status: ReportStatus) -> bool:
    return not TRANSITIONS[status]


def create_report(
    db: Database,
    reporter: CurrentUser,
    target_type: TargetType,
    target_id: ObjectId,
    target_photo_id: Optional[ObjectId],
    reason: str,
) -> Dict[str, Any]:
    """File a report against a photo or a comment the reporter can see."""
    if target_type == TargetType.PHOTO:
        target_photo_id = target_id
    elif target_photo_id is None:
        raise ValidationFailed("targetPhotoId is required when reporting a comment")

    photo = db[PHOTOS].find_one(visible_to(target_photo_id, reporter), {"comments": 1})
    if not photo:
        raise NotFound("Reported photo not found")
    if target_type == TargetType.COMMENT and not any(c.get("_id") == target_id for c in photo.get("comments") or []):
        raise NotFound("Reported comment not found")

    report = Report(
        reporter=reporter.oid,
        target_type=target_type,
        target_id=target_id,
        target_photo_id=target_photo_id,
        reason=reason,
    )
    doc = create_document(db, REPORTS, report)
    logger.info(
        "Report %s filed by %s against %s %s",
        doc["_id"],
        reporter.id,
        doc["target_type"],
        target_id,
    )
    return doc


def _target_title(photo: Optional[Dict[str, Any]], report: Dict[str, Any]) -> Optional[str]:
    """Photo name or comment text; None once the target is gone."""
    if not photo:
        return None
    if report.get("target_type") == TargetType.PHOTO.value:
        return photo.get("name")
    for comment in photo.get("comments") or []:
        if comment.get("_id") == report.get("target_id"):
            return comment.get("text")
    return None


def list_reports(
    db: Database,
    status: Optional[ReportStatus],
    page: int,
    limit: int,
) -> Page:
    """Newest-first page of reports with targets resolved at query time."""
    q: Dict[str, Any] = {}
    if status is not None:
        q["status"] = status.value
    query = ListingQuery(
        filter=q,
        sort=[("created_at", DESCENDING), ("_id", DESCENDING)],
        page=page,
        limit=limit,
    )
    result = run_listing(db[REPORTS], query)

    photo_ids = list({r["target_photo_id"] for r in result.items})
    photos = {
        p["_id"]: p
        for p in db[PHOTOS].find({"_id": {"$in": photo_ids}}, {"name": 1, "comments": 1})
    } if photo_ids else {}
    reporters = load_user_summaries(db, (r.get("reporter") for r in result.items))

    result.items = [
        serialize_report(
            r,
            reporter=reporters.get(r.get("reporter")),
            target_title=_target_title(photos.get(r["target_photo_id"]), r),
        )
        for r in result.items
    ]
    return result


def transition_report(
    db: Database,
    report_id: ObjectId,
    new_status: ReportStatus,
    admin: CurrentUser,
) -> Dict[str, Any]:
    """Move a pending report to a terminal status.

    The update is conditional on the report still being pending, so two
    admins acting at once cannot both transition it.
    """
    if not can_transition(ReportStatus.PENDING, new_status):
        raise ValidationFailed("newStatus must be Resolved or Dismissed")

    now = utcnow()
    updated = db[REPORTS].find_one_and_update(
        {"_id": report_id, "status": ReportStatus.PENDING.value},
        {
            "$set": {
                "status": new_status.value,
                "resolved_by": admin.oid,
                "resolved_at": now,
                "updated_at": now,
            }
        },
        return_document=ReturnDocument.AFTER,
    )
    if updated is None:
        existing = db[REPORTS].find_one({"_id": report_id}, {"status": 1})
        if existing is None:
            raise NotFound("Report not found")
        raise ValidationFailed(f"Report has already been processed ({existing['status']})")

    logger.info("Report %s marked %s by admin %s", report_id, new_status.value, admin.id)
    return updated


def count_pending(db: Database) -> int:
    return db[REPORTS].count_documents({"status": ReportStatus.PENDING.value})
