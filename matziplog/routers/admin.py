from typing import Optional

from fastapi import APIRouter
from pydantic import Field

from matziplog.database import to_obj_id
from matziplog.dependencies import DB
from matziplog.moderation import list_reports, transition_report
from matziplog.queries import ListingParams
from matziplog.schemas import CamelModel, ReportStatus
from matziplog.security import AdminUser
from matziplog.serializers import serialize_report
from matziplog.stats import dashboard_stats

router = APIRouter()


class ReportStatusRequest(CamelModel):
    new_status: ReportStatus = Field(..., alias="newStatus")


@router.get("/stats")
def admin_stats(_admin: AdminUser, db: DB):
    return dashboard_stats(db)


@router.get("/reports")
def admin_list_reports(
    _admin: AdminUser,
    db: DB,
    status: Optional[ReportStatus] = None,
    page: Optional[str] = None,
    limit: Optional[str] = None,
):
    params = ListingParams(page=page, limit=limit)
    result = list_reports(db, status, params.page_number, params.page_size)
    return {
        "reports": result.items,
        "totalPages": result.total_pages,
        "currentPage": result.page,
        "totalCount": result.total_count,
    }


@router.put("/reports/{report_id}")
def admin_update_report(report_id: str, payload: ReportStatusRequest, admin: AdminUser, db: DB):
    doc = transition_report(db, to_obj_id(report_id), payload.new_status, admin)
    return serialize_report(doc)
