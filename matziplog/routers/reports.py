from typing import Optional

from fastapi import APIRouter, status
from pydantic import Field

from matziplog.database import maybe_obj_id, to_obj_id
from matziplog.dependencies import DB
from matziplog.moderation import create_report
from matziplog.schemas import CamelModel, TargetType
from matziplog.security import AuthUser
from matziplog.serializers import serialize_report

router = APIRouter()


class CreateReportRequest(CamelModel):
    target_type: TargetType = Field(..., alias="targetType")
    target_id: str = Field(..., alias="targetId")
    target_photo_id: Optional[str] = Field(None, alias="targetPhotoId")
    reason: str = Field(..., min_length=5, max_length=500)


@router.post("", status_code=status.HTTP_201_CREATED)
def file_report(payload: CreateReportRequest, current_user: AuthUser, db: DB):
    doc = create_report(
        db,
        current_user,
        target_type=payload.target_type,
        target_id=to_obj_id(payload.target_id),
        target_photo_id=maybe_obj_id(payload.target_photo_id),
        reason=payload.reason,
    )
    return serialize_report(doc)
