"""FastAPI dependencies resolving the handles stored on ``app.state``."""

from typing import Annotated

from fastapi import Depends, Request
from pymongo.database import Database

from matziplog.config import Settings
from matziplog.storage import ImageStorage, get_storage


def get_db(request: Request) -> Database:
    return request.app.state.db


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


DB = Annotated[Database, Depends(get_db)]
AppSettings = Annotated[Settings, Depends(get_app_settings)]
Storage = Annotated[ImageStorage, Depends(get_storage)]
