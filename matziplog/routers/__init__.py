from matziplog.routers.admin import router as admin_router
from matziplog.routers.auth import router as auth_router
from matziplog.routers.photos import router as photos_router
from matziplog.routers.reports import router as reports_router
from matziplog.routers.users import router as users_router

__all__ = [
    "admin_router",
    "auth_router",
    "photos_router",
    "reports_router",
    "users_router",
]
