"""FastAPI application factory for the Matzip-Log API.

The Mongo client, settings, password hasher, token service and image store
are built (or injected) here and hung off ``app.state``; routers reach them
through the dependencies in ``matziplog.dependencies``.
"""

import logging
import sys
from contextlib import asynccontextmanager
from functools import lru_cache
from typing import AsyncGenerator, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from pymongo import MongoClient
from pymongo.database import Database

from matziplog import __version__
from matziplog.config import Settings, get_settings
from matziplog.database import USERS, connect, create_document, ensure_indexes, get_database
from matziplog.dependencies import DB
from matziplog.errors import setup_exception_handlers
from matziplog.routers import (
    admin_router,
    auth_router,
    photos_router,
    reports_router,
    users_router,
)
from matziplog.schemas import User as UserSchema
from matziplog.security import PasswordHasher, TokenService
from matziplog.storage import UPLOADS_MOUNT, ImageStorage, LocalImageStorage, build_storage

API_PREFIX = "/api"


@lru_cache(maxsize=1)
def _configure_logging(level_name: str) -> None:
    log_level = getattr(logging, level_name.upper(), logging.INFO)
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stdout,
        force=True,
    )
    logging.getLogger("matziplog").setLevel(log_level)

    # Quiet down noisy third-party loggers
    logging.getLogger("pymongo").setLevel(logging.WARNING)
    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("passlib").setLevel(logging.WARNING)


logger = logging.getLogger(__name__)


def bootstrap_admin(db: Database, settings: Settings, hasher: PasswordHasher) -> bool:
    """Create the configured administrator if no admin exists yet."""
    if not settings.admin_email or not settings.admin_password:
        return False
    if db[USERS].count_documents({"role": "admin"}) > 0:
        return False
    email = settings.admin_email.lower()
    if db[USERS].find_one({"email": email}):
        db[USERS].update_one({"email": email}, {"$set": {"role": "admin", "is_active": True}})
        logger.info("Promoted existing user %s to admin", email)
        return True
    create_document(
        db,
        USERS,
        UserSchema(
            email=email,
            password_hash=hasher.hash(settings.admin_password.get_secret_value()),
            display_name="Administrator",
            role="admin",
        ),
    )
    logger.info("Created bootstrap admin %s", email)
    return True


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    logger.info("Starting %s API v%s...", app.state.settings.app_name, __version__)
    ensure_indexes(app.state.db)
    bootstrap_admin(app.state.db, app.state.settings, app.state.password_hasher)
    yield
    logger.info("Shutting down, closing MongoDB client")
    app.state.mongo_client.close()


def create_app(
    settings: Optional[Settings] = None,
    mongo_client: Optional[MongoClient] = None,
    storage: Optional[ImageStorage] = None,
) -> FastAPI:
    """Create and configure the application.

    ``mongo_client`` and ``storage`` may be injected (tests pass an
    in-memory client); otherwise they are built from the settings.
    """
    if settings is None:
        settings = get_settings()
    _configure_logging(settings.log_level)

    app = FastAPI(
        title=f"{settings.app_name} API",
        version=__version__,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
        lifespan=lifespan,
    )

    client = mongo_client if mongo_client is not None else connect(settings)
    app.state.settings = settings
    app.state.mongo_client = client
    app.state.db = get_database(client, settings)
    app.state.password_hasher = PasswordHasher(rounds=settings.bcrypt_rounds)
    app.state.token_service = TokenService.from_settings(settings)
    app.state.storage = storage if storage is not None else build_storage(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    setup_exception_handlers(app)

    app.include_router(auth_router, prefix=f"{API_PREFIX}/auth", tags=["Auth"])
    app.include_router(photos_router, prefix=f"{API_PREFIX}/photos", tags=["Photos"])
    app.include_router(reports_router, prefix=f"{API_PREFIX}/reports", tags=["Reports"])
    app.include_router(users_router, prefix=f"{API_PREFIX}/users", tags=["Users"])
    app.include_router(admin_router, prefix=f"{API_PREFIX}/admin", tags=["Admin"])

    if isinstance(app.state.storage, LocalImageStorage):
        app.mount(UPLOADS_MOUNT, StaticFiles(directory=app.state.storage.root), name="uploads")

    @app.get("/", tags=["Info"])
    def root():
        return {"message": f"{settings.app_name} API running", "version": __version__}

    @app.get("/health", tags=["Info"])
    def health(db: DB):
        try:
            db.command("ping")
            collections = db.list_collection_names()
        except Exception as e:
            logger.warning("Database health check failed: %s", e)
            return {"backend": "ok", "database": f"error: {e}"}
        return {"backend": "ok", "database": "ok", "collections": sorted(collections)}

    return app
