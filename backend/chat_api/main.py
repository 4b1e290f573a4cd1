from __future__ import annotations

import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from chat_api.api.routes.auth import router as auth_router
from chat_api.api.routes.groups import router as groups_router
from chat_api.api.routes.messages import router as messages_router
from chat_api.api.routes.users import router as users_router
from chat_api.core.config import settings
from chat_api.core.errors import register_exception_handlers
from chat_api.core.logging_config import configure_logging
from chat_api.db.init_db import init_db
from chat_api.db.session import get_db
from chat_api.middleware.request_logger import RequestLoggerMiddleware


def create_app(create_tables: bool = True) -> FastAPI:
    configure_logging(settings.LOG_LEVEL)
    started = time.monotonic()

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        if create_tables:
            init_db()
        yield

    app = FastAPI(title=settings.app_name, version="0.1.0", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggerMiddleware)

    register_exception_handlers(app)

    app.include_router(auth_router)
    app.include_router(users_router)
    app.include_router(groups_router)
    app.include_router(messages_router)

    @app.get("/health", tags=["health"])
    def health(db: Session = Depends(get_db)):
        try:
            db.execute(text("SELECT 1"))
            database_status = "up"
        except SQLAlchemyError:
            database_status = "down"

        return {
            "status": "ok" if database_status == "up" else "degraded",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "uptime": f"{int(time.monotonic() - started)}s",
            "database": {"status": database_status},
        }

    return app


app = create_app()
