# backend/chat_api/db/init_db.py
from __future__ import annotations

import logging

from sqlalchemy.engine import Engine

from chat_api.db.base import Base
from chat_api.db.session import engine

# model modules must be imported so the tables are registered on Base.metadata
from chat_api import models  # noqa: F401

logger = logging.getLogger(__name__)


def init_db(bind: Engine | None = None) -> None:
    target = bind or engine
    Base.metadata.create_all(bind=target)
    logger.info("Database schema ready (%s)", target.url.render_as_string(hide_password=True))
