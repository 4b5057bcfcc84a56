"""
action_engine/main.py

Application entry: builds the engine from settings and serves the debug API.
"""
from contextlib import asynccontextmanager
from typing import Optional
import logging

from fastapi import FastAPI

from action_engine.config import Settings, settings as default_settings
from action_engine.database import create_db_engine, create_session_factory, init_db
from action_engine.engine.runtime import ActionEngine
from action_engine.logging_config import setup_logging
from action_engine.plugins import register_builtin_actions
from action_engine.routers import debug
from action_engine.stores import SqlMemoryLog, SqlStateStore

logger = logging.getLogger(__name__)


def build_engine(settings: Optional[Settings] = None) -> ActionEngine:
    """Engine with SQL-backed collaborators and the built-in actions registered."""
    settings = settings or default_settings
    db_engine = create_db_engine(settings.DATABASE_URL)
    init_db(db_engine)
    session_factory = create_session_factory(db_engine)

    engine = ActionEngine.from_settings(
        settings,
        state_store=SqlStateStore(session_factory),
        memory_log=SqlMemoryLog(session_factory),
    )
    register_builtin_actions(engine.registry)
    logger.info(f"Registered {len(engine.registry)} built-in actions")
    return engine


def create_app(engine: Optional[ActionEngine] = None, settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(settings.LOG_LEVEL)
        yield
        if engine is not None:
            engine.shutdown()

    app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)
    app.include_router(debug.router)
    if engine is not None:
        app.dependency_overrides[debug.get_engine] = lambda: engine
    return app
