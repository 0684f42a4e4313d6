import os

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CollectorRegistry
from prometheus_fastapi_instrumentator import Instrumentator
from slowapi import Limiter
from slowapi.util import get_remote_address
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy import inspect

from .config import settings
from .db import Base, SessionLocal
from .errors import register_error_handlers
from .logging import setup_logging, RequestIdMiddleware
from .auth.router import router as auth_router
from .routes.feedback import router as feedback_router
from .routes.municipalities import router as municipalities_router
from .routes.users import router as users_router
from .routes.subscriptions import router as subscriptions_router
from .routes.analytics import router as analytics_router
from .routes.notifications import router as notifications_router


log = structlog.get_logger(__name__)


def create_app(session_factory=None) -> FastAPI:
    setup_logging()
    app = FastAPI(title=settings.app_name)
    app.state.session_factory = session_factory or SessionLocal

    # Middlewares
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    limiter = Limiter(key_func=get_remote_address, default_limits=[settings.rate_limit])
    app.state.limiter = limiter
    app.add_middleware(SlowAPIMiddleware)

    register_error_handlers(app)

    # Routers
    for router in (
        auth_router,
        feedback_router,
        municipalities_router,
        users_router,
        subscriptions_router,
        analytics_router,
        notifications_router,
    ):
        app.include_router(router, prefix=settings.api_prefix)

    @app.get("/")
    def root():
        return {"name": settings.app_name, "status": "ok", "api": settings.api_prefix}

    # Metrics; one registry per app so several apps can live in one process
    Instrumentator(registry=CollectorRegistry()).instrument(app).expose(app)

    @app.on_event("startup")
    def _startup():
        if not settings.auto_create_db:
            return
        # Ensure local SQLite directory exists
        if settings.database_url.startswith("sqlite:///./"):
            os.makedirs("var", exist_ok=True)
        bind = app.state.session_factory.kw["bind"]
        missing = set(Base.metadata.tables.keys()) - set(inspect(bind).get_table_names())
        if missing:
            log.info("creating_tables", tables=sorted(missing))
            Base.metadata.create_all(bind=bind)

    return app


app = create_app()
