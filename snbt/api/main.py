import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager

from snbt.config import settings, setup_logging
from snbt.api.routes.app_routes import app_router
from snbt.api.routes.auth_routes import auth_router
from snbt.api.routes.exercise_routes import exercise_router
from snbt.api.routes.result_routes import results_router
from snbt.core.clock import SystemClock
from snbt.core.errors import (
    AggregationFailure, IllegalTransition, MalformedQuestionData, QuestionNotFound,
    SessionNotFound, TransientStoreError
)
from snbt.core.session import SessionRegistry
from snbt.core.timer import InMemoryAnchorStore
from snbt.db.database import close_client, get_database, init_indexes
from snbt.store.mongo import MongoSimulationStore
from snbt.worker.tasks import enqueue_aggregation

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    TransientStoreError: 503,
    AggregationFailure: 503,
    MalformedQuestionData: 422,
    QuestionNotFound: 404,
    SessionNotFound: 404,
    IllegalTransition: 409,
}


def _error_handler(status_code: int):
    async def handler(request: Request, exc: Exception):
        if status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc}")
        return JSONResponse(status_code=status_code, content={"detail": str(exc)})
    return handler


def create_app(store=None, anchors: InMemoryAnchorStore | None = None, clock=None) -> FastAPI:
    """Build the API. Without a store the app connects to MongoDB on startup."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # startup
        setup_logging()
        owns_db = store is None
        if owns_db:
            db = get_database()
            await init_indexes(db)
            app.state.store = MongoSimulationStore(db)
        else:
            app.state.store = store
        app.state.registry = SessionRegistry(
            store=app.state.store,
            anchors=anchors if anchors is not None else InMemoryAnchorStore(),
            clock=clock or SystemClock(),
            tick_interval_s=settings.TICK_INTERVAL_SECONDS,
            on_aggregation_failure=enqueue_aggregation,
        )
        yield
        # shutdown
        app.state.registry.shutdown()
        if owns_db:
            await close_client()

    app = FastAPI(title=settings.APP_NAME, lifespan=lifespan, root_path=settings.ROOT_PATH)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # change in production, take from env
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    for exc_type, status_code in ERROR_STATUS.items():
        app.add_exception_handler(exc_type, _error_handler(status_code))

    app.include_router(app_router)
    app.include_router(exercise_router)
    app.include_router(auth_router)
    app.include_router(results_router)

    @app.get("/health")
    def health():
        return {"status": "ok"}

    return app


app = create_app()
