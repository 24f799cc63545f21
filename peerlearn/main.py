"""PeerLearn FastAPI application."""

import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app

from peerlearn import __version__
from peerlearn.config import Settings, get_settings
from peerlearn.database import close_db
from peerlearn.errors import WorkflowError
from peerlearn.logging_config import (
    bind_request_context,
    clear_request_context,
    configure_logging,
    get_logger,
)
from peerlearn.redis import close_redis, get_redis, init_redis
from peerlearn.services.activity_service import ActivityLog
from peerlearn.services.challenge_service import ChallengeService
from peerlearn.services.feedback_service import FeedbackService
from peerlearn.services.progress_service import ProgressService
from peerlearn.services.teachback_service import TeachbackService
from peerlearn.store import DocumentStore, create_store

logger = get_logger(__name__)


def create_app(
    settings: Settings | None = None,
    store: DocumentStore | None = None,
) -> FastAPI:
    """Build the app. Pass ``store`` to run against an existing document store."""
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Open the store, Redis and the activity writer; close them on shutdown."""
        configure_logging(
            level=settings.log_level,
            json_format=settings.json_logs,
            service_name=settings.service_name,
        )

        logger.info("starting_store_init", backend=settings.store_backend if store is None else "injected")
        app_store = store if store is not None else await create_store(settings)
        await init_redis(settings.redis_url)

        activity = ActivityLog(
            app_store,
            redis_getter=get_redis,
            maxsize=settings.activity_queue_size,
        )
        activity.start()

        app.state.store = app_store
        app.state.activity_log = activity
        app.state.challenge_service = ChallengeService(app_store, activity, settings)
        app.state.teachback_service = TeachbackService(app_store, activity, settings)
        app.state.feedback_service = FeedbackService(app_store, activity, settings)
        app.state.progress_service = ProgressService(app_store, activity, settings)

        logger.info("application_started", version=__version__)
        yield

        logger.info("shutting_down")
        await activity.stop()
        await close_redis()
        if store is None:
            await app_store.close()
            if settings.store_backend == "sql":
                await close_db()
        logger.info("shutdown_complete")

    app = FastAPI(
        title="PeerLearn",
        description="Peer learning: challenges, teach-backs and peer feedback",
        version=__version__,
        debug=settings.debug,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def add_request_id(request: Request, call_next):
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
        bind_request_context(request_id, method=request.method, path=request.url.path)
        try:
            response = await call_next(request)
        finally:
            clear_request_context()
        response.headers["X-Request-ID"] = request_id
        return response

    @app.exception_handler(WorkflowError)
    async def workflow_error_handler(request: Request, exc: WorkflowError):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.error_type, "detail": exc.message},
        )

    # Mount Prometheus metrics
    app.mount("/metrics", make_asgi_app())

    from peerlearn.routes.activity import router as activity_router
    from peerlearn.routes.challenges import router as challenges_router
    from peerlearn.routes.feedback import router as feedback_router
    from peerlearn.routes.profiles import router as profiles_router
    from peerlearn.routes.teachbacks import router as teachbacks_router

    app.include_router(challenges_router)
    app.include_router(teachbacks_router)
    app.include_router(feedback_router)
    app.include_router(activity_router)
    app.include_router(profiles_router)

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "ok", "service": settings.service_name}

    return app


app = create_app()
