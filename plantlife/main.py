"""PlantLife FastAPI application."""

import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from plantlife.config import Settings, get_settings
from plantlife.database import close_db, init_db
from plantlife.exceptions import register_exception_handlers
from plantlife.logging_config import configure_logging, get_logger
from plantlife.middleware import RequestContextMiddleware
from plantlife.redis import PUSH, close_redis, init_redis
from plantlife.routes.auth import router as auth_router
from plantlife.routes.events import router as events_router
from plantlife.routes.moderation import router as moderation_router
from plantlife.routes.notifications import router as notifications_router
from plantlife.routes.posts import router as posts_router
from plantlife.routes.users import router as users_router
from plantlife.routes.verification import router as verification_router
from plantlife.services import Services, build_services
from plantlife.services.push import EventHub, RedisBroadcaster, relay_to_hub
from plantlife.storage import create_storage

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Connect the configured backends on startup, release them on shutdown."""
    settings: Settings = app.state.settings
    configure_logging(settings)

    if getattr(app.state, "services", None) is not None:
        # Services injected by the caller (tests, embedding).
        logger.info("application_started", storage=app.state.services.storage.name)
        yield
        return

    if settings.storage_backend == "sql":
        logger.info("starting_database_init")
        await init_db()
    redis_clients = await init_redis(settings)

    hub = EventHub()
    broadcaster = None
    relay = None
    if PUSH in redis_clients:
        push_redis = redis_clients[PUSH]
        broadcaster = RedisBroadcaster(push_redis, settings.push_channel)
        relay = asyncio.create_task(relay_to_hub(push_redis, settings.push_channel, hub))

    app.state.services = build_services(
        create_storage(settings), settings, hub=hub, broadcaster=broadcaster
    )
    logger.info(
        "application_started",
        storage=settings.storage_backend,
        push=settings.push_backend,
        skin=settings.product_skin,
    )
    yield

    logger.info("shutting_down")
    if relay is not None:
        relay.cancel()
        try:
            await relay
        except asyncio.CancelledError:
            pass
    await app.state.services.storage.close()
    await close_redis()
    if settings.storage_backend == "sql":
        await close_db()
    logger.info("shutdown_complete")


def create_app(settings: Settings | None = None, services: Services | None = None) -> FastAPI:
    settings = settings or get_settings()
    app = FastAPI(
        title="PlantLife",
        description="Social network for plant lovers, farmers and scientists",
        version=settings.service_version,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins.split(","),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestContextMiddleware)
    register_exception_handlers(app)

    app.include_router(auth_router)
    app.include_router(users_router)
    app.include_router(posts_router)
    app.include_router(notifications_router)
    app.include_router(verification_router)
    app.include_router(moderation_router)
    app.include_router(events_router)

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        current = app.state.services
        return {
            "status": "ok",
            "service": settings.service_name,
            "storage": current.storage.name if current else None,
            "skin": settings.product_skin,
        }

    return app


app = create_app()
