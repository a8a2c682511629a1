import time
import traceback
import uuid
from contextlib import asynccontextmanager
from os import environ

import logfire
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from granian import Granian
from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware

from coachlive import __version__
from coachlive.api.errors import app_error_handler, app_validation_exception_handler
from coachlive.api.routers import feedback, health, payment, realtime, session
from coachlive.api.utils import api_failure, init_logger, log_routes
from coachlive.api.webhooks import payment as payment_webhook
from coachlive.app_config import AppEnvironConfig, get_app_environ_config
from coachlive.config import config
from coachlive.domain.session.broadcaster import EventBroadcaster
from coachlive.domain.session.coordinator import SessionCoordinator
from coachlive.domain.session.roster import InMemoryRosterStore, MongoRosterStore, RosterStore
from coachlive.domain.session.store import InMemorySessionStore, MongoSessionStore, SessionStore
from coachlive.schemas import init_beanie_odm
from coachlive.services.event_transport import RedisEventTransport
from coachlive.services.integrations.livekit_service import LivekitService
from coachlive.services.integrations.payment_service import PaymentService
from coachlive.storage.mongo import get_mongo_client, get_mongo_manager, hide_password
from coachlive.storage.redis import get_redis_manager
from coachlive.utils.app_errors import AppError, AppErrorCode


class HTTPLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):  # type: ignore
        start_time = time.time()
        request_id = str(uuid.uuid4())[:8]

        logger.info(f"[{request_id}] {request.method} {request.url.path}")

        try:
            response = await call_next(request)

            process_time = (time.time() - start_time) * 1000
            logger.info(
                f"[{request_id}] {request.method} {request.url.path} - "
                f"Status: {response.status_code} - "
                f"Duration: {process_time:.2f}ms"
            )

            return response

        except Exception as exc:
            process_time = (time.time() - start_time) * 1000
            logger.error(
                f"[{request_id}] Unhandled exception in {request.method} {request.url.path} - "
                f"Duration: {process_time:.2f}ms - "
                f"Error: {type(exc).__name__}: {exc}\n"
                f"Traceback:\n{traceback.format_exc()}"
            )

            failure = api_failure(
                errcode=AppErrorCode.E_INTERNAL_ERROR.value,
                errmesg=f"Internal server error (request_id: {request_id})",
            )
            return ORJSONResponse(status_code=500, content=failure.model_dump())


async def build_stores(cfg: AppEnvironConfig) -> tuple[SessionStore, RosterStore]:
    if cfg.STORAGE_BACKEND == "mongo":
        client = get_mongo_client(cfg.MONGO_LABEL)
        database = client.get_default_database(default=cfg.MONGO_DB_NAME)
        mongo_url = hide_password(config.get_mongo_url(cfg.MONGO_LABEL))
        logger.info(f"Initializing Beanie on database {database.name} ({mongo_url})")
        await init_beanie_odm(database)
        return MongoSessionStore(), MongoRosterStore()

    logger.warning("STORAGE_BACKEND=memory: state lives in this process only")
    return InMemorySessionStore(), InMemoryRosterStore()


def build_broadcaster(cfg: AppEnvironConfig) -> tuple[EventBroadcaster, RedisEventTransport | None]:
    if cfg.EVENT_TRANSPORT == "redis":
        redis_client = get_redis_manager().get_client(cfg.REDIS_LABEL)
        transport = RedisEventTransport(redis_client)
        broadcaster = EventBroadcaster(max_queue_size=cfg.SUBSCRIBER_QUEUE_SIZE, transport=transport)
        transport.start(broadcaster)
        return broadcaster, transport

    return EventBroadcaster(max_queue_size=cfg.SUBSCRIBER_QUEUE_SIZE), None


@asynccontextmanager
async def lifespan(server: FastAPI):
    init_logger()
    cfg = get_app_environ_config()

    logger.info(
        f"Application startup (demo_mode={cfg.DEMO_MODE}, storage={cfg.STORAGE_BACKEND}, "
        f"events={cfg.EVENT_TRANSPORT})"
    )

    store, roster = await build_stores(cfg)
    broadcaster, transport = build_broadcaster(cfg)

    server.state.coordinator = SessionCoordinator(
        store=store,
        roster=roster,
        broadcaster=broadcaster,
        payment_provider=PaymentService(cfg),
        video_provisioner=LivekitService(cfg),
        max_capacity=cfg.MAX_SESSION_CAPACITY,
        default_currency=cfg.PAYMENT_CURRENCY,
    )

    log_routes(server)

    if cfg.LOGFIRE_ENABLE:
        logger.info("Logfire initializing")

        logfire.configure(
            token=cfg.LOGFIRE_TOKEN,
            service_name="coachlive",
            service_version=environ.get("BUILD_COMMIT") or __version__,
        )

        logger.info("Logfire instrument fastapi")
        logfire.instrument_fastapi(server, capture_headers=True)

        if cfg.STORAGE_BACKEND == "mongo":
            logger.info("Logfire instrument mongo")
            logfire.instrument_pymongo(capture_statement=cfg.DEBUG)

        logger.info("Logfire instrument pydantic")
        logfire.instrument_pydantic()

    yield

    logger.info("Application shutdown...")

    broadcaster.close_all()
    if transport is not None:
        await transport.stop()
    await get_redis_manager().close_all()
    await get_mongo_manager().close_all()


def create_app() -> FastAPI:
    cfg = get_app_environ_config()

    server = FastAPI(
        version=__version__,
        title="Coachlive API",
        docs_url="/docs" if cfg.DEBUG else None,
        redoc_url=None,
        openapi_url="/openapi.json" if cfg.DEBUG else None,
        default_response_class=ORJSONResponse,
        lifespan=lifespan,
    )

    server.add_middleware(HTTPLoggingMiddleware)
    server.add_middleware(
        CORSMiddleware,  # type: ignore
        allow_origins=cfg.API_CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    server.add_exception_handler(RequestValidationError, app_validation_exception_handler)  # type: ignore
    server.add_exception_handler(AppError, app_error_handler)  # type: ignore

    for module in (session, feedback, payment):
        server.include_router(module.router, prefix="/api/v1")
    server.include_router(payment_webhook.router)
    server.include_router(realtime.router)
    server.include_router(health.router)

    return server


app = create_app()


def build_granian_kwargs():
    cfg = get_app_environ_config()
    return {
        "interface": "asgi",
        "address": cfg.API_HOST,
        "port": cfg.API_PORT,
        "workers": cfg.API_WORKERS,
        "reload": cfg.DEBUG,
    }


if __name__ == "__main__":
    granian_kwargs = build_granian_kwargs()
    Granian("coachlive.main:app", **granian_kwargs).serve()
