from contextlib import asynccontextmanager
from fastapi import FastAPI
from storefront.api.routers import public_routers
from storefront.background_workers.reservation_sweeper import ReservationSweeper
from storefront.cache._cache import close_redis_client
from storefront.common.constants import API_VERSION, VERSION_PREFIX
from storefront.common.custom_exceptions import register_all_exceptions
from storefront.common.logging_setup import get_logger, setup_logging, stop_logging
from storefront.config.admin_config import admin_config
from storefront.config.settings import config_settings
from storefront.db.connection import async_engine, async_session
from storefront.middlewares.auth_middleware import AuthenticationMiddleware
from storefront.middlewares.body_size_middleware import BodySizeLimitMiddleware
from storefront.middlewares.request_id_middleware import RequestIdMiddleware

logger = get_logger("storefront.app")


@asynccontextmanager
async def app_lifespan(app: FastAPI):
    setup_logging()
    logger.info("app.startup", extra={"env": admin_config.ENV, "service": admin_config.SERVICE_NAME})

    sweeper = None
    if config_settings.ENABLE_RESERVATION_SWEEPER:
        sweeper = ReservationSweeper(
            async_session,
            poll_interval=config_settings.RESERVATION_SWEEP_INTERVAL_SECONDS,
            batch_size=config_settings.RESERVATION_SWEEP_BATCH,
        )
        sweeper.start()
    app.state.reservation_sweeper = sweeper

    try:
        yield
    finally:
        # at this point new requests accept has been stopped already before calling shutdown
        if sweeper is not None:
            await sweeper.shutdown()
        # safe to dispose DB engine after workers exit
        await async_engine.dispose()
        await close_redis_client()
        logger.info("app.shutdown")
        stop_logging()


def create_app():
    app=FastAPI(
        title="Storefront",
        version=API_VERSION,
        lifespan=app_lifespan)

    app.include_router(public_routers)

    app.add_middleware(AuthenticationMiddleware,paths=[f"{VERSION_PREFIX}/health",
                                                       f"{VERSION_PREFIX}/discounts",
                                                       f"{VERSION_PREFIX}/payments/webhook",
                                                       "/docs",
                                                       "/openapi.json"])
    # size check runs before auth , inside the request id context
    app.add_middleware(BodySizeLimitMiddleware)
    app.add_middleware(RequestIdMiddleware)
    register_all_exceptions(app)

    return app

app=create_app()
