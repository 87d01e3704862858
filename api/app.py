"""Application composition root.

Every component is built once in build_container() and passed explicitly
to whatever needs it. create_app() wires the routes and middleware and ties
the cleanup job to the app lifespan.

Environment:
    APP_ENV        development | test | production (default development)
    CACHE_BACKEND  memory | valkey (default valkey in production, else memory)
    LOG_LEVEL      default INFO
Secrets (database URL, Valkey URL, JWT secret, SMS gateway) come from Vault.
"""

import logging
import os
from contextlib import asynccontextmanager
from dataclasses import dataclass

from fastapi import FastAPI

from api.base import success_response
from api.catalog import create_catalog_router
from api.errors import register_error_handlers
from api.middleware import RequestIDMiddleware
from api.users import create_users_router
from auth.api import create_auth_router
from auth.config import AuthConfig
from auth.database import AuthDatabase
from auth.otp import OTPStore
from auth.rate_limiter import RateLimiter
from auth.security_logger import SecurityLogger
from auth.security_middleware import AuthMiddleware
from auth.service import AuthService
from auth.session import SessionManager
from auth.tokens import TokenIssuer
from clients.cache import CacheClient, create_cache
from clients.errors import StoreError
from clients.postgres_client import PostgresClient
from clients.sms_client import SmsGatewayClient
from clients.vault_client import (
    get_database_url,
    get_jwt_secret,
    get_sms_config,
    get_valkey_url,
)
from core.services.category_service import CategoryService
from core.services.listing_service import ListingService
from core.services.user_service import UserService
from jobs.cleanup import CleanupJob
from utils.logging_config import configure_logging

logger = logging.getLogger(__name__)


@dataclass
class Container:
    """Long-lived application components."""

    config: AuthConfig
    cache: CacheClient
    postgres: PostgresClient
    rate_limiter: RateLimiter
    otp_store: OTPStore
    token_issuer: TokenIssuer
    session_manager: SessionManager
    security_logger: SecurityLogger
    auth_service: AuthService
    user_service: UserService
    category_service: CategoryService
    listing_service: ListingService
    cleanup_job: CleanupJob

    @property
    def services(self) -> dict:
        return {
            "user": self.user_service,
            "category": self.category_service,
            "listing": self.listing_service,
        }


def wire(
    config: AuthConfig,
    cache: CacheClient,
    postgres: PostgresClient,
    sms_client: SmsGatewayClient | None = None,
) -> Container:
    """Construct every component from its infrastructure."""
    auth_db = AuthDatabase(postgres)
    user_service = UserService(postgres)
    category_service = CategoryService(postgres)
    listing_service = ListingService(postgres, user_service, category_service)

    rate_limiter = RateLimiter(cache, config)
    otp_store = OTPStore(auth_db, cache, rate_limiter, config, sms_client)
    token_issuer = TokenIssuer(config)
    session_manager = SessionManager(auth_db, cache, user_service, config)
    security_logger = SecurityLogger(postgres)

    auth_service = AuthService(
        config=config,
        otp_store=otp_store,
        token_issuer=token_issuer,
        session_manager=session_manager,
        user_service=user_service,
        security_logger=security_logger,
    )

    return Container(
        config=config,
        cache=cache,
        postgres=postgres,
        rate_limiter=rate_limiter,
        otp_store=otp_store,
        token_issuer=token_issuer,
        session_manager=session_manager,
        security_logger=security_logger,
        auth_service=auth_service,
        user_service=user_service,
        category_service=category_service,
        listing_service=listing_service,
        cleanup_job=CleanupJob(
            otp_store,
            session_manager,
            listing_service,
            interval_minutes=config.cleanup_interval_minutes,
        ),
    )


def build_container() -> Container:
    """Build components from environment and Vault."""
    environment = os.getenv("APP_ENV", "development")
    config = AuthConfig(environment=environment, jwt_secret=get_jwt_secret())

    backend = os.getenv(
        "CACHE_BACKEND", "valkey" if config.is_production else "memory"
    )
    cache = create_cache(backend, get_valkey_url() if backend == "valkey" else None)
    postgres = PostgresClient(get_database_url())

    sms_client = None
    if config.is_production:
        sms_client = SmsGatewayClient(**get_sms_config())

    logger.info(f"Components built for {environment} (cache: {backend})")
    return wire(config, cache, postgres, sms_client)


def create_app(container: Container | None = None) -> FastAPI:
    """FastAPI app with auth, user and catalog routes."""
    configure_logging(os.getenv("LOG_LEVEL", "INFO"))
    container = container or build_container()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await container.cleanup_job.start()
        try:
            yield
        finally:
            await container.cleanup_job.stop()
            container.cache.close()
            container.postgres.close()

    app = FastAPI(title="Marketplace Mandi", lifespan=lifespan)
    app.state.container = container

    # Added last runs first: request ID is set before authentication
    app.add_middleware(AuthMiddleware, auth_service=container.auth_service)
    app.add_middleware(RequestIDMiddleware)
    register_error_handlers(app)

    app.include_router(
        create_auth_router(container.auth_service, container.rate_limiter, container.config),
        prefix="/auth",
    )
    app.include_router(create_users_router(container.services), prefix="/api")
    app.include_router(create_catalog_router(container.services), prefix="/api")

    def cache_reachable() -> bool:
        try:
            return container.cache.ping()
        except StoreError:
            return False

    @app.get("/health")
    async def health():
        checks = {
            "cache": cache_reachable(),
            "database": container.postgres.ping(),
        }
        status = "ok" if all(checks.values()) else "degraded"
        return success_response({"status": status, **checks}).model_dump(mode="json")

    return app
