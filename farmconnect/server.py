# farmconnect/server.py (uvicorn farmconnect.server:app)

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from farmconnect.app_config import DEFAULT_JWT_SECRET, configure_logging, load_config
from farmconnect.errors import HTTP_STATUS, MarketplaceError
from farmconnect.mongo import init_mongo, is_mongo_enabled
from farmconnect.services.marketplace.crop_service import CropService
from farmconnect.services.marketplace.notification_service import NotificationService
from farmconnect.services.marketplace.orders_service import OrderService
from farmconnect.services.marketplace.system_notifications import LoggingSystemNotifier
from farmconnect.services.scheduler import init_scheduler, shutdown_scheduler
from farmconnect.store import DocumentStore, InMemoryDocumentStore
from farmconnect.store.mongo_store import MongoDocumentStore

logger = logging.getLogger(__name__)


def build_store(config: Dict[str, Any]) -> DocumentStore:
    if is_mongo_enabled(config):
        return MongoDocumentStore(init_mongo(config))
    logger.warning("Mongo disabled; using in-memory document store")
    return InMemoryDocumentStore()


def create_app(config: Optional[Dict[str, Any]] = None, store: Optional[DocumentStore] = None) -> FastAPI:
    config = config or load_config()
    configure_logging(config.get("LOG_LEVEL", "INFO"))
    if (config.get("JWT_SECRET_KEY") or DEFAULT_JWT_SECRET) == DEFAULT_JWT_SECRET:
        logger.warning("JWT_SECRET_KEY is not set; bearer tokens are signed with the public default key")

    store = store or build_store(config)
    crops = CropService(store, delete_delay=timedelta(hours=config.get("CROP_DELETE_DELAY_HOURS", 2)))
    notifications = NotificationService(store, mirror=LoggingSystemNotifier())
    orders = OrderService(
        store,
        crops,
        notifications,
        restore_stock_on_cancel=config.get("RESTORE_STOCK_ON_CANCEL", False),
        claim_lease=timedelta(minutes=config.get("CLAIM_LEASE_MINUTES", 5)),
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        scheduler = None
        if config.get("ENABLE_SCHEDULER"):
            scheduler = init_scheduler(crops, interval_minutes=config.get("CROP_SWEEP_INTERVAL_MINUTES", 10))
        yield
        if scheduler is not None:
            shutdown_scheduler(scheduler)

    app = FastAPI(title="FarmConnect Marketplace API", version="0.1.0", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.config = config
    app.state.store = store
    app.state.crop_service = crops
    app.state.notification_service = notifications
    app.state.order_service = orders

    @app.exception_handler(MarketplaceError)
    async def _marketplace_error(request: Request, exc: MarketplaceError):
        return JSONResponse(
            status_code=HTTP_STATUS.get(exc.code, 400),
            content={"ok": False, "error": exc.code, "detail": exc.message},
        )

    # --- include routers ---
    from farmconnect.api.notifications_api import router as notifications_router
    from farmconnect.api.orders_api import router as orders_router

    app.include_router(orders_router)
    app.include_router(notifications_router)

    # --- diagnostics ---
    @app.get("/_health")
    def _health():
        return {"ok": True, "service": "farmconnect", "ts": int(datetime.now(timezone.utc).timestamp())}

    return app


app = create_app()
