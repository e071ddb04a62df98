"""REST API module for the card market.

This module provides HTTP endpoints for:
- Browsing listings and quoting purchase totals
- Creating, changing, retiring, re-offering, returning and buying offers
- Pausing the market, fee administration, roles and logic upgrades
- Real-time market events via WebSocket
"""

import logging
from typing import Any, Dict, Optional
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from auth import TokenManager
from database.exceptions import DatabaseError
from market import Marketplace, MarketError
from market.deployment import open_marketplace
from .errors import market_error_handler, database_error_handler

logger = logging.getLogger(__name__)

def create_app(
    marketplace: Optional[Marketplace] = None,
    token_manager: Optional[TokenManager] = None,
    settings: Optional[Dict[str, Any]] = None
) -> FastAPI:
    """Build the API application.

    Anything not passed in is built from settings.conf on startup.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Handle startup and shutdown events."""
        logger.info("Initializing API...")
        opened_storage = False
        conf = settings
        if marketplace is None or token_manager is None:
            if conf is None:
                from config import get_settings
                conf = get_settings()

        if marketplace is None:
            app.state.marketplace = await open_marketplace(conf)
            opened_storage = True
        else:
            app.state.marketplace = marketplace

        if token_manager is None:
            app.state.token_manager = TokenManager(conf['jwt_secret'], conf['token_expiry_days'])
        else:
            app.state.token_manager = token_manager

        app.state.connections.attach(app.state.marketplace.events)
        logger.info(f"Market running {app.state.marketplace.implementation}")

        yield

        logger.info("Shutting down API...")
        app.state.connections.detach()
        if opened_storage and conf['storage'] == 'postgres':
            from database import close as db_close
            await db_close()

    app = FastAPI(
        title="Card Market API",
        description="REST API for the non-custodial card market",
        version="1.0.0",
        lifespan=lifespan
    )

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(MarketError, market_error_handler)
    app.add_exception_handler(DatabaseError, database_error_handler)

    from .market import router as market_router
    from .admin import router as admin_router
    from .websockets import router as websocket_router, ConnectionManager

    app.state.connections = ConnectionManager()
    app.include_router(market_router)
    app.include_router(admin_router)
    app.include_router(websocket_router)

    @app.get("/")
    async def root():
        return {"name": app.title, "version": app.version}

    return app

app = create_app()
