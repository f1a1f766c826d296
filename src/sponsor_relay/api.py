"""
FastAPI application for the sponsor relay.

Endpoints:
- /health - Health check
- /relay - Sponsor a raw signed transaction
- /balance/{address} - Native balance in ether
- /transactions/{address} - Recorded relay attempts for a sender
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Query

from .config import RelayConfig
from .pipeline import ALL_STATUSES, SponsorRelay
from .schemas import (
    BalanceResponse,
    HealthResponse,
    RelayRequest,
    RelayResponse,
    TransactionsResponse,
)

logger = logging.getLogger(__name__)


def create_app(
    config: RelayConfig | None = None,
    relay: SponsorRelay | None = None,
) -> FastAPI:
    """
    Create FastAPI application.

    Args:
        config: Relay configuration, used when no relay is given
        relay: Pre-built SponsorRelay (tests inject one)

    Returns:
        FastAPI application instance
    """
    if relay is None:
        if config is None:
            raise ValueError("Either config or relay is required")
        relay = SponsorRelay.from_config(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan handler."""
        # Startup
        await relay.start()
        logger.info("Sponsor relay started")

        yield

        # Shutdown
        await relay.close()
        logger.info("Sponsor relay stopped")

    app = FastAPI(
        title="Sponsor Relay",
        description="Relays sponsored raw transactions through the sponsor contract",
        version="1.0.0",
        lifespan=lifespan,
    )

    @app.get("/health", response_model=HealthResponse)
    async def health():
        """Health check endpoint."""
        return {"status": "healthy", "relayer": relay.relayer_address}

    @app.post("/relay", response_model=RelayResponse)
    async def relay_transaction(request: RelayRequest):
        """Run one raw transaction through the pipeline."""
        schema_valid, sponsored = await relay.relay(request.rawTransaction)
        return {"isValidSchema": schema_valid, "isSponsored": sponsored}

    @app.get("/balance/{address}", response_model=BalanceResponse)
    async def get_balance(address: str):
        """Native balance of an address, in ether."""
        try:
            balance = await relay.balance_of(address)
        except ValueError as e:
            raise HTTPException(400, str(e)) from e
        return {"address": address, "balance": balance}

    @app.get("/transactions/{address}", response_model=TransactionsResponse)
    async def get_transactions(
        address: str,
        status: str = ALL_STATUSES,
        lastTime: int = Query(0, ge=0),
        limit: int = Query(20, ge=1, le=100),
    ):
        """Recorded relay attempts for a sender, newest first."""
        try:
            transactions = await relay.history(address, status=status, before=lastTime, limit=limit)
        except ValueError as e:
            raise HTTPException(400, str(e)) from e
        return {"transactions": transactions}

    return app
