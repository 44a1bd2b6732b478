"""
Mobile Money Payments — reference payments backend.

Serves the REST contract the payment session clients poll against:
initiation (sandbox simulation or provider push), status, cancellation,
provider confirmation callbacks and transaction history for the POS,
pharmacy, hospitality and bottle store modules.

Start the server:
    uvicorn mobile_money.main:app --reload
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from mobile_money.api.health import router as health_router
from mobile_money.api.payments import router as payments_router
from mobile_money.config import settings
from mobile_money.database import init_db

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize database on startup."""
    await init_db()
    yield


app = FastAPI(
    title="Mobile Money Payments",
    description=(
        "M-Pesa and e-Mola payment gateway for point-of-sale, pharmacy, hospitality "
        "and bottle store checkouts, with asynchronous provider confirmation, "
        "idempotent cancellation and an immutable audit trail."
    ),
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(health_router)
app.include_router(payments_router, prefix="/api")
