"""
Producer Settlement — marketplace payout administration API.

Aggregates producers' order earnings into payout batches, drives each
batch through a guarded lifecycle (PENDING -> SCHEDULED -> PROCESSING ->
COMPLETED/FAILED), and binds completed payouts to a verified bank account.

Start the server:
    uvicorn settlement.main:app --reload
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from settlement.api.bank_accounts import router as bank_accounts_router
from settlement.api.health import router as health_router
from settlement.api.payouts import router as payouts_router
from settlement.api.producers import router as producers_router
from settlement.config import settings
from settlement.database import init_db

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
    title="Producer Settlement",
    description=(
        "Payout settlement for marketplace producers. Aggregates orders into payout "
        "batches, enforces a strict payout lifecycle, verifies producer bank accounts, "
        "and records every change in an immutable audit trail."
    ),
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(health_router)
app.include_router(payouts_router, prefix="/api")
app.include_router(producers_router, prefix="/api")
app.include_router(bank_accounts_router, prefix="/api")
