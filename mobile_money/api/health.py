"""Liveness endpoint."""

from fastapi import APIRouter

from mobile_money.config import settings

router = APIRouter(tags=["health"])


@router.get("/health")
async def health():
    return {
        "status": "ok",
        "mode": "sandbox" if settings.simulate_payments else "production",
    }
