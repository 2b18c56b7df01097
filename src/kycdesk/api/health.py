"""
kycdesk/api/health.py — Health check.

GET /api/v1/health — доступность PostgreSQL (в режиме memory store — degraded).
"""

from fastapi import APIRouter

from kycdesk.database import check_connection

router = APIRouter(tags=["health"])


@router.get("/health", summary="Health check KYC Desk")
async def health():
    db_ok = await check_connection()
    return {
        "status": "healthy" if db_ok else "degraded",
        "database": "connected" if db_ok else "disconnected",
        "service": "kycdesk",
    }
