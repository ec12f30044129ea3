# opsdesk/api/v1/endpoints/health.py
from fastapi import APIRouter
from sqlalchemy import text
from loguru import logger

from opsdesk.core import database

router = APIRouter()

@router.get("/")
async def health():
    db_status = "uninitialized"
    if database.AsyncSessionLocal is not None:
        try:
            async with database.AsyncSessionLocal() as session:
                await session.execute(text("SELECT 1"))
            db_status = "connected"
        except Exception as e:
            logger.error(f"Health check database query failed: {e}")
            db_status = "disconnected"
    return {
        "status": "healthy" if db_status == "connected" else "degraded",
        "service": "opsdesk",
        "database": db_status,
    }
