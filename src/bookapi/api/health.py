"""
bookapi/api/health.py: Health check endpoint.

GET /api/v1/health: reports credential store connectivity.
"""

from fastapi import APIRouter, Request

router = APIRouter(tags=["health"])


@router.get("/health", summary="Service health check")
async def health(request: Request):
    """``degraded`` when running on the in-memory store or the DB is down."""
    database = getattr(request.app.state, "database", None)
    db_ok = await database.check() if database is not None else False
    return {
        "status": "healthy" if db_ok else "degraded",
        "database": "connected" if db_ok else "disconnected",
        "store": "postgres" if database is not None else "memory",
        "service": "bookapi",
    }
