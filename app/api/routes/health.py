"""
Health API Routes
"""
from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from app.config import settings
from app.database import check_database_connection, database_health

router = APIRouter()


@router.get("/health")
async def health_check() -> JSONResponse:
    """Application and database health"""
    db = database_health()
    ok = bool(db.get("ok")) and check_database_connection()
    return JSONResponse(
        status_code=status.HTTP_200_OK if ok else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "healthy" if ok else "degraded",
            "database": db,
            "integrations": {
                "stripe": bool(settings.stripe_secret_key),
                "stripe_webhook": bool(settings.stripe_webhook_secret),
                "supabase_admin": bool(settings.supabase_url and settings.supabase_service_role_key),
            },
        },
    )
