from fastapi import APIRouter

from app.core.config import settings

router = APIRouter()

@router.get("/health", summary="Health Check", description="Report liveness and whether the Coze workflow is configured.")
async def health_check():
    return {
        "status": "healthy",
        "workflow_configured": bool(settings.coze_api_token and settings.coze_workflow_id),
    }
