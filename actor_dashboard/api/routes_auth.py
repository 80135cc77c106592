from fastapi import APIRouter, Depends

from actor_dashboard.api.dependencies import get_service
from actor_dashboard.api.schemas import ApiKeyRequest
from actor_dashboard.services.dashboard import DashboardService

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/validate")
def validate_api_key(body: ApiKeyRequest, service: DashboardService = Depends(get_service)):
    result = service.authenticate(body.apiKey)
    return {
        "success": True,
        "sessionId": result.session.token,
        "user": result.user.to_dict(),
        "actors": [a.to_dict() for a in result.actors],
    }
