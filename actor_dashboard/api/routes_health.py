from fastapi import APIRouter

from actor_dashboard.core.config import get_settings
from actor_dashboard.services.gateway import DEFAULT_API_URL

router = APIRouter(tags=["health"])


@router.get("/health")
def health():
    s = get_settings()
    return {
        "status": "ok",
        "app": s.APP_NAME,
        "env": s.ENV,
        "apifyApiUrl": s.APIFY_API_URL or DEFAULT_API_URL,
        "pollIntervalMs": s.POLL_INTERVAL_MS,
    }
