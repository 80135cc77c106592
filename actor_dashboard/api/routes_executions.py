from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from actor_dashboard.api.dependencies import get_bearer_token, get_service
from actor_dashboard.services.dashboard import DashboardService

router = APIRouter(prefix="/api/executions", tags=["executions"])


@router.get("")
def list_executions(
    token: str | None = Depends(get_bearer_token),
    service: DashboardService = Depends(get_service),
):
    return {"executions": [r.to_dict() for r in service.list_executions(token)]}


@router.get("/{execution_id}/status")
def get_execution_status(
    execution_id: str,
    token: str | None = Depends(get_bearer_token),
    service: DashboardService = Depends(get_service),
):
    record = service.refresh(token, execution_id)
    return service.status_view(record)


@router.get("/{execution_id}/results")
def download_results(
    execution_id: str,
    token: str | None = Depends(get_bearer_token),
    service: DashboardService = Depends(get_service),
):
    results = service.results(token, execution_id)
    return JSONResponse(
        content=results,
        headers={"Content-Disposition": f'attachment; filename="actor-results-{execution_id}.json"'},
    )
