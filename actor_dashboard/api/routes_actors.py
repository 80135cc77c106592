from fastapi import APIRouter, Depends

from actor_dashboard.api.dependencies import get_bearer_token, get_service
from actor_dashboard.api.schemas import ExecuteActorRequest, ExecuteActorResponse
from actor_dashboard.services.dashboard import DashboardService

router = APIRouter(prefix="/api/actors", tags=["actors"])


@router.get("")
def list_actors(
    token: str | None = Depends(get_bearer_token),
    service: DashboardService = Depends(get_service),
):
    return {"actors": [a.to_dict() for a in service.list_actors(token)]}


# Registered before the "/{actor_id:path}" routes so it is not swallowed by them.
@router.post("/execute", response_model=ExecuteActorResponse)
def execute_actor(
    body: ExecuteActorRequest,
    token: str | None = Depends(get_bearer_token),
    service: DashboardService = Depends(get_service),
):
    record = service.execute(token, body.actorId, body.inputs, form_values=body.formValues)
    return ExecuteActorResponse(
        executionId=record.id,
        runId=record.external_run_id,
        status=record.status.value,
    )


# Actor ids may contain "/" ("username/actor-name"), hence the path converter.
@router.get("/{actor_id:path}/schema")
def get_actor_schema(
    actor_id: str,
    token: str | None = Depends(get_bearer_token),
    service: DashboardService = Depends(get_service),
):
    return {"schema": service.get_schema(token, actor_id)}


@router.get("/{actor_id:path}/form")
def get_actor_form(
    actor_id: str,
    token: str | None = Depends(get_bearer_token),
    service: DashboardService = Depends(get_service),
):
    form = service.get_form(token, actor_id)
    return {"actorId": actor_id, **form.describe()}


@router.post("/{actor_id:path}/select")
def select_actor(
    actor_id: str,
    token: str | None = Depends(get_bearer_token),
    service: DashboardService = Depends(get_service),
):
    service.select_actor(token, actor_id)
    return {"success": True}
