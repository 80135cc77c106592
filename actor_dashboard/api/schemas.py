from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class ApiKeyRequest(BaseModel):
    apiKey: str = Field(min_length=1, description="Apify API token")


class ExecuteActorRequest(BaseModel):
    actorId: str = Field(min_length=1)
    inputs: Dict[str, Any] = Field(default_factory=dict)
    formValues: Optional[Dict[str, Any]] = Field(
        default=None,
        description="Raw form input; serialized through the actor's input form before the run starts",
    )


class ExecuteActorResponse(BaseModel):
    success: bool = True
    executionId: str
    runId: Optional[str] = None
    status: str
