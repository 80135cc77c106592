from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Protocol

from apify_client import ApifyClient

from actor_dashboard.core.config import get_settings
from actor_dashboard.core.errors import UpstreamFailure

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.apify.com"


@dataclass(frozen=True)
class RemoteUser:
    id: str
    username: str


@dataclass(frozen=True)
class RemoteActor:
    id: str
    name: str
    title: str
    description: str | None = None
    total_runs: int = 0
    last_run_started_at: datetime | None = None


@dataclass(frozen=True)
class RemoteRun:
    id: str
    actor_id: str | None
    status: str
    started_at: datetime | None = None
    finished_at: datetime | None = None
    stats: Dict[str, Any] = field(default_factory=dict)


class ActorGateway(Protocol):
    def validate(self) -> Optional[RemoteUser]: ...

    def list_actors(self) -> List[RemoteActor]: ...

    def get_input_schema(self, actor_id: str) -> Dict[str, Any]: ...

    def start_run(self, actor_id: str, inputs: Dict[str, Any]) -> RemoteRun: ...

    def get_run(self, run_id: str) -> RemoteRun: ...

    def get_run_results(self, run_id: str) -> List[Any]: ...


GatewayFactory = Callable[[str], ActorGateway]


def parse_timestamp(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        return datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None


def _run_from_payload(data: Dict[str, Any]) -> RemoteRun:
    stats = data.get("stats")
    return RemoteRun(
        id=str(data.get("id")),
        actor_id=data.get("actId"),
        status=str(data.get("status") or ""),
        started_at=parse_timestamp(data.get("startedAt")),
        finished_at=parse_timestamp(data.get("finishedAt")),
        stats=stats if isinstance(stats, dict) else {},
    )


class ApifyGateway:
    """
    Thin adapter over ``apify_client.ApifyClient``.
    Every client error is logged and re-raised as UpstreamFailure.
    """

    def __init__(self, api_key: str, *, api_url: str | None = None, client: Any = None) -> None:
        self._client = client if client is not None else ApifyClient(api_key, api_url=api_url or DEFAULT_API_URL)

    def validate(self) -> Optional[RemoteUser]:
        try:
            data = self._client.user().get()
        except Exception as e:
            if getattr(e, "status_code", None) in (401, 403, 404):
                return None
            logger.exception("Apify credential check failed")
            raise UpstreamFailure("Could not validate the API key with Apify") from e

        username = (data or {}).get("username")
        if not username:
            return None
        return RemoteUser(id=str(data.get("id") or ""), username=username)

    def list_actors(self) -> List[RemoteActor]:
        try:
            page = self._client.actors().list(my=True, limit=1000)
        except Exception as e:
            logger.exception("Apify actor listing failed")
            raise UpstreamFailure("Failed to fetch actors from Apify") from e

        out: List[RemoteActor] = []
        for item in page.items:
            stats = item.get("stats") or {}
            name = item.get("name") or item.get("id")
            out.append(
                RemoteActor(
                    id=str(item.get("id")),
                    name=name,
                    title=item.get("title") or name,
                    description=item.get("description"),
                    total_runs=int(stats.get("totalRuns") or 0),
                    last_run_started_at=parse_timestamp(stats.get("lastRunStartedAt")),
                )
            )
        return out

    def get_input_schema(self, actor_id: str) -> Dict[str, Any]:
        try:
            actor = self._client.actor(actor_id).get()
            if actor is None:
                raise UpstreamFailure(f"Actor {actor_id} not found on Apify")
            schema = actor.get("inputSchema")
            if isinstance(schema, dict):
                return schema

            # Schemas live on builds; fall back to the "latest" tagged build.
            build_id = ((actor.get("taggedBuilds") or {}).get("latest") or {}).get("buildId")
            build = self._client.build(build_id).get() if build_id else None
        except UpstreamFailure:
            raise
        except Exception as e:
            logger.exception("Apify input schema fetch failed for actor %s", actor_id)
            raise UpstreamFailure("Failed to fetch actor input schema from Apify") from e

        if not build:
            return {}
        definition = (build.get("actorDefinition") or {}).get("input")
        if isinstance(definition, dict):
            return definition
        raw = build.get("inputSchema")
        if isinstance(raw, str) and raw.strip():
            try:
                parsed = json.loads(raw)
            except ValueError:
                logger.warning("Build %s has an unparseable input schema", build_id)
                return {}
            return parsed if isinstance(parsed, dict) else {}
        return {}

    def start_run(self, actor_id: str, inputs: Dict[str, Any]) -> RemoteRun:
        try:
            data = self._client.actor(actor_id).start(run_input=inputs)
        except Exception as e:
            logger.exception("Apify run start failed for actor %s", actor_id)
            raise UpstreamFailure("Failed to execute actor") from e
        return _run_from_payload(data or {})

    def get_run(self, run_id: str) -> RemoteRun:
        try:
            data = self._client.run(run_id).get()
        except Exception as e:
            logger.exception("Apify run status fetch failed for run %s", run_id)
            raise UpstreamFailure("Failed to fetch run status from Apify") from e
        if data is None:
            raise UpstreamFailure(f"Run {run_id} not found on Apify")
        return _run_from_payload(data)

    def get_run_results(self, run_id: str) -> List[Any]:
        try:
            page = self._client.run(run_id).dataset().list_items(clean=True)
        except Exception as e:
            logger.exception("Apify results fetch failed for run %s", run_id)
            raise UpstreamFailure("Failed to fetch run results from Apify") from e
        return list(page.items)


def apify_gateway_factory(api_key: str) -> ActorGateway:
    return ApifyGateway(api_key, api_url=get_settings().APIFY_API_URL)
