from __future__ import annotations

import asyncio
import logging
from typing import Annotated, Any, Dict, Optional

from mcp.server.fastmcp import FastMCP

from actor_dashboard.core.config import get_settings
from actor_dashboard.core.errors import AuthenticationFailure, UpstreamFailure
from actor_dashboard.services.dashboard import DashboardService, format_duration, get_dashboard_service
from actor_dashboard.services.form_mapper import FormSession
from actor_dashboard.services.poller import ExecutionPoller

logger = logging.getLogger(__name__)

server = FastMCP("apify-actor-dashboard")

_TOKEN: Optional[str] = None
_BOOTSTRAP_LOCK = asyncio.Lock()
_form = FormSession()
_poller: Optional[ExecutionPoller] = None


def _service() -> DashboardService:
    return get_dashboard_service()


async def _session_token() -> str:
    """
    Authenticate once with APIFY_TOKEN and reuse the session for every tool call.
    """
    global _TOKEN
    if _TOKEN is not None:
        return _TOKEN
    async with _BOOTSTRAP_LOCK:
        if _TOKEN is not None:
            return _TOKEN
        api_key = get_settings().APIFY_TOKEN
        if not api_key:
            raise AuthenticationFailure("APIFY_TOKEN is missing in environment/.env")
        result = await asyncio.to_thread(_service().authenticate, api_key)
        _TOKEN = result.session.token
        logger.info("MCP session ready for %s (%d actors)", result.user.username, len(result.actors))
        return _TOKEN


def _execution_payload(service: DashboardService, execution_id: str, token: str, progress: float | None = None) -> dict:
    record = service.get_execution(token, execution_id)
    out = record.to_dict()
    out["startedAt"] = record.started_at.isoformat() if record.started_at else None
    out["finishedAt"] = record.finished_at.isoformat() if record.finished_at else None
    out["duration"] = format_duration(record.started_at, record.finished_at)
    if progress is not None:
        out["progress"] = round(progress, 1)
    return out


def _new_poller(token: str) -> ExecutionPoller:
    service = _service()

    async def fetch_status(execution_id: str) -> Dict[str, Any]:
        record = await asyncio.to_thread(service.refresh, token, execution_id)
        return {"status": record.status.value, "stats": record.stats, "results": record.results}

    async def fetch_results(execution_id: str) -> list:
        record = await asyncio.to_thread(service.refresh, token, execution_id)
        if record.results is None:
            raise UpstreamFailure(f"Results for execution {execution_id} are not available yet")
        return record.results

    return ExecutionPoller(fetch_status, fetch_results)


async def _run(actor_id: str, inputs: Dict[str, Any], wait_for_completion: bool, timeout_s: float) -> dict:
    global _poller
    token = await _session_token()
    service = _service()

    record = await asyncio.to_thread(service.execute, token, actor_id, inputs)

    # One poll target at a time; starting a new run supersedes the previous one.
    if _poller is None:
        _poller = _new_poller(token)
    _poller.start(record.id)

    if not wait_for_completion:
        return _execution_payload(service, record.id, token, progress=_poller.progress)

    try:
        await _poller.wait(timeout=timeout_s)
    except asyncio.TimeoutError:
        payload = _execution_payload(service, record.id, token, progress=_poller.progress)
        payload["message"] = f"Run still in progress after {timeout_s:.0f}s. Call get_execution to check again."
        return payload
    return _execution_payload(service, record.id, token, progress=_poller.progress)


@server.tool()
async def list_actors() -> dict:
    """List the actors available to the configured Apify account."""
    token = await _session_token()
    actors = await asyncio.to_thread(_service().list_actors, token)
    return {
        "actors": [
            {
                "actorId": a.external_actor_id,
                "name": a.name,
                "description": a.description,
                "runCount": a.run_count,
                "isSelected": a.is_selected,
            }
            for a in actors
        ]
    }


@server.tool()
async def describe_actor_form(
    actor_id: Annotated[str, "Apify actor id or 'username/actor-name'."],
) -> dict:
    """
    Describe the input fields an actor accepts (control type, label, bounds, options).
    """
    token = await _session_token()
    form = await asyncio.to_thread(_service().get_form, token, actor_id)
    return {"actorId": actor_id, **form.describe()}


@server.tool()
async def select_actor(
    actor_id: Annotated[str, "Actor to make the current selection. Clears previously entered form values."],
) -> dict:
    """Select an actor and load its input form."""
    token = await _session_token()
    service = _service()
    await asyncio.to_thread(service.select_actor, token, actor_id)
    schema = await asyncio.to_thread(service.get_schema, token, actor_id)
    form = _form.select(actor_id, schema)
    return {"actorId": actor_id, "values": form.render_values(_form.payload()), **form.describe()}


@server.tool()
async def set_form_values(
    values: Annotated[Dict[str, Any], "Raw field values keyed by field name. Array fields take one item per line."],
) -> dict:
    """Fill in fields of the selected actor's form and return the payload that would be sent."""
    if _form.actor_id is None:
        return {"message": "Select an actor first."}
    try:
        _form.update(values)
    except KeyError as e:
        return {"message": f"Unknown field: {e.args[0]}"}
    payload = _form.payload()
    return {"actorId": _form.actor_id, "payload": payload, "values": _form.form.render_values(payload)}


@server.tool()
async def run_selected_actor(
    wait_for_completion: Annotated[bool, "Poll until the run succeeds or fails."] = True,
    timeout_s: Annotated[float, "Give up waiting after this many seconds."] = 300.0,
) -> dict:
    """Run the selected actor with the values entered through set_form_values."""
    if _form.actor_id is None:
        return {"message": "Select an actor first."}
    return await _run(_form.actor_id, _form.payload(), wait_for_completion, timeout_s)


@server.tool()
async def run_actor(
    actor_id: Annotated[str, "Apify actor id or 'username/actor-name'."],
    inputs: Annotated[Optional[Dict[str, Any]], "Typed input payload passed to the actor as-is."] = None,
    wait_for_completion: Annotated[bool, "Poll until the run succeeds or fails."] = True,
    timeout_s: Annotated[float, "Give up waiting after this many seconds."] = 300.0,
) -> dict:
    """
    Start an actor run and, by default, poll it to completion. Returns the execution record with results.
    """
    return await _run(actor_id, dict(inputs or {}), wait_for_completion, timeout_s)


@server.tool()
async def get_execution(
    execution_id: Annotated[str, "Execution id returned by run_actor."],
) -> dict:
    """Refresh and return one execution record."""
    token = await _session_token()
    service = _service()
    await asyncio.to_thread(service.refresh, token, execution_id)
    return _execution_payload(service, execution_id, token)


if __name__ == "__main__":
    server.run()
