from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional

from actor_dashboard.core.errors import AuthenticationFailure, NotFound, UpstreamFailure
from actor_dashboard.core.status import ExecutionStatus, normalize_remote_status
from actor_dashboard.persistence.catalog_store import Actor, ActorCatalogStore
from actor_dashboard.persistence.execution_store import ExecutionRecord, ExecutionRecordStore
from actor_dashboard.persistence.session_store import Session, SessionStore
from actor_dashboard.persistence.user_store import User, UserStore
from actor_dashboard.services.form_mapper import ActorForm, build_form
from actor_dashboard.services.gateway import ActorGateway, GatewayFactory, apify_gateway_factory

logger = logging.getLogger(__name__)

UNAUTHORIZED_MESSAGE = "Unauthorized. Please authenticate first."
INVALID_KEY_MESSAGE = "Invalid API key. Please check your Apify API key and try again."


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def format_duration(started_at: datetime | None, finished_at: datetime | None, now: datetime | None = None) -> str:
    """MM:SS between start and finish (or now while still running)."""
    if started_at is None:
        return "00:00"
    end = finished_at or now or _utcnow()
    seconds = max(0, int((end - started_at).total_seconds()))
    return f"{seconds // 60:02d}:{seconds % 60:02d}"


@dataclass(frozen=True)
class AuthResult:
    session: Session
    user: User
    actors: List[Actor]


class DashboardService:
    """
    Operations behind the HTTP routes and MCP tools.

    Every call except authenticate() takes a bearer token and fails with
    AuthenticationFailure when the token is unknown. Gateway errors surface as
    UpstreamFailure and are never retried.
    """

    def __init__(
        self,
        gateway_factory: GatewayFactory = apify_gateway_factory,
        *,
        sessions: SessionStore | None = None,
        users: UserStore | None = None,
        catalog: ActorCatalogStore | None = None,
        executions: ExecutionRecordStore | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.gateway_factory = gateway_factory
        self.sessions = sessions if sessions is not None else SessionStore()
        self.users = users if users is not None else UserStore()
        self.catalog = catalog if catalog is not None else ActorCatalogStore()
        self.executions = executions if executions is not None else ExecutionRecordStore(clock=clock)
        self._clock = clock

    # ------------------------------------------------------------------ auth

    @contextmanager
    def _gateway(self, credential: str) -> Iterator[ActorGateway]:
        gateway = self.gateway_factory(credential)
        try:
            yield gateway
        finally:
            close = getattr(gateway, "close", None)
            if callable(close):
                close()

    def require_session(self, token: str | None) -> Session:
        session = self.sessions.get(token)
        if session is None:
            raise AuthenticationFailure(UNAUTHORIZED_MESSAGE)
        return session

    def authenticate(self, api_key: str) -> AuthResult:
        """
        Validate the key, then list actors, and only then create anything locally,
        so a rejected key or a failed listing leaves no user, actor or session behind.
        """
        with self._gateway(api_key) as gateway:
            remote_user = gateway.validate()
            if remote_user is None:
                raise AuthenticationFailure(INVALID_KEY_MESSAGE)
            remote_actors = gateway.list_actors()

        user = self.users.get_or_create(remote_user.username)
        for ra in remote_actors:
            self.catalog.upsert(
                user.id,
                ra.id,
                name=ra.title,
                description=ra.description or "",
                last_run_at=ra.last_run_started_at,
                run_count=str(ra.total_runs),
            )
        session = self.sessions.create(credential=api_key, user_id=user.id)
        logger.info("Authenticated %s with %d actors", user.username, len(remote_actors))
        return AuthResult(session=session, user=user, actors=self.catalog.list_for_user(user.id))

    # ---------------------------------------------------------------- actors

    def list_actors(self, token: str | None) -> List[Actor]:
        session = self.require_session(token)
        return self.catalog.list_for_user(session.user_id)

    def get_schema(self, token: str | None, actor_id: str) -> Dict[str, Any]:
        session = self.require_session(token)
        return self._schema_for(session, actor_id)

    def _schema_for(self, session: Session, actor_id: str) -> Dict[str, Any]:
        cached = self.catalog.get(session.user_id, actor_id)
        if cached is not None and cached.input_schema is not None:
            return cached.input_schema
        with self._gateway(session.credential) as gateway:
            schema = gateway.get_input_schema(actor_id)
        self.catalog.set_input_schema(session.user_id, actor_id, schema)
        return schema

    def get_form(self, token: str | None, actor_id: str) -> ActorForm:
        return build_form(self.get_schema(token, actor_id))

    def select_actor(self, token: str | None, actor_id: str) -> Optional[Actor]:
        session = self.require_session(token)
        if not self.catalog.select(session.user_id, actor_id):
            raise NotFound("Actor not found.")
        return self.catalog.get(session.user_id, actor_id)

    # ------------------------------------------------------------ executions

    def execute(
        self,
        token: str | None,
        actor_id: str,
        inputs: Mapping[str, Any] | None = None,
        *,
        form_values: Mapping[str, Any] | None = None,
    ) -> ExecutionRecord:
        """
        Start a remote run. The record is created only after the run was accepted.
        Raw form_values, when given, are serialized through the actor's form.
        """
        session = self.require_session(token)
        payload: Dict[str, Any] = dict(inputs or {})
        if form_values is not None:
            payload.update(build_form(self._schema_for(session, actor_id)).serialize(form_values))

        with self._gateway(session.credential) as gateway:
            run = gateway.start_run(actor_id, payload)

        record = self.executions.create(
            session.user_id,
            actor_id,
            external_run_id=run.id,
            inputs=payload,
            status=normalize_remote_status(run.status, started=True),
            started_at=run.started_at,
        )
        logger.info("Started run %s for actor %s (execution %s)", run.id, actor_id, record.id)
        return record

    def get_execution(self, token: str | None, execution_id: str) -> ExecutionRecord:
        session = self.require_session(token)
        record = self.executions.get_owned(session.user_id, execution_id)
        if record is None:
            raise NotFound("Execution not found.")
        return record

    def list_executions(self, token: str | None) -> List[ExecutionRecord]:
        session = self.require_session(token)
        return self.executions.list_for_user(session.user_id)

    def refresh(self, token: str | None, execution_id: str) -> ExecutionRecord:
        """
        Pull the remote run status into the record. On SUCCEEDED the results are
        fetched once and attached verbatim; if that fetch fails the record stays
        SUCCEEDED without results and the next refresh fetches them again.
        Other terminal records are returned as-is.
        """
        session = self.require_session(token)
        record = self.executions.get_owned(session.user_id, execution_id)
        if record is None:
            raise NotFound("Execution not found.")
        run_id = record.external_run_id
        if not run_id or record.status is ExecutionStatus.FAILED:
            return record
        if record.status is ExecutionStatus.SUCCEEDED and record.results is not None:
            return record

        with self._gateway(session.credential) as gateway:
            if not record.status.is_terminal:
                run = gateway.get_run(run_id)
                record = self.executions.apply_status(
                    execution_id,
                    normalize_remote_status(run.status, started=True),
                    stats=run.stats,
                    finished_at=run.finished_at,
                ) or record
            if record.status is ExecutionStatus.SUCCEEDED:
                try:
                    results = gateway.get_run_results(run_id)
                except UpstreamFailure as e:
                    # results stay unset so the next refresh tries again
                    logger.warning("Results for execution %s not attached: %s", execution_id, e.message)
                    return record
                record = self.executions.attach_results(execution_id, results) or record
        return record

    def status_view(self, record: ExecutionRecord) -> Dict[str, Any]:
        return {
            "id": record.id,
            "status": record.status.value,
            "stats": record.stats,
            "results": record.results if record.status is ExecutionStatus.SUCCEEDED else None,
            "startedAt": record.started_at,
            "finishedAt": record.finished_at,
            "duration": format_duration(record.started_at, record.finished_at, now=self._clock()),
        }

    def results(self, token: str | None, execution_id: str) -> List[Any]:
        return self.get_execution(token, execution_id).results or []


_service: Optional[DashboardService] = None


def get_dashboard_service() -> DashboardService:
    global _service
    if _service is None:
        _service = DashboardService()
    return _service
