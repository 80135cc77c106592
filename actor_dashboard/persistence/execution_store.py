from __future__ import annotations

import threading
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from actor_dashboard.core.status import ExecutionStatus, next_status
from actor_dashboard.utils.ids import new_id


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ExecutionRecord:
    id: str
    owner_user_id: str
    external_actor_id: str
    status: ExecutionStatus
    started_at: datetime
    external_run_id: str | None = None
    inputs: dict | None = None
    results: list | None = None
    stats: dict | None = None
    finished_at: datetime | None = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "userId": self.owner_user_id,
            "actorId": self.external_actor_id,
            "runId": self.external_run_id,
            "status": self.status.value,
            "inputs": self.inputs,
            "results": self.results,
            "stats": self.stats,
            "startedAt": self.started_at,
            "finishedAt": self.finished_at,
        }


class ExecutionRecordStore:
    def __init__(
        self,
        id_factory: Callable[[], str] = new_id,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._id_factory = id_factory
        self._clock = clock
        self._lock = threading.Lock()
        self._records: Dict[str, ExecutionRecord] = {}

    def create(
        self,
        user_id: str,
        external_actor_id: str,
        *,
        external_run_id: str | None,
        inputs: dict[str, Any] | None,
        status: ExecutionStatus = ExecutionStatus.RUNNING,
        started_at: datetime | None = None,
    ) -> ExecutionRecord:
        record = ExecutionRecord(
            id=self._id_factory(),
            owner_user_id=user_id,
            external_actor_id=external_actor_id,
            external_run_id=external_run_id,
            status=status,
            inputs=inputs,
            started_at=started_at or self._clock(),
        )
        with self._lock:
            self._records[record.id] = record
        return record

    def get(self, execution_id: str) -> Optional[ExecutionRecord]:
        with self._lock:
            return self._records.get(execution_id)

    def get_owned(self, user_id: str, execution_id: str) -> Optional[ExecutionRecord]:
        record = self.get(execution_id)
        if record is None or record.owner_user_id != user_id:
            return None
        return record

    def list_for_user(self, user_id: str) -> List[ExecutionRecord]:
        with self._lock:
            rows = [r for r in self._records.values() if r.owner_user_id == user_id]
        return sorted(rows, key=lambda r: r.started_at, reverse=True)

    def apply_status(
        self,
        execution_id: str,
        observed: ExecutionStatus,
        *,
        stats: dict | None = None,
        finished_at: datetime | None = None,
    ) -> Optional[ExecutionRecord]:
        """
        Overwrite status/stats/finished_at from a remote status fetch.
        A terminal record is left untouched.
        """
        with self._lock:
            record = self._records.get(execution_id)
            if record is None:
                return None
            if record.status.is_terminal:
                return record
            record = replace(
                record,
                status=next_status(record.status, observed),
                stats=stats,
                finished_at=finished_at,
            )
            self._records[execution_id] = record
            return record

    def attach_results(self, execution_id: str, results: list) -> Optional[ExecutionRecord]:
        with self._lock:
            record = self._records.get(execution_id)
            if record is None:
                return None
            record = replace(record, results=results)
            self._records[execution_id] = record
            return record

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
