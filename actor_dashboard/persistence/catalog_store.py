from __future__ import annotations

import threading
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from actor_dashboard.utils.ids import new_id


@dataclass(frozen=True)
class Actor:
    id: str
    owner_user_id: str
    external_actor_id: str
    name: str
    description: str | None = None
    input_schema: dict | None = None
    last_run_at: datetime | None = None
    run_count: str = "0"
    is_selected: bool = False

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "userId": self.owner_user_id,
            "actorId": self.external_actor_id,
            "name": self.name,
            "description": self.description,
            "inputSchema": self.input_schema,
            "lastRun": self.last_run_at,
            "runCount": self.run_count,
            "isSelected": self.is_selected,
        }


class ActorCatalogStore:
    """
    Actors visible to each user, one row per (user, external actor id).

    Invariant: at most one actor per user has is_selected=True.
    """

    def __init__(self, id_factory: Callable[[], str] = new_id) -> None:
        self._id_factory = id_factory
        self._lock = threading.Lock()
        self._actors: Dict[str, Actor] = {}

    def _find(self, user_id: str, external_actor_id: str) -> Optional[Actor]:
        for actor in self._actors.values():
            if actor.owner_user_id == user_id and actor.external_actor_id == external_actor_id:
                return actor
        return None

    def upsert(
        self,
        user_id: str,
        external_actor_id: str,
        *,
        name: str,
        description: str | None = None,
        last_run_at: datetime | None = None,
        run_count: str = "0",
    ) -> Actor:
        """
        Insert a new row or refresh the listing fields of an existing one.
        Selection and the cached input schema survive a refresh.
        """
        with self._lock:
            existing = self._find(user_id, external_actor_id)
            if existing is not None:
                actor = replace(
                    existing,
                    name=name,
                    description=description,
                    last_run_at=last_run_at,
                    run_count=run_count,
                )
            else:
                actor = Actor(
                    id=self._id_factory(),
                    owner_user_id=user_id,
                    external_actor_id=external_actor_id,
                    name=name,
                    description=description,
                    last_run_at=last_run_at,
                    run_count=run_count,
                )
            self._actors[actor.id] = actor
            return actor

    def list_for_user(self, user_id: str) -> List[Actor]:
        with self._lock:
            return [a for a in self._actors.values() if a.owner_user_id == user_id]

    def get(self, user_id: str, external_actor_id: str) -> Optional[Actor]:
        with self._lock:
            return self._find(user_id, external_actor_id)

    def selected(self, user_id: str) -> Optional[Actor]:
        with self._lock:
            return next(
                (a for a in self._actors.values() if a.owner_user_id == user_id and a.is_selected),
                None,
            )

    def select(self, user_id: str, external_actor_id: str) -> bool:
        """
        Mark one actor selected and clear every other selection for the user in a single pass.
        Returns False (and changes nothing) when the user owns no such actor.
        """
        with self._lock:
            if self._find(user_id, external_actor_id) is None:
                return False
            for row_id, actor in list(self._actors.items()):
                if actor.owner_user_id != user_id:
                    continue
                want = actor.external_actor_id == external_actor_id
                if actor.is_selected != want:
                    self._actors[row_id] = replace(actor, is_selected=want)
            return True

    def set_input_schema(self, user_id: str, external_actor_id: str, schema: dict[str, Any]) -> Optional[Actor]:
        with self._lock:
            actor = self._find(user_id, external_actor_id)
            if actor is None:
                return None
            actor = replace(actor, input_schema=schema)
            self._actors[actor.id] = actor
            return actor

    def __len__(self) -> int:
        with self._lock:
            return len(self._actors)
