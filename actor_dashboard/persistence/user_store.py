from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from actor_dashboard.utils.ids import new_id


@dataclass(frozen=True)
class User:
    id: str
    username: str

    def to_dict(self) -> dict:
        return {"id": self.id, "username": self.username}


class UserStore:
    def __init__(self, id_factory: Callable[[], str] = new_id) -> None:
        self._id_factory = id_factory
        self._lock = threading.Lock()
        self._users: Dict[str, User] = {}

    def get(self, user_id: str) -> Optional[User]:
        with self._lock:
            return self._users.get(user_id)

    def get_by_username(self, username: str) -> Optional[User]:
        with self._lock:
            return next((u for u in self._users.values() if u.username == username), None)

    def get_or_create(self, username: str) -> User:
        with self._lock:
            for user in self._users.values():
                if user.username == username:
                    return user
            user = User(id=self._id_factory(), username=username)
            self._users[user.id] = user
            return user

    def __len__(self) -> int:
        with self._lock:
            return len(self._users)
