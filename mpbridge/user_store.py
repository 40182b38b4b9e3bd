"""Thread-safe in-memory directory of service account followers."""
from __future__ import annotations

import copy
import threading
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional


@dataclass
class StoredUser:
    """Latest known state of one follower."""

    openid: str
    subscribe: bool = False
    nickname: Optional[str] = None
    subscribe_time: Optional[datetime] = None
    last_sync_time: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    user_info: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["subscribe_time"] = self.subscribe_time.isoformat() if self.subscribe_time else None
        data["last_sync_time"] = self.last_sync_time.isoformat()
        return data


class UserStore:
    """In-memory storage keyed by openid.

    Single-instance only; swap for a database-backed class with the same
    methods if several workers need to share it.
    """

    def __init__(self) -> None:
        self._users: Dict[str, StoredUser] = {}
        self._lock = threading.RLock()

    def upsert_from_user_info(self, openid: str, info: Mapping[str, Any]) -> StoredUser:
        """Replace the stored record with a fresh ``/user/info`` payload."""
        subscribe_time = info.get("subscribe_time")
        user = StoredUser(
            openid=openid,
            subscribe=info.get("subscribe") == 1,
            nickname=info.get("nickname"),
            subscribe_time=(
                datetime.fromtimestamp(int(subscribe_time), tz=timezone.utc) if subscribe_time else None
            ),
            user_info=dict(info),
        )
        with self._lock:
            self._users[openid] = user
            return copy.deepcopy(user)

    def get(self, openid: str) -> Optional[StoredUser]:
        with self._lock:
            user = self._users.get(openid)
            return copy.deepcopy(user) if user else None

    def all(self) -> List[StoredUser]:
        with self._lock:
            return [copy.deepcopy(user) for user in self._users.values()]

    def subscribed(self) -> List[StoredUser]:
        return [user for user in self.all() if user.subscribe]

    def mark_unsubscribed(self, openid: str) -> Optional[StoredUser]:
        """Flag a known user as unsubscribed; unknown openids are ignored."""
        with self._lock:
            user = self._users.get(openid)
            if user is None:
                return None
            user.subscribe = False
            return copy.deepcopy(user)

    def stats(self) -> Dict[str, int]:
        users = self.all()
        subscribed = sum(1 for user in users if user.subscribe)
        return {
            "total": len(users),
            "subscribed": subscribed,
            "unsubscribed": len(users) - subscribed,
        }
