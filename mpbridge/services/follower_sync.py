"""Follower directory sync against the service account API."""
from __future__ import annotations

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Protocol

from mpbridge.services.rate_limit import run_rate_limited
from mpbridge.user_store import StoredUser, UserStore
from mpbridge.wechat.errors import WechatError
from mpbridge.wechat.xml_codec import EventMessage

logger = logging.getLogger(__name__)


class FollowerSource(Protocol):
    """Protocol describing the methods needed from a WeChat client."""

    def get_all_follower_openids(self) -> List[str]:
        ...

    def get_user_info(self, openid: str, lang: str = "zh_CN") -> Dict[str, Any]:
        ...


@dataclass
class SyncResult:
    synced: int = 0
    failed: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {"synced": self.synced, "failed": self.failed}


class FollowerSyncBatcher:
    """Run a per-openid sync over every follower, one call at a time."""

    def __init__(
        self,
        source: FollowerSource,
        sync_one: Callable[[str], Any],
        interval: float = 0.1,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.source = source
        self.sync_one = sync_one
        self.interval = interval
        self._sleep = sleep

    def sync_all(self) -> SyncResult:
        openids = self.source.get_all_follower_openids()
        outcomes = run_rate_limited(openids, self.sync_one, self.interval, sleep=self._sleep)
        result = SyncResult()
        for outcome in outcomes:
            if outcome.ok:
                result.synced += 1
            else:
                result.failed += 1
                logger.warning("Sync user %s failed: %s", outcome.item, outcome.error)
        logger.info("Follower sync done synced=%s failed=%s", result.synced, result.failed)
        return result


class UserService:
    """Keeps the in-memory directory in step with WeChat."""

    def __init__(
        self,
        wechat_api: FollowerSource,
        store: UserStore,
        sync_interval: float = 0.1,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.wechat_api = wechat_api
        self.store = store
        self.batcher = FollowerSyncBatcher(wechat_api, self.sync_user_info, sync_interval, sleep)

    def sync_user_info(self, openid: str) -> StoredUser:
        info = self.wechat_api.get_user_info(openid)
        return self.store.upsert_from_user_info(openid, info)

    def sync_all_followers(self) -> SyncResult:
        return self.batcher.sync_all()

    def get_user(self, openid: str) -> Optional[StoredUser]:
        """Return the stored user, fetching from WeChat on a miss."""
        user = self.store.get(openid)
        if user is not None:
            return user
        try:
            return self.sync_user_info(openid)
        except WechatError:
            logger.warning("Fetch user %s failed", openid, exc_info=True)
            return None

    def handle_subscribe(self, openid: str) -> StoredUser:
        logger.info("User %s subscribed", openid)
        return self.sync_user_info(openid)

    def handle_unsubscribe(self, openid: str) -> None:
        logger.info("User %s unsubscribed", openid)
        self.store.mark_unsubscribed(openid)


class SubscriptionSync:
    """Apply subscribe/unsubscribe events to the directory off the request thread.

    A single worker keeps events for the same user in arrival order.
    """

    def __init__(self, user_service: UserService, executor: Optional[ThreadPoolExecutor] = None) -> None:
        self.user_service = user_service
        self.executor = executor or ThreadPoolExecutor(max_workers=1, thread_name_prefix="subscription-sync")

    def submit(self, message: EventMessage) -> Optional[Future]:
        if not message.from_user:
            return None
        if message.is_subscribe:
            task = self.user_service.handle_subscribe
        elif message.is_unsubscribe:
            task = self.user_service.handle_unsubscribe
        else:
            return None
        return self.executor.submit(self._run, task, message.from_user, message.event)

    @staticmethod
    def _run(task: Callable[[str], Any], openid: str, event: str) -> None:
        try:
            task(openid)
        except Exception:  # noqa: BLE001
            logger.exception("Directory update for %s failed user=%s", event, openid)

    def shutdown(self, wait: bool = True) -> None:
        self.executor.shutdown(wait=wait)
