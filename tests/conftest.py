from __future__ import annotations

import json
import threading
from typing import Any

import pytest
import requests

from mpbridge import create_app
from mpbridge.wechat.signature import generate_signature

TEST_TOKEN = "test-token"


class StubResponse:
    def __init__(self, payload: Any = None, status_code: int = 200, text: str | None = None) -> None:
        self._payload = payload
        self.status_code = status_code
        self.text = text if text is not None else json.dumps(payload)

    def json(self) -> Any:
        if self._payload is None:
            raise ValueError("No JSON body")
        return self._payload

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"HTTP {self.status_code}")


class StubSession:
    """Stands in for ``requests.Session``, answering by ``/cgi-bin`` path.

    Each path holds a queue of answers. The last answer is reused once the
    queue is down to one item. An answer may be a dict (JSON body), a
    :class:`StubResponse`, an exception to raise, or a callable receiving the
    request params and decoded JSON body.
    """

    def __init__(self) -> None:
        self.routes: dict[str, list[Any]] = {}
        self.calls: list[dict[str, Any]] = []

    def add(self, path: str, *answers: Any) -> "StubSession":
        self.routes.setdefault(path, []).extend(answers)
        return self

    def calls_to(self, path: str) -> list[dict[str, Any]]:
        return [call for call in self.calls if call["path"] == path]

    def _dispatch(self, method: str, url: str, params: dict | None, data: bytes | None) -> StubResponse:
        path = url.split("/cgi-bin", 1)[1]
        body = json.loads(data.decode("utf-8")) if data else None
        self.calls.append(
            {
                "method": method,
                "path": path,
                "params": dict(params or {}),
                "json": body,
                "thread": threading.current_thread().name,
            }
        )
        queue = self.routes.get(path)
        if not queue:
            raise AssertionError(f"Unexpected upstream call to {path}")
        answer = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(answer, Exception):
            raise answer
        if callable(answer):
            answer = answer(params or {}, body)
        if isinstance(answer, StubResponse):
            return answer
        return StubResponse(answer)

    def get(self, url: str, params: dict | None = None, timeout: float | None = None) -> StubResponse:
        return self._dispatch("GET", url, params, None)

    def post(
        self,
        url: str,
        params: dict | None = None,
        data: bytes | None = None,
        headers: dict | None = None,
        timeout: float | None = None,
    ) -> StubResponse:
        return self._dispatch("POST", url, params, data)


def token_payload(value: str = "ACCESS_TOKEN", expires_in: int = 7200) -> dict[str, Any]:
    return {"access_token": value, "expires_in": expires_in}


def signed_query(timestamp: str = "1700000000", nonce: str = "nonce-123", **extra: str) -> dict[str, str]:
    query = {
        "signature": generate_signature(TEST_TOKEN, timestamp, nonce),
        "timestamp": timestamp,
        "nonce": nonce,
    }
    query.update(extra)
    return query


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    def __init__(self) -> None:
        self.calls: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture()
def stub_session() -> StubSession:
    session = StubSession()
    session.add("/token", token_payload())
    return session


@pytest.fixture()
def app(stub_session: StubSession):
    return create_app("testing", http_session=stub_session)


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()
