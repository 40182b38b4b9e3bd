from __future__ import annotations

from datetime import datetime

import pytest
from conftest import StubSession

from config import TestingConfig
from mpbridge import create_app
from mpbridge.request_log import LOG_TZ, LogEntry, RequestLog, format_entry, mask_sensitive


def entry(url: str = "/wxapi/wechat/token", **overrides) -> LogEntry:
    values = dict(
        method="GET",
        url=url,
        status_code=200,
        duration_ms=12,
        ip="10.0.0.1",
        timestamp=datetime(2024, 1, 2, 3, 4, 5, tzinfo=LOG_TZ),
    )
    values.update(overrides)
    return LogEntry(**values)


def test_format_entry_includes_request_details() -> None:
    text = format_entry(entry(user_agent="Mozilla", query={"openid": "o1"}, error="boom"))

    assert "time: 2024-01-02 03:04:05" in text
    assert "GET /wxapi/wechat/token" in text
    assert "status: 200 | duration: 12ms" in text
    assert "ua: Mozilla" in text
    assert 'query: {"openid": "o1"}' in text
    assert "error: boom" in text


def test_long_responses_are_truncated() -> None:
    text = format_entry(entry(response="x" * 5000))

    assert "...(truncated)" in text
    assert "x" * 1001 not in text


def test_mask_sensitive_fields() -> None:
    masked = mask_sensitive({"openid": "o1", "token": "abc", "password": "p"})

    assert masked == {"openid": "o1", "token": "***", "password": "***"}
    assert mask_sensitive("raw") == "raw"
    assert mask_sensitive({}) is None


def test_newest_entry_comes_first(tmp_path) -> None:
    log = RequestLog(str(tmp_path / "logs" / "api.log"))

    log.write(entry("/first"))
    log.write(entry("/second"))

    content = log.recent(1000)
    assert content.index("/second") < content.index("/first")


def test_file_is_capped(tmp_path) -> None:
    log = RequestLog(str(tmp_path / "api.log"), max_lines=20)

    for index in range(10):
        log.write(entry(f"/call-{index}"))

    with open(log.path, encoding="utf-8") as handle:
        assert len(handle.read().split("\n")) <= 20


def test_recent_and_clear(tmp_path) -> None:
    log = RequestLog(str(tmp_path / "api.log"))
    assert log.recent() == ""

    log.write(entry())
    assert log.recent(3).count("\n") == 2

    log.clear()
    assert log.recent() == ""


@pytest.fixture()
def logged_app(tmp_path, monkeypatch, stub_session: StubSession):
    monkeypatch.setattr(TestingConfig, "REQUEST_LOG_ENABLED", True)
    monkeypatch.setattr(TestingConfig, "LOG_DIR", str(tmp_path))
    return create_app("testing", http_session=stub_session)


@pytest.fixture()
def logged_client(logged_app):
    return logged_app.test_client()


def test_requests_are_logged_and_browsable(logged_client) -> None:
    logged_client.get("/wxapi/wechat/token", headers={"X-Forwarded-For": "1.2.3.4, 10.0.0.1"})

    payload = logged_client.get("/wxapi/logs", query_string={"lines": 50}).get_json()

    assert payload["path"].endswith("api.log")
    assert "GET /wxapi/wechat/token" in payload["content"]
    assert "ip: 1.2.3.4" in payload["content"]

    assert logged_client.post("/wxapi/logs/clear").status_code == 200
    assert logged_client.get("/wxapi/logs/path").get_json()["path"] == payload["path"]


def test_request_body_secrets_are_masked(logged_client, stub_session: StubSession) -> None:
    stub_session.add("/message/custom/send", {"errcode": 0, "errmsg": "ok"})

    logged_client.post("/wxapi/wechat/message/text", json={"openid": "o1", "content": "hi", "secret": "s3cr3t"})

    content = logged_client.get("/wxapi/logs").get_json()["content"]
    assert "s3cr3t" not in content
    assert '"secret": "***"' in content


def test_upstream_error_is_recorded(logged_client, stub_session: StubSession) -> None:
    stub_session.routes["/token"] = [{"errcode": 40125, "errmsg": "invalid appsecret"}]

    assert logged_client.get("/wxapi/wechat/token").status_code == 502

    content = logged_client.get("/wxapi/logs").get_json()["content"]
    assert "error: get access token: invalid appsecret (errcode: 40125)" in content


def test_unhandled_exception_is_recorded(logged_app) -> None:
    logged_app.config["PROPAGATE_EXCEPTIONS"] = False

    @logged_app.route("/explode")
    def explode():
        raise RuntimeError("kaboom")

    client = logged_app.test_client()
    assert client.get("/explode").status_code == 500

    content = client.get("/wxapi/logs").get_json()["content"]
    assert "error: kaboom" in content
