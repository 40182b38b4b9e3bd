from __future__ import annotations

import threading
import xml.etree.ElementTree as ET

from conftest import StubSession, signed_query


def inbound(msg_type: str, **fields: str) -> bytes:
    extra = "".join(f"<{key}><![CDATA[{value}]]></{key}>" for key, value in fields.items())
    return (
        "<xml>"
        "<ToUserName><![CDATA[gh_account]]></ToUserName>"
        "<FromUserName><![CDATA[openid-1]]></FromUserName>"
        "<CreateTime>1700000000</CreateTime>"
        f"<MsgType><![CDATA[{msg_type}]]></MsgType>"
        f"{extra}"
        "</xml>"
    ).encode("utf-8")


def test_verification_echoes_echostr(client) -> None:
    response = client.get("/wxapi/wechat", query_string=signed_query(echostr="abc123"))

    assert response.status_code == 200
    assert response.get_data(as_text=True) == "abc123"


def test_verification_with_bad_signature_returns_empty_body(client) -> None:
    query = signed_query(echostr="abc123")
    query["signature"] = "0" * 40

    response = client.get("/wxapi/wechat", query_string=query)

    assert response.status_code == 200
    assert response.get_data(as_text=True) == ""


def test_post_with_bad_signature_is_forbidden(client) -> None:
    query = signed_query()
    query["nonce"] = "tampered"

    response = client.post("/wxapi/wechat", query_string=query, data=inbound("text", Content="hello"))

    assert response.status_code == 403
    assert response.get_data() == b""


def test_post_without_signature_is_forbidden(client) -> None:
    response = client.post("/wxapi/wechat", data=inbound("text", Content="hello"))

    assert response.status_code == 403


def test_text_message_gets_echo_reply(client) -> None:
    response = client.post(
        "/wxapi/wechat",
        query_string=signed_query(),
        data=inbound("text", Content="hello"),
        content_type="text/xml",
    )

    assert response.status_code == 200
    assert response.mimetype == "application/xml"
    body = response.get_data(as_text=True)
    assert "<Content><![CDATA[您发送了: hello]]></Content>" in body
    root = ET.fromstring(body)
    assert root.findtext("MsgType") == "text"
    assert root.findtext("ToUserName") == "openid-1"
    assert root.findtext("FromUserName") == "gh_account"


def test_subscribe_gets_welcome_reply(app, client, stub_session: StubSession) -> None:
    stub_session.add("/user/info", {"subscribe": 1, "openid": "openid-1", "nickname": "Alice"})

    response = client.post("/wxapi/wechat", query_string=signed_query(), data=inbound("event", Event="subscribe"))

    assert response.status_code == 200
    assert ET.fromstring(response.get_data()).findtext("Content") == "欢迎关注！感谢您的支持 🎉"
    app.extensions["mpbridge"]["subscriptions"].shutdown()
    stats = client.get("/wxapi/user/stats").get_json()
    assert stats == {"total": 1, "subscribed": 1, "unsubscribed": 0}


def test_subscribe_reply_does_not_wait_for_user_sync(app, client, stub_session: StubSession) -> None:
    release = threading.Event()

    def _slow_user_info(params: dict, body: dict) -> dict:
        release.wait(5)
        return {"subscribe": 1, "openid": params["openid"]}

    stub_session.add("/user/info", _slow_user_info)

    response = client.post("/wxapi/wechat", query_string=signed_query(), data=inbound("event", Event="subscribe"))

    assert ET.fromstring(response.get_data()).findtext("Content") == "欢迎关注！感谢您的支持 🎉"
    assert not release.is_set()
    release.set()
    app.extensions["mpbridge"]["subscriptions"].shutdown()

    request_thread = threading.current_thread().name
    assert [call["path"] for call in stub_session.calls] == ["/token", "/user/info"]
    assert all(call["thread"] != request_thread for call in stub_session.calls)
    assert client.get("/wxapi/user/stats").get_json()["subscribed"] == 1


def test_subscribe_reply_survives_user_info_failure(client, stub_session: StubSession) -> None:
    stub_session.add("/user/info", {"errcode": 40003, "errmsg": "invalid openid"})

    response = client.post("/wxapi/wechat", query_string=signed_query(), data=inbound("event", Event="subscribe"))

    assert response.status_code == 200
    assert response.mimetype == "application/xml"


def test_unsubscribe_is_acknowledged(app, client, stub_session: StubSession) -> None:
    stub_session.add("/user/info", {"subscribe": 1, "openid": "openid-1"})
    client.post("/wxapi/wechat", query_string=signed_query(), data=inbound("event", Event="subscribe"))

    response = client.post("/wxapi/wechat", query_string=signed_query(), data=inbound("event", Event="unsubscribe"))

    assert response.status_code == 200
    assert response.get_data(as_text=True) == "success"
    app.extensions["mpbridge"]["subscriptions"].shutdown()
    assert client.get("/wxapi/user/stats").get_json() == {"total": 1, "subscribed": 0, "unsubscribed": 1}


def test_scan_event_is_acknowledged(client) -> None:
    response = client.post(
        "/wxapi/wechat",
        query_string=signed_query(),
        data=inbound("event", Event="SCAN", EventKey="scene-7"),
    )

    assert response.get_data(as_text=True) == "success"


def test_image_message_is_acknowledged(client) -> None:
    response = client.post("/wxapi/wechat", query_string=signed_query(), data=inbound("image", PicUrl="http://x"))

    assert response.get_data(as_text=True) == "success"


def test_malformed_xml_is_acknowledged(client) -> None:
    response = client.post("/wxapi/wechat", query_string=signed_query(), data=b"<xml><broken>")

    assert response.status_code == 200
    assert response.get_data(as_text=True) == "success"


def test_empty_body_is_acknowledged(client) -> None:
    response = client.post("/wxapi/wechat", query_string=signed_query(), data=b"")

    assert response.status_code == 200
    assert response.get_data(as_text=True) == "success"


def test_encrypted_mode_is_acknowledged_without_processing(client) -> None:
    response = client.post(
        "/wxapi/wechat",
        query_string=signed_query(encrypt_type="aes"),
        data=inbound("text", Content="hello"),
    )

    assert response.get_data(as_text=True) == "success"


def test_router_crash_is_absorbed(app, client, monkeypatch) -> None:
    router = app.extensions["mpbridge"]["router"]

    def _boom(message):
        raise RuntimeError("unexpected")

    monkeypatch.setattr(router, "route", _boom)

    response = client.post("/wxapi/wechat", query_string=signed_query(), data=inbound("text", Content="hello"))

    assert response.status_code == 200
    assert response.get_data(as_text=True) == "success"
