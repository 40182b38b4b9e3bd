"""Decode inbound service account XML and build passive reply XML."""
from __future__ import annotations

import re
import time
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional

from mpbridge.wechat.errors import MalformedPayloadError

EVENT_SUBSCRIBE = "subscribe"
EVENT_UNSUBSCRIBE = "unsubscribe"
EVENT_SCAN = "SCAN"
EVENT_CLICK = "CLICK"
EVENT_VIEW = "VIEW"
EVENT_LOCATION = "LOCATION"

# XML 1.0 forbids most C0 control characters even inside CDATA.
_ILLEGAL_XML_CHARS = re.compile("[\x00-\x08\x0b\x0c\x0e-\x1f\ufffe\uffff]")


@dataclass(frozen=True)
class InboundMessage:
    """Fields shared by every message WeChat pushes to the callback URL."""

    to_user: str
    from_user: str
    create_time: int
    msg_type: str
    raw: Dict[str, str] = field(default_factory=dict, compare=False, repr=False)

    def get(self, name: str, default: str = "") -> str:
        """Look up any XML field by its tag name, including unknown ones."""
        return self.raw.get(name, default)


@dataclass(frozen=True)
class TextMessage(InboundMessage):
    content: str = ""
    msg_id: str = ""


@dataclass(frozen=True)
class EventMessage(InboundMessage):
    event: str = ""
    event_key: str = ""

    @property
    def is_subscribe(self) -> bool:
        return self.event.lower() == EVENT_SUBSCRIBE

    @property
    def is_unsubscribe(self) -> bool:
        return self.event.lower() == EVENT_UNSUBSCRIBE

    @property
    def is_scan(self) -> bool:
        return self.event.upper() == EVENT_SCAN

    @property
    def is_click(self) -> bool:
        return self.event.upper() == EVENT_CLICK

    @property
    def is_view(self) -> bool:
        return self.event.upper() == EVENT_VIEW

    @property
    def is_location(self) -> bool:
        return self.event.upper() == EVENT_LOCATION


@dataclass(frozen=True)
class OtherMessage(InboundMessage):
    """Image, voice, location and any msg_type added later by WeChat."""


def _to_int(value: Optional[str]) -> int:
    try:
        return int((value or "").strip())
    except ValueError:
        return 0


def decode(raw_xml: bytes | str) -> InboundMessage:
    """Parse a webhook body into one of the message classes.

    Only structure is checked here. An unknown ``MsgType`` is still a valid
    message and comes back as :class:`OtherMessage`.
    """
    if raw_xml is None or not raw_xml.strip():
        raise MalformedPayloadError("Empty message body")
    try:
        root = ET.fromstring(raw_xml)
    except ET.ParseError as exc:
        raise MalformedPayloadError(f"Invalid XML payload: {exc}") from exc

    fields: Dict[str, str] = {}
    for child in root:
        fields[child.tag] = (child.text or "").strip() if len(child) == 0 else ET.tostring(child, encoding="unicode")
    if not fields:
        raise MalformedPayloadError("XML payload has no message fields")

    common = dict(
        to_user=fields.get("ToUserName", ""),
        from_user=fields.get("FromUserName", ""),
        create_time=_to_int(fields.get("CreateTime")),
        msg_type=fields.get("MsgType", ""),
        raw=fields,
    )
    msg_type = common["msg_type"]
    if msg_type == "text":
        return TextMessage(
            content=root.findtext("Content") or "",
            msg_id=fields.get("MsgId", ""),
            **common,
        )
    if msg_type == "event":
        return EventMessage(
            event=fields.get("Event", ""),
            event_key=fields.get("EventKey", ""),
            **common,
        )
    return OtherMessage(**common)


def _cdata(value: object) -> str:
    text = _ILLEGAL_XML_CHARS.sub("", str(value))
    return "<![CDATA[" + text.replace("]]>", "]]]]><![CDATA[>") + "]]>"


def _build_text(to_user: str, from_user: str, create_time: int, *, content: str) -> str:
    return (
        "<xml>"
        f"<ToUserName>{_cdata(to_user)}</ToUserName>"
        f"<FromUserName>{_cdata(from_user)}</FromUserName>"
        f"<CreateTime>{create_time}</CreateTime>"
        f"<MsgType>{_cdata('text')}</MsgType>"
        f"<Content>{_cdata(content)}</Content>"
        "</xml>"
    )


REPLY_BUILDERS: Dict[str, Callable[..., str]] = {
    "text": _build_text,
}


def encode_reply(
    kind: str,
    to_user: str,
    from_user: str,
    create_time: Optional[int] = None,
    **fields: object,
) -> str:
    """Build a passive reply document of the given ``kind``."""
    try:
        builder = REPLY_BUILDERS[kind]
    except KeyError:
        raise ValueError(f"Unsupported reply type: {kind}") from None
    stamp = int(time.time()) if create_time is None else int(create_time)
    return builder(to_user, from_user, stamp, **fields)


def encode_text_reply(
    to_user: str,
    from_user: str,
    content: str,
    create_time: Optional[int] = None,
) -> str:
    return encode_reply("text", to_user, from_user, create_time, content=content)
