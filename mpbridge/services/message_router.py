"""Decide how the callback answers each inbound message."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Union

from mpbridge.wechat import xml_codec
from mpbridge.wechat.xml_codec import EventMessage, InboundMessage, TextMessage

logger = logging.getLogger(__name__)

DEFAULT_WELCOME_MESSAGE = "欢迎关注！感谢您的支持 🎉"
DEFAULT_ECHO_PREFIX = "您发送了: "
ACKNOWLEDGE_BODY = "success"


@dataclass(frozen=True)
class Reply:
    """Passive reply document to return in the HTTP response."""

    xml: str


@dataclass(frozen=True)
class Acknowledge:
    """No reply; the callback answers with a bare ``success``."""


OutboundReply = Union[Reply, Acknowledge]


class MessageRouter:
    """Maps a decoded message to its reply without touching the network.

    Directory updates for subscribe/unsubscribe happen elsewhere, after the
    reply is on its way.
    """

    def __init__(
        self,
        welcome_message: str = DEFAULT_WELCOME_MESSAGE,
        echo_prefix: str = DEFAULT_ECHO_PREFIX,
    ) -> None:
        self.welcome_message = welcome_message
        self.echo_prefix = echo_prefix

    def route(self, message: InboundMessage) -> OutboundReply:
        if isinstance(message, EventMessage):
            return self._route_event(message)
        if isinstance(message, TextMessage):
            return self._text_reply(message, f"{self.echo_prefix}{message.content}")
        logger.info("No reply for msg_type=%s from=%s", message.msg_type, message.from_user)
        return Acknowledge()

    def _route_event(self, message: EventMessage) -> OutboundReply:
        user_id = message.from_user
        if message.is_subscribe:
            logger.info("User %s subscribed", user_id)
            return self._text_reply(message, self.welcome_message)
        if message.is_unsubscribe:
            logger.info("User %s unsubscribed", user_id)
        elif message.is_scan:
            logger.info("User %s scanned QR code event_key=%s", user_id, message.event_key)
        elif message.is_click:
            logger.info("User %s clicked menu key=%s", user_id, message.event_key)
        elif message.is_view:
            logger.info("User %s opened menu link %s", user_id, message.event_key)
        elif message.is_location:
            logger.debug("User %s reported location", user_id)
        else:
            logger.info("Unhandled event=%s user=%s event_key=%s", message.event, user_id, message.event_key)
        return Acknowledge()

    @staticmethod
    def _text_reply(message: InboundMessage, content: str) -> Reply:
        return Reply(xml_codec.encode_text_reply(message.from_user, message.to_user, content))
