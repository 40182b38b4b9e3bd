"""Routes for handling WeChat Service Account callbacks."""
from __future__ import annotations

from typing import Optional

from flask import Blueprint, current_app, make_response, request

from mpbridge.services.follower_sync import SubscriptionSync
from mpbridge.services.message_router import ACKNOWLEDGE_BODY, MessageRouter, Reply
from mpbridge.wechat.errors import MalformedPayloadError, SignatureMismatchError
from mpbridge.wechat.signature import verify_signature
from mpbridge.wechat.xml_codec import EventMessage, decode


class ServiceAccountManager:
    def __init__(self, token: str, router: MessageRouter, subscriptions: Optional[SubscriptionSync] = None):
        self.token = token
        self.router = router
        self.subscriptions = subscriptions

    def _check_signature(self) -> None:
        signature = request.args.get("signature", "")
        timestamp = request.args.get("timestamp", "")
        nonce = request.args.get("nonce", "")
        if not verify_signature(signature, self.token, timestamp, nonce):
            raise SignatureMismatchError("Service account signature verification failed")

    def handle_verify(self):
        """Server ownership check WeChat runs when the callback URL is saved."""
        echostr = request.args.get("echostr", "")
        try:
            self._check_signature()
        except SignatureMismatchError:
            current_app.logger.warning("Callback URL verification failed")
            return "", 200
        current_app.logger.info("Callback URL verification passed")
        return echostr, 200

    def handle_callback(self):
        try:
            self._check_signature()
        except SignatureMismatchError:
            current_app.logger.warning("Service account signature verification failed")
            return "", 403

        encrypt_type = request.args.get("encrypt_type", "raw").lower()
        if encrypt_type != "raw":
            current_app.logger.warning("Unsupported encrypt type '%s', please switch to 明文模式", encrypt_type)
            return ACKNOWLEDGE_BODY

        xml_data = request.get_data()
        if not xml_data.strip():
            return ACKNOWLEDGE_BODY

        try:
            message = decode(xml_data)
        except MalformedPayloadError as exc:
            current_app.logger.warning("Dropping malformed callback payload: %s", exc)
            return ACKNOWLEDGE_BODY

        current_app.logger.info("Received message type=%s from=%s", message.msg_type, message.from_user)
        # WeChat drops passive replies that take longer than 5s
        if self.subscriptions is not None and isinstance(message, EventMessage):
            self.subscriptions.submit(message)

        try:
            reply = self.router.route(message)
        except Exception:  # noqa: BLE001
            current_app.logger.exception("Service callback processing failed")
            return ACKNOWLEDGE_BODY

        if isinstance(reply, Reply):
            response = make_response(reply.xml)
            response.headers["Content-Type"] = "application/xml"
            return response
        return ACKNOWLEDGE_BODY


def create_service_blueprint(
    app_config, router: MessageRouter, subscriptions: Optional[SubscriptionSync] = None
) -> Blueprint:
    bp = Blueprint("wechat_service", __name__)
    manager = ServiceAccountManager(app_config.get("WECHAT_TOKEN", ""), router, subscriptions)

    @bp.route("/wechat", methods=["GET"])
    def service_verify():
        return manager.handle_verify()

    @bp.route("/wechat", methods=["POST"])
    def service_callback():
        return manager.handle_callback()

    return bp
