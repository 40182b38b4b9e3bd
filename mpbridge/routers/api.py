"""REST API routes for operators: token, followers, templates and messages."""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from flask import Blueprint, current_app, g, jsonify, request

from mpbridge.wechat.errors import TransportError, UpstreamApiError
from mpbridge.wechat.models import TemplateMessageRequest
from mpbridge.wechat.service_account import WeChatServiceAPI


class PayloadError(ValueError):
    """Request body is missing a field or has the wrong type."""


def _json_body() -> Dict[str, Any]:
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        raise PayloadError("Request body must be a JSON object")
    return payload


def _require_str(payload: Dict[str, Any], key: str) -> str:
    value = payload.get(key)
    if not isinstance(value, str) or not value:
        raise PayloadError(f"'{key}' is required and must be a string")
    return value


def _optional_str(payload: Dict[str, Any], key: str) -> Optional[str]:
    value = payload.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise PayloadError(f"'{key}' must be a string")
    return value


def _template_data(payload: Dict[str, Any]) -> Dict[str, Dict[str, str]]:
    data = payload.get("data")
    if not isinstance(data, dict):
        raise PayloadError("'data' is required and must be an object")
    for key, item in data.items():
        if not isinstance(item, dict) or not isinstance(item.get("value"), str):
            raise PayloadError(f"'data.{key}.value' must be a string")
        if "color" in item and not isinstance(item["color"], str):
            raise PayloadError(f"'data.{key}.color' must be a string")
    return data


def _miniprogram(payload: Dict[str, Any]) -> Optional[Dict[str, str]]:
    value = payload.get("miniprogram")
    if value is None:
        return None
    if not isinstance(value, dict):
        raise PayloadError("'miniprogram' must be an object")
    return {"appid": _require_str(value, "appid"), "pagepath": _require_str(value, "pagepath")}


def _openids(payload: Dict[str, Any]) -> List[str]:
    value = payload.get("openids")
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise PayloadError("'openids' must be a list of strings")
    return value


def register_error_handlers(bp: Blueprint) -> None:
    @bp.errorhandler(PayloadError)
    def _bad_payload(exc: PayloadError):
        g.request_error = str(exc)
        return jsonify({"success": False, "error": str(exc)}), 400

    @bp.errorhandler(UpstreamApiError)
    def _upstream_error(exc: UpstreamApiError):
        g.request_error = str(exc)
        current_app.logger.warning("WeChat API error: %s", exc)
        return jsonify({"success": False, "error": str(exc), **exc.to_dict()}), 502

    @bp.errorhandler(TransportError)
    def _transport_error(exc: TransportError):
        g.request_error = str(exc)
        current_app.logger.error("WeChat API unreachable: %s", exc)
        return jsonify({"success": False, "error": str(exc)}), 502


def create_api_blueprint(wechat_api: WeChatServiceAPI) -> Blueprint:
    bp = Blueprint("wechat_api", __name__)
    register_error_handlers(bp)

    @bp.route("/token", methods=["GET"])
    def get_access_token():
        return jsonify({"access_token": wechat_api.get_access_token()})

    @bp.route("/token/clear", methods=["POST"])
    def clear_token_cache():
        wechat_api.clear_access_token()
        return jsonify({"message": "Access token cache cleared"})

    @bp.route("/followers", methods=["GET"])
    def get_followers():
        page = wechat_api.get_followers(request.args.get("next_openid") or None)
        return jsonify(page.to_dict())

    @bp.route("/followers/all", methods=["GET"])
    def get_all_followers():
        openids = wechat_api.get_all_follower_openids()
        return jsonify({"total": len(openids), "openids": openids})

    @bp.route("/user", methods=["GET"])
    def get_user_info():
        openid = request.args.get("openid", "")
        if not openid:
            raise PayloadError("'openid' query parameter is required")
        return jsonify(wechat_api.get_user_info(openid))

    @bp.route("/templates", methods=["GET"])
    def get_templates():
        return jsonify(wechat_api.get_template_list())

    @bp.route("/message/template", methods=["POST"])
    def send_template_message():
        payload = _json_body()
        message = TemplateMessageRequest(
            touser=_require_str(payload, "openid"),
            template_id=_require_str(payload, "templateId"),
            data=_template_data(payload),
            url=_optional_str(payload, "url"),
            miniprogram=_miniprogram(payload),
        )
        return jsonify(wechat_api.send_template_message(message))

    @bp.route("/message/template/batch", methods=["POST"])
    def send_batch_template_message():
        payload = _json_body()
        result = wechat_api.send_batch_template_message(
            _openids(payload),
            _require_str(payload, "templateId"),
            _template_data(payload),
            url=_optional_str(payload, "url"),
            miniprogram=_miniprogram(payload),
        )
        return jsonify(result.to_dict())

    @bp.route("/message/template/all", methods=["POST"])
    def send_template_message_to_all():
        payload = _json_body()
        result = wechat_api.send_template_message_to_all(
            _require_str(payload, "templateId"),
            _template_data(payload),
            url=_optional_str(payload, "url"),
        )
        return jsonify(result.to_dict())

    @bp.route("/message/text", methods=["POST"])
    def send_text_message():
        payload = _json_body()
        wechat_api.send_text_message(_require_str(payload, "openid"), _require_str(payload, "content"))
        return jsonify({"message": "sent"})

    return bp
