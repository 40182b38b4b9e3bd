"""Application factory and dependency wiring."""
from __future__ import annotations

import logging
import os
import time

import requests
from flask import Flask, g, got_request_exception, jsonify, request

from config import config
from mpbridge.request_log import LogEntry, RequestLog, mask_sensitive
from mpbridge.routers.api import create_api_blueprint
from mpbridge.routers.logs import create_logs_blueprint
from mpbridge.routers.service_account import create_service_blueprint
from mpbridge.routers.users import create_user_blueprint
from mpbridge.services.follower_sync import SubscriptionSync, UserService
from mpbridge.services.message_router import MessageRouter
from mpbridge.user_store import UserStore
from mpbridge.wechat.models import WechatConfig
from mpbridge.wechat.service_account import WeChatServiceAPI, build_session
from mpbridge.wechat.token_cache import TokenCache

URL_PREFIX = "/wxapi"
MAX_LOGGED_RESPONSE = 500


def _client_ip() -> str:
    forwarded = request.headers.get("X-Forwarded-For", "")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.headers.get("X-Real-IP") or request.remote_addr or "unknown"


def _record_request_error(sender, exception, **extra) -> None:
    g.request_error = str(exception)


def _install_request_log(app: Flask, request_log: RequestLog) -> None:
    got_request_exception.connect(_record_request_error, app)

    @app.before_request
    def _start_timer():
        g.request_started = time.monotonic()

    @app.after_request
    def _write_entry(response):
        started = g.pop("request_started", None)
        duration = int((time.monotonic() - started) * 1000) if started is not None else 0
        body = request.get_json(silent=True) if request.is_json else None
        response_text = None
        if not response.direct_passthrough:
            response_text = response.get_data(as_text=True)
            if len(response_text) > MAX_LOGGED_RESPONSE:
                response_text = response_text[:MAX_LOGGED_RESPONSE] + "..."
        request_log.write(
            LogEntry(
                method=request.method,
                url=request.full_path.rstrip("?"),
                status_code=response.status_code,
                duration_ms=duration,
                ip=_client_ip(),
                user_agent=request.headers.get("User-Agent"),
                query=request.args.to_dict(),
                body=mask_sensitive(body),
                response=response_text,
                error=g.pop("request_error", None),
            )
        )
        app.logger.info("%s %s %s - %sms - %s", request.method, request.path, response.status_code, duration, _client_ip())
        return response


def create_app(config_name: str = "default", http_session: requests.Session | None = None) -> Flask:
    app = Flask(__name__)
    app.config.from_object(config[config_name])

    logging.basicConfig(
        level=getattr(logging, app.config.get("LOG_LEVEL", "INFO").upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    # Suppress or adjust werkzeug access logs based on config
    level_name = app.config.get("ACCESS_LOG_LEVEL", "ERROR").upper()
    if level_name == "NONE":
        logging.getLogger("werkzeug").disabled = True
    else:
        level = getattr(logging, level_name, logging.ERROR)
        logging.getLogger("werkzeug").setLevel(level)

    wechat_config = WechatConfig.from_mapping(app.config)
    if not (wechat_config.app_id and wechat_config.app_secret and wechat_config.token):
        app.logger.warning("WeChat credentials are incomplete; upstream calls and signature checks will fail")

    token_cache = TokenCache(safety_margin=app.config["WECHAT_TOKEN_SAFETY_MARGIN"])
    wechat_api = WeChatServiceAPI(
        config=wechat_config,
        token_cache=token_cache,
        session=http_session or build_session(app.config["WECHAT_HTTP_RETRIES"]),
        timeout=app.config["WECHAT_HTTP_TIMEOUT"],
        template_send_interval=app.config["WECHAT_TEMPLATE_SEND_INTERVAL"],
    )
    user_service = UserService(
        wechat_api,
        UserStore(),
        sync_interval=app.config["WECHAT_USER_SYNC_INTERVAL"],
    )
    subscriptions = SubscriptionSync(user_service)
    router = MessageRouter(
        welcome_message=app.config["WECHAT_WELCOME_MESSAGE"],
        echo_prefix=app.config["WECHAT_ECHO_PREFIX"],
    )
    request_log = RequestLog(
        os.path.join(app.config["LOG_DIR"], "api.log"),
        max_lines=app.config["REQUEST_LOG_MAX_LINES"],
    )

    app.register_blueprint(create_service_blueprint(app.config, router, subscriptions), url_prefix=URL_PREFIX)
    app.register_blueprint(create_api_blueprint(wechat_api), url_prefix=f"{URL_PREFIX}/wechat")
    app.register_blueprint(create_user_blueprint(user_service), url_prefix=f"{URL_PREFIX}/user")
    app.register_blueprint(create_logs_blueprint(request_log), url_prefix=f"{URL_PREFIX}/logs")

    if app.config.get("REQUEST_LOG_ENABLED"):
        _install_request_log(app, request_log)

    app.extensions["mpbridge"] = {
        "wechat_api": wechat_api,
        "user_service": user_service,
        "subscriptions": subscriptions,
        "router": router,
        "request_log": request_log,
    }

    @app.route("/")
    def index():
        return jsonify({
            "status": "running",
            "service": "mp-bridge",
            "version": "1.0.0",
            "callback": f"{URL_PREFIX}/wechat",
            "configured": bool(wechat_config.app_id and wechat_config.token),
        })

    return app
