"""Request log inspection routes."""
from __future__ import annotations

from flask import Blueprint, jsonify, request

from mpbridge.request_log import RequestLog


def create_logs_blueprint(request_log: RequestLog) -> Blueprint:
    bp = Blueprint("logs", __name__)

    @bp.route("", methods=["GET"])
    def recent_logs():
        lines = request.args.get("lines", type=int) or 100
        return jsonify({"path": request_log.path, "content": request_log.recent(lines)})

    @bp.route("/path", methods=["GET"])
    def log_path():
        return jsonify({"path": request_log.path})

    @bp.route("/clear", methods=["POST"])
    def clear_logs():
        request_log.clear()
        return jsonify({"message": "Request log cleared"})

    return bp
