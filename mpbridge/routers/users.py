"""Follower directory routes."""
from __future__ import annotations

from flask import Blueprint, jsonify, request

from mpbridge.routers.api import PayloadError, register_error_handlers
from mpbridge.services.follower_sync import UserService


def create_user_blueprint(user_service: UserService) -> Blueprint:
    bp = Blueprint("users", __name__)
    register_error_handlers(bp)

    @bp.route("/sync", methods=["POST"])
    def sync_all_followers():
        return jsonify(user_service.sync_all_followers().to_dict())

    @bp.route("", methods=["GET"])
    def get_user():
        openid = request.args.get("openid", "")
        if not openid:
            raise PayloadError("'openid' query parameter is required")
        user = user_service.get_user(openid)
        if user is None:
            return jsonify({"error": "user not found"}), 404
        return jsonify(user.to_dict())

    @bp.route("/list", methods=["GET"])
    def list_users():
        return jsonify([user.to_dict() for user in user_service.store.all()])

    @bp.route("/subscribed", methods=["GET"])
    def list_subscribed():
        return jsonify([user.to_dict() for user in user_service.store.subscribed()])

    @bp.route("/stats", methods=["GET"])
    def stats():
        return jsonify(user_service.store.stats())

    return bp
