# routes/submit.py
"""
Quiz result submission endpoint (public, bot-checked).
"""
import logging

from flask import Blueprint, current_app, jsonify, request

from cinematch.auth_middleware import APP_CHECK_HEADER, verify_app_check
from cinematch.errors import StoreError

logger = logging.getLogger(__name__)

submit_bp = Blueprint("submit", __name__)

_CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Access-Control-Allow-Headers": f"Content-Type, Authorization, {APP_CHECK_HEADER}",
    "Access-Control-Max-Age": "3600",
}


def _client_ip():
    forwarded = request.headers.get("X-Forwarded-For", "")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.remote_addr


@submit_bp.route("/submit", methods=["OPTIONS"])
def submit_preflight():
    return "", 204, _CORS_HEADERS


@submit_bp.route("/submit", methods=["POST"], provide_automatic_options=False)
@verify_app_check
def submit():
    """
    POST /submit

    Request body:
    {
        "token": "<reCAPTCHA v3 token>",
        "identityId": "abc123",
        "displayName": "Guest 0042",
        "isGuest": true,
        "answers": ["action", "action", "comedy", ...],   # or "topCategoryId": "action"
        "breakdown": [{"id": "action", "count": 2, "percentage": 50.0}, ...],
        "totalAnswers": 4,
        "clientTimestamp": "2026-03-07T18:00:00Z"
    }

    Response:
    {"success": true, "storedResultId": "9f2c...", "trustScore": 0.9, "created": true}
    """
    payload = request.get_json(silent=True)
    gate = current_app.extensions["submission_gate"]
    try:
        outcome = gate.submit(payload, remote_ip=_client_ip())
    except StoreError as e:
        logger.error("[submit] store failure: %s", e)
        return jsonify(e.to_dict()), e.status_code
    return jsonify(outcome.to_dict()), outcome.status_code
