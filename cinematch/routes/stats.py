# routes/stats.py
"""
Statistics and preference endpoints.
"""
from flask import Blueprint, current_app, jsonify, request

from cinematch.services import statistics

stats_bp = Blueprint("stats", __name__)


def _limit(name: str, default: int) -> int:
    value = request.args.get(name, default, type=int)
    return min(max(1, value), current_app.config.get("MAX_RESULTS_LIMIT", 200))


@stats_bp.get("/stats")
def get_stats():
    """
    GET /api/stats?identityId=abc123&mine=14&global=24

    Personal history and chart series for `identityId` (omitted -> empty),
    plus population pie, guest/registered split and latest result per user.
    """
    identity_id = (request.args.get("identityId") or "").strip() or None
    store = current_app.extensions["result_store"]
    result = statistics.get_statistics(
        store,
        identity_id,
        mine_limit=_limit("mine", current_app.config.get("MY_RESULTS_LIMIT", 14)),
        global_limit=_limit("global", current_app.config.get("GLOBAL_RESULTS_LIMIT", 24)),
        timeout=float(current_app.config.get("STATS_TIMEOUT_SECONDS", 10.0)),
    )
    return jsonify(result), 200


@stats_bp.get("/preferences/<identity_id>")
def get_preferences(identity_id):
    """
    GET /api/preferences/<identityId>

    Current preference snapshot (top 5 categories of the latest submission).
    """
    store = current_app.extensions["result_store"]
    snapshot = store.get_preferences(identity_id)
    if snapshot is None:
        return jsonify({"ok": False, "error": "No preferences stored"}), 404
    snapshot.pop("updatedAt", None)
    return jsonify({"ok": True, "preferences": snapshot}), 200
