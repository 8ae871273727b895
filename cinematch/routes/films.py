# routes/films.py
from flask import Blueprint, current_app, jsonify, request

from cinematch.errors import InvalidPayloadError
from cinematch.services import films

films_bp = Blueprint("films", __name__)


@films_bp.get("")
def films_by_category():
    """
    GET /api/films?categoryId=action&page=1

    Popular films for a quiz category.
    """
    category_id = request.args.get("categoryId")
    if not category_id:
        raise InvalidPayloadError("categoryId required")
    page = request.args.get("page", 1, type=int)
    cfg = current_app.config
    return jsonify(films.discover_by_category(
        category_id,
        page=page,
        api_token=cfg.get("TMDB_API_TOKEN"),
        base_url=cfg.get("TMDB_BASE_URL", "https://api.themoviedb.org/3"),
        language=cfg.get("TMDB_LANGUAGE", "it-IT"),
        timeout=float(cfg.get("TMDB_TIMEOUT_SECONDS", 5.0)),
    )), 200
