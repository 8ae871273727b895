# services/films.py
"""
Film suggestions for a category, from TMDB discover/movie.
The category's external_taxonomy_id is the TMDB genre id.
"""

from __future__ import annotations
import logging
from typing import Any, Dict, Optional

import requests

from cinematch.errors import ConfigurationError, QuizError
from cinematch.services.quiz_service import catalog

logger = logging.getLogger(__name__)

MAX_PAGE = 500


class FilmServiceError(QuizError):
    """TMDB could not be reached or answered with an error."""
    status_code = 502
    code = "films_unavailable"


def _slim(movie: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": movie.get("id"),
        "title": movie.get("title") or movie.get("original_title"),
        "overview": movie.get("overview"),
        "releaseDate": movie.get("release_date"),
        "posterPath": movie.get("poster_path"),
        "voteAverage": movie.get("vote_average"),
    }


def discover_by_category(
    category_id: str,
    page: int = 1,
    api_token: Optional[str] = None,
    base_url: str = "https://api.themoviedb.org/3",
    language: str = "it-IT",
    timeout: float = 5.0,
    session: Optional[requests.Session] = None,
) -> Dict[str, Any]:
    """
    Popular films for one category.

    Response:
    {
        "ok": true,
        "category": {"id": "action", "label": "Action", ...},
        "page": 1,
        "total_pages": 42,
        "films": [{"id": 1, "title": "...", ...}, ...]
    }
    Raises UnknownCategoryError, ConfigurationError (no token) or FilmServiceError.
    """
    category = catalog.get_category(category_id)
    if not api_token:
        raise ConfigurationError("Missing TMDB API token configuration")
    page = min(max(1, int(page)), MAX_PAGE)

    params = {
        "include_adult": "false",
        "include_video": "false",
        "language": language,
        "page": page,
        "sort_by": "popularity.desc",
        "with_genres": category.external_taxonomy_id,
        "with_original_language": "it|en",
    }
    headers = {"Authorization": f"Bearer {api_token}", "accept": "application/json"}

    http = session or requests
    try:
        resp = http.get(f"{base_url.rstrip('/')}/discover/movie", params=params, headers=headers, timeout=timeout)
    except requests.RequestException as e:
        logger.warning("[films] TMDB unreachable: %s", e)
        raise FilmServiceError("TMDB request failed") from e
    if not resp.ok:
        logger.warning("[films] TMDB returned HTTP %s for %s", resp.status_code, category_id)
        raise FilmServiceError("TMDB request failed", {"upstream_status": resp.status_code})

    try:
        body = resp.json()
    except ValueError as e:
        raise FilmServiceError("TMDB returned invalid JSON") from e

    return {
        "ok": True,
        "category": category.to_dict(),
        "page": body.get("page", page),
        "total_pages": body.get("total_pages", 0),
        "films": [_slim(m) for m in body.get("results") or [] if isinstance(m, dict)],
    }
