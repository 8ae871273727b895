# routes/quiz.py
"""
Quiz catalog, session and scoring endpoints (public).
"""
from flask import Blueprint, current_app, jsonify, request

from cinematch.errors import InvalidPayloadError
from cinematch.services.quiz_service import catalog, scoring
from cinematch.services.quiz_service import session as session_service
from cinematch.services.quiz_service.models import Session

quiz_bp = Blueprint("quiz", __name__)


@quiz_bp.get("/categories")
def categories():
    """
    GET /api/quiz/categories

    All categories in catalog order.
    """
    return jsonify({
        "ok": True,
        "categories": [c.to_dict() for c in catalog.list_categories()],
    }), 200


@quiz_bp.get("/session")
def new_session():
    """
    GET /api/quiz/session?count=10

    Start a quiz attempt with a random subset of questions.
    """
    count = request.args.get("count", current_app.config.get("SESSION_SIZE", 10), type=int)
    session = session_service.start_session(max(0, count))
    body = session.to_dict()
    body["ok"] = True
    return jsonify(body), 200


@quiz_bp.post("/score")
def score():
    """
    POST /api/quiz/score

    Request body:
    {
        "questionIds": [4, 17, 2, ...],
        "answers": ["action", "romance", "scifi", ...]
    }

    Response:
    {
        "ok": true,
        "answers": [...],
        "breakdown": [{"id": "action", "label": "Action", "color": "#ef4444", "count": 2, "percentage": 50.0}, ...],
        "totalAnswers": 4,
        "topCategoryId": "action"
    }
    """
    data = request.get_json(silent=True) or {}
    question_ids = data.get("questionIds")
    answers = data.get("answers")
    if not isinstance(question_ids, list) or not isinstance(answers, list):
        raise InvalidPayloadError("questionIds and answers must be arrays")

    by_id = {q.id: q for q in catalog.list_questions()}
    try:
        questions = tuple(by_id[qid] for qid in question_ids)
    except (KeyError, TypeError):
        raise InvalidPayloadError("questionIds contain an unknown question") from None
    if len({q.id for q in questions}) != len(questions):
        raise InvalidPayloadError("questionIds contain duplicates")

    # IncompleteAnswerError / UnknownCategoryError map to 400 in the app error handler
    result = scoring.score(Session(questions), answers)
    body = result.to_dict()
    body["ok"] = True
    return jsonify(body), 200
