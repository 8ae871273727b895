"""HTTP-level tests through the Flask test client."""
from datetime import timedelta
from unittest.mock import MagicMock, patch

import pytest
import requests

from app import create_app
from cinematch.config import TestConfig as AppTestConfig
from cinematch.services.store import MemoryResultStore
from cinematch.services.verifier import RecaptchaVerifier

from conftest import FakeVerifier


class TestSubmitRoute:
    def test_success(self, client, store, payload):
        resp = client.post("/submit", json=payload)
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["success"] is True
        assert body["created"] is True
        assert body["storedResultId"] in store.results

    def test_duplicate_returns_same_id(self, client, store, payload):
        first = client.post("/submit", json=payload).get_json()
        second = client.post("/submit", json=payload).get_json()
        assert first["storedResultId"] == second["storedResultId"]
        assert second["created"] is False
        assert len(store.results) == 1

    def test_invalid_payload(self, client):
        resp = client.post("/submit", json={"identityId": "u1"})
        assert resp.status_code == 400
        assert resp.get_json()["success"] is False

    def test_non_json_body(self, client):
        resp = client.post("/submit", data="token=abc", content_type="text/plain")
        assert resp.status_code == 400

    def test_low_score_is_forbidden(self, clock, payload):
        store_ = MemoryResultStore(clock=clock)
        app = create_app(AppTestConfig, store=store_, verifier=FakeVerifier(score=0.1))
        resp = app.test_client().post("/submit", json=payload)
        assert resp.status_code == 403
        assert resp.get_json()["error"] == "Low score"
        assert store_.results == {}

    def test_verifier_outage_is_bad_gateway(self, store, payload):
        session = MagicMock()
        session.post.side_effect = requests.Timeout("slow")
        verifier = RecaptchaVerifier("secret", session=session)
        app = create_app(AppTestConfig, store=store, verifier=verifier)
        resp = app.test_client().post("/submit", json=payload)
        assert resp.status_code == 502
        assert store.results == {}

    def test_missing_secret_is_server_error(self, store, payload):
        app = create_app(AppTestConfig, store=store, verifier=RecaptchaVerifier(None))
        resp = app.test_client().post("/submit", json=payload)
        assert resp.status_code == 500
        assert resp.get_json()["error"] == "Missing reCAPTCHA secret configuration"

    def test_forwarded_ip_reaches_verifier(self, client, verifier, payload):
        client.post("/submit", json=payload, headers={"X-Forwarded-For": "203.0.113.7, 10.0.0.1"})
        assert verifier.calls[-1] == ("tok-123", "203.0.113.7")

    def test_preflight(self, client):
        resp = client.open("/submit", method="OPTIONS")
        assert resp.status_code == 204
        assert "POST" in resp.headers["Access-Control-Allow-Methods"]

    def test_get_is_not_allowed(self, client):
        assert client.get("/submit").status_code == 405


class TestAppCheck:
    def test_invalid_token_is_rejected(self, client, store, payload):
        with patch("cinematch.auth_middleware.init_firebase_app"), \
                patch("cinematch.auth_middleware.app_check.verify_token", side_effect=ValueError("bad")):
            resp = client.post("/submit", json=payload, headers={"X-Firebase-AppCheck": "forged"})
        assert resp.status_code == 401
        assert resp.get_json()["code"] == "invalid_attestation"
        assert store.results == {}

    def test_valid_token_passes(self, client, payload):
        with patch("cinematch.auth_middleware.init_firebase_app"), \
                patch("cinematch.auth_middleware.app_check.verify_token", return_value={"app_id": "web"}) as vt:
            resp = client.post("/submit", json=payload, headers={"X-Firebase-AppCheck": "good"})
        assert resp.status_code == 200
        vt.assert_called_once_with("good")

    def test_required_but_missing(self, store, verifier, payload):
        app = create_app(AppTestConfig, store=store, verifier=verifier)
        app.config["REQUIRE_APP_CHECK"] = True
        resp = app.test_client().post("/submit", json=payload)
        assert resp.status_code == 401


class TestQuizRoutes:
    def test_categories(self, client):
        body = client.get("/api/quiz/categories").get_json()
        assert [c["id"] for c in body["categories"]][:3] == ["action", "adventure", "comedy"]
        assert body["categories"][0]["externalTaxonomyId"] == 28

    def test_session_default_size(self, client):
        body = client.get("/api/quiz/session").get_json()
        assert body["total_questions"] == 10
        assert len({q["id"] for q in body["questions"]}) == 10

    def test_session_count_param(self, client):
        assert client.get("/api/quiz/session?count=3").get_json()["total_questions"] == 3
        assert client.get("/api/quiz/session?count=-1").get_json()["total_questions"] == 0

    def test_score(self, client):
        resp = client.post("/api/quiz/score", json={
            "questionIds": [1, 2, 3, 4],
            "answers": ["action", "action", "adventure", "comedy"],
        })
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["topCategoryId"] == "action"
        assert [e["percentage"] for e in body["breakdown"]] == [50.0, 25.0, 25.0]

    @pytest.mark.parametrize("body", [
        {"questionIds": [1, 2], "answers": ["action"]},
        {"questionIds": [1, 999], "answers": ["action", "drama"]},
        {"questionIds": [1, 1], "answers": ["action", "drama"]},
        {"questionIds": [1, 2], "answers": ["action", "western"]},
        {"questionIds": "1,2", "answers": ["action", "drama"]},
    ])
    def test_score_rejects_bad_input(self, client, body):
        resp = client.post("/api/quiz/score", json=body)
        assert resp.status_code == 400
        assert resp.get_json()["success"] is False


class TestStatsRoutes:
    def _seed(self, gate, clock):
        gate.submit({"token": "t", "identityId": "u1", "displayName": "Ada", "answers": ["horror", "horror", "drama"]})
        clock.now = clock.now + timedelta(days=1)
        gate.submit({"token": "t", "identityId": "u1", "displayName": "Ada", "answers": ["action", "comedy", "action"]})
        gate.submit({"token": "t", "identityId": "g1", "isGuest": True, "answers": ["action"]})

    def test_stats(self, client, app, clock):
        self._seed(app.extensions["submission_gate"], clock)
        body = client.get("/api/stats?identityId=u1").get_json()
        assert body["ok"] is True
        assert body["errors"] == {}
        assert [h["categoryId"] for h in body["personal"]["history"]] == ["action", "horror"]
        assert [p["categoryId"] for p in body["personal"]["series"]] == ["horror", "action"]
        assert body["population"]["split"] == {"guests": 1, "registered": 1, "total": 2}
        assert [(s["id"], s["percentage"]) for s in body["population"]["pie"]] == [("action", 100.0)]

    def test_stats_without_identity(self, client, app, clock):
        self._seed(app.extensions["submission_gate"], clock)
        body = client.get("/api/stats").get_json()
        assert body["personal"] == {"history": [], "series": []}
        assert len(body["population"]["latest"]) == 2

    def test_limits_are_clamped(self, client, app, clock):
        self._seed(app.extensions["submission_gate"], clock)
        body = client.get("/api/stats?identityId=u1&mine=0&global=1").get_json()
        assert len(body["personal"]["history"]) == 1
        assert len(body["population"]["latest"]) == 1

    def test_stats_timeout_comes_from_config(self, client, app):
        app.config["STATS_TIMEOUT_SECONDS"] = 2.5
        with patch("cinematch.routes.stats.statistics.get_statistics", return_value={"errors": {}}) as stats:
            client.get("/api/stats")
        assert stats.call_args.kwargs["timeout"] == 2.5

    def test_stats_store_failure(self, verifier):
        broken = MagicMock()
        broken.recent_results.side_effect = RuntimeError("down")
        app = create_app(AppTestConfig, store=broken, verifier=verifier)
        resp = app.test_client().get("/api/stats")
        assert resp.status_code == 500
        assert resp.get_json()["code"] == "store_error"

    def test_preferences(self, client, app, clock):
        self._seed(app.extensions["submission_gate"], clock)
        body = client.get("/api/preferences/u1").get_json()
        assert body["preferences"]["topCategories"][0]["id"] == "action"
        assert "updatedAt" not in body["preferences"]

    def test_preferences_missing(self, client):
        assert client.get("/api/preferences/nobody").status_code == 404


class TestFilmsRoute:
    def test_discover(self, client):
        upstream = MagicMock(ok=True, status_code=200)
        upstream.json.return_value = {
            "page": 1,
            "total_pages": 7,
            "results": [{"id": 603, "title": "The Matrix", "release_date": "1999-03-31", "vote_average": 8.2}],
        }
        with patch("cinematch.services.films.requests.get", return_value=upstream) as get:
            resp = client.get("/api/films?categoryId=scifi&page=2")
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["films"][0]["title"] == "The Matrix"
        assert body["total_pages"] == 7
        params = get.call_args.kwargs["params"]
        assert params["with_genres"] == 878
        assert params["page"] == 2
        assert get.call_args.kwargs["headers"]["Authorization"] == "Bearer test-token"

    def test_missing_category(self, client):
        assert client.get("/api/films").status_code == 400

    def test_unknown_category(self, client):
        assert client.get("/api/films?categoryId=western").status_code == 400

    def test_upstream_failure(self, client):
        with patch("cinematch.services.films.requests.get", side_effect=requests.ConnectionError("down")):
            resp = client.get("/api/films?categoryId=drama")
        assert resp.status_code == 502
        assert resp.get_json()["code"] == "films_unavailable"


def test_health(client):
    body = client.get("/api/health").get_json()
    assert body["ok"] is True
    assert body["version"]


def test_unknown_route_is_json_404(client):
    resp = client.get("/api/nothing-here")
    assert resp.status_code == 404
    assert resp.get_json()["ok"] is False
