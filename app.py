# app.py
"""
Main Flask application entrypoint.

- Loads env/config
- Builds the result store, verifier and submission gate
- Enables CORS for /api/* and /submit
- Registers blueprints: Submit, Quiz, Stats, Films
"""

from __future__ import annotations
import logging
import os
from datetime import datetime, timezone

from dotenv import load_dotenv
from flask import Flask, jsonify
from flask_cors import CORS

# ---- Load .env early ----
load_dotenv()

from cinematch import __version__
from cinematch.config import Config
from cinematch.errors import QuizError
from cinematch.routes.films import films_bp
from cinematch.routes.quiz import quiz_bp
from cinematch.routes.stats import stats_bp
from cinematch.routes.submit import submit_bp
from cinematch.services.quiz_service.submission import SubmissionGate
from cinematch.services.store import make_store
from cinematch.services.verifier import RecaptchaVerifier

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------
# App Factory
# ---------------------------------------------------------------------
def create_app(config_object=Config, store=None, verifier=None) -> Flask:
    app = Flask(__name__)
    app.config.from_object(config_object)

    logging.basicConfig(
        level=logging.DEBUG if app.config.get("DEBUG") else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    CORS(app, resources={r"/api/*": {"origins": "*"}, r"/submit": {"origins": "*"}})

    # --- Collaborators ---
    if store is None:
        store = make_store(app.config)
    if verifier is None:
        verifier = RecaptchaVerifier.from_config(app.config)
    app.extensions["result_store"] = store
    app.extensions["submission_gate"] = SubmissionGate.from_config(app.config, store, verifier)

    if not app.config.get("RECAPTCHA_SECRET"):
        logger.warning("RECAPTCHA_SECRET is not set; every submission will fail with 500")

    # --- Register blueprints ---
    app.register_blueprint(submit_bp)                                # POST /submit (bot-checked)
    app.register_blueprint(quiz_bp, url_prefix="/api/quiz")          # public
    app.register_blueprint(stats_bp, url_prefix="/api")              # public
    app.register_blueprint(films_bp, url_prefix="/api/films")        # public

    # --- Health (public) ---
    @app.get("/api/health")
    def health():
        return jsonify({
            "ok": True,
            "service": "flask",
            "version": __version__,
            "time": datetime.now(timezone.utc).isoformat(),
        })

    # --- JSON error handlers ---
    @app.errorhandler(QuizError)
    def handle_quiz_error(err):
        if err.status_code >= 500:
            logger.error("%s: %s", type(err).__name__, err.message)
        return jsonify(err.to_dict()), err.status_code

    @app.errorhandler(400)
    def handle_400(err):
        return jsonify({"ok": False, "error": str(err)}), 400

    @app.errorhandler(404)
    def handle_404(err):
        return jsonify({"ok": False, "error": "Not found"}), 404

    @app.errorhandler(405)
    def handle_405(err):
        return jsonify({"ok": False, "error": "Method not allowed"}), 405

    @app.errorhandler(500)
    def handle_500(err):
        return jsonify({"ok": False, "error": "Internal server error"}), 500

    return app


# ---------------------------------------------------------------------
# Dev Server Launcher
# ---------------------------------------------------------------------
app = create_app()

if __name__ == "__main__":
    port = int(os.getenv("PORT", "5001"))
    app.run(host="0.0.0.0", port=port, debug=True)
