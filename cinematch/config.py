# config.py
import os
from pathlib import Path


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise RuntimeError(f"Invalid {name}: {raw!r} is not a number") from e


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise RuntimeError(f"Invalid {name}: {raw!r} is not an integer") from e


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class Config:
    """
    Settings read from the environment (after load_dotenv in app.py).
    Loaded into Flask with app.config.from_object(Config).
    """

    # --- Bot verification (reCAPTCHA v3) ---
    RECAPTCHA_SECRET = os.getenv("RECAPTCHA_SECRET")
    RECAPTCHA_VERIFY_URL = os.getenv("RECAPTCHA_VERIFY_URL", "https://www.google.com/recaptcha/api/siteverify")
    MIN_TRUST_SCORE = _env_float("MIN_TRUST_SCORE", 0.5)
    EXPECTED_ACTION = os.getenv("EXPECTED_ACTION", "quiz_submit")
    VERIFY_TIMEOUT_SECONDS = _env_float("VERIFY_TIMEOUT_SECONDS", 5.0)

    # --- Submission ---
    # Width of the idempotency window. 86400 = one UTC calendar day.
    IDEMPOTENCY_WINDOW_SECONDS = _env_int("IDEMPOTENCY_WINDOW_SECONDS", 86400)
    # Verify X-Firebase-AppCheck when present; with this on, it is also required.
    REQUIRE_APP_CHECK = _env_bool("REQUIRE_APP_CHECK", False)

    # --- Store ---
    STORE_BACKEND = os.getenv("STORE_BACKEND", "firestore")  # firestore | memory
    RESULTS_COLLECTION = os.getenv("RESULTS_COLLECTION", "results")
    PREFERENCES_COLLECTION = os.getenv("PREFERENCES_COLLECTION", "preferences")

    # --- Quiz & statistics ---
    SESSION_SIZE = _env_int("SESSION_SIZE", 10)
    MY_RESULTS_LIMIT = _env_int("MY_RESULTS_LIMIT", 14)
    GLOBAL_RESULTS_LIMIT = _env_int("GLOBAL_RESULTS_LIMIT", 24)
    STATS_TIMEOUT_SECONDS = _env_float("STATS_TIMEOUT_SECONDS", 10.0)
    MAX_RESULTS_LIMIT = 200

    # --- Film suggestions (TMDB) ---
    TMDB_API_TOKEN = os.getenv("TMDB_API_TOKEN")
    TMDB_BASE_URL = os.getenv("TMDB_BASE_URL", "https://api.themoviedb.org/3")
    TMDB_LANGUAGE = os.getenv("TMDB_LANGUAGE", "it-IT")
    TMDB_TIMEOUT_SECONDS = _env_float("TMDB_TIMEOUT_SECONDS", 5.0)

    @staticmethod
    def firebase_credentials_path() -> str | None:
        """
        Service-account file for Firebase Admin, or None for default credentials.

        GOOGLE_APPLICATION_CREDENTIALS may be absolute, relative to the repo
        root, or a bare file name under firebase/credentials/. When it is
        unset, the first JSON file in firebase/credentials/ is used.
        Raises FileNotFoundError when the variable names a missing file.
        """
        repo_root = Path(__file__).resolve().parents[1]
        cred_dir = repo_root / "firebase" / "credentials"

        raw = (os.getenv("GOOGLE_APPLICATION_CREDENTIALS") or "").strip().strip("\"'")
        if not raw:
            found = sorted(cred_dir.glob("*.json")) if cred_dir.is_dir() else []
            return str(found[0]) if found else None

        given = Path(os.path.expanduser(os.path.expandvars(raw)))
        candidates = [given, repo_root / given, cred_dir / given.name]
        for candidate in candidates:
            if candidate.is_file():
                return str(candidate.resolve())
        tried = "\n".join(f" - {c}" for c in candidates)
        raise FileNotFoundError(f"Firebase credential file not found. Tried:\n{tried}")


class TestConfig(Config):
    TESTING = True
    STORE_BACKEND = "memory"
    RECAPTCHA_SECRET = "test-secret"
    TMDB_API_TOKEN = "test-token"
    REQUIRE_APP_CHECK = False
