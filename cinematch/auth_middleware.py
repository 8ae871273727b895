# auth_middleware.py
import logging
from functools import wraps

from flask import current_app, jsonify, request
from firebase_admin import app_check

from cinematch.errors import AttestationError
from cinematch.services.firebase import init_firebase_app

logger = logging.getLogger(__name__)

APP_CHECK_HEADER = "X-Firebase-AppCheck"


def verify_app_check(fn):
    """
    Verify a Firebase App Check token from the 'X-Firebase-AppCheck' header.

    A supplied token must verify, else 401. Without a header the request
    passes unless REQUIRE_APP_CHECK is set.
    Sets request.app_check = decoded claims (or None).
    """
    @wraps(fn)
    def wrapper(*args, **kwargs):
        token = request.headers.get(APP_CHECK_HEADER, "").strip()
        request.app_check = None
        if not token:
            if current_app.config.get("REQUIRE_APP_CHECK"):
                err = AttestationError("Missing App Check token")
                return jsonify(err.to_dict()), err.status_code
            return fn(*args, **kwargs)
        try:
            init_firebase_app()
            request.app_check = app_check.verify_token(token)
        except Exception as e:
            logger.info("[app-check] rejected token: %s", e)
            err = AttestationError("Invalid App Check token")
            return jsonify(err.to_dict()), err.status_code
        return fn(*args, **kwargs)
    return wrapper
