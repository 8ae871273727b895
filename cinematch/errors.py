# errors.py
"""
Error taxonomy shared by services and routes.
Every error knows the HTTP status it maps to at the boundary.
"""

from __future__ import annotations
from typing import Any, Dict, Optional


class QuizError(Exception):
    status_code = 500
    code = "internal_error"

    def __init__(self, message: str, detail: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail or {}

    def to_dict(self) -> Dict[str, Any]:
        body = {"success": False, "error": self.message, "code": self.code}
        body.update(self.detail)
        return body


# -------------------- Local precondition errors --------------------

class IncompleteAnswerError(QuizError):
    """Not every session question has an answer."""
    status_code = 400
    code = "incomplete_answers"


class UnknownCategoryError(QuizError, KeyError):
    status_code = 400
    code = "unknown_category"

    def __str__(self) -> str:
        return self.message


# -------------------- Submission errors --------------------

class SubmissionError(QuizError):
    """Base for failures the submission gate reports as a failed outcome."""


class InvalidPayloadError(SubmissionError):
    status_code = 400
    code = "invalid_payload"


class AttestationError(SubmissionError):
    status_code = 401
    code = "invalid_attestation"


class UntrustedSubmissionError(SubmissionError):
    status_code = 403
    code = "untrusted_submission"


class ConfigurationError(SubmissionError):
    status_code = 500
    code = "configuration_error"


class VerifierUnavailableError(SubmissionError):
    status_code = 502
    code = "verifier_unavailable"


# -------------------- Store errors --------------------

class StoreError(QuizError):
    """Read or write against the result store failed."""
    status_code = 500
    code = "store_error"
