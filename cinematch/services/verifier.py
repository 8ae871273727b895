# services/verifier.py
"""
Bot verification against the reCAPTCHA v3 siteverify endpoint.

The verifier only reports what Google says. Deciding whether that is
trustworthy enough (action, threshold) is the submission gate's job.
Any transport problem fails closed as VerifierUnavailableError.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import requests

from cinematch.errors import ConfigurationError, VerifierUnavailableError

logger = logging.getLogger(__name__)

DEFAULT_VERIFY_URL = "https://www.google.com/recaptcha/api/siteverify"


@dataclass(frozen=True)
class Verification:
    success: bool
    score: float
    action: Optional[str]
    hostname: Optional[str] = None
    error_codes: List[str] = field(default_factory=list)

    @classmethod
    def from_response(cls, body: Dict[str, Any]) -> "Verification":
        score = body.get("score")
        if isinstance(score, bool) or not isinstance(score, (int, float)):
            score = 0.0
        action = body.get("action")
        codes = body.get("error-codes") or []
        return cls(
            success=body.get("success") is True,
            score=float(score),
            action=action if isinstance(action, str) else None,
            hostname=body.get("hostname"),
            error_codes=[str(c) for c in codes] if isinstance(codes, list) else [],
        )


class RecaptchaVerifier:
    def __init__(
        self,
        secret: Optional[str],
        verify_url: str = DEFAULT_VERIFY_URL,
        timeout: float = 5.0,
        session: Optional[requests.Session] = None,
    ):
        self.secret = secret
        self.verify_url = verify_url
        self.timeout = timeout
        self.session = session or requests.Session()

    @classmethod
    def from_config(cls, config) -> "RecaptchaVerifier":
        return cls(
            secret=config.get("RECAPTCHA_SECRET"),
            verify_url=config.get("RECAPTCHA_VERIFY_URL") or DEFAULT_VERIFY_URL,
            timeout=float(config.get("VERIFY_TIMEOUT_SECONDS", 5.0)),
        )

    def verify(self, token: str, remote_ip: Optional[str] = None) -> Verification:
        """
        POST the token to siteverify.

        Raises:
            ConfigurationError: no secret configured
            VerifierUnavailableError: network error, timeout, non-2xx or non-JSON reply
        """
        if not self.secret:
            raise ConfigurationError("Missing reCAPTCHA secret configuration")

        data = {"secret": self.secret, "response": token}
        if remote_ip:
            data["remoteip"] = remote_ip

        try:
            resp = self.session.post(self.verify_url, data=data, timeout=self.timeout)
        except requests.Timeout as e:
            logger.warning("[verifier] siteverify timed out after %ss", self.timeout)
            raise VerifierUnavailableError("Siteverify request timed out") from e
        except requests.RequestException as e:
            logger.warning("[verifier] siteverify unreachable: %s", e)
            raise VerifierUnavailableError("Siteverify request failed") from e

        if not resp.ok:
            logger.warning("[verifier] siteverify returned HTTP %s", resp.status_code)
            raise VerifierUnavailableError(
                "Siteverify request failed",
                {"upstream_status": resp.status_code, "upstream_detail": resp.text[:500]},
            )

        try:
            body = resp.json()
        except ValueError as e:
            raise VerifierUnavailableError("Siteverify returned invalid JSON") from e
        if not isinstance(body, dict):
            raise VerifierUnavailableError("Siteverify returned an unexpected body")

        return Verification.from_response(body)
