# services/quiz_service/submission.py
"""
Submission gate: validate → verify trust → derive idempotency key →
create-if-absent → project preferences.

`submit` never raises for client or verifier problems; it returns a
SubmitOutcome carrying either a SubmitResult or the SubmissionError that
stopped the request. Only StoreError (the store itself failing) is raised.
"""

from __future__ import annotations
import hashlib
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from cinematch.errors import (
    InvalidPayloadError,
    SubmissionError,
    UntrustedSubmissionError,
)
from . import catalog, scoring
from .models import PreferenceSnapshot, StoredResult, SubmitResult
from .utils import normalize_timestamp, time_bucket, utc_now

logger = logging.getLogger(__name__)

# ============================================================================
# Config
# ============================================================================
DEFAULT_MIN_SCORE = 0.5
DEFAULT_EXPECTED_ACTION = "quiz_submit"
DEFAULT_WINDOW_SECONDS = 86400
TOP_PREFERENCES = 5
MAX_ID_LENGTH = 128
MAX_NAME_LENGTH = 80
DEFAULT_DISPLAY_NAME = "Guest"
# Slack allowed between a client percentage and the recomputed one.
PERCENTAGE_TOLERANCE = 0.1

# ============================================================================
# Types
# ============================================================================

@dataclass(frozen=True)
class SubmissionPayload:
    token: str
    identity_id: str
    display_name: str
    is_guest: bool
    top_category_id: str
    answers: List[str]
    breakdown: List[Dict[str, Any]]
    total_answers: int
    client_timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class SubmitOutcome:
    """Tagged result of `submit`: exactly one of `result` / `error` is set."""
    result: Optional[SubmitResult] = None
    error: Optional[SubmissionError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def status_code(self) -> int:
        return 200 if self.ok else self.error.status_code

    def to_dict(self) -> Dict[str, Any]:
        return self.result.to_dict() if self.ok else self.error.to_dict()


# ============================================================================
# Validation
# ============================================================================

def _require_str(payload: Dict[str, Any], *names: str, max_len: int = MAX_ID_LENGTH) -> str:
    for name in names:
        value = payload.get(name)
        if value is None:
            continue
        if not isinstance(value, str) or not value.strip():
            raise InvalidPayloadError(f"{names[0]} must be a non-empty string")
        if len(value) > max_len:
            raise InvalidPayloadError(f"{names[0]} is too long")
        return value.strip()
    raise InvalidPayloadError(f"{names[0]} is required")


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _parse_breakdown(raw: Any) -> Dict[str, Tuple[int, float]]:
    """Validate client breakdown entries. Returns {categoryId: (count, percentage)}."""
    if not isinstance(raw, list) or not raw:
        raise InvalidPayloadError("breakdown must be a non-empty array")
    claims: Dict[str, Tuple[int, float]] = {}
    for i, item in enumerate(raw):
        if not isinstance(item, dict):
            raise InvalidPayloadError(f"breakdown[{i}] must be an object")
        cid = item.get("id")
        if cid is None and isinstance(item.get("genre"), dict):
            cid = item["genre"].get("id")
        if not catalog.is_category(cid):
            raise InvalidPayloadError(f"breakdown[{i}] has an unknown category")
        if cid in claims:
            raise InvalidPayloadError(f"breakdown[{i}] repeats category {cid}")
        count = item.get("count")
        if not _is_int(count) or count < 0:
            raise InvalidPayloadError(f"breakdown[{i}].count must be a non-negative integer")
        pct = item.get("percentage")
        if isinstance(pct, bool) or not isinstance(pct, (int, float)) or not 0 <= pct <= 100:
            raise InvalidPayloadError(f"breakdown[{i}].percentage must be between 0 and 100")
        claims[cid] = (count, float(pct))
    return claims


def _rebuild_breakdown(claims: Dict[str, Tuple[int, float]], total: int) -> List[Dict[str, Any]]:
    """
    Recompute the breakdown from the claimed counts. Every claimed percentage
    must be within PERCENTAGE_TOLERANCE of the recomputed one, so order and
    top category always follow the counts.
    """
    if total <= 0:
        raise InvalidPayloadError("breakdown has no answered category")
    counts = {cid: count for cid, (count, _) in claims.items()}
    rebuilt = scoring.build_breakdown(counts, total)
    expected = {e.category.id: e.percentage for e in rebuilt}
    for cid, (_, pct) in claims.items():
        if abs(pct - expected.get(cid, 0.0)) > PERCENTAGE_TOLERANCE + 1e-9:
            raise InvalidPayloadError(
                f"breakdown percentage for {cid} does not match its count",
                {"categoryId": cid, "expected": expected.get(cid, 0.0)},
            )
    return [e.to_dict() for e in rebuilt]


def validate_payload(payload: Any) -> SubmissionPayload:
    """
    Shape validation for POST /submit.

    Accepts `topCategoryId`, or `answers` (+ optional `breakdown` and
    `totalAnswers`), or both. When answers are present the breakdown is
    recomputed server-side and any client breakdown must agree with it.
    A breakdown sent without answers is rebuilt from its counts; client
    percentages are checked against the rebuilt ones, never stored.
    `uid` and `name` are accepted as aliases of `identityId` and `displayName`.
    """
    if not isinstance(payload, dict):
        raise InvalidPayloadError("Invalid payload")

    token = _require_str(payload, "token", max_len=4096)
    identity_id = _require_str(payload, "identityId", "uid")

    name = payload.get("displayName", payload.get("name"))
    if name is not None and not isinstance(name, str):
        raise InvalidPayloadError("displayName must be a string")
    display_name = (name or "").strip()[:MAX_NAME_LENGTH] or DEFAULT_DISPLAY_NAME

    is_guest = payload.get("isGuest", False)
    if not isinstance(is_guest, bool):
        raise InvalidPayloadError("isGuest must be a boolean")

    client_ts = None
    if payload.get("clientTimestamp") is not None:
        client_ts = normalize_timestamp(payload["clientTimestamp"])
        if client_ts is None:
            raise InvalidPayloadError("clientTimestamp is not a valid timestamp")

    answers = payload.get("answers")
    breakdown_raw = payload.get("breakdown")
    total = payload.get("totalAnswers")
    if total is not None and (not _is_int(total) or total < 0):
        raise InvalidPayloadError("totalAnswers must be a non-negative integer")

    breakdown: List[Dict[str, Any]] = []
    if answers is not None:
        if not isinstance(answers, list) or not answers:
            raise InvalidPayloadError("answers must be a non-empty array")
        if not all(catalog.is_category(a) for a in answers):
            raise InvalidPayloadError("answers contain an unknown category")
        if total is not None and total != len(answers):
            raise InvalidPayloadError("totalAnswers does not match answers")
        result = scoring.tally(answers)
        breakdown = [e.to_dict() for e in result.breakdown]
        total = result.total_answers
        if breakdown_raw is not None:
            claims = _parse_breakdown(breakdown_raw)
            claimed = {cid: count for cid, (count, _) in claims.items() if count > 0}
            if claimed != {e["id"]: e["count"] for e in breakdown}:
                raise InvalidPayloadError("breakdown does not match answers")
            _rebuild_breakdown(claims, total)
    elif breakdown_raw is not None:
        claims = _parse_breakdown(breakdown_raw)
        counted = sum(count for count, _ in claims.values())
        if total is not None and total != counted:
            raise InvalidPayloadError("totalAnswers does not match breakdown")
        breakdown = _rebuild_breakdown(claims, counted)
        total = counted

    top = payload.get("topCategoryId")
    if top is not None:
        if not catalog.is_category(top):
            raise InvalidPayloadError("topCategoryId is not a known category")
        if breakdown:
            best = breakdown[0]["percentage"]
            if top not in {e["id"] for e in breakdown if e["percentage"] == best}:
                raise InvalidPayloadError("topCategoryId does not match breakdown")
    elif breakdown:
        top = breakdown[0]["id"]
    else:
        raise InvalidPayloadError("topCategoryId or answers are required")

    return SubmissionPayload(
        token=token,
        identity_id=identity_id,
        display_name=display_name,
        is_guest=is_guest,
        top_category_id=top,
        answers=list(answers or []),
        breakdown=breakdown,
        total_answers=int(total or 0),
        client_timestamp=client_ts,
    )


# ============================================================================
# Idempotency
# ============================================================================

def idempotency_key(identity_id: str, top_category_id: str, bucket: str) -> str:
    """SHA-256 hex of "identity|top|bucket"; the StoredResult document id."""
    raw = f"{identity_id}|{top_category_id}|{bucket}"
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


# ============================================================================
# Gate
# ============================================================================

class SubmissionGate:
    def __init__(
        self,
        store,
        verifier,
        min_score: float = DEFAULT_MIN_SCORE,
        expected_action: str = DEFAULT_EXPECTED_ACTION,
        window_seconds: int = DEFAULT_WINDOW_SECONDS,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.store = store
        self.verifier = verifier
        self.min_score = min_score
        self.expected_action = expected_action
        self.window_seconds = window_seconds
        self.clock = clock or utc_now

    @classmethod
    def from_config(cls, config, store, verifier) -> "SubmissionGate":
        return cls(
            store,
            verifier,
            min_score=float(config.get("MIN_TRUST_SCORE", DEFAULT_MIN_SCORE)),
            expected_action=config.get("EXPECTED_ACTION") or DEFAULT_EXPECTED_ACTION,
            window_seconds=int(config.get("IDEMPOTENCY_WINDOW_SECONDS", DEFAULT_WINDOW_SECONDS)),
        )

    def key_for(self, identity_id: str, top_category_id: str) -> str:
        return idempotency_key(identity_id, top_category_id, time_bucket(self.clock(), self.window_seconds))

    def check_trust(self, token: str, remote_ip: Optional[str] = None) -> float:
        """Return the trust score, or raise UntrustedSubmissionError."""
        verdict = self.verifier.verify(token, remote_ip)
        if not verdict.success:
            raise UntrustedSubmissionError("Invalid reCAPTCHA token", {"codes": verdict.error_codes})
        if verdict.action != self.expected_action:
            raise UntrustedSubmissionError("Action mismatch", {"action": verdict.action})
        if verdict.score < self.min_score:
            raise UntrustedSubmissionError("Low score", {"score": verdict.score})
        return verdict.score

    def submit(self, payload: Any, remote_ip: Optional[str] = None) -> SubmitOutcome:
        """
        Handle one submission.

        Returns:
            SubmitOutcome(result=SubmitResult(...)) on success, including when
            the same logical submission was already stored (created=False).
            SubmitOutcome(error=...) for invalid payloads, untrusted tokens,
            verifier outages and missing configuration.
        Raises:
            StoreError if the result cannot be written or read back.
        """
        try:
            data = validate_payload(payload)
            score = self.check_trust(data.token, remote_ip)
        except SubmissionError as e:
            logger.info("[submit] rejected (%s): %s", e.code, e.message)
            return SubmitOutcome(error=e)

        key = self.key_for(data.identity_id, data.top_category_id)
        record = StoredResult(
            id=key,
            identity_id=data.identity_id,
            display_name=data.display_name,
            is_guest=data.is_guest,
            top_category_id=data.top_category_id,
            answers=data.answers,
            breakdown=data.breakdown,
            total_answers=data.total_answers,
            client_timestamp=data.client_timestamp,
        )
        created = self.store.create_if_absent(key, record.to_document())
        if created:
            logger.info("[submit] stored result %s for %s", key[:12], data.identity_id)
        else:
            logger.info("[submit] result %s already stored, skipping write", key[:12])

        self._project_preferences(data)
        return SubmitOutcome(result=SubmitResult(stored_result_id=key, trust_score=score, created=created))

    def _project_preferences(self, data: SubmissionPayload) -> None:
        if data.breakdown:
            top = [dict(e) for e in data.breakdown[:TOP_PREFERENCES]]
        else:
            cat = catalog.get_category(data.top_category_id)
            top = [{"id": cat.id, "label": cat.label, "color": cat.color}]
        snapshot = PreferenceSnapshot(
            identity_id=data.identity_id,
            display_name=data.display_name,
            is_guest=data.is_guest,
            total_answers=data.total_answers,
            top_categories=top,
        )
        try:
            self.store.upsert_preferences(data.identity_id, snapshot.to_document())
        except Exception as e:
            # Best-effort denormalized view; the stored result already stands.
            logger.warning("[submit] preference update failed for %s: %s", data.identity_id, e)
