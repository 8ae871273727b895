# services/quiz_service/models.py
"""
Typed records that flow through the quiz pipeline.

Catalog data (Category, Question, Option) is immutable. QuizResult is the
value returned by scoring and threaded explicitly into submission.
StoredResult and PreferenceSnapshot mirror the Firestore documents and
own the encode/decode step at the store boundary.
"""

from __future__ import annotations
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from .utils import normalize_timestamp


# ============================================================================
# Catalog
# ============================================================================

@dataclass(frozen=True)
class Category:
    id: str
    label: str
    color: str
    external_taxonomy_id: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "label": self.label,
            "color": self.color,
            "externalTaxonomyId": self.external_taxonomy_id,
        }


@dataclass(frozen=True)
class Option:
    label: str
    category_id: str
    helper_text: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        out = {"label": self.label, "categoryId": self.category_id}
        if self.helper_text:
            out["helperText"] = self.helper_text
        return out


@dataclass(frozen=True)
class Question:
    id: int
    text: str
    options: Tuple[Option, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "text": self.text,
            "options": [o.to_dict() for o in self.options],
        }


@dataclass(frozen=True)
class Session:
    questions: Tuple[Question, ...] = ()

    def __len__(self) -> int:
        return len(self.questions)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "questions": [q.to_dict() for q in self.questions],
            "total_questions": len(self.questions),
        }


# ============================================================================
# Scoring output
# ============================================================================

@dataclass(frozen=True)
class BreakdownEntry:
    category: Category
    count: int
    percentage: float

    def to_dict(self) -> Dict[str, Any]:
        """Flat document shape, the same one the preferences view stores."""
        return {
            "id": self.category.id,
            "label": self.category.label,
            "color": self.category.color,
            "count": self.count,
            "percentage": self.percentage,
        }


@dataclass(frozen=True)
class QuizResult:
    answers: Tuple[str, ...]
    breakdown: Tuple[BreakdownEntry, ...]
    total_answers: int

    @property
    def top_category(self) -> Optional[Category]:
        return self.breakdown[0].category if self.breakdown else None

    def to_dict(self) -> Dict[str, Any]:
        top = self.top_category
        return {
            "answers": list(self.answers),
            "breakdown": [e.to_dict() for e in self.breakdown],
            "totalAnswers": self.total_answers,
            "topCategoryId": top.id if top else None,
        }


# ============================================================================
# Persisted documents
# ============================================================================

@dataclass
class StoredResult:
    """One document in the `results` collection, keyed by idempotency key."""
    id: str
    identity_id: str
    display_name: str
    is_guest: bool
    top_category_id: Optional[str]
    answers: List[str] = field(default_factory=list)
    breakdown: List[Dict[str, Any]] = field(default_factory=list)
    total_answers: int = 0
    client_timestamp: Optional[datetime] = None
    server_timestamp: Optional[datetime] = None

    def to_document(self) -> Dict[str, Any]:
        """Fields written to the store. `serverTimestamp` is set by the store."""
        return {
            "identityId": self.identity_id,
            "displayName": self.display_name,
            "isGuest": self.is_guest,
            "topCategoryId": self.top_category_id,
            "answers": list(self.answers),
            "breakdown": [dict(e) for e in self.breakdown],
            "totalAnswers": self.total_answers,
            "clientTimestamp": self.client_timestamp,
        }

    @classmethod
    def from_document(cls, doc_id: str, data: Dict[str, Any]) -> "StoredResult":
        """
        Validating decode of a stored document.

        Legacy documents (written before `topCategoryId` existed) used `uid`,
        `name` and `createdAt`; those names are accepted too.
        Raises ValueError when the document cannot describe a result.
        """
        if not isinstance(data, dict):
            raise ValueError(f"result {doc_id}: document is not a mapping")

        identity_id = data.get("identityId") or data.get("uid")
        if not isinstance(identity_id, str) or not identity_id.strip():
            raise ValueError(f"result {doc_id}: missing identity")

        name = data.get("displayName") or data.get("name")
        if not isinstance(name, str) or not name.strip():
            name = "Guest"

        top = data.get("topCategoryId")
        if not isinstance(top, str) or not top.strip():
            top = None

        breakdown = data.get("breakdown")
        if not isinstance(breakdown, list):
            breakdown = []
        breakdown = [e for e in breakdown if isinstance(e, dict)]

        answers = data.get("answers")
        if not isinstance(answers, list):
            answers = []

        total = data.get("totalAnswers")
        if isinstance(total, bool) or not isinstance(total, (int, float)) or not math.isfinite(total):
            total = len(answers)

        server_ts = data.get("serverTimestamp", data.get("createdAt"))

        return cls(
            id=doc_id,
            identity_id=identity_id,
            display_name=name,
            is_guest=bool(data.get("isGuest", False)),
            top_category_id=top,
            answers=[a for a in answers if isinstance(a, str)],
            breakdown=breakdown,
            total_answers=int(total),
            client_timestamp=normalize_timestamp(data.get("clientTimestamp")),
            server_timestamp=normalize_timestamp(server_ts),
        )


@dataclass
class PreferenceSnapshot:
    """Current-preference projection, one document per identity."""
    identity_id: str
    display_name: str
    is_guest: bool
    total_answers: int
    top_categories: List[Dict[str, Any]] = field(default_factory=list)

    def to_document(self) -> Dict[str, Any]:
        return {
            "identityId": self.identity_id,
            "displayName": self.display_name,
            "isGuest": self.is_guest,
            "totalAnswers": self.total_answers,
            "topCategories": [dict(e) for e in self.top_categories],
        }


@dataclass(frozen=True)
class SubmitResult:
    stored_result_id: str
    trust_score: float
    created: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": True,
            "storedResultId": self.stored_result_id,
            "trustScore": self.trust_score,
            "created": self.created,
        }
