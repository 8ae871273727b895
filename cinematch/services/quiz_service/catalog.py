# services/quiz_service/catalog.py
"""
Static registry of film-genre categories and quiz questions.

Declaration order matters: it is the tie-break order for breakdowns and
population charts. `external_taxonomy_id` is the TMDB genre id used for
film suggestions.
"""

from __future__ import annotations
from typing import Dict, Tuple

from cinematch.errors import UnknownCategoryError
from .models import Category, Option, Question

# ============================================================================
# Categories
# ============================================================================

CATEGORIES: Tuple[Category, ...] = (
    Category("action", "Action", "#ef4444", 28),
    Category("adventure", "Adventure", "#f97316", 12),
    Category("comedy", "Comedy", "#facc15", 35),
    Category("drama", "Drama", "#60a5fa", 18),
    Category("scifi", "Science Fiction", "#818cf8", 878),
    Category("horror", "Horror", "#a855f7", 27),
    Category("thriller", "Thriller", "#f472b6", 53),
    Category("animation", "Animation", "#2dd4bf", 16),
    Category("romance", "Romance", "#fb7185", 10749),
    Category("documentary", "Documentary", "#38bdf8", 99),
)

_BY_ID: Dict[str, Category] = {c.id: c for c in CATEGORIES}
_ORDER: Dict[str, int] = {c.id: i for i, c in enumerate(CATEGORIES)}

# ============================================================================
# Questions
# ============================================================================

def _q(qid: int, text: str, *options: Tuple[str, str]) -> Question:
    return Question(qid, text, tuple(Option(label, cat) for label, cat in options))


QUESTIONS: Tuple[Question, ...] = (
    _q(1, "Your perfect evening starts with...",
       ("An adrenaline-fuelled chase", "action"),
       ("A trip to uncharted lands", "adventure"),
       ("A funny chat that makes everyone laugh", "comedy")),
    _q(2, "Which setting intrigues you the most?",
       ("A visionary, high-tech future", "scifi"),
       ("A gothic castle full of secrets", "horror"),
       ("A modern city where nothing is what it seems", "thriller")),
    _q(3, "Your ideal protagonist is...",
       ("Brave and ready to do anything to save the world", "action"),
       ("Clever and driven to uncover the truth", "documentary"),
       ("Sensitive, with a deep personal story", "drama")),
    _q(4, "Which soundtrack moves you the most?",
       ("An epic orchestra over titanic battles", "action"),
       ("Sweet melodies about love", "romance"),
       ("Futuristic synths evoking distant galaxies", "scifi")),
    _q(5, "Faced with a surprising ending you prefer...",
       ("Being left breathless by an unexpected twist", "thriller"),
       ("Shedding a tear over an intense story", "drama"),
       ("Smiling at a romantic, upbeat finish", "romance")),
    _q(6, "Which kind of antagonist fascinates you?",
       ("A criminal mastermind who is hard to catch", "thriller"),
       ("An unknown creature embodying our fears", "horror"),
       ("A natural disaster that tests the heroes", "adventure")),
    _q(7, "Which narrative pace do you prefer?",
       ("Fast, with constant action and twists", "action"),
       ("Steady, full of exploration and discovery", "adventure"),
       ("Reflective, to savour every emotion", "drama")),
    _q(8, "Pick a drink to enjoy during the film:",
       ("An ice-cold energy drink", "action"),
       ("Hot chocolate with whipped cream", "animation"),
       ("Fragrant herbal tea", "documentary")),
    _q(9, "Your favourite backdrop is...",
       ("The wonders of nature and wildlife", "documentary"),
       ("A distant planet waiting to be explored", "scifi"),
       ("A lively city full of unexpected encounters", "comedy")),
    _q(10, "How do you like to feel when the film ends?",
       ("Charged up and ready for the next challenge", "action"),
       ("Inspired, with a new view of the world", "documentary"),
       ("Carefree with a smile on your face", "comedy")),
    _q(11, "Which kind of relationship draws you in?",
       ("A troubled but genuine love", "romance"),
       ("An unbreakable friendship born on an adventure", "adventure"),
       ("A makeshift team that becomes a family", "animation")),
    _q(12, "Which highlight do you prefer?",
       ("A battle of wits to unmask the culprit", "thriller"),
       ("A first kiss that changes everything", "romance"),
       ("Contagious laughter that breaks the tension", "comedy")),
    _q(13, "Pick a set piece:",
       ("A jungle full of traps", "adventure"),
       ("A starship crossing a wormhole", "scifi"),
       ("A lonely cabin in the woods", "horror")),
    _q(14, "The sidekick you always love is...",
       ("The ironic partner who lightens the scene", "comedy"),
       ("The wise mentor guiding the hero", "documentary"),
       ("The loyal friend ready to sacrifice everything", "drama")),
    _q(15, "When you think of a special effect, you picture...",
       ("A spectacular explosion", "action"),
       ("Ultra-realistic imaginary creatures", "scifi"),
       ("Sinister shadows and doors creaking on their own", "horror")),
    _q(16, "What is the ideal running time for you?",
       ("Two intense hours without a break", "thriller"),
       ("A light and witty hour and a half", "comedy"),
       ("A long tale that lets you live other lives", "drama")),
    _q(17, "Which value should the film convey?",
       ("Courage and resilience", "action"),
       ("Curiosity about the world and others", "documentary"),
       ("The importance of listening to your heart", "romance")),
    _q(18, "How do you react to scary scenes?",
       ("I love them, the more chills the better", "horror"),
       ("I like mystery but would rather avoid nightmares", "thriller"),
       ("I prefer tender, reassuring scenes", "animation")),
    _q(19, "Which kind of true story inspires you most?",
       ("An extraordinary sporting or human feat", "documentary"),
       ("A love story that defies time", "romance"),
       ("Survival at the limit", "adventure")),
    _q(20, "In the end, you recommend the film to friends because...",
       ("It will keep them glued to the screen", "thriller"),
       ("It will make them laugh until they cry", "comedy"),
       ("It will make them see the world with new eyes", "documentary")),
)

# ============================================================================
# Public API
# ============================================================================

def list_categories() -> Tuple[Category, ...]:
    return CATEGORIES


def list_questions() -> Tuple[Question, ...]:
    return QUESTIONS


def is_category(category_id: object) -> bool:
    return isinstance(category_id, str) and category_id in _BY_ID


def get_category(category_id: str) -> Category:
    try:
        return _BY_ID[category_id]
    except (KeyError, TypeError):
        raise UnknownCategoryError(f"Unknown category: {category_id!r}") from None


def catalog_position(category_id: str) -> int:
    """Declaration index, used as a stable tie-break. Unknown ids sort last."""
    return _ORDER.get(category_id, len(CATEGORIES))
