"""
Keyword-based local risk classifier.

Every post goes through this classifier before anything else; its result
is the floor that remote escalation may only replace, never remove.
"""
from __future__ import annotations

from typing import Optional

from feedguard.config import (
    LOCAL_SCORE_BASE,
    LOCAL_SCORE_MAX,
    LOCAL_SCORE_MIN,
    LOCAL_SCORE_PER_CHAR,
)
from feedguard.core.lexicon import LexiconStore, MatcherSet
from feedguard.models import ORIGIN_LOCAL, AnalysisResult, Category, Post
from feedguard.utils import clamp, normalize_text


def score_match(matched: str) -> int:
    """
    Risk score for one matched keyword; longer matches score higher.

    Args:
        matched: The substring the category pattern matched

    Returns:
        Integer score in [LOCAL_SCORE_MIN, LOCAL_SCORE_MAX]
    """
    raw = LOCAL_SCORE_BASE + len(matched) * LOCAL_SCORE_PER_CHAR
    return int(clamp(raw, LOCAL_SCORE_MIN, LOCAL_SCORE_MAX))


def classify_text(text: str, matchers: MatcherSet, post_id: str = "") -> AnalysisResult:
    """
    Pick the single highest-scoring category for a piece of text.

    Categories are tried in canonical order and only a strictly higher
    score replaces the current best, so ties go to the earlier category.

    Args:
        text: Raw post text
        matchers: Compiled matcher set
        post_id: Identifier copied into the result

    Returns:
        AnalysisResult with origin "local"; ``other``/0 when nothing matches
    """
    normalized = normalize_text(text)
    best_score = 0
    best_category = Category.OTHER
    best_match: Optional[str] = None

    if normalized:
        for category, pattern in matchers.matchers:
            m = pattern.search(normalized)
            if not m:
                continue
            score = score_match(m.group(0))
            if score > best_score:
                best_score = score
                best_category = category
                best_match = m.group(0)

    tags = (best_match.lower(),) if best_match else ()
    return AnalysisResult(
        id=post_id,
        risk=best_score,
        category=best_category,
        tags=tags,
        origin=ORIGIN_LOCAL,
    )


class LocalClassifier:
    """Classifies posts against the store's current matcher set."""

    def __init__(self, lexicon_store: LexiconStore):
        self.lexicon_store = lexicon_store

    def classify(self, post: Post) -> AnalysisResult:
        return classify_text(post.text, self.lexicon_store.matchers(), post.id)

    def classify_text(self, text: str, post_id: str = "") -> AnalysisResult:
        return classify_text(text, self.lexicon_store.matchers(), post_id)
