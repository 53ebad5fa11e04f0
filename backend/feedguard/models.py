"""
File: feedguard/models.py
Internal data structures shared by the ingestion and analysis stages.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Generic, List, Mapping, Optional, Tuple, TypeVar


JsonDict = Dict[str, Any]
T = TypeVar("T")


class Category(str, Enum):
    """Risk categories, in canonical evaluation order."""

    AGGRESSION_VIOLENCE = "aggression_violence"
    PREJUDICE_IDENTITYHATE = "prejudice_identityhate"
    EXTREME_SHOCK = "extreme_shock"
    MISINFO_SPECULATION = "misinfo_speculation"
    SCAM_SOLICITATION = "scam_solicitation"
    POLARIZATION_BUBBLE = "polarization_bubble"
    OTHER = "other"

    @classmethod
    def parse(cls, value: Any) -> Optional["Category"]:
        """Map a loosely formatted name ("Scam-Solicitation", "extreme shock") to a member."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        key = value.strip().lower().replace("-", "_").replace(" ", "_")
        try:
            return cls(key)
        except ValueError:
            return None


ORIGIN_LOCAL = "local"
ORIGIN_REMOTE = "remote"


@dataclass(frozen=True)
class Post:
    """One captured timeline item.

    A later capture of the same id replaces the stored instance; the
    instance itself never changes.
    """

    id: str
    text: str
    captured_at: datetime
    author: Optional[str] = None

    # Scraper metadata kept for diagnostics only
    url: Optional[str] = None
    source: Optional[str] = None
    raw: JsonDict = field(default_factory=dict, compare=False)


@dataclass(frozen=True)
class AnalysisResult:
    """Finalized classification for one post."""

    id: str
    risk: int  # [0, 100]
    category: Category
    tags: Tuple[str, ...] = ()
    origin: str = ORIGIN_LOCAL  # "local" | "remote"

    def to_dict(self) -> JsonDict:
        return {
            "id": self.id,
            "risk": self.risk,
            "category": self.category.value,
            "tags": list(self.tags),
            "origin": self.origin,
        }


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """Success-or-failure value returned across a stage boundary.

    ``value`` is only meaningful when ``ok`` is true; ``error`` carries a
    short reason for logs and diagnostics when it is false.
    """

    ok: bool
    value: Optional[T] = None
    error: str = ""

    @classmethod
    def success(cls, value: T) -> "Outcome[T]":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: str) -> "Outcome[T]":
        return cls(ok=False, error=error)


Lexicon = Dict[Category, List[str]]
ResultMap = Mapping[str, AnalysisResult]


__all__ = [
    "AnalysisResult",
    "Category",
    "JsonDict",
    "Lexicon",
    "ORIGIN_LOCAL",
    "ORIGIN_REMOTE",
    "Outcome",
    "Post",
    "ResultMap",
]
