"""
Keyword lexicon loading and compiled matcher cache.

The lexicon maps each risk category to a list of keywords. It is read
once from a JSON resource (local file or http(s) URL) and memoized,
whether the read succeeded or not; a failed read degrades to an empty
lexicon so that local classification simply never hits.
"""
from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Pattern, Tuple

import httpx

from feedguard.config import LEXICON_SAMPLE_SIZE
from feedguard.errors import LexiconLoadError
from feedguard.models import Category, Lexicon, Outcome

logger = logging.getLogger(__name__)


def normalize_lexicon(raw: Any) -> Lexicon:
    """
    Coerce an arbitrary decoded JSON value into a well-formed lexicon.

    Accepts either a bare ``{category: [keywords]}`` mapping or one wrapped
    as ``{"categories": {...}}``. Unknown category names are dropped,
    non-list values become empty lists, and keywords are trimmed with
    blanks and duplicates removed. Categories come out in canonical order.

    Args:
        raw: Decoded JSON value

    Returns:
        Normalized lexicon (possibly empty)
    """
    if isinstance(raw, dict) and isinstance(raw.get("categories"), dict):
        raw = raw["categories"]
    if not isinstance(raw, dict):
        return {}

    collected: Dict[Category, List[str]] = {}
    for key, values in raw.items():
        category = Category.parse(key)
        if category is None or category is Category.OTHER:
            continue

        keywords = collected.setdefault(category, [])
        if not isinstance(values, (list, tuple)):
            continue
        for value in values:
            if not isinstance(value, str):
                continue
            word = value.strip()
            if word and word not in keywords:
                keywords.append(word)

    return {category: collected[category] for category in Category if category in collected}


def lexicon_signature(lexicon: Lexicon) -> str:
    """Content hash of a normalized lexicon; equal content gives equal signatures."""
    canonical = json.dumps(
        [[category.value, words] for category, words in lexicon.items()],
        ensure_ascii=False,
        separators=(",", ":"),
    )
    return hashlib.sha1(canonical.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class MatcherSet:
    """Per-category combined patterns, keywords ordered longest first."""

    signature: str
    matchers: Tuple[Tuple[Category, Pattern[str]], ...]

    @classmethod
    def build(cls, lexicon: Lexicon, signature: Optional[str] = None) -> "MatcherSet":
        matchers = []
        for category, words in lexicon.items():
            if not words:
                continue
            ordered = sorted(words, key=len, reverse=True)
            pattern = re.compile("|".join(re.escape(w) for w in ordered), re.IGNORECASE)
            matchers.append((category, pattern))
        return cls(
            signature=signature if signature is not None else lexicon_signature(lexicon),
            matchers=tuple(matchers),
        )


EMPTY_MATCHERS = MatcherSet.build({})


class LexiconStore:
    """Loads, memoizes and compiles the keyword lexicon."""

    def __init__(self, source: str, timeout: float = 10.0):
        self.source = source
        self.timeout = timeout
        self._outcome: Optional[Outcome[Lexicon]] = None
        self._signature: str = EMPTY_MATCHERS.signature
        self._matchers: MatcherSet = EMPTY_MATCHERS
        self._lock = asyncio.Lock()

    @property
    def loaded(self) -> bool:
        return self._outcome is not None

    @property
    def ready(self) -> bool:
        """True once a load attempt has succeeded."""
        return self._outcome is not None and self._outcome.ok

    @property
    def lexicon(self) -> Lexicon:
        if self._outcome is None or not self._outcome.ok:
            return {}
        return self._outcome.value or {}

    @property
    def signature(self) -> str:
        return self._signature

    async def _read_source(self) -> Any:
        if self.source.startswith(("http://", "https://")):
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                r = await client.get(self.source)
                r.raise_for_status()
                return r.json()
        return json.loads(Path(self.source).read_text(encoding="utf-8"))

    async def load(self) -> Outcome[Lexicon]:
        """
        Load the lexicon once; later calls return the memoized outcome.

        Returns:
            Outcome holding the normalized lexicon, or a failure whose
            effective lexicon is empty
        """
        if self._outcome is not None:
            return self._outcome

        async with self._lock:
            if self._outcome is not None:
                return self._outcome
            try:
                try:
                    raw = await self._read_source()
                except (OSError, ValueError, httpx.HTTPError) as e:
                    raise LexiconLoadError(f"{type(e).__name__}: {e}") from e
                lexicon = normalize_lexicon(raw)
                outcome = Outcome.success(lexicon)
                logger.info(
                    "Lexicon loaded from %s: %d categories, %d keywords",
                    self.source, len(lexicon), sum(len(w) for w in lexicon.values()),
                )
            except LexiconLoadError as e:
                logger.warning("Lexicon load failed (%s); local matching disabled", e)
                outcome = Outcome.failure(str(e))

            self._outcome = outcome
            self._signature = lexicon_signature(self.lexicon)
            return outcome

    async def reload(self) -> Outcome[Lexicon]:
        """Drop the memoized lexicon and load it again."""
        self._outcome = None
        return await self.load()

    def matchers(self) -> MatcherSet:
        """Compiled matcher set, rebuilt only when the lexicon signature changes."""
        if self._matchers.signature != self._signature:
            self._matchers = MatcherSet.build(self.lexicon, self._signature)
            logger.debug("Rebuilt matcher set (signature %s)", self._signature[:10])
        return self._matchers

    def summary(self, sample_size: int = LEXICON_SAMPLE_SIZE) -> Dict[str, Dict[str, Any]]:
        """Per-category keyword count and a short sample, for diagnostics."""
        return {
            category.value: {"count": len(words), "sample": words[:sample_size]}
            for category, words in self.lexicon.items()
        }
