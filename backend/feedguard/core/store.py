"""
Finalized analysis results, keyed by post id.
"""
from __future__ import annotations

from typing import Dict, Iterable, Iterator

from feedguard.models import AnalysisResult


class AnalysisStore:
    """Holds one finalized result per id; a later write replaces the earlier one."""

    def __init__(self):
        self._results: Dict[str, AnalysisResult] = {}

    def __contains__(self, post_id: object) -> bool:
        return post_id in self._results

    def __len__(self) -> int:
        return len(self._results)

    def __iter__(self) -> Iterator[str]:
        return iter(self._results)

    def put(self, result: AnalysisResult) -> None:
        self._results[result.id] = result

    def get(self, ids: Iterable[str]) -> Dict[str, AnalysisResult]:
        """Results for the requested ids; ids without a result are simply absent."""
        return {i: self._results[i] for i in ids if i in self._results}

    def reset(self) -> None:
        self._results.clear()
