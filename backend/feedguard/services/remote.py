"""
Remote (LLM) risk classification for escalated posts.
"""
from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, Iterable, List, Optional, Sequence

from openai import APIError, AsyncOpenAI

from feedguard.config import REMOTE_MAX_TAG_LENGTH, REMOTE_MAX_TAGS, REMOTE_TEXT_LIMIT
from feedguard.errors import RemoteClassifierError, RemotePayloadError, RemoteTransportError
from feedguard.models import ORIGIN_REMOTE, AnalysisResult, Category, Outcome, Post
from feedguard.schemas import RemoteConfig
from feedguard.utils import clamp_number, normalize_text, sanitize_credential

logger = logging.getLogger(__name__)


SYSTEM_PROMPT = (
    "You rate social media posts for how likely they are to upset or mislead a reader. "
    "For each post return an object with: id (copied verbatim), risk (integer 0-100), "
    "category (one of: " + ", ".join(c.value for c in Category) + "), "
    "tags (up to 5 short lowercase keywords). "
    "Return ONLY a JSON array of these objects, one per post. No extra text."
)

_FENCE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)


def _clean_tags(raw: Any) -> tuple:
    if not isinstance(raw, list):
        return ()
    tags: List[str] = []
    for tag in raw:
        if not isinstance(tag, str):
            continue
        tag = tag.strip()[:REMOTE_MAX_TAG_LENGTH]
        if tag and tag not in tags:
            tags.append(tag)
        if len(tags) >= REMOTE_MAX_TAGS:
            break
    return tuple(tags)


def parse_remote_payload(content: Optional[str], expected_ids: Iterable[str]) -> Dict[str, AnalysisResult]:
    """
    Decode the provider's answer into per-post results.

    Args:
        content: Raw message text from the provider
        expected_ids: Ids that were sent; anything else in the answer is ignored

    Returns:
        Mapping of id to remote AnalysisResult (may omit some expected ids)

    Raises:
        RemotePayloadError: If the answer is not a JSON array
    """
    text = (content or "").strip()
    fenced = _FENCE.match(text)
    if fenced:
        text = fenced.group(1)

    try:
        data = json.loads(text)
    except ValueError as e:
        raise RemotePayloadError(f"response is not JSON: {e}") from e
    if not isinstance(data, list):
        raise RemotePayloadError(f"expected a JSON array, got {type(data).__name__}")

    wanted = set(expected_ids)
    results: Dict[str, AnalysisResult] = {}
    for item in data:
        if not isinstance(item, dict):
            continue
        post_id = str(item.get("id") or "")
        if post_id not in wanted:
            continue
        results[post_id] = AnalysisResult(
            id=post_id,
            risk=int(round(clamp_number(item.get("risk"), 0, 100, 0))),
            category=Category.parse(item.get("category")) or Category.OTHER,
            tags=_clean_tags(item.get("tags")),
            origin=ORIGIN_REMOTE,
        )
    return results


def build_user_prompt(posts: Sequence[Post]) -> str:
    compact_items = [
        {
            "id": post.id,
            "author": post.author or "",
            "text": normalize_text(post.text)[:REMOTE_TEXT_LIMIT],
        }
        for post in posts
    ]
    return "Posts (JSON):\n" + json.dumps(compact_items, ensure_ascii=False)


class RemoteClassifier:
    """Sends candidate posts to an OpenAI-compatible chat completions endpoint."""

    def __init__(self, base_url: str = "", timeout: float = 20.0):
        self.base_url = base_url or None
        self.timeout = timeout
        self._client: Optional[AsyncOpenAI] = None
        self._client_key = ""

    def _get_client(self, credential: str) -> AsyncOpenAI:
        """Reuse one client per credential; a changed key gets a fresh client."""
        if self._client is None or self._client_key != credential:
            self._client = AsyncOpenAI(
                api_key=credential,
                base_url=self.base_url,
                timeout=self.timeout,
                max_retries=0,
            )
            self._client_key = credential
        return self._client

    async def _request(self, posts: Sequence[Post], cfg: RemoteConfig, credential: str) -> Optional[str]:
        client = self._get_client(credential)
        extra = {"store": True} if cfg.store else {}
        try:
            response = await client.chat.completions.create(
                model=cfg.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": build_user_prompt(posts)},
                ],
                temperature=cfg.temperature,
                max_tokens=cfg.max_output_tokens,
                **extra,
            )
        except APIError as e:
            raise RemoteTransportError(f"{type(e).__name__}: {e}") from e

        if not response.choices:
            raise RemotePayloadError("response has no choices")
        return response.choices[0].message.content

    async def classify(self, posts: Sequence[Post], cfg: RemoteConfig) -> Outcome[Dict[str, AnalysisResult]]:
        """
        Classify a candidate batch remotely.

        Never raises: transport errors, non-success statuses and malformed
        bodies all come back as a failed Outcome, and the caller keeps its
        local results.

        Args:
            posts: Candidate posts (already selected for escalation)
            cfg: Remote classifier settings

        Returns:
            Outcome holding id -> AnalysisResult on success
        """
        credential = sanitize_credential(cfg.credential)
        if not cfg.enabled:
            return Outcome.failure("remote classifier disabled")
        if not credential:
            return Outcome.failure("no credential configured")
        if not posts:
            return Outcome.failure("empty batch")

        try:
            logger.info("Remote classification: %d posts via %s", len(posts), cfg.model)
            content = await self._request(posts, cfg, credential)
            results = parse_remote_payload(content, (p.id for p in posts))
        except RemoteClassifierError as e:
            logger.warning("Remote classification failed: %s", e)
            return Outcome.failure(str(e))
        except Exception as e:
            logger.warning("Remote classification error: %s: %s", type(e).__name__, e)
            return Outcome.failure(f"{type(e).__name__}: {e}")

        return Outcome.success(results)

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None
            self._client_key = ""
