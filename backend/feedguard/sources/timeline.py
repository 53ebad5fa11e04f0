"""
Normalization of scraped timeline payloads into Post objects.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Iterable, List, Optional, Tuple

from dateutil import parser as dateparser

from feedguard.models import Post

logger = logging.getLogger(__name__)

# Payload keys accepted as the post identifier, in lookup order
ID_KEYS = ("id", "tweetId", "postId")


def parse_utc_datetime(date_string: Optional[str]) -> datetime:
    """
    Parse a date string and convert to UTC datetime.

    Args:
        date_string: Date string in various formats, or None

    Returns:
        UTC datetime object, or current UTC time if input is None/empty/unparseable
    """
    if not date_string or not isinstance(date_string, str):
        return datetime.now(timezone.utc)

    try:
        parsed_date = dateparser.parse(date_string)
    except (ValueError, OverflowError):
        return datetime.now(timezone.utc)

    if parsed_date.tzinfo:
        return parsed_date.astimezone(timezone.utc)
    else:
        return parsed_date.replace(tzinfo=timezone.utc)


def clean_text(text: Any) -> str:
    """
    Clean and normalize text content.

    Args:
        text: Raw value, usually a string or None

    Returns:
        Cleaned text string, empty string for None or non-strings
    """
    if not text or not isinstance(text, str):
        return ""
    return text.strip()


def extract_post_id(payload: dict) -> str:
    for key in ID_KEYS:
        value = payload.get(key)
        if isinstance(value, (str, int)) and not isinstance(value, bool):
            value = str(value).strip()
            if value:
                return value
    return ""


def parse_post(payload: Any) -> Optional[Post]:
    """
    Build a Post from one scraper payload.

    Args:
        payload: Decoded JSON object as sent by the scraper

    Returns:
        Post, or None when the payload is not an object or has no usable id
    """
    if not isinstance(payload, dict):
        return None

    post_id = extract_post_id(payload)
    if not post_id:
        return None

    author = clean_text(payload.get("author")) or None
    raw = {
        key: payload[key]
        for key in ("time", "engagement")
        if isinstance(payload.get(key), dict)
    }

    return Post(
        id=post_id,
        text=payload["text"] if isinstance(payload.get("text"), str) else "",
        captured_at=parse_utc_datetime(payload.get("capturedAt")),
        author=author,
        url=clean_text(payload.get("url")) or None,
        source=clean_text(payload.get("source")) or None,
        raw=raw,
    )


def parse_posts(payloads: Iterable[Any]) -> Tuple[List[Post], int]:
    """
    Normalize a batch of payloads, dropping malformed ones.

    Returns:
        Tuple of (posts, invalid_count)
    """
    posts: List[Post] = []
    invalid = 0
    for payload in payloads:
        post = parse_post(payload)
        if post is None:
            invalid += 1
            continue
        posts.append(post)
    if invalid:
        logger.debug("Dropped %d malformed payloads", invalid)
    return posts, invalid
