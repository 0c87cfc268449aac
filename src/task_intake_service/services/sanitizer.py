"""Untrusted input hygiene applied before text is embedded in a prompt."""

import logging
import re
import unicodedata
from typing import Any

from bs4 import BeautifulSoup

from ..config import settings

logger = logging.getLogger(__name__)

# C0 controls and DEL, keeping \t, \n and \r (CR is collapsed as whitespace)
CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
WHITESPACE_RUN = re.compile(r"\s+")

INSTRUCTION_OVERRIDE_PATTERNS = [
    re.compile(r"ignore\s+(?:(?:all|previous|above|prior)\s+)+instructions?\b", re.IGNORECASE),
    re.compile(r"you\s+are\s+now\b", re.IGNORECASE),
    re.compile(r"new\s+instructions?\s*:", re.IGNORECASE),
]

# Structural markers used by the prompt builder
DELIMITER_PATTERNS = [
    re.compile(r"</?\s*USER_INPUT_(?:START|END)\s*>", re.IGNORECASE),
    re.compile(r"#\s*SYSTEM\s+INSTRUCTIONS", re.IGNORECASE),
    re.compile(r"#\s*DEVELOPER\s+INSTRUCTIONS", re.IGNORECASE),
    re.compile(r"#\s*USER\s+INPUT(?:\s*\(\s*UNTRUSTED\s+DATA\s*\))?", re.IGNORECASE),
]


def sanitize_user_input(value: Any, sentinel: str | None = None) -> str:
    """
    Neutralize untrusted text so it cannot forge prompt structure.

    Pure and total: non-string input is stringified, nothing raises.

    Steps:
    1. NFKC normalization (fullwidth / compatibility characters)
    2. Strip control characters except tab and newline
    3. Collapse whitespace runs to one space and trim
    4. Replace instruction-override phrases with the sentinel
    5. Replace prompt delimiters with the sentinel
    """
    marker = settings.sanitizer_sentinel if sentinel is None else sentinel
    text = value if isinstance(value, str) else str(value)

    text = unicodedata.normalize("NFKC", text)
    text = CONTROL_CHARS.sub("", text)
    text = WHITESPACE_RUN.sub(" ", text).strip()

    for pattern in INSTRUCTION_OVERRIDE_PATTERNS:
        text = pattern.sub(marker, text)
    for pattern in DELIMITER_PATTERNS:
        text = pattern.sub(marker, text)

    return text


def strip_html(text: str) -> str:
    """Drop markup and keep the text content."""
    if "<" not in text or ">" not in text:
        return text
    return BeautifulSoup(text, "html.parser").get_text(" ")


def process_user_input(value: Any, user_id: str | None = None) -> str:
    """
    Request-level hygiene for raw input: HTML, whitespace and size limits.

    Args:
        value: Raw transcript or email text
        user_id: Acting user, for log context

    Returns:
        Cleaned text, or "" when the input is unusable
    """
    if not isinstance(value, str):
        logger.warning(f"User input is not a string for user {user_id}: {type(value).__name__}")
        return ""

    processed = value
    changes: list[str] = []

    cleaned = strip_html(processed)
    if cleaned != processed:
        changes.append("HTML tags removed")
        processed = cleaned

    stripped = CONTROL_CHARS.sub("", processed)
    if stripped != processed:
        changes.append("control characters removed")
        processed = stripped

    normalized = WHITESPACE_RUN.sub(" ", processed).strip()
    if normalized != processed:
        changes.append("whitespace normalized")
        processed = normalized

    if len(processed) > settings.max_input_length:
        changes.append(f"truncated from {len(processed)} to {settings.max_input_length} characters")
        processed = processed[: settings.max_input_length]
        logger.warning(f"Input length exceeded for user {user_id}, truncated")

    words = processed.split()
    if len(words) > settings.max_word_count:
        changes.append(f"truncated from {len(words)} to {settings.max_word_count} words")
        processed = " ".join(words[: settings.max_word_count])
        logger.warning(f"Input word count exceeded for user {user_id}, truncated")

    if changes:
        logger.info(f"User input cleaned for user {user_id}: {'; '.join(changes)}")

    return processed
