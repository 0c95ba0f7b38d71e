"""Admission pipeline for chat message bodies.

The pipeline sanitizes first and only ever hands the sanitized text onward:
length, link, profanity and duplicate checks all run against what would be
stored, and the first failing check decides the rejection reason.
"""

from __future__ import annotations

import json
import re
from collections.abc import Iterable
from importlib import resources
from pathlib import Path
from typing import Protocol

from market_chat.core.errors import ValidationFailed
from market_chat.core.settings import settings

REASON_EMPTY = "Message cannot be empty"
REASON_LINKS = "Links are not allowed in chat"
REASON_PROFANITY = "Message contains inappropriate content"
REASON_DUPLICATE = "Please don't repeat the same message"

DUPLICATE_MIN_LENGTH = 10

# `&` not already starting one of the entities produced below, so a second
# pass over sanitized text is a no-op.
_BARE_AMPERSAND = re.compile(r"&(?!(?:amp|lt|gt|quot|#039);)")
_ZERO_WIDTH = re.compile(r"[\u200b-\u200d\ufeff\u00ad]")
_CONTROL = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_WHITESPACE = re.compile(r"\s+")
_LEET_TABLE = str.maketrans(
    {"0": "o", "1": "i", "3": "e", "4": "a", "5": "s", "7": "t", "@": "a", "$": "s"}
)
_LEET_STRIP = re.compile(r"[*_\-.]")


def sanitize_message(message: str) -> str:
    """Escape HTML, drop invisible characters and normalize whitespace."""
    escaped = (
        _BARE_AMPERSAND.sub("&amp;", message)
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
        .replace("'", "&#039;")
    )
    visible = _CONTROL.sub("", _ZERO_WIDTH.sub("", escaped))
    return _WHITESPACE.sub(" ", visible).strip()


def normalize_leetspeak(text: str) -> str:
    """Fold case, undo digit-for-letter substitutions and drop separators."""
    return _LEET_STRIP.sub("", text.lower().translate(_LEET_TABLE))


def _bigrams(text: str) -> set[str]:
    return {text[i : i + 2] for i in range(len(text) - 1)}


def dice_coefficient(first: str, second: str) -> float:
    """Similarity in ``[0, 1]`` over the sets of 2-character shingles."""
    if first == second:
        return 1.0
    if len(first) < 2 or len(second) < 2:
        return 0.0
    left, right = _bigrams(first), _bigrams(second)
    return 2 * len(left & right) / (len(left) + len(right))


def is_duplicate_message(
    new_message: str,
    last_message: str | None,
    threshold: float | None = None,
) -> bool:
    """Return True if ``new_message`` repeats or nearly repeats ``last_message``."""
    if not last_message:
        return False
    limit = threshold if threshold is not None else settings.chat_duplicate_similarity

    normalized_new = new_message.casefold().strip()
    normalized_last = last_message.casefold().strip()
    if normalized_new == normalized_last:
        return True

    if len(normalized_new) > DUPLICATE_MIN_LENGTH and len(normalized_last) > DUPLICATE_MIN_LENGTH:
        return dice_coefficient(normalized_new, normalized_last) > limit
    return False


class ContentMatcher(Protocol):
    """Swappable source of link and profanity rules."""

    version: int

    def find_link(self, text: str) -> str | None:
        """Return the first link-like token in ``text``, if any."""
        ...

    def find_profanity(self, text: str) -> str | None:
        """Return the first blocklisted entry found as whole words, if any."""
        ...


class PatternContentMatcher:
    """Regex link rules plus a whole-word, leetspeak-aware blocklist."""

    def __init__(
        self,
        link_patterns: Iterable[str],
        blocklist: Iterable[str],
        version: int = 1,
    ) -> None:
        self.version = version
        self._link_patterns = [re.compile(pattern) for pattern in link_patterns]
        self._blocklist: list[tuple[str, tuple[str, ...]]] = []
        for entry in blocklist:
            tokens = tuple(normalize_leetspeak(entry).split())
            # Entries that collapse to a single letter would match ordinary words.
            if tokens and len("".join(tokens)) >= 2:
                self._blocklist.append((entry, tokens))

    @classmethod
    def from_file(cls, path: str | Path) -> PatternContentMatcher:
        """Load a versioned rule set from a JSON document."""
        with Path(path).open(encoding="utf-8") as handle:
            return cls.from_mapping(json.load(handle))

    @classmethod
    def from_mapping(cls, data: dict) -> PatternContentMatcher:
        return cls(
            link_patterns=data.get("link_patterns", []),
            blocklist=data.get("blocklist", []),
            version=int(data.get("version", 1)),
        )

    @classmethod
    def default(cls) -> PatternContentMatcher:
        """Rule set bundled with the package, or ``CONTENT_FILTER_PATH`` if set."""
        if settings.content_filter_path:
            return cls.from_file(settings.content_filter_path)
        bundled = resources.files("market_chat.data").joinpath("content_filter.json")
        return cls.from_mapping(json.loads(bundled.read_text(encoding="utf-8")))

    def find_link(self, text: str) -> str | None:
        lowered = text.lower()
        for pattern in self._link_patterns:
            match = pattern.search(lowered)
            if match:
                return match.group(0)
        return None

    def find_profanity(self, text: str) -> str | None:
        words = normalize_leetspeak(text).split()
        for entry, tokens in self._blocklist:
            span = len(tokens)
            for start in range(len(words) - span + 1):
                if tuple(words[start : start + span]) == tokens:
                    return entry
        return None


class AdmissionPipeline:
    """Sanitize, then reject on length, links, profanity or repetition."""

    def __init__(
        self,
        matcher: ContentMatcher | None = None,
        max_length: int | None = None,
        similarity_threshold: float | None = None,
    ) -> None:
        self.matcher = matcher or PatternContentMatcher.default()
        self.max_length = max_length if max_length is not None else settings.chat_max_message_length
        self.similarity_threshold = (
            similarity_threshold
            if similarity_threshold is not None
            else settings.chat_duplicate_similarity
        )

    def process(self, raw_message: str, last_message: str | None) -> str:
        """Return the storable text or raise :class:`ValidationFailed`."""
        sanitized = sanitize_message(raw_message)
        if not sanitized:
            raise ValidationFailed(REASON_EMPTY)
        if len(sanitized) > self.max_length:
            raise ValidationFailed(f"Message exceeds {self.max_length} character limit")
        if self.matcher.find_link(sanitized) is not None:
            raise ValidationFailed(REASON_LINKS)
        if self.matcher.find_profanity(sanitized) is not None:
            raise ValidationFailed(REASON_PROFANITY)
        if is_duplicate_message(sanitized, last_message, self.similarity_threshold):
            raise ValidationFailed(REASON_DUPLICATE)
        return sanitized
