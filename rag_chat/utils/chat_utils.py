import re
from typing import Optional

DEFAULT_CHAT_TITLE = "New Chat"

# applied in order, each at most once
_TITLE_PREFIXES = [
    re.compile(r"^(hi|hello|hey|greetings),?\s*", re.IGNORECASE),
    re.compile(r"^(can you|could you|please|would you)\s+", re.IGNORECASE),
    re.compile(r"^(i need|i want|i would like)\s+", re.IGNORECASE),
    re.compile(r"^(help me|assist me)\s+", re.IGNORECASE),
]

_TRAILING_PUNCTUATION = re.compile(r"[.,;:]+$")


def _normalize_whitespace(text: str) -> str:
    return " ".join(text.split())


def generate_chat_title(query: Optional[str], max_length: int = 50) -> str:
    """
    Build a short chat title from the first user message.

    Greeting and request prefixes are dropped, the first letter is capitalized and
    long titles are cut to `max_length`, at the last word boundary when that boundary
    lies past 70% of the limit. Truncated titles end with "...".
    """
    if not query or not query.strip():
        return DEFAULT_CHAT_TITLE

    original = query.strip()
    title = _normalize_whitespace(original)

    for prefix in _TITLE_PREFIXES:
        title = prefix.sub("", title, count=1)

    title = title[:1].upper() + title[1:]

    truncated = False
    if len(title) > max_length:
        cut = title[:max_length]
        last_space = cut.rfind(" ")
        title = cut[:last_space] if last_space > max_length * 0.7 else cut
        truncated = len(title) < len(original)

    # "?" and "!" are kept on purpose
    title = _TRAILING_PUNCTUATION.sub("", title).rstrip()

    if truncated and title:
        title += "..."

    return title or DEFAULT_CHAT_TITLE


def validate_chat_title(title: object, max_length: int = 100) -> Optional[str]:
    """Return the whitespace-normalized title, or None when it is empty or too long."""
    if not title or not isinstance(title, str):
        return None

    cleaned = _normalize_whitespace(title)
    if not cleaned or len(cleaned) > max_length:
        return None

    return cleaned
