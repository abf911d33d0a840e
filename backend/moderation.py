"""
Message moderation.

Broadcast messages are short public strings shown on other users' maps.
A message is blocked when it contains any term from the fixed list (or
from `settings.extra_blocked_terms`) as a case-insensitive substring.
"""

from typing import Iterable, Optional, Tuple

from settings import settings

BLOCKED_TERMS: Tuple[str, ...] = (
    "fuck",
    "shit",
    "bitch",
    "cunt",
    "whore",
    "slut",
    "escort",
    "onlyfans",
    "venmo",
    "cashapp",
)


def blocked_terms() -> Tuple[str, ...]:
    extra = tuple(t.lower() for t in settings.extra_blocked_terms)
    return BLOCKED_TERMS + extra


def find_blocked_term(message: Optional[str], terms: Iterable[str] | None = None) -> Optional[str]:
    """Return the first blocked term found in `message`, or None."""

    if not message:
        return None
    lowered = message.lower()
    for term in terms if terms is not None else blocked_terms():
        if term and term.lower() in lowered:
            return term
    return None


def contains_blocked_term(message: Optional[str], terms: Iterable[str] | None = None) -> bool:
    return find_blocked_term(message, terms) is not None
