"""
Reference resolution against a session's last listed events.

Matches a short spoken phrase ("that cooking thing", "the dentist one")
to one event from the most recent listing. The checks run from most to
least specific and the first hit wins:

1. title containment (phrase inside the title, or title inside the phrase),
   tried with the full phrase, then without cue words, then its core words
2. attendee match (any phrase word inside the attendee summary)
3. singleton fallback (only one event listed and the phrase is an anaphor)

Anything else is reported as no match so the caller falls back to a
provider-side title search instead of guessing.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, List, Optional, Sequence

if TYPE_CHECKING:
    from .context import EventReference

# Words that point back at something already mentioned
ANAPHORS = frozenset({"that", "the", "this", "it"})

# Words that signal the phrase may refer to the last listing
REFERENCE_CUES = ANAPHORS | {"my"}

# Generic nouns callers use in place of a title ("that thing", "my appointment")
GENERIC_NOUNS = frozenset({"thing", "event", "appointment", "meeting", "one", "entry"})

_NON_ALNUM = re.compile(r"[^a-z0-9\s]")


def normalize(text: Optional[str]) -> str:
    """Lowercase, drop everything outside [a-z0-9 whitespace], collapse spaces."""
    if not text:
        return ""
    return " ".join(_NON_ALNUM.sub("", text.lower()).split())


def tokenize(text: Optional[str]) -> List[str]:
    """Split normalized text into words."""
    return normalize(text).split()


def has_reference_cue(phrase: Optional[str]) -> bool:
    """Whether the phrase contains a demonstrative or possessive cue word."""
    return any(word in REFERENCE_CUES for word in tokenize(phrase))


def strip_cues(phrase: Optional[str]) -> List[str]:
    """Phrase words without demonstratives and possessives."""
    return [w for w in tokenize(phrase) if w not in REFERENCE_CUES]


def core_words(phrase: Optional[str]) -> List[str]:
    """Phrase words that could name an event: no cue words, no generic nouns."""
    return [w for w in strip_cues(phrase) if w not in GENERIC_NOUNS]


def containment_candidates(phrase: Optional[str]) -> List[str]:
    """
    Forms of a phrase to test against titles, most specific first.

    The full phrase, then the phrase without cue words, then its core words.
    A form made only of cue words and generic nouns names nothing and is
    skipped, so "my appointment" never matches "Dentist Appointment".
    """
    candidates: List[str] = []
    for words in (tokenize(phrase), strip_cues(phrase), core_words(phrase)):
        form = " ".join(words)
        if form and form not in candidates and set(words) - GENERIC_NOUNS - REFERENCE_CUES:
            candidates.append(form)
    return candidates


def resolve_reference(events: Sequence["EventReference"], phrase: Optional[str]) -> Optional["EventReference"]:
    """
    Find the event a phrase refers to.

    Args:
        events: Events from the most recent listing, in listing order
        phrase: Spoken search phrase

    Returns:
        The matched event, or None when no rule resolves it
    """
    if not events or not phrase:
        return None

    words = tokenize(phrase)

    # Title containment, in either direction; a more specific form wins
    for form in containment_candidates(phrase):
        for event in events:
            title = normalize(event.summary)
            if title and (form in title or title in form):
                return event

    # Attendee summary
    for word in (w for w in core_words(phrase) if len(w) > 2):
        for event in events:
            if event.attendees and word in event.attendees.lower():
                return event

    # Last resort: a lone listed event and a bare anaphor
    if len(events) == 1 and any(word in ANAPHORS for word in words):
        return events[0]

    return None
