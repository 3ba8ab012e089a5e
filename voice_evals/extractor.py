"""
Voice Evals - Field Extractor

Pulls structured contact fields out of caller turns with regexes and a
few light heuristics. Nothing here understands language: a capture only
means "this caller turn looks like it contains a value for this key".

Captures are not deduplicated. If the caller gives two phone numbers in
two turns, both captures are returned, each tagged with its turn id, and
consumers decide which one wins (see models.latest_field_values).
"""

import re
from typing import Iterable, List, Union

from voice_evals.models import (
    ContactFieldKey,
    ConversationTurn,
    FieldCapture,
    normalize_turns,
)

EMAIL_RE = re.compile(r"\b[A-Z0-9._%+-]+@[A-Z0-9.-]+\.[A-Z]{2,}\b", re.IGNORECASE)
PHONE_RE = re.compile(r"\+?\d[\d\s\-()]{7,}\d")
NAME_INTRO_RE = re.compile(r"\b(my name is|it's|i am|i'm)\s+([a-z]+)(\s+([a-z]+))?", re.IGNORECASE)
BARE_NAME_RE = re.compile(r"^[A-Z][a-z]{2,}$")
TIMEZONE_RE = re.compile(r"\b(EST|CST|PST|MST|UTC|GMT)\b|time zone", re.IGNORECASE)
BOOKING_CONFIRMED_RE = re.compile(r"confirm|booked|locked in", re.IGNORECASE)

# A day or date token followed (anywhere later) by a clock time
DATE_TIME_RE = re.compile(
    r"(tomorrow|today|monday|tuesday|wednesday|thursday|friday|saturday|sunday"
    r"|next\s+week|this\s+week"
    r"|Jan(?:uary)?|Feb(?:ruary)?|Mar(?:ch)?|Apr(?:il)?|May|June?|July?|Aug(?:ust)?"
    r"|Sep(?:tember)?|Oct(?:ober)?|Nov(?:ember)?|Dec(?:ember)?"
    r"|\d{1,2}/\d{1,2}|\d{1,2}-\d{1,2})"
    r".*?(\d{1,2}:\d{2}|at\s+\d{1,2}|\d{1,2}\s*(am|pm))",
    re.IGNORECASE,
)

# Small talk and filler that must not be mistaken for a first or last name
NOT_A_NAME = {
    "hello", "hi", "hey", "yes", "yeah", "yep", "yup", "no", "nope", "okay",
    "ok", "sure", "thanks", "thank", "bye", "goodbye", "good", "great",
    "fine", "perfect", "awesome", "cool", "sorry", "well", "doing", "not",
    "just", "looking", "calling", "here", "interested", "too", "so", "right",
    "busy", "available", "free", "new", "this", "that", "ready", "open",
    "still", "really", "very", "also", "actually", "only", "glad", "happy",
    "afraid", "going", "trying", "wondering", "thinking", "a", "an", "the",
    "on", "at", "in", "from", "with", "for", "and", "or", "but",
    "today", "tomorrow", "tonight", "next", "monday", "tuesday", "wednesday",
    "thursday", "friday", "saturday", "sunday", "morning", "afternoon", "evening",
}


def looks_like_name(word: str) -> bool:
    return bool(word) and word.lower() not in NOT_A_NAME


def _capture(key: ContactFieldKey, value: str, turn: ConversationTurn) -> FieldCapture:
    return FieldCapture(key=key, value=value, turn_id=turn.id, valid=True, source="detected")


def extract_from_turn(turn: ConversationTurn) -> List[FieldCapture]:
    """Captures for a single caller turn, in a fixed key order."""
    if not turn.is_caller:
        return []

    text = turn.text or ""
    out = []

    email = EMAIL_RE.search(text)
    if email:
        out.append(_capture(ContactFieldKey.EMAIL, email.group(0), turn))

    phone = PHONE_RE.search(text)
    if phone:
        out.append(_capture(ContactFieldKey.PHONE, phone.group(0), turn))

    intro = NAME_INTRO_RE.search(text)
    if intro:
        first, last = intro.group(2), intro.group(4)
        if looks_like_name(first):
            out.append(_capture(ContactFieldKey.FIRST_NAME, first, turn))
            if last and looks_like_name(last):
                out.append(_capture(ContactFieldKey.LAST_NAME, last, turn))
    elif BARE_NAME_RE.match(text.strip()) and looks_like_name(text.strip()):
        out.append(_capture(ContactFieldKey.FIRST_NAME, text.strip(), turn))

    if DATE_TIME_RE.search(text):
        out.append(_capture(ContactFieldKey.CLASS_DATE_TIME, text.strip(), turn))

    if TIMEZONE_RE.search(text):
        out.append(_capture(ContactFieldKey.TIMEZONE, text.strip(), turn))

    if BOOKING_CONFIRMED_RE.search(text):
        out.append(_capture(ContactFieldKey.BOOKING_CONFIRMED, text.strip(), turn))

    return out


def extract_field_captures(
    turns: Iterable[Union[ConversationTurn, dict]],
) -> List[FieldCapture]:
    """
    Extract field captures from every caller turn of a transcript.

    Args:
        turns: Transcript turns (dataclasses or dicts), in order

    Returns:
        Captures in turn order. Agent turns never produce captures.
    """
    out = []
    for turn in normalize_turns(turns):
        out.extend(extract_from_turn(turn))
    return out
