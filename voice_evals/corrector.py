"""
Voice Evals - Violation Detector and Auto-Corrector

Checks a single agent utterance against the active PromptSpec and, when
it breaks a rule, proposes a compliant replacement.

    violations = validate_agent_response(text, "t7", spec, history)
    result = auto_correct_response(violations, history, spec)
    if result.has_violations:
        say(result.corrected_response)

Each violation carries its own suggested fix, computed when the violation
is created. The auto-corrector only picks the most severe one.
"""

import re
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set

from voice_evals.extractor import looks_like_name
from voice_evals.models import ContactFieldKey, ConversationTurn, normalize_turns
from voice_evals.spec import ONE_AT_A_TIME, PromptSpec

SEVERITY_ORDER = {"critical": 0, "high": 1, "medium": 2, "low": 3}

# Phrases that show the agent is asking for a field
FIELD_KEYWORDS = {
    ContactFieldKey.FIRST_NAME: ["first name", "your name", "what's your name", "may i have your name"],
    ContactFieldKey.LAST_NAME: ["last name", "surname", "family name"],
    ContactFieldKey.PHONE: ["phone", "number", "contact number", "mobile"],
    ContactFieldKey.EMAIL: ["email", "email address"],
    ContactFieldKey.CLASS_DATE_TIME: ["date", "time", "when", "schedule"],
}

FIELD_QUESTIONS = {
    ContactFieldKey.FIRST_NAME: "What's your first name?",
    ContactFieldKey.LAST_NAME: "And your last name?",
    ContactFieldKey.PHONE: "What's the best phone number to reach you?",
    ContactFieldKey.EMAIL: "What email should I send the confirmation to?",
    ContactFieldKey.CLASS_DATE_TIME: "What date and time works best for you?",
}

ALL_COLLECTED_CONFIRM = "Great! I have all the information I need. Let me confirm your booking."
ALL_COLLECTED_SHORT = "Perfect! I have everything I need."

SENTENCE_RE = re.compile(r"[^.!?]+[.!?]*")
PHONE_HISTORY_RE = re.compile(r"\d{3}[-.\s]?\d{3}[-.\s]?\d{4}")
WEEKDAY_RE = re.compile(r"\b(monday|tuesday|wednesday|thursday|friday|saturday|sunday)\b", re.IGNORECASE)
SINGLE_WORD_RE = re.compile(r"^[A-Z][a-z]+$")


@dataclass
class Violation:
    """A breach of the PromptSpec in one agent utterance"""

    type: str  # cadence | word_count | field_order | disallowed_phrase | multiple_fields
    severity: str  # critical | high | medium | low
    message: str
    original_text: str
    suggested_fix: str
    turn_id: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "severity": self.severity,
            "message": self.message,
            "originalText": self.original_text,
            "suggestedFix": self.suggested_fix,
            "turnId": self.turn_id,
        }


@dataclass
class AutoCorrectionResult:
    has_violations: bool
    violations: List[Violation] = field(default_factory=list)
    corrected_response: Optional[str] = None
    applied_automatically: bool = False

    def to_dict(self) -> Dict[str, Any]:
        d = {
            "hasViolations": self.has_violations,
            "violations": [v.to_dict() for v in self.violations],
            "appliedAutomatically": self.applied_automatically,
        }
        if self.corrected_response is not None:
            d["correctedResponse"] = self.corrected_response
        return d


# ─── Detection ────────────────────────────────────────────────────────────────


def count_fields_requested(response: str, spec: PromptSpec) -> int:
    """Number of distinct required fields the utterance asks about"""
    lower = response.lower()
    count = 0
    for key, keywords in FIELD_KEYWORDS.items():
        if key in spec.required_fields and any(k in lower for k in keywords):
            count += 1
    return count


def count_questions(response: str, spec: PromptSpec) -> int:
    """
    Questions asked by an utterance: question marks, or the number of
    fields requested when one question bundles several asks.
    """
    return max(response.count("?"), count_fields_requested(response, spec))


def validate_agent_response(
    response: str,
    turn_id: str,
    spec: Optional[PromptSpec],
    history: Optional[List[ConversationTurn]] = None,
) -> List[Violation]:
    """
    Check one agent utterance against a spec.

    Args:
        response: The agent's utterance
        turn_id: Id of the turn being checked
        spec: Active PromptSpec. No spec means nothing to check.
        history: Conversation so far, used to pick the next field to ask for

    Returns:
        Violations in check order: word_count, cadence, multiple_fields,
        then one disallowed_phrase per phrase found
    """
    if spec is None:
        return []

    history = normalize_turns(history or [])
    response = response or ""
    violations = []

    word_count = len(response.split())
    if word_count > spec.max_words_per_turn:
        violations.append(Violation(
            type="word_count",
            severity="high",
            message=f"Response has {word_count} words (max: {spec.max_words_per_turn})",
            original_text=response,
            suggested_fix=concise_version(response, spec.max_words_per_turn),
            turn_id=turn_id,
        ))

    question_count = count_questions(response, spec)
    if question_count > 1 and spec.question_cadence == ONE_AT_A_TIME:
        violations.append(Violation(
            type="cadence",
            severity="critical",
            message=f"Asking {question_count} questions at once (should be one at a time)",
            original_text=response,
            suggested_fix=next_field_question(history, spec, ALL_COLLECTED_CONFIRM),
            turn_id=turn_id,
        ))

    fields_requested = count_fields_requested(response, spec)
    if fields_requested > 1:
        violations.append(Violation(
            type="multiple_fields",
            severity="critical",
            message=f"Requesting {fields_requested} fields at once (should ask for one field at a time)",
            original_text=response,
            suggested_fix=next_field_question(history, spec, ALL_COLLECTED_SHORT),
            turn_id=turn_id,
        ))

    lower = response.lower()
    for phrase in spec.disallowed_phrases:
        if phrase and phrase.lower() in lower:
            violations.append(Violation(
                type="disallowed_phrase",
                severity="medium",
                message=f'Contains disallowed phrase: "{phrase}"',
                original_text=response,
                suggested_fix=without_phrase(response, phrase, history, spec),
                turn_id=turn_id,
            ))

    return violations


# ─── Fixes ────────────────────────────────────────────────────────────────────


def concise_version(response: str, max_words: int) -> str:
    """First question that fits the word budget, else the first max_words words"""
    for sentence in SENTENCE_RE.findall(response):
        sentence = sentence.strip()
        if sentence.endswith("?") and len(sentence.split()) <= max_words:
            return sentence

    return " ".join(response.split()[:max_words]) + "..."


def collected_fields(history: List[ConversationTurn]) -> Set[ContactFieldKey]:
    """Fields the caller appears to have given already"""
    collected = set()
    for turn in history:
        if not turn.is_caller:
            continue
        text = (turn.text or "").strip()
        if SINGLE_WORD_RE.match(text) and looks_like_name(text):
            collected.add(ContactFieldKey.FIRST_NAME)
        if "@" in text:
            collected.add(ContactFieldKey.EMAIL)
        if PHONE_HISTORY_RE.search(text):
            collected.add(ContactFieldKey.PHONE)
        if WEEKDAY_RE.search(text):
            collected.add(ContactFieldKey.CLASS_DATE_TIME)
    return collected


def field_question(key: ContactFieldKey) -> str:
    if key in FIELD_QUESTIONS:
        return FIELD_QUESTIONS[key]
    return f"Could you provide your {key.value.replace('_', ' ').strip()}?"


def next_field_question(
    history: List[ConversationTurn],
    spec: PromptSpec,
    all_collected: str = ALL_COLLECTED_CONFIRM,
) -> str:
    """Single focused question for the first field in field_order not yet given"""
    collected = collected_fields(history)
    for key in spec.field_order:
        if key not in collected:
            return field_question(key)
    return all_collected


def without_phrase(
    response: str,
    phrase: str,
    history: List[ConversationTurn],
    spec: PromptSpec,
) -> str:
    """
    Drop the sentences that contain a disallowed phrase. When nothing is
    left, ask for the next field (or move to confirmation) instead.
    """
    pattern = re.compile(re.escape(phrase), re.IGNORECASE)
    kept = [s.strip() for s in SENTENCE_RE.findall(response) if not pattern.search(s)]
    fixed = " ".join(s for s in kept if s)

    if not fixed:
        fixed = next_field_question(history, spec)

    if pattern.search(fixed):
        fixed = " ".join(pattern.sub(" ", fixed).split())
    return fixed


# ─── Correction ───────────────────────────────────────────────────────────────


def sort_violations(violations: List[Violation]) -> List[Violation]:
    """critical > high > medium > low, stable within a severity"""
    return sorted(violations, key=lambda v: SEVERITY_ORDER.get(v.severity, len(SEVERITY_ORDER)))


def auto_correct_response(
    violations: List[Violation],
    history: Optional[List[ConversationTurn]] = None,
    spec: Optional[PromptSpec] = None,
) -> AutoCorrectionResult:
    """
    Pick a replacement utterance for a set of violations.

    The fix attached to the most severe violation wins. The input list is
    not reordered; the result holds a sorted copy.
    """
    if not violations:
        return AutoCorrectionResult(has_violations=False, violations=[], applied_automatically=False)

    ordered = sort_violations(violations)
    return AutoCorrectionResult(
        has_violations=True,
        violations=ordered,
        corrected_response=ordered[0].suggested_fix,
        applied_automatically=True,
    )


def create_correction_entry(
    violation: Violation,
    corrected_text: str,
    agent_id: str,
    conversation_id: str,
) -> Dict[str, Any]:
    """Knowledge-base record of a correction made for a violation"""
    return {
        "agentId": agent_id,
        "conversationId": conversation_id,
        "turnId": violation.turn_id,
        "originalResponse": violation.original_text,
        "correctedResponse": corrected_text,
        "reason": violation.message,
        "violationType": violation.type,
        "timestamp": int(time.time() * 1000),
    }
