"""
Voice Evals - Spec-Driven Rubric

Scorers that grade a conversation against the rules of a PromptSpec
rather than the fixed keyword checks in scorers.py:

- fieldCollection: share of required fields captured, plus a small bonus
  for capturing them in field_order
- bookingRules: no booking language before every required field is in
  (only when block_booking_until_fields is set)
- questionCadence: half a point off per agent turn that asks more than
  one question or runs over max_words_per_turn
- verification: phone read-back and email spell-back, as required by
  the spec's confirmations
- objectionHandling: empathetic answer to the first caller objection

Scores here are graded (e.g. 3.5), not just pass/fail. Tone stays a
manual check.
"""

import re
from typing import List, Optional

from voice_evals.models import ConversationTurn, FieldCapture, RubricKey, RubricScore
from voice_evals.scorers import MAX_SCORE, RubricScorer, ToneScorer
from voice_evals.spec import PromptSpec

ORDER_BONUS = 0.5
CADENCE_PENALTY = 0.5


def _require_spec(spec: Optional[PromptSpec]) -> PromptSpec:
    if spec is None:
        raise ValueError("Spec-driven scorers need a PromptSpec")
    return spec


def _evidence(ids: List[str]) -> List[str]:
    out = []
    for turn_id in ids:
        if turn_id not in out:
            out.append(turn_id)
    return out


class SpecFieldCollectionScorer(RubricScorer):
    key = RubricKey.FIELD_COLLECTION

    def score(self, turns, captures, spec=None):
        spec = _require_spec(spec)
        required = list(spec.required_fields)
        if not required:
            return RubricScore(key=self.key, score=None, notes="N/A - no required fields in spec")

        captured = {c.key for c in captures}
        missing = [k.value for k in required if k not in captured]
        collected = len(required) - len(missing)
        score = collected / len(required) * MAX_SCORE

        in_scope = [c for c in captures if c.key in required]
        if in_scope:
            in_order = sum(
                1 for i, c in enumerate(in_scope)
                if i < len(spec.field_order) and spec.field_order[i] == c.key
            )
            score += in_order / len(in_scope) * ORDER_BONUS

        notes = (
            f"Missing required fields: {', '.join(missing)}" if missing
            else f"All {len(required)} required fields collected"
        )
        return RubricScore(
            key=self.key,
            score=round(min(MAX_SCORE, score), 2),
            notes=notes,
            evidence_turn_ids=_evidence([c.turn_id for c in in_scope]),
        )


class SpecBookingRulesScorer(RubricScorer):
    """Penalizes each agent turn that talks booking before the required fields are in."""

    key = RubricKey.BOOKING_RULES
    BOOKING_WORDS_RE = re.compile(r"\b(book|booked|booking|schedule|scheduled|scheduling)\b", re.IGNORECASE)

    @staticmethod
    def all_fields_index(turns: List[ConversationTurn], captures: List[FieldCapture], spec: PromptSpec) -> int:
        """Index of the turn by which every required field was captured, or -1"""
        required = set(spec.required_fields)
        position = {t.id: i for i, t in enumerate(turns)}
        seen = set()
        for i in range(len(turns)):
            seen.update(
                c.key for c in captures
                if c.key in required and position.get(c.turn_id, len(turns)) <= i
            )
            if seen >= required:
                return i
        return -1

    def score(self, turns, captures, spec=None):
        spec = _require_spec(spec)
        if not spec.block_booking_until_fields:
            return RubricScore(key=self.key, score=None, notes="N/A - booking rules not enforced")

        done_at = self.all_fields_index(turns, captures, spec)
        violations = []
        evidence = []
        for i, turn in enumerate(turns):
            if not turn.is_agent or (done_at != -1 and i >= done_at):
                continue
            text = (turn.text or "").lower()
            for phrase in spec.disallowed_phrases:
                if phrase and phrase.lower() in text:
                    violations.append(f'Early booking language detected: "{phrase}"')
                    evidence.append(turn.id)
                    break
            if self.BOOKING_WORDS_RE.search(text):
                violations.append(f"Booking language used before all fields collected (turn {i + 1})")
                evidence.append(turn.id)

        if not violations:
            return RubricScore(key=self.key, score=MAX_SCORE, notes="No early booking language detected")
        return RubricScore(
            key=self.key,
            score=max(0, MAX_SCORE - len(violations)),
            notes="; ".join(violations),
            evidence_turn_ids=_evidence(evidence),
        )


class SpecQuestionCadenceScorer(RubricScorer):
    key = RubricKey.QUESTION_CADENCE

    def score(self, turns, captures, spec=None):
        spec = _require_spec(spec)
        max_words = spec.max_words_per_turn or 30

        violations = []
        evidence = []
        for turn in turns:
            if not turn.is_agent:
                continue
            text = turn.text or ""
            questions = text.count("?")
            words = len(text.split())
            if questions > 1:
                violations.append(f"Multiple questions in one turn ({questions} questions)")
                evidence.append(turn.id)
            if words > max_words:
                violations.append(f"Turn exceeds {max_words} words ({words} words)")
                evidence.append(turn.id)

        if not violations:
            return RubricScore(
                key=self.key,
                score=MAX_SCORE,
                notes=f"Cadence respected: 1 question per turn, <={max_words} words",
            )
        return RubricScore(
            key=self.key,
            score=max(0, MAX_SCORE - len(violations) * CADENCE_PENALTY),
            notes="; ".join(violations[:2]),
            evidence_turn_ids=_evidence(evidence),
        )


class SpecVerificationScorer(RubricScorer):
    key = RubricKey.VERIFICATION
    PHONE_ASK_RE = re.compile(r"repeat.*phone|confirm.*phone|phone.*correct|verify.*phone", re.IGNORECASE)
    PHONE_READBACK_RE = re.compile(r"\d{3}.*\d{3}.*\d{4}")
    EMAIL_ASK_RE = re.compile(r"spell.*email|confirm.*email|email.*correct|verify.*email", re.IGNORECASE)
    SPELLED_RE = re.compile(r"\b[a-z]\s+[a-z]\s+[a-z]\b", re.IGNORECASE)

    def score(self, turns, captures, spec=None):
        spec = _require_spec(spec)
        repeat_phone = spec.confirmations.repeat_phone
        spell_email = spec.confirmations.spell_email
        if not repeat_phone and not spell_email:
            return RubricScore(key=self.key, score=None, notes="N/A - no verification rules in spec")

        phone_turn = None
        email_turn = None
        for turn in turns:
            if not turn.is_agent:
                continue
            text = turn.text or ""
            if repeat_phone and phone_turn is None:
                if self.PHONE_ASK_RE.search(text) or self.PHONE_READBACK_RE.search(text):
                    phone_turn = turn.id
            if spell_email and email_turn is None:
                if self.EMAIL_ASK_RE.search(text) or self.SPELLED_RE.search(text):
                    email_turn = turn.id

        required = int(repeat_phone) + int(spell_email)
        completed = int(phone_turn is not None) + int(email_turn is not None)

        missing = []
        if repeat_phone and phone_turn is None:
            missing.append("phone repeat")
        if spell_email and email_turn is None:
            missing.append("email spell-back")

        return RubricScore(
            key=self.key,
            score=completed / required * MAX_SCORE,
            notes=f"Missing: {', '.join(missing)}" if missing else "All verification steps completed",
            evidence_turn_ids=[t for t in (phone_turn, email_turn) if t is not None],
        )


class SpecObjectionHandlingScorer(RubricScorer):
    """Only caller objections count; the next agent turn must acknowledge without minimizing."""

    key = RubricKey.OBJECTION_HANDLING
    OBJECTIONS = [
        "too expensive", "too much", "can't afford", "not interested",
        "not right now", "maybe later", "need to think", "busy", "no time",
    ]
    EMPATHY_RE = re.compile(r"understand|appreciate|hear you|makes sense", re.IGNORECASE)
    MINIMIZING_RE = re.compile(r"just|simply|only", re.IGNORECASE)

    def score(self, turns, captures, spec=None):
        for i, turn in enumerate(turns):
            if not turn.is_caller:
                continue
            text = (turn.text or "").lower()
            if not any(k in text for k in self.OBJECTIONS):
                continue

            reply = next((t for t in turns[i + 1:] if t.is_agent), None)
            handled = (
                reply is not None
                and bool(self.EMPATHY_RE.search(reply.text or ""))
                and not self.MINIMIZING_RE.search(reply.text or "")
            )
            evidence = [turn.id] + ([reply.id] if reply is not None else [])
            return RubricScore(
                key=self.key,
                score=MAX_SCORE if handled else 2,
                notes=(
                    "Objection handled with empathy" if handled
                    else "Objection detected but not handled effectively"
                ),
                evidence_turn_ids=evidence,
            )

        return RubricScore(key=self.key, score=None, notes="N/A - no objections raised")


def spec_scorers() -> List[RubricScorer]:
    """The spec-driven checks, in the same report order as default_scorers()"""
    return [
        SpecFieldCollectionScorer(),
        SpecBookingRulesScorer(),
        SpecQuestionCadenceScorer(),
        SpecVerificationScorer(),
        ToneScorer(),
        SpecObjectionHandlingScorer(),
    ]


def build_rubric_from_spec(
    spec: PromptSpec,
    turns: List[ConversationTurn],
    captures: List[FieldCapture],
) -> List[RubricScore]:
    """Score a transcript with every spec-driven check."""
    return [scorer.score(turns, captures, spec) for scorer in spec_scorers()]
