"""
Voice Evals - Rubric Scorers

One scorer per rubric check. Every scorer looks at the whole transcript
plus the field captures extracted from it, and returns a RubricScore:

- 5: check passed
- 2: check failed
- None: check does not apply to this conversation (or is manual-only)

Scorers are deterministic keyword checks. They do not enforce
one-question-at-a-time discipline; that is the violation detector's job
(see corrector.validate_agent_response).
"""

import re
from abc import ABC, abstractmethod
from typing import List, Optional

from voice_evals.models import (
    ContactFieldKey,
    ConversationTurn,
    FieldCapture,
    RubricKey,
    RubricScore,
    normalize_role,
)
from voice_evals.spec import PromptSpec

PASS_SCORE = 5
FAIL_SCORE = 2
MAX_SCORE = 5


def score_boolean(
    key: RubricKey,
    passed: bool,
    evidence_turn_ids: List[str],
    notes: Optional[str] = None,
) -> RubricScore:
    return RubricScore(
        key=key,
        score=PASS_SCORE if passed else FAIL_SCORE,
        notes=notes,
        evidence_turn_ids=list(evidence_turn_ids),
    )


class RubricScorer(ABC):
    """
    Base class for rubric scorers.

    Subclasses set `key` and implement score(). A spec may be passed for
    context; it never changes the score, only the notes.
    """

    key: RubricKey = None

    @abstractmethod
    def score(
        self,
        turns: List[ConversationTurn],
        captures: List[FieldCapture],
        spec: Optional[PromptSpec] = None,
    ) -> RubricScore:
        pass

    def __call__(self, turns, captures, spec=None) -> RubricScore:
        return self.score(turns, captures, spec)

    @staticmethod
    def matching(turns: List[ConversationTurn], pattern, role: str = None) -> List[ConversationTurn]:
        """Turns whose text matches pattern, optionally restricted to one role"""
        out = []
        for t in turns:
            if role is not None and t.role != normalize_role(role):
                continue
            if pattern.search(t.text or ""):
                out.append(t)
        return out


class FieldCollectionScorer(RubricScorer):
    """
    Passes when at least one key contact field was captured
    (first name, phone or email).
    """

    key = RubricKey.FIELD_COLLECTION
    KEY_FIELDS = {ContactFieldKey.FIRST_NAME, ContactFieldKey.PHONE, ContactFieldKey.EMAIL}

    def score(self, turns, captures, spec=None):
        passed = any(c.key in self.KEY_FIELDS for c in captures)
        notes = "Captured at least one key contact field" if passed else "No key contact field captured"

        if spec is not None:
            captured = {c.key for c in captures}
            missing = [k.value for k in spec.required_fields if k not in captured]
            if missing:
                notes += f"; required fields still missing: {', '.join(missing)}"
            else:
                notes += "; all required fields captured"

        evidence = []
        for c in captures:
            if c.turn_id not in evidence:
                evidence.append(c.turn_id)

        return score_boolean(self.key, passed, evidence, notes)


class BookingRulesScorer(RubricScorer):
    """
    Passes when the agent raised scheduling and the caller answered with
    an affirmative in a later turn.
    """

    key = RubricKey.BOOKING_RULES
    INTENT_RE = re.compile(r"trial|class|schedule|booking", re.IGNORECASE)
    AFFIRMATIVE_RE = re.compile(r"yes|works|okay|confirm", re.IGNORECASE)

    def score(self, turns, captures, spec=None):
        for i, turn in enumerate(turns):
            if not turn.is_agent or not self.INTENT_RE.search(turn.text or ""):
                continue
            for later in turns[i + 1:]:
                if later.is_caller and self.AFFIRMATIVE_RE.search(later.text or ""):
                    return score_boolean(
                        self.key, True, [turn.id, later.id],
                        "Booking flow reached an affirmative",
                    )

        asked = self.matching(turns, self.INTENT_RE, role="agent")
        return score_boolean(
            self.key, False, [t.id for t in asked],
            "Booking flow never reached an affirmative",
        )


class QuestionCadenceScorer(RubricScorer):
    """Passes when the agent asked for first name, email or phone at least once"""

    key = RubricKey.QUESTION_CADENCE
    ASK_RE = re.compile(r"first\s*name|email|phone", re.IGNORECASE)

    def score(self, turns, captures, spec=None):
        asked = self.matching(turns, self.ASK_RE, role="agent")
        evidence = [t.id for t in self.matching(turns, self.ASK_RE)]
        notes = (
            "Used guided cadence to collect basics" if asked
            else "Agent never asked for name, email or phone"
        )
        return score_boolean(self.key, bool(asked), evidence, notes)


class VerificationScorer(RubricScorer):
    key = RubricKey.VERIFICATION
    VERIFY_RE = re.compile(r"confirm|verify|spell|email", re.IGNORECASE)

    def score(self, turns, captures, spec=None):
        hits = self.matching(turns, self.VERIFY_RE)
        notes = "Attempted verification" if hits else "No verification attempted"

        if spec is not None:
            required = []
            if spec.confirmations.repeat_phone:
                required.append("repeat phone")
            if spec.confirmations.spell_email:
                required.append("spell email")
            if required:
                notes += f"; required confirmations: {', '.join(required)}"

        return score_boolean(self.key, bool(hits), [t.id for t in hits], notes)


class ToneScorer(RubricScorer):
    """Tone is reviewed by a person; never auto-scored."""

    key = RubricKey.TONE

    def score(self, turns, captures, spec=None):
        return RubricScore(
            key=self.key,
            score=None,
            notes="Tone not auto-scored; adjust manually",
            evidence_turn_ids=[t.id for t in turns],
        )


class ObjectionHandlingScorer(RubricScorer):
    """
    Only applies when the caller pushed back. Passes when an agent turn
    after the first objection acknowledges it or offers an alternative.
    """

    key = RubricKey.OBJECTION_HANDLING
    OBJECTION_RE = re.compile(r"price|too\s+expensive|not\s+interested|busy", re.IGNORECASE)
    RESPONSE_RE = re.compile(r"understand|no\s+problem|we can|option", re.IGNORECASE)

    def score(self, turns, captures, spec=None):
        first = None
        for i, turn in enumerate(turns):
            if self.OBJECTION_RE.search(turn.text or ""):
                first = i
                break

        if first is None:
            return RubricScore(
                key=self.key,
                score=None,
                notes="Not tested in this call",
                evidence_turn_ids=[],
            )

        objection = turns[first]
        handled = self.matching(turns[first + 1:], self.RESPONSE_RE, role="agent")
        if handled:
            return score_boolean(
                self.key, True, [objection.id, handled[0].id],
                "Handled at least one objection",
            )
        return score_boolean(
            self.key, False, [objection.id],
            "Objection raised but never addressed",
        )


def default_scorers() -> List[RubricScorer]:
    """The six rubric checks, in report order"""
    return [
        FieldCollectionScorer(),
        BookingRulesScorer(),
        QuestionCadenceScorer(),
        VerificationScorer(),
        ToneScorer(),
        ObjectionHandlingScorer(),
    ]
