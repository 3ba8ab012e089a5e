"""
Voice Evals - Data Model

Conversation turns, field captures, rubric scores and session evaluations.

Every model serializes to the JSON field names already used by stored
session records (camelCase: conversationId, turnId, evidenceTurnIds, ...),
so data written by earlier versions of the console loads unchanged.

Field keys have one canonical vocabulary (ContactFieldKey). The older
camelCase vocabulary (firstName, phone, bookingConfirmed, ...) is only
understood at the boundary through LEGACY_FIELD_KEYS.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Union


class Role(str, Enum):
    AGENT = "agent"
    CALLER = "caller"


class ContactFieldKey(str, Enum):
    FIRST_NAME = "first_name"
    LAST_NAME = "last_name"
    PHONE = "unique_phone_number"
    EMAIL = "email"
    CLASS_DATE_TIME = "class_date__time"
    TIMEZONE = "timezone"
    BOOKING_CONFIRMED = "booking_confirmed"


class RubricKey(str, Enum):
    FIELD_COLLECTION = "fieldCollection"
    BOOKING_RULES = "bookingRules"
    TONE = "tone"
    OBJECTION_HANDLING = "objectionHandling"
    QUESTION_CADENCE = "questionCadence"
    VERIFICATION = "verification"


# The five contact fields an agent must collect before booking
CONTACT_KEYS = [
    ContactFieldKey.FIRST_NAME,
    ContactFieldKey.LAST_NAME,
    ContactFieldKey.PHONE,
    ContactFieldKey.EMAIL,
    ContactFieldKey.CLASS_DATE_TIME,
]

LEGACY_FIELD_KEYS = {
    "firstName": ContactFieldKey.FIRST_NAME,
    "lastName": ContactFieldKey.LAST_NAME,
    "phone": ContactFieldKey.PHONE,
    "email": ContactFieldKey.EMAIL,
    "preferredSlot": ContactFieldKey.CLASS_DATE_TIME,
    "timezone": ContactFieldKey.TIMEZONE,
    "bookingConfirmed": ContactFieldKey.BOOKING_CONFIRMED,
}

_CANONICAL_TO_LEGACY = {v: k for k, v in LEGACY_FIELD_KEYS.items()}

# Speaker names used by call-log transcripts
_ROLE_ALIASES = {
    "agent": Role.AGENT,
    "assistant": Role.AGENT,
    "bot": Role.AGENT,
    "caller": Role.CALLER,
    "user": Role.CALLER,
    "customer": Role.CALLER,
}


def normalize_field_key(key: Union[str, ContactFieldKey]) -> ContactFieldKey:
    """Translate a canonical or legacy field key to ContactFieldKey."""
    if isinstance(key, ContactFieldKey):
        return key
    if not isinstance(key, str):
        raise ValueError(f"Unknown contact field key: {key!r}")
    if key in LEGACY_FIELD_KEYS:
        return LEGACY_FIELD_KEYS[key]
    try:
        return ContactFieldKey(key)
    except ValueError:
        raise ValueError(f"Unknown contact field key: {key!r}")


def to_legacy_key(key: Union[str, ContactFieldKey]) -> str:
    """Translate a field key to the legacy camelCase vocabulary."""
    return _CANONICAL_TO_LEGACY[normalize_field_key(key)]


def normalize_role(role: Union[str, Role]) -> Role:
    if isinstance(role, Role):
        return role
    resolved = _ROLE_ALIASES.get(str(role).strip().lower())
    if resolved is None:
        raise ValueError(f"Unknown turn role: {role!r}")
    return resolved


@dataclass(frozen=True)
class ConversationTurn:
    """One utterance by the caller or the agent. Never mutated after creation."""

    id: str
    role: Role
    text: str
    ts: int = 0

    def __post_init__(self):
        # Accept plain strings and speaker aliases ("agent", "user", ...)
        object.__setattr__(self, "role", normalize_role(self.role))

    @property
    def is_agent(self) -> bool:
        return self.role == Role.AGENT

    @property
    def is_caller(self) -> bool:
        return self.role == Role.CALLER

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "role": self.role.value,
            "text": self.text,
            "ts": self.ts,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], index: int = 0) -> "ConversationTurn":
        """
        Build a turn from either the stored shape {id, role, text, ts}
        or the call-log shape {speaker, text, timestamp}.
        """
        role = data.get("role", data.get("speaker"))
        if role is None:
            raise ValueError(f"Turn {index} has no role or speaker")
        return cls(
            id=str(data.get("id") or f"t{index + 1}"),
            role=normalize_role(role),
            text=str(data.get("text") or ""),
            ts=int(data.get("ts", data.get("timestamp", 0)) or 0),
        )


def normalize_turns(
    turns: Iterable[Union[ConversationTurn, Dict[str, Any]]],
) -> List[ConversationTurn]:
    """Accept turns as dataclasses or dicts and return a fresh list of turns."""
    out = []
    for i, turn in enumerate(turns or []):
        if isinstance(turn, ConversationTurn):
            out.append(turn)
        else:
            out.append(ConversationTurn.from_dict(turn, index=i))
    return out


@dataclass
class FieldCapture:
    """A structured value captured from a caller turn (or asserted manually)."""

    key: ContactFieldKey
    value: str
    turn_id: str
    valid: bool = True
    source: str = "detected"  # detected | manual

    def to_dict(self, legacy: bool = False) -> Dict[str, Any]:
        return {
            "key": to_legacy_key(self.key) if legacy else self.key.value,
            "value": self.value,
            "turnId": self.turn_id,
            "valid": self.valid,
            "source": self.source,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FieldCapture":
        return cls(
            key=normalize_field_key(data["key"]),
            value=str(data.get("value", "")),
            turn_id=str(data.get("turnId", data.get("turn_id", ""))),
            valid=bool(data.get("valid", True)),
            source=data.get("source", "detected"),
        )


@dataclass
class RubricScore:
    """Score for one rubric check. score=None means not applicable."""

    key: RubricKey
    score: Optional[float]
    notes: Optional[str] = None
    evidence_turn_ids: List[str] = field(default_factory=list)

    @property
    def scored(self) -> bool:
        return self.score is not None

    def to_dict(self) -> Dict[str, Any]:
        d = {
            "key": self.key.value,
            "score": self.score,
            "evidenceTurnIds": list(self.evidence_turn_ids),
        }
        if self.notes is not None:
            d["notes"] = self.notes
        return d

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RubricScore":
        return cls(
            key=RubricKey(data["key"]),
            score=data.get("score"),
            notes=data.get("notes"),
            evidence_turn_ids=list(data.get("evidenceTurnIds", [])),
        )


@dataclass
class CorrectionRecord:
    """Audit entry for a replacement of one turn's text."""

    turn_id: str
    corrected_response: str
    original_turn_text: str
    applied_at: int
    source: str = "manual"  # manual | auto
    reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        d = {
            "turnId": self.turn_id,
            "correctedResponse": self.corrected_response,
            "originalTurnText": self.original_turn_text,
            "appliedAt": self.applied_at,
            "source": self.source,
        }
        if self.reason:
            d["reason"] = self.reason
        return d

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CorrectionRecord":
        return cls(
            turn_id=str(data.get("turnId", "")),
            corrected_response=data.get("correctedResponse", ""),
            original_turn_text=data.get("originalTurnText", ""),
            applied_at=int(data.get("appliedAt", 0) or 0),
            source=data.get("source", "manual"),
            reason=data.get("reason"),
        )


def latest_field_values(captures: Iterable[FieldCapture]) -> Dict[ContactFieldKey, str]:
    """
    Resolve "the" value of each key from a list of captures.

    Captures are read in list order (which is turn order for detected
    captures), so the last one wins; a manual capture is never overridden
    by a detected one.
    """
    values: Dict[ContactFieldKey, str] = {}
    manual_keys = set()
    for capture in captures:
        if capture.source == "manual":
            values[capture.key] = capture.value
            manual_keys.add(capture.key)
        elif capture.key not in manual_keys:
            values[capture.key] = capture.value
    return values


@dataclass
class SessionEvaluation:
    """
    Evaluation of one conversation.

    Identity is conversation_id; saving the same id again replaces the
    stored record. corrections_applied counts every correction recorded
    against the session after evaluation.
    """

    conversation_id: str
    agent_id: str = ""
    niche: Optional[str] = None
    started_at: Optional[int] = None
    ended_at: Optional[int] = None
    collected_fields: List[FieldCapture] = field(default_factory=list)
    rubric: List[RubricScore] = field(default_factory=list)
    confidence: int = 0
    corrections_applied: int = 0
    version: str = "v1.1"
    transcript: Optional[List[ConversationTurn]] = None
    corrections: List[CorrectionRecord] = field(default_factory=list)
    spec_hash: Optional[str] = None

    def rubric_score(self, key: Union[str, RubricKey]) -> Optional[RubricScore]:
        key = RubricKey(key)
        for score in self.rubric:
            if score.key == key:
                return score
        return None

    def field_value(self, key: Union[str, ContactFieldKey]) -> Optional[str]:
        return latest_field_values(self.collected_fields).get(normalize_field_key(key))

    def corrected_transcript(self) -> List[ConversationTurn]:
        """Transcript with the latest correction per turn applied, for display."""
        latest = {}
        for correction in self.corrections:
            latest[correction.turn_id] = correction.corrected_response
        return [
            replace(turn, text=latest[turn.id]) if turn.id in latest else turn
            for turn in (self.transcript or [])
        ]

    def to_dict(self) -> Dict[str, Any]:
        d = {
            "conversationId": self.conversation_id,
            "agentId": self.agent_id,
            "niche": self.niche,
            "startedAt": self.started_at,
            "endedAt": self.ended_at,
            "collectedFields": [f.to_dict() for f in self.collected_fields],
            "rubric": [r.to_dict() for r in self.rubric],
            "confidence": self.confidence,
            "correctionsApplied": self.corrections_applied,
            "version": self.version,
            "corrections": [c.to_dict() for c in self.corrections],
        }
        if self.transcript is not None:
            d["transcript"] = [t.to_dict() for t in self.transcript]
        if self.spec_hash:
            d["specHash"] = self.spec_hash
        return d

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SessionEvaluation":
        transcript = data.get("transcript")
        return cls(
            conversation_id=data["conversationId"],
            agent_id=data.get("agentId") or "",
            niche=data.get("niche"),
            started_at=data.get("startedAt"),
            ended_at=data.get("endedAt"),
            collected_fields=[FieldCapture.from_dict(f) for f in data.get("collectedFields", [])],
            rubric=[RubricScore.from_dict(r) for r in data.get("rubric", [])],
            confidence=int(data.get("confidence", 0) or 0),
            corrections_applied=int(data.get("correctionsApplied", 0) or 0),
            version=data.get("version", "v1.1"),
            transcript=normalize_turns(transcript) if transcript is not None else None,
            corrections=[CorrectionRecord.from_dict(c) for c in data.get("corrections", [])],
            spec_hash=data.get("specHash"),
        )
