"""
Voice Evals - Prompt Spec

The PromptSpec is the behavioral contract an agent's responses are checked
against: which contact fields to collect and in what order, how long a
turn may be, which phrases are off limits, and which confirmations the
agent must perform.

A spec is derived once per prompt version and treated as immutable for
the duration of a conversation. Specs are usually kept next to the prompt
as YAML:

    agent_type: voice_ai
    niche: fitness_gym
    required_fields: [first_name, last_name, unique_phone_number, email, class_date__time]
    field_order: [first_name, last_name, unique_phone_number, email, class_date__time]
    max_words_per_turn: 30
    confirmations:
      repeat_phone: true
      spell_email: true
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List

import yaml

from voice_evals.models import CONTACT_KEYS, ContactFieldKey, normalize_field_key

ONE_AT_A_TIME = "one_at_a_time"


def _value_or(value: Any, default: Any) -> Any:
    """default when value is missing or an explicit null"""
    return default if value is None else value


def _list_or(data: Dict[str, Any], key: str, default: List[Any]) -> List[Any]:
    value = _value_or(data.get(key), default)
    if not isinstance(value, (list, tuple)):
        raise ValueError(f"{key} must be a list, got {value!r}")
    return list(value)


@dataclass
class Confirmations:
    """Read-back rules the agent must follow"""

    repeat_phone: bool = True
    spell_email: bool = True


@dataclass
class PromptSpec:
    """
    Declarative policy for a voice agent.

    Invariant (checked by lint_spec, not enforced here): field_order is a
    permutation covering every entry of required_fields.
    """

    agent_type: str = "voice_ai"
    niche: str = "fitness_gym"
    required_fields: List[ContactFieldKey] = field(default_factory=lambda: list(CONTACT_KEYS))
    field_order: List[ContactFieldKey] = field(default_factory=lambda: list(CONTACT_KEYS))
    block_booking_until_fields: bool = True
    disallowed_phrases: List[str] = field(default_factory=list)
    question_cadence: str = ONE_AT_A_TIME
    max_words_per_turn: int = 30
    confirmations: Confirmations = field(default_factory=Confirmations)
    agent_values: List[str] = field(default_factory=list)

    @classmethod
    def from_yaml(cls, yaml_path: str) -> "PromptSpec":
        """Load spec from YAML file"""
        with open(yaml_path, "r") as f:
            data = yaml.safe_load(f) or {}
        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PromptSpec":
        """
        Create spec from dictionary. Missing or null keys take the default values.

        Raises:
            ValueError: if max_words_per_turn is not a whole number, a list
                field is not a list, or a field key is unknown
        """
        defaults = cls()
        confirmations = _value_or(data.get("confirmations"), {})
        if not isinstance(confirmations, dict):
            raise ValueError(f"confirmations must be a mapping, got {confirmations!r}")

        max_words = data.get("max_words_per_turn")
        if max_words is None:
            max_words = defaults.max_words_per_turn
        elif isinstance(max_words, bool) or (isinstance(max_words, float) and not max_words.is_integer()):
            raise ValueError(f"max_words_per_turn must be an integer, got {max_words!r}")
        try:
            max_words = int(max_words)
        except (TypeError, ValueError):
            raise ValueError(f"max_words_per_turn must be an integer, got {max_words!r}")

        block_booking = data.get("block_booking_until_fields")
        repeat_phone = confirmations.get("repeat_phone")
        spell_email = confirmations.get("spell_email")

        return cls(
            agent_type=_value_or(data.get("agent_type"), defaults.agent_type),
            niche=_value_or(data.get("niche"), defaults.niche),
            required_fields=[
                normalize_field_key(k)
                for k in _list_or(data, "required_fields", defaults.required_fields)
            ],
            field_order=[
                normalize_field_key(k)
                for k in _list_or(data, "field_order", defaults.field_order)
            ],
            block_booking_until_fields=bool(_value_or(block_booking, defaults.block_booking_until_fields)),
            disallowed_phrases=_list_or(data, "disallowed_phrases", []),
            question_cadence=_value_or(data.get("question_cadence"), defaults.question_cadence),
            max_words_per_turn=max_words,
            confirmations=Confirmations(
                repeat_phone=bool(_value_or(repeat_phone, True)),
                spell_email=bool(_value_or(spell_email, True)),
            ),
            agent_values=_list_or(data, "agent_values", []),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert spec to dictionary"""
        return {
            "agent_type": self.agent_type,
            "niche": self.niche,
            "required_fields": [k.value for k in self.required_fields],
            "field_order": [k.value for k in self.field_order],
            "block_booking_until_fields": self.block_booking_until_fields,
            "disallowed_phrases": list(self.disallowed_phrases),
            "question_cadence": self.question_cadence,
            "max_words_per_turn": self.max_words_per_turn,
            "confirmations": {
                "repeat_phone": self.confirmations.repeat_phone,
                "spell_email": self.confirmations.spell_email,
            },
            "agent_values": list(self.agent_values),
        }

    def to_yaml(self, path: str) -> None:
        """Save spec to YAML file"""
        with open(path, "w") as f:
            yaml.dump(self.to_dict(), f, default_flow_style=False, sort_keys=False)

    def spec_hash(self) -> str:
        """Identifying hash of this spec version"""
        return compute_prompt_hash(self.to_dict())


DEFAULT_SPEC = PromptSpec(
    agent_type="voice_ai",
    niche="fitness_gym",
    required_fields=list(CONTACT_KEYS),
    field_order=list(CONTACT_KEYS),
    block_booking_until_fields=True,
    disallowed_phrases=[
        "let me book you",
        "i'll book you",
        "i'll get you scheduled",
        "booking you for",
        "scheduling you for",
        "you are booked",
        "you are scheduled",
        "i've booked you",
        "i've scheduled you",
    ],
    question_cadence=ONE_AT_A_TIME,
    max_words_per_turn=30,
    confirmations=Confirmations(repeat_phone=True, spell_email=True),
    agent_values=["class_times", "location_hours", "trial_offer", "what_to_bring"],
)


# ─── Hashing ──────────────────────────────────────────────────────────────────


def stable_stringify(value: Any) -> str:
    """Compact JSON with sorted keys, matching the console's stable form."""
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def compute_prompt_hash(value: Any) -> str:
    """
    DJB2 hash of a prompt string or of the stable JSON form of an object.

    Produces the same 8 hex digits the console stores as promptHash on
    golden samples, so hashes computed here can be used to query them.
    """
    text = value if isinstance(value, str) else stable_stringify(value)
    h = 5381
    units = text.encode("utf-16-le")
    for i in range(0, len(units), 2):
        code_unit = units[i] | (units[i + 1] << 8)
        h = ((h << 5) + h + code_unit) & 0xFFFFFFFF
    return f"{h:08x}"
