"""
Voice Evals - Spec Linter

Checks a PromptSpec for internal inconsistencies before it is used to
grade conversations. Every rule is independent; all of them may fire on
the same spec. The linter is pure: it never modifies the spec.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from voice_evals.spec import ONE_AT_A_TIME, PromptSpec

SEVERITY_ORDER = {"error": 0, "warning": 1, "info": 2}

# Filler words that make phone responses drag
VERBOSE_PHRASES = ["additionally", "furthermore", "moreover", "also", "please provide"]


@dataclass
class SpecLintIssue:
    """A single problem found in a spec"""

    severity: str  # error | warning | info
    category: str  # field_order | disallowed_phrases | config | completeness
    message: str
    fix: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        d = {
            "severity": self.severity,
            "category": self.category,
            "message": self.message,
        }
        if self.fix:
            d["fix"] = self.fix
        return d


def lint_spec(spec: PromptSpec, prompt_text: Optional[str] = None) -> List[SpecLintIssue]:
    """
    Lint a PromptSpec.

    Args:
        spec: The spec to check
        prompt_text: Optional system prompt the spec was derived from. When
            given, disallowed phrases still present in it are reported.

    Returns:
        Issues in rule order (use sort_issues for display order)
    """
    issues = []
    required = [k.value for k in spec.required_fields]
    order = [k.value for k in spec.field_order]

    if not required:
        issues.append(SpecLintIssue(
            severity="error",
            category="completeness",
            message="No required fields defined - agent won't know what to collect",
            fix="Add required_fields: ['first_name', 'last_name', 'unique_phone_number', 'email', 'class_date__time']",
        ))

    if len(order) != len(required):
        issues.append(SpecLintIssue(
            severity="warning",
            category="field_order",
            message=f"field_order ({len(order)} fields) doesn't match required_fields ({len(required)} fields)",
            fix="Ensure field_order includes all required_fields in the correct sequence",
        ))

    missing_from_order = [k for k in required if k not in order]
    if missing_from_order:
        issues.append(SpecLintIssue(
            severity="error",
            category="field_order",
            message=f"Required fields missing from field_order: {', '.join(missing_from_order)}",
            fix=f"Add these fields to field_order: {', '.join(missing_from_order)}",
        ))

    if spec.max_words_per_turn > 30:
        issues.append(SpecLintIssue(
            severity="warning",
            category="config",
            message=f"max_words_per_turn ({spec.max_words_per_turn}) is very high - responses may be too long",
            fix="Consider reducing to 15-25 words for concise phone responses",
        ))

    if spec.max_words_per_turn < 10:
        issues.append(SpecLintIssue(
            severity="warning",
            category="config",
            message=f"max_words_per_turn ({spec.max_words_per_turn}) is very low - agent may sound robotic",
            fix="Consider increasing to 15-25 words for natural conversation",
        ))

    blocked = [p.lower() for p in spec.disallowed_phrases]
    suggestions = [p for p in VERBOSE_PHRASES if not any(p in b for b in blocked)]
    if suggestions:
        issues.append(SpecLintIssue(
            severity="info",
            category="disallowed_phrases",
            message=f"Consider blocking these verbose words: {', '.join(suggestions)}",
            fix=f"Add to disallowed_phrases: {suggestions}",
        ))

    seen = set()
    duplicates = []
    for phrase in blocked:
        if phrase in seen and phrase not in duplicates:
            duplicates.append(phrase)
        seen.add(phrase)
    if duplicates:
        issues.append(SpecLintIssue(
            severity="warning",
            category="disallowed_phrases",
            message=f"Duplicate disallowed phrases detected: {', '.join(duplicates)}",
            fix="Remove duplicates so enforcement stays predictable",
        ))

    if prompt_text and spec.disallowed_phrases:
        prompt_lower = prompt_text.lower()
        triggered = [p for p in spec.disallowed_phrases if p and p.lower() in prompt_lower]
        for phrase in triggered:
            issues.append(SpecLintIssue(
                severity="error",
                category="disallowed_phrases",
                message=f"Prompt still contains disallowed phrase: {phrase}",
                fix="Remove the phrase from the prompt or adjust disallowed_phrases if intentional",
            ))

    if spec.question_cadence != ONE_AT_A_TIME:
        issues.append(SpecLintIssue(
            severity="warning",
            category="config",
            message=f'question_cadence is "{spec.question_cadence}" - should be "{ONE_AT_A_TIME}" for voice calls',
            fix=f'Set question_cadence: "{ONE_AT_A_TIME}"',
        ))

    if not spec.block_booking_until_fields:
        issues.append(SpecLintIssue(
            severity="info",
            category="config",
            message="block_booking_until_fields is false - agent can book before collecting all info",
            fix="Consider setting block_booking_until_fields: true to ensure all fields are collected first",
        ))

    if not spec.confirmations.repeat_phone and not spec.confirmations.spell_email:
        issues.append(SpecLintIssue(
            severity="warning",
            category="config",
            message="No confirmation rules enabled - risk of incorrect data capture",
            fix="Enable at least one confirmation: repeat_phone or spell_email",
        ))

    if not spec.agent_values:
        issues.append(SpecLintIssue(
            severity="info",
            category="completeness",
            message="No agent_values defined - agent won't have context to answer questions",
            fix="Add agent_values: ['class_times', 'location_hours', 'trial_offer', 'what_to_bring']",
        ))

    return issues


def sort_issues(issues: List[SpecLintIssue]) -> List[SpecLintIssue]:
    """Display order: error > warning > info (stable within a severity)"""
    return sorted(issues, key=lambda i: SEVERITY_ORDER.get(i.severity, len(SEVERITY_ORDER)))


def format_lint_issues(issues: List[SpecLintIssue]) -> str:
    """Human-readable lint report grouped by severity"""
    if not issues:
        return "No issues found"

    groups = [
        ("error", "Error"),
        ("warning", "Warning"),
        ("info", "Suggestion"),
    ]
    lines = []
    for severity, label in groups:
        matching = [i for i in issues if i.severity == severity]
        if not matching:
            continue
        plural = "s" if len(matching) != 1 else ""
        lines.append(f"{len(matching)} {label}{plural}:")
        lines.extend(f"  - {i.message}" for i in matching)

    return "\n".join(lines)


def detect_spec_drift(current_prompt_hash: str, saved_prompt_hash: Optional[str]) -> Dict[str, Any]:
    """Report whether the prompt changed since its spec was last saved."""
    if not saved_prompt_hash:
        return {"has_drift": False, "message": "No saved spec to compare against"}

    if current_prompt_hash != saved_prompt_hash:
        return {
            "has_drift": True,
            "message": "Prompt has changed since last save - save the prompt to update its spec",
        }

    return {"has_drift": False, "message": None}
