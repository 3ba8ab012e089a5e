#!/usr/bin/env python3
"""
Tests for the violation detector and auto-corrector.

Usage:
    python3 -m unittest tests.test_corrector -v
"""

import dataclasses
import os
import sys
import unittest

_project_root = os.path.join(os.path.dirname(__file__), "..")
sys.path.insert(0, _project_root)

from voice_evals.corrector import (  # noqa: E402
    ALL_COLLECTED_CONFIRM,
    ALL_COLLECTED_SHORT,
    Violation,
    auto_correct_response,
    count_fields_requested,
    create_correction_entry,
    next_field_question,
    validate_agent_response,
)
from voice_evals.models import ContactFieldKey, ConversationTurn, Role  # noqa: E402
from voice_evals.spec import DEFAULT_SPEC  # noqa: E402

BUNDLED_ASK = "What's your name, email, and phone number, and also when are you free?"


def caller(turn_id, text):
    return ConversationTurn(id=turn_id, role=Role.CALLER, text=text, ts=0)


def agent(turn_id, text):
    return ConversationTurn(id=turn_id, role=Role.AGENT, text=text, ts=0)


def violation(type_, severity, fix):
    return Violation(
        type=type_,
        severity=severity,
        message=f"{type_} problem",
        original_text="original",
        suggested_fix=fix,
        turn_id="t9",
    )


# ─── Detection ────────────────────────────────────────────────────────────────

class TestValidateAgentResponse(unittest.TestCase):

    def test_bundled_questions(self):
        spec = dataclasses.replace(DEFAULT_SPEC, max_words_per_turn=20)
        violations = validate_agent_response(BUNDLED_ASK, "t3", spec, history=[])

        types = [v.type for v in violations]
        self.assertIn("cadence", types)
        self.assertIn("multiple_fields", types)
        self.assertNotIn("word_count", types)
        for v in violations:
            self.assertEqual(v.severity, "critical")
            self.assertEqual(v.turn_id, "t3")
            self.assertEqual(v.original_text, BUNDLED_ASK)

        result = auto_correct_response(violations, [], spec)
        self.assertTrue(result.has_violations)
        self.assertTrue(result.applied_automatically)
        self.assertEqual(result.violations[0].severity, "critical")
        self.assertEqual(result.corrected_response, "What's your first name?")

    def test_fix_asks_for_next_missing_field(self):
        history = [agent("t1", "What's your first name?"), caller("t2", "Tony")]
        violations = validate_agent_response(BUNDLED_ASK, "t3", DEFAULT_SPEC, history=history)
        result = auto_correct_response(violations, history, DEFAULT_SPEC)
        self.assertEqual(result.corrected_response, "And your last name?")

    def test_history_as_dicts(self):
        history = [
            {"role": "agent", "text": "What's your first name?"},
            {"role": "caller", "text": "Tony"},
            {"role": "caller", "text": "Stark, and it's 555-123-4567"},
        ]
        violations = validate_agent_response(BUNDLED_ASK, "t4", DEFAULT_SPEC, history=history)
        self.assertEqual(violations[0].suggested_fix, "And your last name?")

    def test_no_spec_means_no_violations(self):
        self.assertEqual(validate_agent_response(BUNDLED_ASK, "t1", None), [])

    def test_compliant_response(self):
        self.assertEqual(validate_agent_response("What's your first name?", "t1", DEFAULT_SPEC), [])

    def test_word_count_keeps_the_question(self):
        spec = dataclasses.replace(DEFAULT_SPEC, max_words_per_turn=10)
        response = (
            "Thanks so much for calling our gym, we have lots of great classes "
            "and trainers available for everyone. What's your first name?"
        )
        violations = validate_agent_response(response, "t1", spec)
        self.assertEqual([v.type for v in violations], ["word_count"])
        self.assertEqual(violations[0].severity, "high")
        self.assertEqual(violations[0].suggested_fix, "What's your first name?")
        self.assertLessEqual(len(violations[0].suggested_fix.split()), 10)

    def test_word_count_truncates_without_question(self):
        spec = dataclasses.replace(DEFAULT_SPEC, max_words_per_turn=10)
        response = "We have yoga, spin and boxing classes every single day of the week for all levels"
        violations = validate_agent_response(response, "t1", spec)
        self.assertEqual([v.type for v in violations], ["word_count"])
        self.assertEqual(
            violations[0].suggested_fix,
            "We have yoga, spin and boxing classes every single day...",
        )

    def test_disallowed_phrase_sentence_is_dropped(self):
        response = "Perfect, let me book you for Monday. What's your email?"
        violations = validate_agent_response(response, "t5", DEFAULT_SPEC)
        self.assertEqual([v.type for v in violations], ["disallowed_phrase"])
        self.assertEqual(violations[0].severity, "medium")
        fix = violations[0].suggested_fix
        self.assertEqual(fix, "What's your email?")
        self.assertNotIn("let me book you", fix.lower())
        self.assertNotIn("[", fix)

    def test_disallowed_phrase_only_sentence(self):
        history = [agent("t1", "What's your first name?"), caller("t2", "Tony")]
        violations = validate_agent_response("I'll book you in.", "t3", DEFAULT_SPEC, history)
        self.assertEqual(len(violations), 1)
        self.assertEqual(violations[0].suggested_fix, "And your last name?")

    def test_one_violation_per_phrase(self):
        response = "Great, you are booked. I've booked you for Friday."
        violations = validate_agent_response(response, "t1", DEFAULT_SPEC)
        self.assertEqual([v.type for v in violations], ["disallowed_phrase", "disallowed_phrase"])
        self.assertEqual(violations[0].suggested_fix, "I've booked you for Friday.")
        self.assertEqual(violations[1].suggested_fix, "Great, you are booked.")

    def test_next_field_question_follows_field_order(self):
        spec = dataclasses.replace(
            DEFAULT_SPEC,
            field_order=[ContactFieldKey.EMAIL, ContactFieldKey.FIRST_NAME],
        )
        self.assertEqual(next_field_question([], spec), "What email should I send the confirmation to?")
        self.assertEqual(
            next_field_question([caller("t1", "tony@example.com")], spec),
            "What's your first name?",
        )

    def test_everything_collected(self):
        spec = dataclasses.replace(
            DEFAULT_SPEC,
            required_fields=[ContactFieldKey.FIRST_NAME, ContactFieldKey.EMAIL],
            field_order=[ContactFieldKey.FIRST_NAME, ContactFieldKey.EMAIL],
        )
        history = [caller("t2", "Tony"), caller("t4", "tony@example.com")]
        violations = validate_agent_response("What's your name? And your email?", "t5", spec, history)

        fixes = {v.type: v.suggested_fix for v in violations}
        self.assertEqual(fixes["cadence"], ALL_COLLECTED_CONFIRM)
        self.assertEqual(fixes["multiple_fields"], ALL_COLLECTED_SHORT)
        self.assertEqual(auto_correct_response(violations).corrected_response, ALL_COLLECTED_CONFIRM)

    def test_only_required_fields_are_counted(self):
        spec = dataclasses.replace(
            DEFAULT_SPEC,
            required_fields=[ContactFieldKey.FIRST_NAME],
            field_order=[ContactFieldKey.FIRST_NAME],
        )
        self.assertEqual(count_fields_requested("What's your name and email?", spec), 1)
        self.assertEqual(validate_agent_response("What's your name and email?", "t1", spec), [])

    def test_batch_cadence_still_flags_multiple_fields(self):
        spec = dataclasses.replace(DEFAULT_SPEC, question_cadence="batch")
        types = [v.type for v in validate_agent_response(BUNDLED_ASK, "t1", spec)]
        self.assertEqual(types, ["multiple_fields"])


# ─── Correction ───────────────────────────────────────────────────────────────

class TestAutoCorrect(unittest.TestCase):

    def test_no_violations(self):
        result = auto_correct_response([])
        self.assertFalse(result.has_violations)
        self.assertFalse(result.applied_automatically)
        self.assertIsNone(result.corrected_response)
        self.assertNotIn("correctedResponse", result.to_dict())

    def test_most_severe_fix_wins(self):
        violations = [
            violation("disallowed_phrase", "medium", "medium fix"),
            violation("word_count", "high", "high fix"),
            violation("cadence", "critical", "first critical"),
            violation("multiple_fields", "critical", "second critical"),
        ]
        result = auto_correct_response(violations)
        self.assertEqual(result.corrected_response, "first critical")
        self.assertEqual(
            [v.severity for v in result.violations],
            ["critical", "critical", "high", "medium"],
        )
        self.assertEqual(violations[0].severity, "medium")

    def test_result_serialization(self):
        result = auto_correct_response([violation("word_count", "high", "short")])
        d = result.to_dict()
        self.assertTrue(d["hasViolations"])
        self.assertEqual(d["correctedResponse"], "short")
        self.assertEqual(d["violations"][0]["suggestedFix"], "short")
        self.assertEqual(d["violations"][0]["turnId"], "t9")

    def test_create_correction_entry(self):
        v = violation("cadence", "critical", "What's your first name?")
        entry = create_correction_entry(v, "What's your first name?", "agent-1", "conv-1")
        self.assertEqual(entry["agentId"], "agent-1")
        self.assertEqual(entry["conversationId"], "conv-1")
        self.assertEqual(entry["turnId"], "t9")
        self.assertEqual(entry["originalResponse"], "original")
        self.assertEqual(entry["correctedResponse"], "What's your first name?")
        self.assertEqual(entry["violationType"], "cadence")
        self.assertEqual(entry["reason"], "cadence problem")
        self.assertIsInstance(entry["timestamp"], int)


if __name__ == "__main__":
    unittest.main(verbosity=2)
