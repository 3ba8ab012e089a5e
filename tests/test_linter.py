#!/usr/bin/env python3
"""
Tests for PromptSpec loading, hashing and the spec linter.

Usage:
    python3 -m unittest tests.test_linter -v
"""

import dataclasses
import os
import sys
import tempfile
import unittest

_project_root = os.path.join(os.path.dirname(__file__), "..")
sys.path.insert(0, _project_root)

from voice_evals.linter import (  # noqa: E402
    VERBOSE_PHRASES,
    SpecLintIssue,
    detect_spec_drift,
    format_lint_issues,
    lint_spec,
    sort_issues,
)
from voice_evals.models import CONTACT_KEYS, ContactFieldKey  # noqa: E402
from voice_evals.spec import DEFAULT_SPEC, Confirmations, PromptSpec, compute_prompt_hash  # noqa: E402


def clean_spec(**overrides):
    spec = dataclasses.replace(
        DEFAULT_SPEC,
        disallowed_phrases=list(DEFAULT_SPEC.disallowed_phrases) + list(VERBOSE_PHRASES),
    )
    return dataclasses.replace(spec, **overrides)


def categories(issues, severity=None):
    return [(i.severity, i.category) for i in issues if severity is None or i.severity == severity]


# ─── PromptSpec ───────────────────────────────────────────────────────────────

class TestPromptSpec(unittest.TestCase):

    def test_from_dict_fills_defaults(self):
        spec = PromptSpec.from_dict({"niche": "yoga_studio"})
        self.assertEqual(spec.niche, "yoga_studio")
        self.assertEqual(spec.required_fields, CONTACT_KEYS)
        self.assertEqual(spec.max_words_per_turn, 30)
        self.assertTrue(spec.confirmations.repeat_phone)

    def test_from_dict_accepts_legacy_keys(self):
        spec = PromptSpec.from_dict({
            "required_fields": ["firstName", "phone"],
            "field_order": ["first_name", "unique_phone_number"],
        })
        self.assertEqual(spec.required_fields, [ContactFieldKey.FIRST_NAME, ContactFieldKey.PHONE])
        self.assertEqual(spec.field_order, spec.required_fields)

    def test_from_dict_explicit_nulls_take_defaults(self):
        spec = PromptSpec.from_dict({
            "agent_type": None,
            "niche": None,
            "required_fields": None,
            "field_order": None,
            "block_booking_until_fields": None,
            "disallowed_phrases": None,
            "question_cadence": None,
            "max_words_per_turn": None,
            "confirmations": None,
            "agent_values": None,
        })
        self.assertEqual(spec, PromptSpec())
        self.assertEqual({i.severity for i in lint_spec(spec)}, {"info"})

    def test_from_dict_null_confirmation_flags(self):
        spec = PromptSpec.from_dict({"confirmations": {"repeat_phone": None, "spell_email": False}})
        self.assertTrue(spec.confirmations.repeat_phone)
        self.assertFalse(spec.confirmations.spell_email)

    def test_from_dict_empty_list_is_kept(self):
        spec = PromptSpec.from_dict({"required_fields": []})
        self.assertEqual(spec.required_fields, [])

    def test_from_dict_word_limit(self):
        self.assertEqual(PromptSpec.from_dict({"max_words_per_turn": "25"}).max_words_per_turn, 25)
        self.assertEqual(PromptSpec.from_dict({"max_words_per_turn": 25.0}).max_words_per_turn, 25)
        for bad in ["lots", 12.5, True, [30], {"max": 30}]:
            with self.assertRaises(ValueError):
                PromptSpec.from_dict({"max_words_per_turn": bad})

    def test_from_dict_rejects_wrong_shapes(self):
        for data in [
            {"required_fields": "email"},
            {"disallowed_phrases": 5},
            {"confirmations": ["repeat_phone"]},
            {"field_order": [{"key": "email"}]},
        ]:
            with self.assertRaises(ValueError):
                PromptSpec.from_dict(data)

    def test_unknown_field_key(self):
        with self.assertRaises(ValueError):
            PromptSpec.from_dict({"required_fields": ["shoe_size"]})

    def test_yaml_round_trip(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "spec.yaml")
            DEFAULT_SPEC.to_yaml(path)
            loaded = PromptSpec.from_yaml(path)
        self.assertEqual(loaded.to_dict(), DEFAULT_SPEC.to_dict())
        self.assertEqual(loaded.spec_hash(), DEFAULT_SPEC.spec_hash())


class TestPromptHash(unittest.TestCase):

    def test_known_values(self):
        self.assertEqual(compute_prompt_hash(""), "00001505")
        self.assertEqual(compute_prompt_hash("a"), "0002b606")

    def test_format(self):
        h = compute_prompt_hash("You are a friendly front desk agent for a gym.")
        self.assertEqual(len(h), 8)
        self.assertEqual(h, h.lower())
        int(h, 16)

    def test_object_hash_ignores_key_order(self):
        self.assertEqual(
            compute_prompt_hash({"a": 1, "b": [1, 2]}),
            compute_prompt_hash({"b": [1, 2], "a": 1}),
        )

    def test_spec_hash_tracks_content(self):
        changed = dataclasses.replace(DEFAULT_SPEC, max_words_per_turn=20)
        self.assertNotEqual(changed.spec_hash(), DEFAULT_SPEC.spec_hash())


# ─── Linter rules ─────────────────────────────────────────────────────────────

class TestLintSpec(unittest.TestCase):

    def test_clean_spec_has_no_issues(self):
        self.assertEqual(lint_spec(clean_spec()), [])

    def test_default_spec_only_suggests_verbose_words(self):
        issues = lint_spec(DEFAULT_SPEC)
        self.assertEqual(categories(issues), [("info", "disallowed_phrases")])
        self.assertIn("additionally", issues[0].message)

    def test_no_required_fields(self):
        issues = lint_spec(clean_spec(required_fields=[]))
        self.assertIn(("error", "completeness"), categories(issues))
        self.assertIn(("warning", "field_order"), categories(issues))

    def test_required_field_missing_from_order(self):
        order = [k for k in CONTACT_KEYS if k != ContactFieldKey.EMAIL]
        issues = lint_spec(clean_spec(field_order=order))
        errors = [i for i in issues if i.severity == "error"]
        self.assertEqual(len(errors), 1)
        self.assertEqual(errors[0].category, "field_order")
        self.assertIn("email", errors[0].message)

    def test_word_budget_bounds(self):
        high = lint_spec(clean_spec(max_words_per_turn=45))
        low = lint_spec(clean_spec(max_words_per_turn=5))
        self.assertEqual(categories(high), [("warning", "config")])
        self.assertIn("very high", high[0].message)
        self.assertEqual(categories(low), [("warning", "config")])
        self.assertIn("very low", low[0].message)
        self.assertEqual(lint_spec(clean_spec(max_words_per_turn=30)), [])
        self.assertEqual(lint_spec(clean_spec(max_words_per_turn=10)), [])

    def test_duplicate_phrases_are_case_insensitive(self):
        phrases = list(clean_spec().disallowed_phrases) + ["Let Me Book You"]
        issues = lint_spec(clean_spec(disallowed_phrases=phrases))
        self.assertEqual(categories(issues), [("warning", "disallowed_phrases")])
        self.assertIn("let me book you", issues[0].message)

    def test_prompt_containing_disallowed_phrase(self):
        prompt = "Greet the caller. Once you have their name, say: Let me book you right now!"
        issues = lint_spec(clean_spec(), prompt_text=prompt)
        self.assertEqual(categories(issues), [("error", "disallowed_phrases")])
        self.assertIn("let me book you", issues[0].message)

    def test_cadence_booking_and_confirmations(self):
        spec = clean_spec(
            question_cadence="batch",
            block_booking_until_fields=False,
            confirmations=Confirmations(repeat_phone=False, spell_email=False),
        )
        issues = lint_spec(spec)
        self.assertEqual(categories(issues), [
            ("warning", "config"),
            ("info", "config"),
            ("warning", "config"),
        ])

    def test_one_confirmation_is_enough(self):
        spec = clean_spec(confirmations=Confirmations(repeat_phone=False, spell_email=True))
        self.assertEqual(lint_spec(spec), [])

    def test_missing_agent_values(self):
        issues = lint_spec(clean_spec(agent_values=[]))
        self.assertEqual(categories(issues), [("info", "completeness")])

    def test_lint_does_not_modify_spec(self):
        spec = clean_spec(required_fields=[], max_words_per_turn=50)
        before = spec.to_dict()
        lint_spec(spec, prompt_text="let me book you")
        self.assertEqual(spec.to_dict(), before)


class TestLintReport(unittest.TestCase):

    def test_sort_issues(self):
        issues = [
            SpecLintIssue("info", "config", "i1"),
            SpecLintIssue("warning", "config", "w1"),
            SpecLintIssue("error", "completeness", "e1"),
            SpecLintIssue("warning", "config", "w2"),
        ]
        self.assertEqual([i.message for i in sort_issues(issues)], ["e1", "w1", "w2", "i1"])

    def test_format_groups_by_severity(self):
        issues = [
            SpecLintIssue("warning", "config", "too long"),
            SpecLintIssue("error", "completeness", "no fields"),
            SpecLintIssue("error", "field_order", "missing email"),
        ]
        report = format_lint_issues(issues)
        self.assertEqual(report.splitlines(), [
            "2 Errors:",
            "  - no fields",
            "  - missing email",
            "1 Warning:",
            "  - too long",
        ])

    def test_format_empty(self):
        self.assertEqual(format_lint_issues([]), "No issues found")


class TestSpecDrift(unittest.TestCase):

    def test_no_saved_hash(self):
        self.assertFalse(detect_spec_drift("abc", None)["has_drift"])

    def test_changed_prompt(self):
        saved = compute_prompt_hash("v1 prompt")
        drift = detect_spec_drift(compute_prompt_hash("v2 prompt"), saved)
        self.assertTrue(drift["has_drift"])
        self.assertIn("changed", drift["message"])

    def test_same_prompt(self):
        h = compute_prompt_hash("v1 prompt")
        self.assertEqual(detect_spec_drift(h, h), {"has_drift": False, "message": None})


if __name__ == "__main__":
    unittest.main(verbosity=2)
