#!/usr/bin/env python3
"""
Tests for the field extractor.

Usage:
    python3 -m unittest tests.test_extractor -v
"""

import os
import sys
import unittest

_project_root = os.path.join(os.path.dirname(__file__), "..")
sys.path.insert(0, _project_root)

from voice_evals.extractor import extract_field_captures  # noqa: E402
from voice_evals.models import ContactFieldKey, ConversationTurn, Role  # noqa: E402


def caller(turn_id, text, ts=0):
    return ConversationTurn(id=turn_id, role=Role.CALLER, text=text, ts=ts)


def agent(turn_id, text, ts=0):
    return ConversationTurn(id=turn_id, role=Role.AGENT, text=text, ts=ts)


class TestExtractFieldCaptures(unittest.TestCase):

    def keys(self, captures):
        return [c.key for c in captures]

    def test_bare_first_name(self):
        captures = extract_field_captures([agent("t1", "What's your first name?"), caller("t2", "Tony")])
        self.assertEqual(len(captures), 1)
        self.assertEqual(captures[0].key, ContactFieldKey.FIRST_NAME)
        self.assertEqual(captures[0].value, "Tony")
        self.assertEqual(captures[0].turn_id, "t2")
        self.assertEqual(captures[0].source, "detected")
        self.assertTrue(captures[0].valid)

    def test_self_introduction_with_last_name(self):
        captures = extract_field_captures([caller("t1", "Hi, my name is Tony Stark")])
        values = {c.key: c.value for c in captures}
        self.assertEqual(values[ContactFieldKey.FIRST_NAME], "Tony")
        self.assertEqual(values[ContactFieldKey.LAST_NAME], "Stark")

    def test_email(self):
        captures = extract_field_captures([caller("t1", "sure, it is tony.stark@example.com thanks")])
        emails = [c for c in captures if c.key == ContactFieldKey.EMAIL]
        self.assertEqual(len(emails), 1)
        self.assertEqual(emails[0].value, "tony.stark@example.com")

    def test_phone(self):
        captures = extract_field_captures([caller("t1", "Call me at 555-123-4567")])
        phones = [c for c in captures if c.key == ContactFieldKey.PHONE]
        self.assertEqual(len(phones), 1)
        self.assertEqual(phones[0].value, "555-123-4567")

    def test_phone_with_country_code_and_parens(self):
        captures = extract_field_captures([caller("t1", "+1 (555) 123 4567")])
        phones = [c for c in captures if c.key == ContactFieldKey.PHONE]
        self.assertEqual(phones[0].value, "+1 (555) 123 4567")

    def test_timezone_hint(self):
        captures = extract_field_captures([caller("t1", "Eastern time zone please")])
        self.assertEqual(self.keys(captures), [ContactFieldKey.TIMEZONE])
        self.assertEqual(captures[0].value, "Eastern time zone please")

    def test_booking_confirmation(self):
        captures = extract_field_captures([caller("t1", "Yes, please confirm that")])
        self.assertEqual(self.keys(captures), [ContactFieldKey.BOOKING_CONFIRMED])

    def test_class_date_time(self):
        captures = extract_field_captures([caller("t1", "Monday at 5pm")])
        self.assertEqual(self.keys(captures), [ContactFieldKey.CLASS_DATE_TIME])
        self.assertEqual(captures[0].value, "Monday at 5pm")

    def test_greeting_is_not_a_name(self):
        captures = extract_field_captures([caller("t1", "Hello"), caller("t2", "Thanks")])
        self.assertEqual(captures, [])

    def test_availability_is_not_a_name(self):
        for text in ["I'm busy this week", "I am available Monday", "I'm free tomorrow", "It's a new thing for me"]:
            names = [
                c for c in extract_field_captures([caller("t1", text)])
                if c.key in (ContactFieldKey.FIRST_NAME, ContactFieldKey.LAST_NAME)
            ]
            self.assertEqual(names, [], text)

    def test_filler_after_first_name_is_not_a_last_name(self):
        captures = extract_field_captures([caller("t1", "I'm Tony this time")])
        self.assertEqual(self.keys(captures), [ContactFieldKey.FIRST_NAME])
        self.assertEqual(captures[0].value, "Tony")

    def test_agent_turns_are_ignored(self):
        captures = extract_field_captures([
            agent("t1", "My name is Sarah, reach me at sarah@gym.com or 555-987-6543"),
        ])
        self.assertEqual(captures, [])

    def test_no_deduplication(self):
        captures = extract_field_captures([
            caller("t1", "a@example.com"),
            agent("t2", "Can you repeat that?"),
            caller("t3", "sorry, b@example.com"),
        ])
        emails = [(c.value, c.turn_id) for c in captures if c.key == ContactFieldKey.EMAIL]
        self.assertEqual(emails, [("a@example.com", "t1"), ("b@example.com", "t3")])

    def test_turn_ids_always_refer_to_caller_turns(self):
        turns = [
            agent("t1", "Hi! What's your name?"),
            caller("t2", "I'm Dana Scully"),
            agent("t3", "Thanks Dana! Phone number?"),
            caller("t4", "555 222 3333, and my email is dana@fbi.gov"),
            agent("t5", "Let me confirm: dana@fbi.gov"),
            caller("t6", "Yes that's booked for Friday at 9am"),
        ]
        caller_ids = {t.id for t in turns if t.is_caller}
        captures = extract_field_captures(turns)
        self.assertTrue(captures)
        for c in captures:
            self.assertIn(c.turn_id, caller_ids)

    def test_deterministic(self):
        turns = [caller("t1", "my name is Ada Lovelace, ada@example.com")]
        self.assertEqual(extract_field_captures(turns), extract_field_captures(turns))

    def test_accepts_call_log_dicts(self):
        captures = extract_field_captures([
            {"speaker": "agent", "text": "What's your first name?", "timestamp": 1},
            {"speaker": "user", "text": "Tony", "timestamp": 2},
        ])
        self.assertEqual(len(captures), 1)
        self.assertEqual(captures[0].turn_id, "t2")

    def test_empty_transcript(self):
        self.assertEqual(extract_field_captures([]), [])


if __name__ == "__main__":
    unittest.main(verbosity=2)
