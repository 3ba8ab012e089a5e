#!/usr/bin/env python3
"""
Tests for learned responses built from recorded corrections.

Usage:
    python3 -m unittest tests.test_knowledge -v
"""

import os
import sys
import unittest

_project_root = os.path.join(os.path.dirname(__file__), "..")
sys.path.insert(0, _project_root)

from voice_evals.evaluator import evaluate_session  # noqa: E402
from voice_evals.knowledge import (  # noqa: E402
    format_learned_for_prompt,
    get_agent_kb_stats,
    get_agent_learned_responses,
    get_relevant_learned,
)
from voice_evals.storage import MemoryKeyValueStore, SessionStore  # noqa: E402

PRICING_CALL = [
    {"id": "t1", "role": "caller", "text": "How much is the monthly membership price?", "ts": 1},
    {"id": "t2", "role": "agent", "text": "It depends, let me book you a tour and we can talk.", "ts": 2},
]

HOURS_CALL = [
    {"id": "t1", "role": "caller", "text": "What are your opening hours?", "ts": 1},
    {"id": "t2", "role": "agent", "text": "We open whenever, I think.", "ts": 2},
]


class TestLearnedResponses(unittest.TestCase):

    def setUp(self):
        self.store = SessionStore(MemoryKeyValueStore())
        for conversation_id, turns, agent_id in [
            ("conv-price", PRICING_CALL, "agent-1"),
            ("conv-hours", HOURS_CALL, "agent-1"),
            ("conv-other", HOURS_CALL, "agent-2"),
            ("conv-clean", HOURS_CALL, "agent-1"),
        ]:
            self.store.save_session(evaluate_session(conversation_id, turns, agent_id=agent_id, niche="fitness_gym"))

        self.store.apply_manual_corrections(
            "conv-price", turn_id="t2",
            corrected_response="Memberships start at $49 a month. Want to try a free class first?",
        )
        self.store.apply_manual_corrections(
            "conv-hours", turn_id="t2",
            corrected_response="We're open 5am to 11pm on weekdays.",
        )
        self.store.apply_manual_corrections("conv-hours", fields={"email": "lead@example.com"})
        self.store.apply_manual_corrections(
            "conv-other", turn_id="t2", corrected_response="Agent two's answer.",
        )

    def test_scoped_to_agent(self):
        learned = get_agent_learned_responses(self.store, "agent-1")
        self.assertEqual({item.agent_id for item in learned}, {"agent-1"})
        self.assertNotIn("Agent two's answer.", [item.correct_response for item in learned])
        self.assertNotIn("conv-clean", [item.conversation_id for item in learned])

    def test_entries(self):
        learned = get_agent_learned_responses(self.store, "agent-1")
        by_question = {item.question: item for item in learned}

        self.assertEqual(
            by_question["It depends, let me book you a tour and we can talk."].correct_response,
            "Memberships start at $49 a month. Want to try a free class first?",
        )
        self.assertEqual(
            by_question["Field collection guidance"].correct_response,
            'Correct field format: email="lead@example.com"',
        )
        self.assertEqual(len(learned), 3)

    def test_requires_agent(self):
        with self.assertRaises(ValueError):
            get_agent_learned_responses(self.store, "")

    def test_relevance_prefers_overlapping_questions(self):
        relevant = get_relevant_learned(
            self.store, "agent-1", "caller wants to know when you open on weekends", max_results=1,
        )
        self.assertEqual(len(relevant), 1)
        self.assertEqual(relevant[0].correct_response, "We're open 5am to 11pm on weekdays.")

    def test_relevance_falls_back_to_most_recent(self):
        relevant = get_relevant_learned(self.store, "agent-1", "zzz qqq", max_results=2)
        everything = get_agent_learned_responses(self.store, "agent-1")
        self.assertEqual(relevant, everything[:2])

    def test_unknown_agent(self):
        self.assertEqual(get_relevant_learned(self.store, "agent-9", "hours"), [])

    def test_prompt_block(self):
        learned = get_agent_learned_responses(self.store, "agent-1")
        block = format_learned_for_prompt(learned)
        self.assertIn("LEARNED FROM YOUR PAST CORRECTIONS", block)
        self.assertIn("1. Context:", block)
        self.assertIn("3. Context:", block)
        self.assertEqual(format_learned_for_prompt([]), "")

    def test_stats(self):
        stats = get_agent_kb_stats(self.store, "agent-1")
        self.assertEqual(stats["totalSessions"], 3)
        self.assertEqual(stats["totalCorrections"], 3)
        self.assertIsNotNone(stats["lastCorrectionDate"])

        empty = get_agent_kb_stats(self.store, "agent-9")
        self.assertEqual(empty, {"totalCorrections": 0, "totalSessions": 0, "lastCorrectionDate": None})


if __name__ == "__main__":
    unittest.main(verbosity=2)
