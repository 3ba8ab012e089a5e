"""
Voice Evals - Example: Gym Booking Calls

This example walks a fitness gym agent through the full loop:
lint its prompt spec, catch a bad turn as it happens, score the finished
call, record a manual fix, then pin the call and replay it as a golden
sample.

Run from the repository root:
    python3 examples/gym_booking_eval.py
"""

import os

from voice_evals import (
    EvaluationService,
    GoldenSampleQuery,
    GoldenStore,
    MemoryKeyValueStore,
    PromptSpec,
    SessionStore,
    compute_prompt_hash,
    format_lint_issues,
    lint_spec,
)
from voice_evals.knowledge import format_learned_for_prompt
from voice_evals.results import replay_report

SPEC_PATH = os.path.join(os.path.dirname(__file__), "fitness_gym_spec.yaml")

SYSTEM_PROMPT = (
    "You are the front desk at Iron Temple Gym. Collect the caller's details "
    "one question at a time, then offer a free trial class."
)

CALL = [
    {"id": "t1", "role": "agent", "text": "Thanks for calling Iron Temple! What's your first name?", "ts": 1000},
    {"id": "t2", "role": "caller", "text": "Tony", "ts": 4000},
    {"id": "t3", "role": "agent", "text": "Great Tony, what's your last name and phone number?", "ts": 6000},
    {"id": "t4", "role": "caller", "text": "Stark, 555-123-4567", "ts": 11000},
    {"id": "t5", "role": "agent", "text": "Could you spell your email for me?", "ts": 13000},
    {"id": "t6", "role": "caller", "text": "tony@starkindustries.com", "ts": 19000},
    {"id": "t7", "role": "agent", "text": "Want to schedule a free trial class on Monday at 6pm?", "ts": 21000},
    {"id": "t8", "role": "caller", "text": "Hmm, is it too expensive after the trial?", "ts": 25000},
    {"id": "t9", "role": "agent", "text": "I understand. We can start you on a month-to-month option.", "ts": 28000},
    {"id": "t10", "role": "caller", "text": "Okay, yes that works", "ts": 31000},
]


def main():
    # ==========================================================
    # Step 1: Lint the spec before using it
    # ==========================================================

    print("\n" + "="*60)
    print("STEP 1: Lint the prompt spec")
    print("="*60)

    spec = PromptSpec.from_yaml(SPEC_PATH)
    issues = lint_spec(spec, prompt_text=SYSTEM_PROMPT)
    print(format_lint_issues(issues))
    print(f"Spec hash: {spec.spec_hash()}  Prompt hash: {compute_prompt_hash(SYSTEM_PROMPT)}")

    kv = MemoryKeyValueStore()
    service = EvaluationService(SessionStore(kv), GoldenStore(kv))

    # ==========================================================
    # Step 2: Check agent turns as they happen
    # ==========================================================

    print("\n" + "="*60)
    print("STEP 2: Live turn review")
    print("="*60)

    service.evaluate_now("call-001", CALL[:2], agent_id="iron-temple", spec=spec)
    result = service.review_agent_turn(
        CALL[2]["text"], "t3", spec,
        conversation_id="call-001",
        record=True,
    )
    for v in result.violations:
        print(f"  [{v.severity}] {v.type}: {v.message}")
    print(f"  Agent says instead: {result.corrected_response}")

    # ==========================================================
    # Step 3: Score the finished call
    # ==========================================================

    print("\n" + "="*60)
    print("STEP 3: End of call evaluation")
    print("="*60)

    evaluation = service.end_call("call-001", CALL, agent_id="iron-temple", spec=spec)
    for r in evaluation.rubric:
        score = "-" if r.score is None else r.score
        print(f"  {r.key.value:<18} {score}  {r.notes or ''}")
    print(f"  Confidence: {evaluation.confidence}%")

    graded = service.evaluate_now(
        "call-001", CALL, agent_id="iron-temple", spec=spec, persist=False, spec_rubric=True,
    )
    print("  Graded against the spec's own rules:")
    for r in graded.rubric:
        score = "-" if r.score is None else r.score
        print(f"  {r.key.value:<18} {score}  {r.notes or ''}")
    print(f"  Confidence: {graded.confidence}%")

    # ==========================================================
    # Step 4: A reviewer fixes the turn and a field
    # ==========================================================

    print("\n" + "="*60)
    print("STEP 4: Manual correction")
    print("="*60)

    updated, payload = service.apply_manual_fix(
        "call-001",
        turn_id="t3",
        corrected_response="And your last name?",
        fields={"email": "tony@stark.com"},
        reason="One question at a time",
    )
    print(f"  Corrections applied: {updated.corrections_applied}")
    print(f"  Email on record: {updated.field_value('email')}")
    print(f"  Sync payload: {payload['agentId']} / {payload['conversationId']}")
    print(format_learned_for_prompt(service.learned_responses("iron-temple")))

    # ==========================================================
    # Step 5: Pin as golden and replay
    # ==========================================================

    print("\n" + "="*60)
    print("STEP 5: Golden replay")
    print("="*60)

    service.pin_golden("call-001", title="Booking with price objection")
    summaries = service.replay_golden(GoldenSampleQuery(agent_id="iron-temple"), spec=spec)
    for summary in summaries:
        print(summary.summary())
    print(f"Report: {replay_report(summaries)}")


if __name__ == "__main__":
    main()
