"""
Voice Evals - Evaluation Service

Bridges callers (the HTTP API, scripts, the console) to the engine.
Responsibilities:
  1. Evaluate transcripts and persist the result ("evaluate now" / "end call")
  2. Review single agent turns and optionally record the auto-correction
  3. Apply manual fixes locally and hand back the payload for remote sync
  4. Pin stored sessions as golden samples and replay the golden dataset

The engine modules stay pure; every store access goes through here.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from voice_evals.corrector import (
    AutoCorrectionResult,
    auto_correct_response,
    validate_agent_response,
)
from voice_evals.evaluator import evaluate_session, evaluate_with_spec
from voice_evals.golden import GoldenSample, GoldenSampleQuery, GoldenStore, replay_golden_dataset
from voice_evals.integrations.sync import build_apply_fix_payload
from voice_evals.knowledge import get_agent_learned_responses, get_relevant_learned
from voice_evals.models import ConversationTurn, SessionEvaluation, normalize_turns
from voice_evals.results import ReplaySummary
from voice_evals.spec import PromptSpec
from voice_evals.storage import SessionStore

logger = logging.getLogger(__name__)

END_CALL_VERSION = "v2.0"

Turns = Iterable[Union[ConversationTurn, Dict[str, Any]]]


class EvaluationService:
    """
    Orchestration over a session store and a golden store.

    Usage:
        kv = SqliteKeyValueStore()
        service = EvaluationService(SessionStore(kv), GoldenStore(kv))
        evaluation = service.end_call("conv-1", turns, agent_id="agent-1")
    """

    def __init__(
        self,
        sessions: SessionStore,
        golden: GoldenStore,
        default_version: str = "v1.1",
    ):
        self.sessions = sessions
        self.golden = golden
        self.default_version = default_version

    # ─── Evaluation ──────────────────────────────────────────────────────────

    def evaluate_now(
        self,
        conversation_id: str,
        turns: Turns,
        agent_id: Optional[str] = None,
        niche: Optional[str] = None,
        spec: Optional[PromptSpec] = None,
        persist: bool = True,
        version: Optional[str] = None,
        spec_rubric: bool = False,
    ) -> SessionEvaluation:
        """
        Evaluate a conversation mid-call (or on demand) and store it.

        spec_rubric grades against the spec's own rules; it needs a spec.
        """
        if spec_rubric:
            if spec is None:
                raise ValueError("spec_rubric requires a spec")
            evaluation = evaluate_with_spec(
                conversation_id,
                turns,
                spec,
                version=version or self.default_version,
                agent_id=agent_id,
                niche=niche,
            )
        else:
            evaluation = evaluate_session(
                conversation_id,
                turns,
                version=version or self.default_version,
                agent_id=agent_id,
                niche=niche,
                spec=spec,
            )
        if persist:
            self.sessions.save_session(evaluation)
        return evaluation

    def end_call(
        self,
        conversation_id: str,
        turns: Turns,
        agent_id: Optional[str] = None,
        niche: Optional[str] = None,
        spec: Optional[PromptSpec] = None,
        spec_rubric: bool = False,
    ) -> SessionEvaluation:
        """Final evaluation when a call ends; always stored."""
        return self.evaluate_now(
            conversation_id,
            turns,
            agent_id=agent_id,
            niche=niche,
            spec=spec,
            persist=True,
            version=END_CALL_VERSION,
            spec_rubric=spec_rubric,
        )

    # ─── Turn review ─────────────────────────────────────────────────────────

    def review_agent_turn(
        self,
        response: str,
        turn_id: str,
        spec: Optional[PromptSpec],
        history: Optional[Turns] = None,
        conversation_id: Optional[str] = None,
        record: bool = False,
    ) -> AutoCorrectionResult:
        """
        Check one agent utterance and propose a correction.

        Args:
            response: The agent's utterance
            turn_id: Id of the turn being checked
            spec: Active PromptSpec (None disables every check)
            history: Conversation so far. Defaults to the stored transcript
                of conversation_id when that session exists.
            conversation_id: Session to record the correction against
            record: Store the auto-correction on the session when there is one
        """
        if history is None and conversation_id:
            stored = self.sessions.get_session(conversation_id)
            history = stored.transcript if stored and stored.transcript else []
        history = normalize_turns(history or [])

        violations = validate_agent_response(response, turn_id, spec, history)
        result = auto_correct_response(violations, history, spec)

        if record and conversation_id and result.has_violations:
            self.sessions.apply_manual_corrections(
                conversation_id,
                turn_id=turn_id,
                corrected_response=result.corrected_response,
                source="auto",
                reason=result.violations[0].message,
            )

        if result.has_violations:
            logger.info(
                f"Turn {turn_id}: {len(result.violations)} violation(s), "
                f"top: {result.violations[0].type}"
            )
        return result

    # ─── Manual fixes ────────────────────────────────────────────────────────

    def apply_manual_fix(
        self,
        conversation_id: str,
        turn_id: Optional[str] = None,
        corrected_response: Optional[str] = None,
        fields: Optional[Dict[str, str]] = None,
        agent_id: Optional[str] = None,
        niche: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> Tuple[Optional[SessionEvaluation], Optional[Dict[str, Any]]]:
        """
        Record a manual correction locally.

        Returns:
            (updated session, payload for CorrectionSync), or (None, None)
            when the conversation is unknown. Sync is the caller's job and
            must only happen after this returns a session.
        """
        updated = self.sessions.apply_manual_corrections(
            conversation_id,
            fields=fields,
            turn_id=turn_id,
            corrected_response=corrected_response,
            source="manual",
            reason=reason,
        )
        if updated is None:
            return None, None

        payload = build_apply_fix_payload(
            conversation_id,
            turn_id,
            corrected_response,
            agent_id=agent_id or updated.agent_id,
            niche=niche or updated.niche,
        )
        return updated, payload

    # ─── Golden dataset ──────────────────────────────────────────────────────

    def pin_golden(
        self,
        conversation_id: str,
        title: Optional[str] = None,
        prompt_hash: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Optional[GoldenSample]:
        """Pin a stored session. Returns None when the session is unknown."""
        session = self.sessions.get_session(conversation_id)
        if session is None:
            logger.warning(f"Cannot pin: unknown conversation {conversation_id}")
            return None
        return self.golden.pin_session(session, title=title, prompt_hash=prompt_hash, notes=notes)

    def replay_golden(
        self,
        query: Optional[GoldenSampleQuery] = None,
        spec: Optional[PromptSpec] = None,
        spec_rubric: bool = False,
    ) -> List[ReplaySummary]:
        return replay_golden_dataset(self.golden, query, spec=spec, spec_rubric=spec_rubric)

    # ─── Knowledge base ──────────────────────────────────────────────────────

    def learned_responses(
        self,
        agent_id: str,
        niche: Optional[str] = None,
        context: Optional[str] = None,
        max_results: int = 3,
    ):
        if context:
            return get_relevant_learned(self.sessions, agent_id, context, max_results, niche)
        return get_agent_learned_responses(self.sessions, agent_id, niche)
