"""
Voice Evals - Session Evaluator

Scores a finished (or in-progress) conversation against the six-check
rubric and rolls the checks up into a confidence percentage.

The evaluator is a pure function of its inputs: the same transcript and
version always produce the same rubric and confidence, and the input
turns are never modified. The evaluation keeps its own copy of the
transcript so it can be pinned and replayed later.
"""

import logging
import math
from typing import Iterable, List, Optional, Union

from voice_evals.extractor import extract_field_captures
from voice_evals.models import (
    ConversationTurn,
    RubricScore,
    SessionEvaluation,
    normalize_turns,
)
from voice_evals.scorers import MAX_SCORE, RubricScorer, default_scorers
from voice_evals.spec import PromptSpec
from voice_evals.spec_rubric import spec_scorers

logger = logging.getLogger(__name__)


def compute_confidence(rubric: List[RubricScore]) -> int:
    """
    Percentage of the maximum score reached by the scored checks.

    Unscored (None) checks are left out entirely. Rounds half up, so
    62.5 becomes 63. Returns 0 when nothing was scored.
    """
    scored = [r.score for r in rubric if r.score is not None]
    if not scored:
        return 0
    pct = 100.0 * sum(scored) / (MAX_SCORE * len(scored))
    return max(0, min(100, int(math.floor(pct + 0.5))))


class SessionEvaluator:
    """
    Runs every rubric scorer over a transcript.

    Usage:
        evaluator = SessionEvaluator()
        evaluation = evaluator.evaluate(
            "conv-123",
            [
                {"id": "t1", "role": "agent", "text": "What's your first name?", "ts": 1},
                {"id": "t2", "role": "caller", "text": "Tony", "ts": 2},
            ],
        )
        print(evaluation.confidence)
    """

    def __init__(self, scorers: Optional[List[RubricScorer]] = None):
        self.scorers = scorers or default_scorers()

    def evaluate(
        self,
        conversation_id: str,
        turns: Iterable[Union[ConversationTurn, dict]],
        version: str = "v1.1",
        agent_id: Optional[str] = None,
        niche: Optional[str] = None,
        spec: Optional[PromptSpec] = None,
    ) -> SessionEvaluation:
        """
        Evaluate one conversation.

        Args:
            conversation_id: Identity of the evaluation (upsert key when stored)
            turns: Ordered transcript, as ConversationTurn objects or dicts
            version: Evaluator version label stored on the result
            agent_id: Agent that handled the call
            niche: Business niche; defaults to the spec's niche when a spec is given
            spec: Optional PromptSpec. Adds context to the notes and records
                the spec hash; scores are the same with or without it.

        Returns:
            SessionEvaluation with captures, rubric and confidence
        """
        transcript = normalize_turns(turns)
        captures = extract_field_captures(transcript)

        rubric = []
        for scorer in self.scorers:
            if not transcript:
                rubric.append(RubricScore(key=scorer.key, score=None, notes="No turns to evaluate"))
                continue
            try:
                rubric.append(scorer.score(transcript, captures, spec))
            except Exception as e:
                logger.error(
                    f"Scorer {scorer.__class__.__name__} failed on {conversation_id}: {e}",
                    exc_info=True,
                )
                rubric.append(RubricScore(key=scorer.key, score=None, notes=f"Scorer error: {e}"))

        confidence = compute_confidence(rubric)

        evaluation = SessionEvaluation(
            conversation_id=conversation_id,
            agent_id=agent_id or "",
            niche=niche or (spec.niche if spec else None),
            started_at=transcript[0].ts if transcript else None,
            ended_at=transcript[-1].ts if transcript else None,
            collected_fields=captures,
            rubric=rubric,
            confidence=confidence,
            corrections_applied=0,
            version=version,
            transcript=list(transcript),
            spec_hash=spec.spec_hash() if spec else None,
        )

        logger.debug(
            f"Evaluated {conversation_id} ({len(transcript)} turns, "
            f"{len(captures)} captures): confidence {confidence}"
        )
        return evaluation


def evaluate_session(
    conversation_id: str,
    turns: Iterable[Union[ConversationTurn, dict]],
    version: str = "v1.1",
    agent_id: Optional[str] = None,
    niche: Optional[str] = None,
    spec: Optional[PromptSpec] = None,
) -> SessionEvaluation:
    """Evaluate a conversation with the default six-check rubric."""
    return SessionEvaluator().evaluate(
        conversation_id,
        turns,
        version=version,
        agent_id=agent_id,
        niche=niche,
        spec=spec,
    )


def evaluate_with_spec(
    conversation_id: str,
    turns: Iterable[Union[ConversationTurn, dict]],
    spec: PromptSpec,
    version: str = "v1.1",
    agent_id: Optional[str] = None,
    niche: Optional[str] = None,
) -> SessionEvaluation:
    """
    Evaluate a conversation against the rules of a PromptSpec.

    Unlike evaluate_session, the spec changes the scores: required fields,
    field order, disallowed phrases, word limit and confirmations all feed
    the rubric (see spec_rubric.py).

    Raises:
        ValueError: if spec is None
    """
    if spec is None:
        raise ValueError("evaluate_with_spec requires a PromptSpec")
    return SessionEvaluator(scorers=spec_scorers()).evaluate(
        conversation_id,
        turns,
        version=version,
        agent_id=agent_id,
        niche=niche,
        spec=spec,
    )
