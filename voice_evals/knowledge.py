"""
Voice Evals - Learned Responses

Turns the corrections recorded against an agent's sessions into examples
that can be fed back into that agent's prompt. Learned responses are
scoped to one agent: corrections made for one agent never show up for
another.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from voice_evals.storage import SessionStore

MIN_KEYWORD_LENGTH = 4


@dataclass
class LearnedResponse:
    question: str
    correct_response: str
    timestamp: int
    conversation_id: str
    agent_id: str
    niche: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "question": self.question,
            "correctResponse": self.correct_response,
            "timestamp": self.timestamp,
            "conversationId": self.conversation_id,
            "agentId": self.agent_id,
            "niche": self.niche,
        }


def get_agent_learned_responses(
    store: SessionStore,
    agent_id: str,
    niche: Optional[str] = None,
) -> List[LearnedResponse]:
    """
    All learned responses for one agent, most recent first.

    Each turn correction becomes one entry. Manually corrected fields of a
    session are folded into a single "Field collection guidance" entry.
    """
    if not agent_id:
        raise ValueError("agent_id is required for learned responses")

    learned = []
    for session in store.list_sessions(agent_id=agent_id, niche=niche):
        if not session.corrections_applied:
            continue

        for correction in session.corrections:
            learned.append(LearnedResponse(
                question=correction.original_turn_text or "Unknown question",
                correct_response=correction.corrected_response,
                timestamp=correction.applied_at,
                conversation_id=session.conversation_id,
                agent_id=session.agent_id,
                niche=session.niche,
            ))

        manual = [f for f in session.collected_fields if f.source == "manual"]
        if manual:
            formatted = ", ".join(f'{f.key.value}="{f.value}"' for f in manual)
            learned.append(LearnedResponse(
                question="Field collection guidance",
                correct_response=f"Correct field format: {formatted}",
                timestamp=session.ended_at or 0,
                conversation_id=session.conversation_id,
                agent_id=session.agent_id,
                niche=session.niche,
            ))

    learned.sort(key=lambda item: item.timestamp, reverse=True)
    return learned


def get_relevant_learned(
    store: SessionStore,
    agent_id: str,
    conversation_text: str,
    max_results: int = 3,
    niche: Optional[str] = None,
) -> List[LearnedResponse]:
    """
    Learned responses whose question shares words with the conversation.

    Only words of four letters or more count. With no overlap at all the
    most recent corrections are returned instead.
    """
    learned = get_agent_learned_responses(store, agent_id, niche)
    if not learned:
        return []

    conversation_words = set((conversation_text or "").lower().split())

    scored = []
    for item in learned:
        overlap = sum(
            1 for word in item.question.lower().split()
            if len(word) >= MIN_KEYWORD_LENGTH and word in conversation_words
        )
        scored.append((overlap, item))

    scored.sort(key=lambda pair: pair[0], reverse=True)
    relevant = [item for score, item in scored[:max_results] if score > 0]

    if not relevant:
        return learned[:max_results]
    return relevant


def format_learned_for_prompt(learned: List[LearnedResponse]) -> str:
    """Render learned responses as a block to append to a system prompt"""
    if not learned:
        return ""

    examples = "\n\n".join(
        f'{i + 1}. Context: "{item.question[:100]}..."\n'
        f'   Correct approach: "{item.correct_response[:150]}..."'
        for i, item in enumerate(learned)
    )
    return (
        "\n\n--- LEARNED FROM YOUR PAST CORRECTIONS ---\n"
        f"{examples}\n\n"
        "Reference these when similar situations arise.\n---\n"
    )


def get_agent_kb_stats(store: SessionStore, agent_id: str) -> Dict[str, Any]:
    sessions = store.list_sessions(agent_id=agent_id)
    learned = get_agent_learned_responses(store, agent_id)

    last = None
    if learned and learned[0].timestamp:
        last = datetime.fromtimestamp(learned[0].timestamp / 1000, tz=timezone.utc).isoformat()

    return {
        "totalCorrections": sum(s.corrections_applied for s in sessions),
        "totalSessions": len(sessions),
        "lastCorrectionDate": last,
    }
