"""
Pydantic request models for the Voice Evals API.

Transcripts and specs travel as plain dicts in the same shape the
console stores them; the engine normalizes them at the boundary.
"""
from pydantic import BaseModel, Field
from typing import Dict, List, Optional


class EvaluateRequest(BaseModel):
    """Evaluate a transcript and (by default) store the result."""
    conversation_id: str = Field(description="Conversation id; re-evaluating the same id replaces the stored result")
    turns: list[dict] = Field(
        default_factory=list,
        description="Ordered turns: {id, role: agent|caller, text, ts} or {speaker, text, timestamp}",
    )
    agent_id: Optional[str] = Field(default=None, description="Agent that handled the call")
    niche: Optional[str] = Field(default=None, description="Business niche, e.g. fitness_gym")
    spec: Optional[dict] = Field(default=None, description="Optional PromptSpec for spec-aware notes")
    spec_rubric: bool = Field(default=False, description="Grade with the spec-driven rubric (requires spec)")
    persist: bool = Field(default=True, description="Store the evaluation in the session store")
    end_call: bool = Field(default=False, description="Final end-of-call evaluation (always stored)")


class ValidateTurnRequest(BaseModel):
    """Check one agent utterance against a spec."""
    response: str = Field(description="The agent's utterance")
    turn_id: str = Field(description="Id of the turn being checked")
    history: Optional[list[dict]] = Field(
        default=None,
        description="Conversation so far; defaults to the stored transcript of conversation_id",
    )
    spec: Optional[dict] = Field(default=None, description="PromptSpec; the default fitness spec when omitted")
    conversation_id: Optional[str] = Field(default=None, description="Session to record the correction against")
    record: bool = Field(default=False, description="Store the auto-correction on the session")


class LintSpecRequest(BaseModel):
    spec: Optional[dict] = Field(default=None, description="PromptSpec to lint; the default spec when omitted")
    prompt_text: Optional[str] = Field(default=None, description="System prompt the spec belongs to")
    saved_prompt_hash: Optional[str] = Field(
        default=None,
        description="Prompt hash stored with the spec, to detect drift against prompt_text",
    )


class CorrectionRequest(BaseModel):
    """Manual fix for a stored session."""
    turn_id: Optional[str] = Field(default=None, description="Turn being corrected")
    corrected_response: Optional[str] = Field(default=None, description="Replacement text for the turn")
    fields: Optional[Dict[str, str]] = Field(
        default=None,
        description="Field overrides by key (canonical or legacy names)",
    )
    agent_id: Optional[str] = Field(default=None)
    niche: Optional[str] = Field(default=None)
    reason: Optional[str] = Field(default=None, description="Why the correction was made")


class PinGoldenRequest(BaseModel):
    conversation_id: str = Field(description="Stored session to pin")
    title: Optional[str] = Field(default=None)
    prompt_hash: Optional[str] = Field(default=None, description="Prompt version the sample belongs to")
    notes: Optional[str] = Field(default=None)


class ReplayRequest(BaseModel):
    """Which golden samples to replay. Unset filters match everything."""
    agent_id: Optional[str] = Field(default=None)
    prompt_hash: Optional[str] = Field(default=None)
    niche: Optional[str] = Field(default=None)
    ids: Optional[List[str]] = Field(default=None)
    spec: Optional[dict] = Field(default=None, description="Optional PromptSpec passed to the evaluator")
    spec_rubric: bool = Field(default=False, description="Grade replays with the spec-driven rubric (requires spec)")
