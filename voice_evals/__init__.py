# Voice Evals
# Rubric scoring, spec linting and self-correction for voice AI agents

from voice_evals.corrector import (
    AutoCorrectionResult,
    Violation,
    auto_correct_response,
    create_correction_entry,
    validate_agent_response,
)
from voice_evals.evaluator import SessionEvaluator, compute_confidence, evaluate_session, evaluate_with_spec
from voice_evals.extractor import extract_field_captures
from voice_evals.golden import GoldenSample, GoldenSampleQuery, GoldenStore, replay_golden_dataset
from voice_evals.linter import SpecLintIssue, detect_spec_drift, format_lint_issues, lint_spec
from voice_evals.models import (
    ContactFieldKey,
    ConversationTurn,
    CorrectionRecord,
    FieldCapture,
    RubricKey,
    RubricScore,
    SessionEvaluation,
)
from voice_evals.results import ReplaySummary
from voice_evals.service import EvaluationService
from voice_evals.spec import DEFAULT_SPEC, PromptSpec, compute_prompt_hash
from voice_evals.spec_rubric import build_rubric_from_spec
from voice_evals.storage import MemoryKeyValueStore, SessionStore, SqliteKeyValueStore

__version__ = "0.1.0"

__all__ = [
    "AutoCorrectionResult",
    "Violation",
    "auto_correct_response",
    "create_correction_entry",
    "validate_agent_response",
    "SessionEvaluator",
    "compute_confidence",
    "evaluate_session",
    "evaluate_with_spec",
    "extract_field_captures",
    "GoldenSample",
    "GoldenSampleQuery",
    "GoldenStore",
    "replay_golden_dataset",
    "SpecLintIssue",
    "detect_spec_drift",
    "format_lint_issues",
    "lint_spec",
    "ContactFieldKey",
    "ConversationTurn",
    "CorrectionRecord",
    "FieldCapture",
    "RubricKey",
    "RubricScore",
    "SessionEvaluation",
    "ReplaySummary",
    "EvaluationService",
    "DEFAULT_SPEC",
    "PromptSpec",
    "compute_prompt_hash",
    "build_rubric_from_spec",
    "MemoryKeyValueStore",
    "SessionStore",
    "SqliteKeyValueStore",
]
