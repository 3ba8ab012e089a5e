"""
Voice Evals - Replay Results

Golden replay compares today's evaluator against evaluations someone
already signed off on. A replay never blocks anything by itself; it
tells you which pinned calls now score differently and how badly:

- fail: a field that used to be captured is no longer captured
- warn: a rubric check scored lower (or stopped being scored), or
  confidence dropped by more than 5 points
- pass: nothing regressed
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from voice_evals.models import SessionEvaluation

CONFIDENCE_DROP_TOLERANCE = 5

STATUS_ICONS = {"pass": "✅", "warn": "🔶", "fail": "❌"}


@dataclass
class RubricChange:
    """A rubric check whose score differs from the pinned one"""
    key: str
    expected: Optional[float]
    actual: Optional[float]

    @property
    def is_regression(self) -> bool:
        if self.expected is None:
            return False
        if self.actual is None:
            return True
        return self.actual < self.expected

    def to_dict(self) -> Dict[str, Any]:
        return {"key": self.key, "expected": self.expected, "actual": self.actual}


def classify_replay(
    missing_fields: List[str],
    rubric_changes: List[RubricChange],
    confidence_delta: float,
) -> str:
    if missing_fields:
        return "fail"
    if any(c.is_regression for c in rubric_changes):
        return "warn"
    if confidence_delta < -CONFIDENCE_DROP_TOLERANCE:
        return "warn"
    return "pass"


@dataclass
class ReplaySummary:
    """Outcome of replaying one golden sample"""

    # Identity
    sample_id: str
    title: str
    run_at: str
    prompt_hash: str
    niche: str
    notes: Optional[str] = None

    # Scores
    expected_confidence: int = 0
    actual_confidence: int = 0
    confidence_delta: float = 0.0

    # Diffs
    missing_fields: List[str] = field(default_factory=list)
    new_fields: List[str] = field(default_factory=list)
    rubric_changes: List[RubricChange] = field(default_factory=list)

    status: str = "pass"
    evaluation: Optional[SessionEvaluation] = None

    def summary(self) -> str:
        """Human-readable summary of the replay"""
        lines = [
            f"\n{'='*60}",
            f"GOLDEN REPLAY: {self.title} ({self.sample_id})",
            f"{'='*60}",
            f"Status: {STATUS_ICONS.get(self.status, '')} {self.status.upper()}",
            f"",
            f"Confidence: {self.expected_confidence} -> {self.actual_confidence} ({self.confidence_delta:+.1f})",
        ]

        if self.missing_fields:
            lines.append(f"Missing fields: {', '.join(self.missing_fields)}")
        if self.new_fields:
            lines.append(f"New fields: {', '.join(self.new_fields)}")

        if self.rubric_changes:
            lines.extend([f"", f"Rubric changes:"])
            for change in self.rubric_changes:
                marker = "❌" if change.is_regression else "✅"
                lines.append(f"  {marker} {change.key}: {change.expected} -> {change.actual}")

        lines.append(f"{'='*60}\n")
        return "\n".join(lines)

    def to_dict(self) -> Dict[str, Any]:
        d = {
            "sampleId": self.sample_id,
            "title": self.title,
            "runAt": self.run_at,
            "promptHash": self.prompt_hash,
            "niche": self.niche,
            "expectedConfidence": self.expected_confidence,
            "actualConfidence": self.actual_confidence,
            "confidenceDelta": self.confidence_delta,
            "missingFields": list(self.missing_fields),
            "newFields": list(self.new_fields),
            "rubricChanges": [c.to_dict() for c in self.rubric_changes],
            "status": self.status,
            "evaluation": self.evaluation.to_dict() if self.evaluation else None,
        }
        if self.notes:
            d["notes"] = self.notes
        return d


def replay_report(summaries: List[ReplaySummary]) -> Dict[str, Any]:
    """Counts per status, for dashboards and CI gates"""
    counts = {"pass": 0, "warn": 0, "fail": 0}
    for s in summaries:
        counts[s.status] = counts.get(s.status, 0) + 1
    return {
        "total": len(summaries),
        "counts": counts,
        "passed": counts["fail"] == 0,
    }
