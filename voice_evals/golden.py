"""
Voice Evals - Golden Dataset

A golden sample is a transcript someone reviewed and pinned together with
the evaluation it received at the time. Replaying the dataset re-runs the
current evaluator over every frozen transcript and reports what changed.

Samples are only ever created by an explicit pin; evaluating a call never
adds one on its own.

Example:
    golden = GoldenStore(SqliteKeyValueStore())
    golden.pin_session(session, title="Happy path booking", prompt_hash="1a2b3c4d")

    for summary in replay_golden_dataset(golden, GoldenSampleQuery(agent_id="agent-1")):
        print(summary.summary())
"""

import logging
import threading
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from voice_evals.evaluator import evaluate_session, evaluate_with_spec
from voice_evals.models import (
    ConversationTurn,
    FieldCapture,
    RubricScore,
    SessionEvaluation,
    normalize_turns,
)
from voice_evals.results import RubricChange, ReplaySummary, classify_replay
from voice_evals.spec import PromptSpec
from voice_evals.storage import GOLDEN_DATASET_KEY, KeyValueStore

logger = logging.getLogger(__name__)

DEFAULT_MAX_SAMPLES = 200
REPLAY_VERSION = "gold-replay"


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _parse_iso(value: str) -> float:
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).timestamp()
    except (AttributeError, ValueError):
        return 0.0


@dataclass
class GoldenExpectation:
    """What the evaluator produced when the sample was pinned"""
    collected_fields: List[FieldCapture] = field(default_factory=list)
    rubric: List[RubricScore] = field(default_factory=list)
    confidence: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "collectedFields": [f.to_dict() for f in self.collected_fields],
            "rubric": [r.to_dict() for r in self.rubric],
            "confidence": self.confidence,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GoldenExpectation":
        return cls(
            collected_fields=[FieldCapture.from_dict(f) for f in data.get("collectedFields", [])],
            rubric=[RubricScore.from_dict(r) for r in data.get("rubric", [])],
            confidence=int(data.get("confidence", 0) or 0),
        )


@dataclass
class GoldenSample:
    """A frozen transcript plus its expected evaluation"""
    id: str
    agent_id: str
    niche: str
    prompt_hash: str
    title: str
    transcript: List[ConversationTurn]
    expected: GoldenExpectation
    created_at: str = field(default_factory=_utc_now_iso)
    notes: Optional[str] = None
    original_evaluation: Optional[SessionEvaluation] = None

    def to_dict(self) -> Dict[str, Any]:
        d = {
            "id": self.id,
            "agentId": self.agent_id,
            "niche": self.niche,
            "promptHash": self.prompt_hash,
            "title": self.title,
            "createdAt": self.created_at,
            "transcript": [t.to_dict() for t in self.transcript],
            "expected": self.expected.to_dict(),
        }
        if self.notes:
            d["notes"] = self.notes
        if self.original_evaluation is not None:
            d["originalEvaluation"] = self.original_evaluation.to_dict()
        return d

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GoldenSample":
        original = data.get("originalEvaluation")
        return cls(
            id=data["id"],
            agent_id=data.get("agentId", ""),
            niche=data.get("niche", ""),
            prompt_hash=data.get("promptHash", ""),
            title=data.get("title", ""),
            transcript=normalize_turns(data.get("transcript", [])),
            expected=GoldenExpectation.from_dict(data.get("expected", {})),
            created_at=data.get("createdAt", ""),
            notes=data.get("notes"),
            original_evaluation=SessionEvaluation.from_dict(original) if original else None,
        )


@dataclass
class GoldenSampleQuery:
    """Filter for golden samples. Unset criteria match everything."""
    agent_id: Optional[str] = None
    prompt_hash: Optional[str] = None
    niche: Optional[str] = None
    ids: Optional[List[str]] = None

    def matches(self, sample: Dict[str, Any]) -> bool:
        if self.agent_id and sample.get("agentId") != self.agent_id:
            return False
        if self.prompt_hash and sample.get("promptHash") != self.prompt_hash:
            return False
        if self.niche and sample.get("niche") != self.niche:
            return False
        if self.ids and sample.get("id") not in self.ids:
            return False
        return True


class GoldenStore:
    """
    Golden samples persisted as one JSON array, newest first.

    Usage:
        golden = GoldenStore(MemoryKeyValueStore(), max_samples=200)
        golden.save_golden_sample(sample)
        samples = golden.list_golden_samples(GoldenSampleQuery(niche="fitness_gym"))
    """

    def __init__(self, kv: KeyValueStore, max_samples: int = DEFAULT_MAX_SAMPLES):
        if max_samples < 1:
            raise ValueError("max_samples must be at least 1")
        self.kv = kv
        self.max_samples = max_samples
        self._lock = threading.RLock()

    def save_golden_sample(self, sample: GoldenSample) -> GoldenSample:
        """Replace the sample with the same id, or add it at the front."""
        with self._lock:
            records = self.kv.load_list(GOLDEN_DATASET_KEY)
            payload = sample.to_dict()
            index = next((i for i, r in enumerate(records) if r.get("id") == sample.id), None)
            if index is not None:
                records[index] = payload
            else:
                records.insert(0, payload)
            if len(records) > self.max_samples:
                logger.info(f"Golden dataset cap {self.max_samples} reached, evicting oldest")
                records = records[:self.max_samples]
            self.kv.save_list(GOLDEN_DATASET_KEY, records)

        logger.info(f"Saved golden sample {sample.id} ({sample.title})")
        return sample

    def list_golden_samples(self, query: Optional[GoldenSampleQuery] = None) -> List[GoldenSample]:
        """Matching samples, newest createdAt first"""
        query = query or GoldenSampleQuery()
        records = [r for r in self.kv.load_list(GOLDEN_DATASET_KEY) if query.matches(r)]
        records.sort(key=lambda r: _parse_iso(r.get("createdAt", "")), reverse=True)

        samples = []
        for record in records:
            try:
                samples.append(GoldenSample.from_dict(record))
            except (KeyError, ValueError) as e:
                logger.warning(f"Skipping unreadable golden sample: {e}")
        return samples

    def get(self, sample_id: str) -> Optional[GoldenSample]:
        found = self.list_golden_samples(GoldenSampleQuery(ids=[sample_id]))
        return found[0] if found else None

    def delete_golden_sample(self, sample_id: str) -> bool:
        """Returns True when a sample was removed"""
        with self._lock:
            records = self.kv.load_list(GOLDEN_DATASET_KEY)
            kept = [r for r in records if r.get("id") != sample_id]
            if len(kept) == len(records):
                return False
            self.kv.save_list(GOLDEN_DATASET_KEY, kept)

        logger.info(f"Deleted golden sample {sample_id}")
        return True

    def pin_session(
        self,
        session: SessionEvaluation,
        title: Optional[str] = None,
        prompt_hash: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> GoldenSample:
        """
        Freeze a stored evaluation as a golden sample.

        Only detected captures become expectations; manual overrides are
        not something a replay can reproduce.

        Raises:
            ValueError: if the session has no transcript or no prompt hash
                is available to key the sample by
        """
        if not session.transcript:
            raise ValueError(
                f"Session {session.conversation_id} has no transcript to pin"
            )
        prompt_hash = prompt_hash or session.spec_hash
        if not prompt_hash:
            raise ValueError("Save the prompt first to lock a version before pinning")

        created_at = _utc_now_iso()
        sample = GoldenSample(
            id=f"gold-{int(time.time() * 1000)}-{uuid.uuid4().hex[:6]}",
            agent_id=session.agent_id,
            niche=session.niche or "",
            prompt_hash=prompt_hash,
            title=(title or "").strip() or f"Sample {created_at}",
            notes=(notes or "").strip() or None,
            created_at=created_at,
            transcript=list(session.transcript),
            expected=GoldenExpectation(
                collected_fields=[c for c in session.collected_fields if c.source == "detected"],
                rubric=list(session.rubric),
                confidence=session.confidence,
            ),
            original_evaluation=session,
        )
        return self.save_golden_sample(sample)


# ─── Replay ───────────────────────────────────────────────────────────────────


def _diff_fields(expected: List[FieldCapture], actual: List[FieldCapture]):
    expected_keys = []
    for f in expected:
        if f.key.value not in expected_keys:
            expected_keys.append(f.key.value)
    actual_keys = []
    for f in actual:
        if f.key.value not in actual_keys:
            actual_keys.append(f.key.value)

    missing = [k for k in expected_keys if k not in actual_keys]
    added = [k for k in actual_keys if k not in expected_keys]
    return missing, added


def _diff_rubric(expected: List[RubricScore], actual: List[RubricScore]) -> List[RubricChange]:
    actual_scores = {r.key: r.score for r in actual}
    changes = []
    for score in expected:
        now = actual_scores.get(score.key)
        if now != score.score:
            changes.append(RubricChange(key=score.key.value, expected=score.score, actual=now))
    return changes


def replay_sample(
    sample: GoldenSample,
    spec: Optional[PromptSpec] = None,
    run_at: Optional[str] = None,
    spec_rubric: bool = False,
) -> ReplaySummary:
    """
    Re-evaluate one sample's frozen transcript and diff it against expectations.

    With spec_rubric and a spec, the replay is graded by the spec-driven
    rubric instead of the default one.
    """
    replay_id = f"{sample.id}-replay-{int(time.time() * 1000)}"
    if spec_rubric and spec is not None:
        evaluation = evaluate_with_spec(
            replay_id,
            sample.transcript,
            spec,
            version=REPLAY_VERSION,
            agent_id=sample.agent_id,
            niche=sample.niche,
        )
    else:
        evaluation = evaluate_session(
            replay_id,
            sample.transcript,
            version=REPLAY_VERSION,
            agent_id=sample.agent_id,
            niche=sample.niche,
            spec=spec,
        )

    missing, added = _diff_fields(sample.expected.collected_fields, evaluation.collected_fields)
    rubric_changes = _diff_rubric(sample.expected.rubric, evaluation.rubric)
    confidence_delta = round((evaluation.confidence - sample.expected.confidence) * 10) / 10

    return ReplaySummary(
        sample_id=sample.id,
        title=sample.title,
        notes=sample.notes,
        run_at=run_at or _utc_now_iso(),
        prompt_hash=sample.prompt_hash,
        niche=sample.niche,
        expected_confidence=sample.expected.confidence,
        actual_confidence=evaluation.confidence,
        confidence_delta=confidence_delta,
        missing_fields=missing,
        new_fields=added,
        rubric_changes=rubric_changes,
        status=classify_replay(missing, rubric_changes, confidence_delta),
        evaluation=evaluation,
    )


def replay_golden_dataset(
    store: GoldenStore,
    query: Optional[GoldenSampleQuery] = None,
    spec: Optional[PromptSpec] = None,
    spec_rubric: bool = False,
) -> List[ReplaySummary]:
    """
    Replay every golden sample matching query.

    Args:
        store: Where the samples live
        query: Which samples to replay (all when omitted)
        spec: Optional PromptSpec passed through to the evaluator
        spec_rubric: Grade with the spec-driven rubric (needs spec)

    Returns:
        One ReplaySummary per sample, newest sample first
    """
    samples = store.list_golden_samples(query)
    run_at = _utc_now_iso()
    summaries = [
        replay_sample(s, spec=spec, run_at=run_at, spec_rubric=spec_rubric)
        for s in samples
    ]

    failed = sum(1 for s in summaries if s.status == "fail")
    warned = sum(1 for s in summaries if s.status == "warn")
    logger.info(
        f"Replayed {len(summaries)} golden samples: {failed} failed, {warned} warned"
    )
    return summaries
