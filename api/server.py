"""
FastAPI server for Voice Evals.

Provides endpoints for:
  - Transcript evaluation (evaluate now / end of call)
  - Per-turn validation with auto-correction
  - Spec linting
  - Session listing and manual corrections (with best-effort backend sync)
  - Golden dataset pinning and replay
  - Per-agent learned responses
"""

import logging

from fastapi import BackgroundTasks, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from voice_evals.golden import GoldenSampleQuery, GoldenStore
from voice_evals.integrations.sync import CorrectionSync
from voice_evals.knowledge import format_learned_for_prompt, get_agent_kb_stats
from voice_evals.linter import detect_spec_drift, format_lint_issues, lint_spec, sort_issues
from voice_evals.results import replay_report
from voice_evals.service import EvaluationService
from voice_evals.spec import DEFAULT_SPEC, PromptSpec, compute_prompt_hash
from voice_evals.storage import SessionStore, SqliteKeyValueStore

from .config import (
    API_HOST,
    API_PORT,
    CORS_ORIGINS,
    DEFAULT_VERSION,
    MAX_GOLDEN_SAMPLES,
    MAX_SESSIONS,
    SYNC_BASE_URL,
    SYNC_ENABLED,
    SYNC_TIMEOUT,
)
from .schema import (
    CorrectionRequest,
    EvaluateRequest,
    LintSpecRequest,
    PinGoldenRequest,
    ReplayRequest,
    ValidateTurnRequest,
)

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Voice Evals API",
    description="Rubric scoring, spec linting and self-correction for voice AI agents",
    version="0.1.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_service() -> EvaluationService:
    if not hasattr(app.state, "service"):
        kv = SqliteKeyValueStore()
        app.state.service = EvaluationService(
            SessionStore(kv, max_sessions=MAX_SESSIONS),
            GoldenStore(kv, max_samples=MAX_GOLDEN_SAMPLES),
            default_version=DEFAULT_VERSION,
        )
    return app.state.service


def get_sync() -> CorrectionSync:
    if not hasattr(app.state, "sync"):
        app.state.sync = CorrectionSync(
            base_url=SYNC_BASE_URL,
            enabled=SYNC_ENABLED,
            timeout=SYNC_TIMEOUT,
        )
    return app.state.sync


def _spec_or_default(data):
    return PromptSpec.from_dict(data) if data else DEFAULT_SPEC


# ─── Startup: initialize storage ─────────────────────────────────────────────

@app.on_event("startup")
async def startup_event():
    service = get_service()
    logger.info(f"Session store ready: {service.sessions.kv.describe()}")


# ─── Health Check ─────────────────────────────────────────────────────────────

@app.get("/api/health")
async def health():
    """Health check endpoint."""
    service = get_service()
    return {
        "status": "ok",
        "store": service.sessions.kv.describe(),
        "max_sessions": service.sessions.max_sessions,
        "sync_enabled": get_sync().enabled,
    }


# ─── Evaluation Endpoints ────────────────────────────────────────────────────

@app.post("/api/evaluate")
async def evaluate(request: EvaluateRequest):
    """Evaluate a transcript against the six-check rubric."""
    try:
        spec = PromptSpec.from_dict(request.spec) if request.spec else None
        service = get_service()
        if request.end_call:
            evaluation = service.end_call(
                request.conversation_id,
                request.turns,
                agent_id=request.agent_id,
                niche=request.niche,
                spec=spec,
                spec_rubric=request.spec_rubric,
            )
        else:
            evaluation = service.evaluate_now(
                request.conversation_id,
                request.turns,
                agent_id=request.agent_id,
                niche=request.niche,
                spec=spec,
                persist=request.persist,
                spec_rubric=request.spec_rubric,
            )
        return {"status": "ok", "evaluation": evaluation.to_dict()}
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Evaluate error: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Evaluation failed: {str(e)}")


@app.post("/api/validate-turn")
async def validate_turn(request: ValidateTurnRequest):
    """Check one agent utterance and return the auto-correction."""
    try:
        result = get_service().review_agent_turn(
            request.response,
            request.turn_id,
            _spec_or_default(request.spec),
            history=request.history,
            conversation_id=request.conversation_id,
            record=request.record,
        )
        return result.to_dict()
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Validate turn error: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/api/spec/lint")
async def lint(request: LintSpecRequest):
    """Lint a spec, optionally against the prompt it was derived from."""
    try:
        spec = _spec_or_default(request.spec)
        issues = sort_issues(lint_spec(spec, request.prompt_text))
        response = {
            "issues": [i.to_dict() for i in issues],
            "report": format_lint_issues(issues),
            "spec_hash": spec.spec_hash(),
        }
        if request.prompt_text is not None:
            prompt_hash = compute_prompt_hash(request.prompt_text)
            response["prompt_hash"] = prompt_hash
            response["drift"] = detect_spec_drift(prompt_hash, request.saved_prompt_hash)
        return response
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


# ─── Session Endpoints ───────────────────────────────────────────────────────

@app.get("/api/sessions")
async def list_sessions(agent_id: str = None, niche: str = None):
    sessions = get_service().sessions.list_sessions(agent_id=agent_id, niche=niche)
    return {"sessions": [s.to_dict() for s in sessions], "count": len(sessions)}


@app.get("/api/sessions/{conversation_id}")
async def get_session(conversation_id: str, corrected: bool = False):
    """Get one stored session. corrected=true adds the as-corrected transcript."""
    session = get_service().sessions.get_session(conversation_id)
    if not session:
        raise HTTPException(status_code=404, detail=f"Session not found: {conversation_id}")
    body = {"session": session.to_dict()}
    if corrected:
        body["corrected_transcript"] = [t.to_dict() for t in session.corrected_transcript()]
    return body


@app.post("/api/sessions/{conversation_id}/corrections")
async def apply_correction(
    conversation_id: str,
    request: CorrectionRequest,
    background_tasks: BackgroundTasks,
):
    """Record a manual correction; the backend sync runs after the response."""
    try:
        updated, payload = get_service().apply_manual_fix(
            conversation_id,
            turn_id=request.turn_id,
            corrected_response=request.corrected_response,
            fields=request.fields,
            agent_id=request.agent_id,
            niche=request.niche,
            reason=request.reason,
        )
        if updated is None:
            raise HTTPException(status_code=404, detail=f"Session not found: {conversation_id}")

        background_tasks.add_task(get_sync().send, payload)
        return {"status": "ok", "session": updated.to_dict()}
    except HTTPException:
        raise
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Apply correction error: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))


@app.delete("/api/sessions")
async def clear_sessions():
    get_service().sessions.clear_sessions()
    return {"status": "ok"}


# ─── Golden Dataset Endpoints ────────────────────────────────────────────────

@app.post("/api/golden")
async def pin_golden(request: PinGoldenRequest):
    """Pin a stored session as a golden sample."""
    try:
        sample = get_service().pin_golden(
            request.conversation_id,
            title=request.title,
            prompt_hash=request.prompt_hash,
            notes=request.notes,
        )
        if sample is None:
            raise HTTPException(status_code=404, detail=f"Session not found: {request.conversation_id}")
        return {"status": "ok", "sample": sample.to_dict()}
    except HTTPException:
        raise
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.get("/api/golden")
async def list_golden(agent_id: str = None, prompt_hash: str = None, niche: str = None):
    query = GoldenSampleQuery(agent_id=agent_id, prompt_hash=prompt_hash, niche=niche)
    samples = get_service().golden.list_golden_samples(query)
    return {"samples": [s.to_dict() for s in samples], "count": len(samples)}


@app.delete("/api/golden/{sample_id}")
async def delete_golden(sample_id: str):
    deleted = get_service().golden.delete_golden_sample(sample_id)
    if not deleted:
        raise HTTPException(status_code=404, detail=f"Golden sample not found: {sample_id}")
    return {"status": "ok", "deleted": sample_id}


@app.post("/api/golden/replay")
async def replay_golden(request: ReplayRequest):
    """Replay matching golden samples through the current evaluator."""
    try:
        query = GoldenSampleQuery(
            agent_id=request.agent_id,
            prompt_hash=request.prompt_hash,
            niche=request.niche,
            ids=request.ids,
        )
        spec = PromptSpec.from_dict(request.spec) if request.spec else None
        summaries = get_service().replay_golden(query, spec=spec, spec_rubric=request.spec_rubric)
        return {
            "summaries": [s.to_dict() for s in summaries],
            "report": replay_report(summaries),
        }
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Golden replay error: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Replay failed: {str(e)}")


# ─── Knowledge Base Endpoints ────────────────────────────────────────────────

@app.get("/api/agents/{agent_id}/learned")
async def learned_responses(agent_id: str, niche: str = None, context: str = None, max_results: int = 3):
    """Learned responses for one agent, plus the prompt block built from them."""
    service = get_service()
    learned = service.learned_responses(agent_id, niche=niche, context=context, max_results=max_results)
    return {
        "learned": [item.to_dict() for item in learned],
        "prompt_block": format_learned_for_prompt(learned),
        "stats": get_agent_kb_stats(service.sessions, agent_id),
    }


# ─── Server Entry Point ──────────────────────────────────────────────────────

def start():
    """Entry point for running the server."""
    import uvicorn

    logger.info(f"Starting Voice Evals API on {API_HOST}:{API_PORT}")
    logger.info(f"Correction sync: {'enabled' if SYNC_ENABLED else 'disabled'} ({SYNC_BASE_URL})")
    uvicorn.run(
        "api.server:app",
        host=API_HOST,
        port=API_PORT,
        reload=True,
    )


if __name__ == "__main__":
    start()
