# Voice Evals - External Integrations
# Best-effort sync of corrections to the console backend

from voice_evals.integrations.sync import (
    APPLY_FIX_PATH,
    CorrectionSync,
    build_apply_fix_payload,
)

__all__ = [
    "APPLY_FIX_PATH",
    "CorrectionSync",
    "build_apply_fix_payload",
]
