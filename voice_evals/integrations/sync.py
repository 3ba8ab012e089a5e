"""
Voice Evals - Correction Sync

Best-effort upload of recorded corrections to the console backend
(POST {base_url}/api/mcp/master/applyFix).

Sync always runs after the correction has been saved locally. A failed
upload is logged and dropped: the local store is the source of truth and
the caller never sees a sync error.
"""

import logging
import time
from typing import Any, Dict, Optional

import httpx

logger = logging.getLogger(__name__)

APPLY_FIX_PATH = "/api/mcp/master/applyFix"


def build_apply_fix_payload(
    conversation_id: str,
    turn_id: Optional[str],
    corrected_response: Optional[str],
    agent_id: Optional[str] = None,
    niche: Optional[str] = None,
) -> Dict[str, Any]:
    """Request body expected by the applyFix endpoint"""
    return {
        "agentId": agent_id or "system",
        "niche": niche or "default",
        "conversationId": conversation_id,
        "patch": {
            "turnId": turn_id,
            "correctedResponse": corrected_response,
            "timestamp": int(time.time() * 1000),
        },
    }


class CorrectionSync:
    """
    Outbox for correction payloads.

    Usage:
        sync = CorrectionSync(base_url="http://localhost:3001", enabled=True)
        await sync.send(payload)
    """

    def __init__(
        self,
        base_url: str = "http://localhost:3001",
        enabled: bool = False,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.enabled = enabled
        self.timeout = timeout
        self._transport = transport

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}{APPLY_FIX_PATH}"

    async def send(self, payload: Dict[str, Any]) -> bool:
        """
        Post one payload. Returns True when the backend accepted it.

        Never raises: transport errors and non-2xx responses are logged as
        warnings and reported as False.
        """
        if not self.enabled:
            logger.debug("Correction sync disabled, skipping upload")
            return False

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(self.endpoint, json=payload)
        except httpx.HTTPError as e:
            logger.warning(f"Correction sync failed (non-fatal): {e}")
            return False

        if response.is_success:
            logger.info(f"Synced correction for {payload.get('conversationId')}")
            return True

        logger.warning(f"Correction sync returned non-OK status (non-fatal): {response.status_code}")
        return False
