from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional

import httpx
import structlog

from src.sales_assistant.config import get_config

logger = structlog.get_logger(__name__)


class CrmSync:
    """
    Forwards key highlights and sentiment to a CRM webhook.

    Fire-and-forget: callers schedule `push` in the background and never wait
    on it. Disabled when `CRM_WEBHOOK_URL` is unset.
    """

    def __init__(self, config: Optional[Any] = None, client: Optional[httpx.AsyncClient] = None):
        self.config = config or get_config()
        self._client = client

    @property
    def enabled(self) -> bool:
        return bool(self.config.crm_webhook_url)

    async def push(
        self,
        email: str,
        key_highlights: Dict[str, str],
        sentiment: Optional[Dict[str, Any]] = None,
    ) -> bool:
        if not self.enabled or not email:
            return False
        if not key_highlights and not sentiment:
            logger.debug("Nothing to sync to CRM")
            return False

        payload = {
            "email": email,
            "keyHighlights": key_highlights,
            "sentiment": sentiment,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

        try:
            if self._client is not None:
                resp = await self._client.post(self.config.crm_webhook_url, json=payload)
            else:
                async with httpx.AsyncClient(timeout=httpx.Timeout(self.config.crm_timeout_seconds)) as client:
                    resp = await client.post(self.config.crm_webhook_url, json=payload)
            resp.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning("CRM sync failed", error=str(e))
            return False

        logger.info("CRM sync completed", fields=sorted(key_highlights or {}))
        return True
