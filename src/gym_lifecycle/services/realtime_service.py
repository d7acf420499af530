import asyncio
import logging
from typing import Any, Dict, Optional

import requests

from gym_lifecycle.core.config import settings

logger = logging.getLogger(__name__)


class RealtimeService:
    """Broadcasts change events to subscribed clients through Supabase Realtime."""

    def __init__(self, supabase_url: Optional[str] = None, service_key: Optional[str] = None, timeout: float = 5.0):
        self.supabase_url = supabase_url if supabase_url is not None else settings.SUPABASE_URL
        self.service_key = service_key if service_key is not None else settings.SUPABASE_SERVICE_KEY
        self.timeout = timeout

    def _post(self, channel: str, event: str, payload: Dict[str, Any]) -> None:
        response = requests.post(
            f"{self.supabase_url.rstrip('/')}/realtime/v1/api/broadcast",
            headers={
                "apikey": self.service_key,
                "Authorization": f"Bearer {self.service_key}",
                "Content-Type": "application/json",
            },
            json={"messages": [{"topic": channel, "event": event, "payload": payload}]},
            timeout=self.timeout,
        )
        response.raise_for_status()

    async def broadcast(self, channel: str, event: str, payload: Dict[str, Any]) -> bool:
        """Best-effort broadcast; returns False instead of raising."""
        if not self.supabase_url or not self.service_key:
            logger.warning(f"Realtime not configured, dropping {event} on {channel}")
            return False
        try:
            await asyncio.to_thread(self._post, channel, event, payload)
            return True
        except Exception as e:
            logger.warning(f"Realtime broadcast {event} on {channel} failed: {str(e)}")
            return False
