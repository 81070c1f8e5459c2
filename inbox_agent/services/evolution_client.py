"""
Evolution API Client
Outbound text messages through an Evolution API (WhatsApp) instance
"""
import logging
import httpx
from typing import Optional, Dict, Any

from inbox_agent.config import settings
from inbox_agent.models import SendResult

logger = logging.getLogger(__name__)

ERROR_BODY_LIMIT = 200


class EvolutionClient:
    """Thin async client for the Evolution sendText endpoint"""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """
        Initialize Evolution Client

        Args:
            base_url: Evolution API base URL
            api_key: Instance or global API key (sent as `apikey` header)
            timeout: Request timeout in seconds
            transport: Optional httpx transport (tests)
        """
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout or settings.EVOLUTION_TIMEOUT_SECONDS
        self._transport = transport

    def _get_headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "apikey": self.api_key,
        }

    @staticmethod
    def _recipient_number(recipient: str) -> str:
        # 5511999999999@s.whatsapp.net -> 5511999999999
        return recipient.split("@")[0]

    async def send_text_message(self, instance_name: str, recipient: str, text: str) -> SendResult:
        """
        Send a text message to a WhatsApp chat.

        Args:
            instance_name: Evolution instance name
            recipient: External chat id or phone number
            text: Message text

        Returns:
            SendResult with the provider message id, or the error
        """
        url = f"{self.base_url}/message/sendText/{instance_name}"
        payload = {"number": self._recipient_number(recipient), "text": text}

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            response = await client.post(url, json=payload, headers=self._get_headers())

        if response.status_code >= 400:
            error = f"{response.status_code} {response.text[:ERROR_BODY_LIMIT]}"
            logger.warning(f"⚠️ Evolution send failed: {error}")
            return SendResult(ok=False, error=error)

        data: Dict[str, Any] = {}
        try:
            data = response.json() or {}
        except ValueError:
            logger.debug("Evolution send response was not JSON")

        key = data.get("key") if isinstance(data.get("key"), dict) else {}
        external_id = key.get("id") or data.get("messageId")
        return SendResult(ok=True, external_id=external_id)
