"""
AI Provider
Text-generation provider interface and the OpenAI chat completions implementation
"""
import logging
from abc import ABC, abstractmethod
from typing import List, Dict, Optional
from pydantic import BaseModel, Field
from openai import AsyncOpenAI, APIConnectionError, APITimeoutError, APIStatusError

from inbox_agent.config import settings

logger = logging.getLogger(__name__)

SUPPLEMENTAL_ACK = "Understood. I will follow these instructions in the context of the conversation."
ERROR_BODY_LIMIT = 200


class MissingCredentialError(Exception):
    """Raised when no provider API key is configured"""


class UpstreamError(Exception):
    """Raised when the provider answers with a non-success status"""

    def __init__(self, status_code: int, body: str = ""):
        self.status_code = status_code
        self.body = (body or "")[:ERROR_BODY_LIMIT]
        super().__init__(f"Provider error {status_code}: {self.body}")


class ProviderInput(BaseModel):
    system_prompt: str
    supplemental: Optional[str] = None
    turns: List[Dict[str, str]] = Field(default_factory=list)


class AIProvider(ABC):
    """Anything that turns a built prompt into reply text"""

    @abstractmethod
    async def generate_response(self, data: ProviderInput) -> str:
        ...


def build_chat_messages(data: ProviderInput) -> List[Dict[str, str]]:
    """
    Assemble chat messages in provider order.

    System prompt first, then the supplemental instruction as a user turn
    followed by a fixed assistant acknowledgement, then the history turns.
    """
    messages = [{"role": "system", "content": data.system_prompt}]
    if data.supplemental and data.supplemental.strip():
        messages.append({"role": "user", "content": data.supplemental.strip()})
        messages.append({"role": "assistant", "content": SUPPLEMENTAL_ACK})
    messages.extend(data.turns)
    return messages


class OpenAIProvider(AIProvider):
    """
    OpenAI chat completions provider.

    SDK retries are disabled. Only connection-level failures are retried,
    up to `connect_retries` times; timeouts and HTTP errors are raised at
    once because the request may already have been processed.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        timeout: Optional[float] = None,
        connect_retries: Optional[int] = None,
        client: Optional[AsyncOpenAI] = None
    ):
        self.api_key = (api_key if api_key is not None else settings.OPENAI_API_KEY).strip()
        self.base_url = base_url or settings.OPENAI_BASE_URL
        self.model = model or settings.GPT_MODEL
        self.max_tokens = max_tokens or settings.GPT_MAX_TOKENS
        self.temperature = temperature if temperature is not None else settings.GPT_TEMPERATURE
        self.timeout = timeout or settings.OPENAI_TIMEOUT_SECONDS
        self.connect_retries = (
            connect_retries if connect_retries is not None else settings.OPENAI_CONNECT_RETRIES
        )
        self._client = client

    @property
    def client(self) -> AsyncOpenAI:
        if not self.api_key:
            raise MissingCredentialError("OPENAI_API_KEY is not configured")
        if self._client is None:
            self._client = AsyncOpenAI(
                api_key=self.api_key,
                base_url=self.base_url,
                timeout=self.timeout,
                max_retries=0
            )
        return self._client

    async def generate_response(self, data: ProviderInput) -> str:
        """
        Generate one reply for the given prompt.

        Raises:
            MissingCredentialError: No API key configured
            UpstreamError: Provider returned a non-success status
        """
        client = self.client
        messages = build_chat_messages(data)

        attempt = 0
        while True:
            try:
                response = await client.chat.completions.create(
                    model=self.model,
                    messages=messages,
                    max_tokens=self.max_tokens,
                    temperature=self.temperature,
                )
                break
            except APITimeoutError:
                logger.error(f"⏱️ Provider call timed out after {self.timeout}s")
                raise
            except APIConnectionError as e:
                if attempt >= self.connect_retries:
                    logger.error(f"❌ Provider unreachable after {attempt + 1} attempts: {e}")
                    raise
                attempt += 1
                logger.warning(f"⚠️ Provider connection failed, retry {attempt}/{self.connect_retries}: {e}")
            except APIStatusError as e:
                body = e.response.text if e.response is not None else str(e)
                raise UpstreamError(e.status_code, body) from e

        content = response.choices[0].message.content if response.choices else None
        reply = (content or "").strip()
        logger.info(f"🤖 Provider reply received ({len(reply)} chars, model={self.model})")
        return reply


_ai_provider: Optional[AIProvider] = None


def get_ai_provider() -> AIProvider:
    """
    Get or create the process-wide provider instance.

    Returns:
        AIProvider instance
    """
    global _ai_provider
    if _ai_provider is None:
        _ai_provider = OpenAIProvider()
    return _ai_provider
