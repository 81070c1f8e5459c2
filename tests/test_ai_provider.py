"""
Tests for the OpenAI chat completions provider.
"""
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from openai import APIConnectionError, APIStatusError, APITimeoutError

from inbox_agent.services.ai_provider import (
    MissingCredentialError,
    OpenAIProvider,
    ProviderInput,
    UpstreamError,
    build_chat_messages,
    SUPPLEMENTAL_ACK,
)

REQUEST = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")


def _completion(content):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


def _client(create: AsyncMock) -> MagicMock:
    client = MagicMock()
    client.chat.completions.create = create
    return client


def _provider(create: AsyncMock, **kwargs) -> OpenAIProvider:
    return OpenAIProvider(api_key="sk-test", client=_client(create), **kwargs)


PROMPT = ProviderInput(
    system_prompt="You are helpful.",
    turns=[{"role": "user", "content": "Hi"}],
)


class TestBuildChatMessages:

    def test_without_supplemental(self):
        assert build_chat_messages(PROMPT) == [
            {"role": "system", "content": "You are helpful."},
            {"role": "user", "content": "Hi"},
        ]

    def test_supplemental_followed_by_ack(self):
        data = PROMPT.model_copy(update={"supplemental": "Answer in French."})
        messages = build_chat_messages(data)
        assert messages[1] == {"role": "user", "content": "Answer in French."}
        assert messages[2] == {"role": "assistant", "content": SUPPLEMENTAL_ACK}
        assert messages[3] == {"role": "user", "content": "Hi"}


class TestOpenAIProvider:

    @pytest.mark.asyncio
    async def test_returns_trimmed_reply(self):
        create = AsyncMock(return_value=_completion("  Hello!  "))
        provider = _provider(create, model="gpt-4o-mini", max_tokens=1024, temperature=0.7)

        assert await provider.generate_response(PROMPT) == "Hello!"

        kwargs = create.call_args.kwargs
        assert kwargs["model"] == "gpt-4o-mini"
        assert kwargs["max_tokens"] == 1024
        assert kwargs["temperature"] == 0.7
        assert kwargs["messages"][0]["role"] == "system"

    @pytest.mark.asyncio
    async def test_missing_key(self):
        provider = OpenAIProvider(api_key="   ")
        with pytest.raises(MissingCredentialError):
            await provider.generate_response(PROMPT)

    @pytest.mark.asyncio
    async def test_status_error_becomes_upstream_error(self):
        response = httpx.Response(500, request=REQUEST, text="x" * 500)
        create = AsyncMock(side_effect=APIStatusError("server error", response=response, body=None))
        provider = _provider(create)

        with pytest.raises(UpstreamError) as exc:
            await provider.generate_response(PROMPT)

        assert exc.value.status_code == 500
        assert len(exc.value.body) == 200
        assert create.await_count == 1

    @pytest.mark.asyncio
    async def test_connection_errors_are_retried(self):
        create = AsyncMock(side_effect=[
            APIConnectionError(request=REQUEST),
            _completion("Recovered"),
        ])
        provider = _provider(create, connect_retries=2)

        assert await provider.generate_response(PROMPT) == "Recovered"
        assert create.await_count == 2

    @pytest.mark.asyncio
    async def test_connection_retries_are_bounded(self):
        create = AsyncMock(side_effect=APIConnectionError(request=REQUEST))
        provider = _provider(create, connect_retries=2)

        with pytest.raises(APIConnectionError):
            await provider.generate_response(PROMPT)
        assert create.await_count == 3

    @pytest.mark.asyncio
    async def test_timeouts_are_not_retried(self):
        create = AsyncMock(side_effect=APITimeoutError(request=REQUEST))
        provider = _provider(create, connect_retries=2)

        with pytest.raises(APITimeoutError):
            await provider.generate_response(PROMPT)
        assert create.await_count == 1

    @pytest.mark.asyncio
    async def test_empty_completion(self):
        provider = _provider(AsyncMock(return_value=_completion(None)))
        assert await provider.generate_response(PROMPT) == ""
