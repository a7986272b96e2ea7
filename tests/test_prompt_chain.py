import os
import sys
import pytest
import httpx
from unittest.mock import patch, AsyncMock

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "../backend")))
from services import prompt_chain
from services.prompt_chain import LLMServiceError, PlanResult
from settings import settings


def _completion(content, status_code=200):
    return httpx.Response(
        status_code,
        json={"choices": [{"message": {"role": "assistant", "content": content}}]},
        request=httpx.Request("POST", "https://llm.test/chat/completions"),
    )


@pytest.fixture
def api_key(monkeypatch):
    monkeypatch.setattr(settings, "_llm_api_key", "test-key")
    monkeypatch.setattr(settings, "_llm_base_url", "https://llm.test")


@pytest.mark.asyncio
async def test_chain_feeds_thinking_into_plan():
    """The second call's prompt contains the exact output of the first call."""
    mock_complete = AsyncMock(side_effect=["Deep thoughts about bakeries", "Step 1: bake"])
    with patch("services.prompt_chain.complete", mock_complete):
        result = await prompt_chain.run_prompt_chain("I want to open a bakery")

    assert result == PlanResult(thinking="Deep thoughts about bakeries", plan="Step 1: bake")
    assert mock_complete.await_count == 2

    first_prompt, first_tokens = mock_complete.await_args_list[0].args
    second_prompt, second_tokens = mock_complete.await_args_list[1].args
    assert "I want to open a bakery" in first_prompt
    assert "Deep thoughts about bakeries" in second_prompt
    assert first_tokens == settings.get_thinking_max_tokens()
    assert second_tokens == settings.get_plan_max_tokens()


@pytest.mark.asyncio
async def test_chain_stops_when_thinking_fails():
    mock_complete = AsyncMock(side_effect=LLMServiceError("boom"))
    with patch("services.prompt_chain.complete", mock_complete):
        with pytest.raises(LLMServiceError):
            await prompt_chain.run_prompt_chain("Learn Spanish")

    assert mock_complete.await_count == 1


def test_prompts_ask_for_user_language():
    assert "language of the user" in prompt_chain.build_thinking_prompt("x")
    assert "language of the user" in prompt_chain.build_plan_prompt("x")


@pytest.mark.asyncio
async def test_complete_posts_openai_compatible_request(api_key):
    mock_post = AsyncMock(return_value=_completion("  An answer  "))
    with patch.object(httpx.AsyncClient, "post", mock_post):
        text = await prompt_chain.complete("Hello?", 123)

    assert text == "An answer"
    url = mock_post.await_args.args[0]
    kwargs = mock_post.await_args.kwargs
    assert url == "https://llm.test/chat/completions"
    assert kwargs["headers"]["Authorization"] == "Bearer test-key"
    assert kwargs["json"]["max_tokens"] == 123
    assert kwargs["json"]["model"] == settings.get_llm_model()
    assert kwargs["json"]["messages"] == [{"role": "user", "content": "Hello?"}]


@pytest.mark.asyncio
async def test_complete_joins_content_parts(api_key):
    parts = [{"type": "text", "text": "Part one. "}, {"type": "text", "text": "Part two."}]
    with patch.object(httpx.AsyncClient, "post", AsyncMock(return_value=_completion(parts))):
        assert await prompt_chain.complete("Hi", 10) == "Part one. Part two."


@pytest.mark.asyncio
async def test_complete_raises_on_upstream_error_status(api_key):
    response = httpx.Response(
        429,
        text="rate limited",
        request=httpx.Request("POST", "https://llm.test/chat/completions"),
    )
    with patch.object(httpx.AsyncClient, "post", AsyncMock(return_value=response)):
        with pytest.raises(LLMServiceError) as exc_info:
            await prompt_chain.complete("Hi", 10)

    assert exc_info.value.status_code == 429


@pytest.mark.asyncio
async def test_complete_raises_on_empty_content(api_key):
    with patch.object(httpx.AsyncClient, "post", AsyncMock(return_value=_completion("   "))):
        with pytest.raises(LLMServiceError):
            await prompt_chain.complete("Hi", 10)


@pytest.mark.asyncio
async def test_complete_wraps_transport_errors(api_key):
    with patch.object(httpx.AsyncClient, "post", AsyncMock(side_effect=httpx.ConnectError("refused"))):
        with pytest.raises(LLMServiceError) as exc_info:
            await prompt_chain.complete("Hi", 10)

    assert exc_info.value.status_code == 502


@pytest.mark.asyncio
async def test_complete_requires_api_key(monkeypatch):
    monkeypatch.setattr(settings, "_llm_api_key", "")
    mock_post = AsyncMock()
    with patch.object(httpx.AsyncClient, "post", mock_post):
        with pytest.raises(LLMServiceError) as exc_info:
            await prompt_chain.complete("Hi", 10)

    assert exc_info.value.status_code == 500
    mock_post.assert_not_awaited()


@pytest.mark.asyncio
async def test_complete_accepts_any_2xx(api_key):
    with patch.object(httpx.AsyncClient, "post", AsyncMock(return_value=_completion("Created", status_code=201))):
        assert await prompt_chain.complete("Hi", 10) == "Created"
