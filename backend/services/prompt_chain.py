import logging
from dataclasses import dataclass

import httpx

from settings import settings

logger = logging.getLogger(__name__)

THINKING_PROMPT = (
    'The user has provided the following input about their goal: "{message}".\n'
    "Before suggesting any plan or instructions, analyze and reflect on what the user might be aiming for, "
    "what challenges they could face, and what considerations might be important. Do not suggest a plan yet, "
    "just think about the goal. Give the answer in the language of the user."
)

PLAN_PROMPT = (
    'Based on the following analysis of the user\'s goal: "{thinking}",\n'
    "now create a detailed plan to help the user achieve their goal. Include specific steps, "
    "considerations, and any relevant advice. Give the answer in the language of the user."
)


class LLMServiceError(Exception):
    """The completion service failed or returned something unusable."""

    def __init__(self, message: str, status_code: int = 502):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


@dataclass
class PlanResult:
    thinking: str
    plan: str


def build_thinking_prompt(message: str) -> str:
    return THINKING_PROMPT.format(message=message)


def build_plan_prompt(thinking: str) -> str:
    return PLAN_PROMPT.format(thinking=thinking)


def _extract_text(data: dict) -> str:
    try:
        content = data["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError):
        raise LLMServiceError("LLM response did not contain a message")
    # Some providers return content parts instead of a plain string
    if isinstance(content, list):
        content = "".join(part.get("text", "") for part in content if isinstance(part, dict))
    if not isinstance(content, str) or not content.strip():
        raise LLMServiceError("LLM returned an empty response")
    return content.strip()


async def complete(prompt: str, max_tokens: int) -> str:
    """Single non-streaming chat completion against the configured LLM endpoint."""
    api_key = settings.get_llm_api_key()
    if not api_key:
        raise LLMServiceError("LLM API key is not configured", status_code=500)

    url = f"{settings.get_llm_base_url()}/chat/completions"
    auth_val = api_key if api_key.lower().startswith("bearer ") else f"Bearer {api_key}"
    headers = {
        "Authorization": auth_val,
        "HTTP-Referer": "http://localhost:8000",
        "X-Title": "StartAI",
        "Content-Type": "application/json",
    }
    payload = {
        "model": settings.get_llm_model(),
        "max_tokens": max_tokens,
        "messages": [{"role": "user", "content": prompt}],
    }

    async with httpx.AsyncClient() as client:
        try:
            response = await client.post(url, headers=headers, json=payload, timeout=settings.get_llm_timeout())
        except httpx.HTTPError as e:
            logger.error("LLM request to %s failed: %s", url, e)
            raise LLMServiceError(f"LLM request failed: {e}")

    if not response.is_success:
        logger.error("LLM returned %s: %s", response.status_code, response.text[:200])
        raise LLMServiceError(f"LLM API error: {response.text[:200]}", status_code=response.status_code)

    try:
        data = response.json()
    except ValueError:
        raise LLMServiceError("LLM returned a non-JSON body")
    return _extract_text(data)


async def run_prompt_chain(message: str) -> PlanResult:
    """Thinking pass, then a plan pass fed with the thinking output."""
    thinking = await complete(build_thinking_prompt(message), settings.get_thinking_max_tokens())
    logger.info("Thinking pass done (%d chars)", len(thinking))
    plan = await complete(build_plan_prompt(thinking), settings.get_plan_max_tokens())
    logger.info("Plan pass done (%d chars)", len(plan))
    return PlanResult(thinking=thinking, plan=plan)
