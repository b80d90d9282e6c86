import asyncio
import json
import logging
import re
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

import httpx

from app.settings import settings
from domain.errors import (
    UpstreamMalformed,
    UpstreamQuotaExceeded,
    UpstreamRateLimited,
    UpstreamUnavailable,
)
from infra.llm.prompts import (
    AUDITION_SCAFFOLD_PROMPT,
    QUESTION_EVALUATION_PROMPT,
    QUESTION_GENERATION_PROMPT,
    ROLE_DEFINITION_PROMPT,
)

logger = logging.getLogger(__name__)

OPENAI_URL = "https://api.openai.com/v1/chat/completions"
OPENROUTER_URL = "https://openrouter.ai/api/v1/chat/completions"

_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.I)


def _classify_status(status: int) -> Exception:
    if status == 429:
        return UpstreamRateLimited()
    if status == 402:
        return UpstreamQuotaExceeded()
    return UpstreamUnavailable(f"Generation service error: {status}")


async def _post_with_retries(
    url: str,
    headers: Dict[str, str],
    payload: Dict,
    *,
    timeout: int = 15,
    max_attempts: int = 3,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> Dict:
    backoff = 1.0
    for attempt in range(1, max_attempts + 1):
        try:
            async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
                response = await client.post(url, headers=headers, json=payload)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            logger.warning("Generation service returned %s (attempt %s/%s)",
                           status, attempt, max_attempts)
            retriable = status >= 500 or status in {408, 429}
            if not retriable or attempt == max_attempts:
                raise _classify_status(status) from exc
        except httpx.RequestError as exc:
            logger.warning("Generation service unreachable: %s (attempt %s/%s)",
                           exc, attempt, max_attempts)
            if attempt == max_attempts:
                raise UpstreamUnavailable() from exc
        except ValueError as exc:
            raise UpstreamMalformed("Generation service returned a non-JSON body") from exc
        await sleep(backoff)
        backoff *= 2
    raise UpstreamUnavailable("Unexpected retry exhaustion")


def _message_content(data: Dict) -> str:
    try:
        content = data["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError) as exc:
        raise UpstreamMalformed("Generation response had no message",
                                raw=json.dumps(data)[:2000]) from exc
    if isinstance(content, list):
        parts = []
        for part in content:
            if isinstance(part, str):
                parts.append(part)
            elif isinstance(part, dict) and isinstance(part.get("text"), str):
                parts.append(part["text"])
        content = "".join(parts)
    if not isinstance(content, str) or not content.strip():
        raise UpstreamMalformed("Generation response did not include any content")
    return content.strip()


def parse_json_object(raw_text: str) -> Dict[str, Any]:
    text = _FENCE.sub("", raw_text.strip())
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as exc:
        raise UpstreamMalformed("Generation response was not valid JSON", raw=raw_text) from exc
    if not isinstance(parsed, dict):
        raise UpstreamMalformed("Generation response was not a JSON object", raw=raw_text)
    return parsed


class GenerationClient:
    """Chat-completions client for the hosted text-generation service."""

    def __init__(
        self,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._transport = transport
        self._sleep = sleep

    def _provider(self) -> Tuple[str, Dict[str, str], str]:
        if settings.OPENAI_API_KEY:
            headers = {"Authorization": f"Bearer {settings.OPENAI_API_KEY}"}
            return OPENAI_URL, headers, settings.OPENAI_MODEL
        if settings.OPENROUTER_API_KEY:
            headers = {
                "Authorization": f"Bearer {settings.OPENROUTER_API_KEY}",
                "HTTP-Referer": "http://localhost",
                "X-Title": settings.APP_NAME,
            }
            return OPENROUTER_URL, headers, settings.OPENROUTER_MODEL
        raise UpstreamUnavailable("No LLM provider configured")

    async def chat(self, messages: List[Dict[str, str]], *, temperature: float = 0.2,
                   json_mode: bool = False) -> str:
        url, headers, model = self._provider()
        payload: Dict[str, Any] = {"model": model, "messages": messages, "temperature": temperature}
        if json_mode:
            payload["response_format"] = {"type": "json_object"}
        data = await _post_with_retries(
            url,
            headers,
            payload,
            timeout=settings.LLM_TIMEOUT_SECONDS,
            max_attempts=settings.LLM_MAX_ATTEMPTS,
            transport=self._transport,
            sleep=self._sleep,
        )
        return _message_content(data)

    async def extract_role_definition(self, jd_text: str) -> Dict[str, Any]:
        messages = [
            {"role": "system", "content": ROLE_DEFINITION_PROMPT},
            {"role": "user", "content":
                f"Analyze this job description and return the structured data as JSON.\n\n{jd_text}"},
        ]
        raw = await self.chat(messages, temperature=0.1, json_mode=True)
        return parse_json_object(raw)

    async def generate_scaffold(self, role_context: str, dimensions: Sequence[str]) -> Dict[str, Any]:
        content = AUDITION_SCAFFOLD_PROMPT.format(
            dimensions=", ".join(dimensions), role_context=role_context)
        messages = [
            {"role": "system", "content": "You return strict JSON only."},
            {"role": "user", "content": content},
        ]
        raw = await self.chat(messages, temperature=0.4, json_mode=True)
        return parse_json_object(raw)

    async def generate_question(self, role_context: str, scenario: str) -> str:
        messages = [
            {"role": "system", "content": QUESTION_GENERATION_PROMPT.format(
                role_context=role_context, scenario=scenario)},
            {"role": "user", "content": "Generate the question now."},
        ]
        return await self.chat(messages, temperature=0.8)

    async def score_question(self, question: str, criteria: str) -> int:
        messages = [
            {"role": "system", "content": QUESTION_EVALUATION_PROMPT.format(
                criteria=criteria, question=question)},
            {"role": "user", "content": "Provide your score (0-3):"},
        ]
        reply = await self.chat(messages, temperature=0.2)
        match = re.search(r"\d", reply)
        score = int(match.group(0)) if match else 0
        if score > 3:
            logger.warning("Invalid quality score %r, defaulting to 1", reply)
            return 1
        return score
