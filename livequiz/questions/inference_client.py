"""Chat-completions client used to generate and format questions."""

import json
import asyncio
import logging
from typing import Any, Dict, Optional

import aiohttp

from ..errors import InferenceError, InferenceErrorCategory

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.openai.com/v1/chat/completions"


def strip_code_fences(content: str) -> str:
    """Remove markdown ```json fences some models wrap around JSON."""
    content = content.strip()
    if content.startswith("```"):
        content = content.split("\n", 1)[1] if "\n" in content else ""
        if content.rstrip().endswith("```"):
            content = content.rstrip()[:-3]
    return content.strip()


class InferenceClient:
    """Sends prompts to an OpenAI-compatible chat completions endpoint."""

    def __init__(self, api_key: str, model: str = "gpt-4o-mini",
                 base_url: str = DEFAULT_BASE_URL, timeout_seconds: float = 30.0):
        """Initialize inference client.

        Args:
            api_key: API key sent as a bearer token
            model: Model name
            base_url: Full chat completions URL
            timeout_seconds: Total deadline for one request
        """
        self.api_key = api_key
        self.model = model
        self.base_url = base_url
        self.timeout_seconds = timeout_seconds

        logger.info(f"InferenceClient initialized with model: {model}")

    async def complete(self, prompt: str, system: Optional[str] = None,
                       temperature: float = 0.7, max_tokens: int = 2000,
                       json_response: bool = False) -> str:
        """Send a prompt and return the assistant message content.

        Raises:
            InferenceError: Categorized by status code, timeout or unreadable body
        """
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json"
        }

        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        data: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if json_response:
            data["response_format"] = {"type": "json_object"}

        timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(self.base_url, headers=headers, json=data) as response:
                    if response.status != 200:
                        error_text = await response.text()
                        logger.error(f"Inference API error: {response.status} - {error_text[:200]}")
                        raise self._error_for_status(response.status, error_text)
                    result = await response.json(content_type=None)
        except asyncio.TimeoutError as e:
            raise InferenceError(InferenceErrorCategory.TIMEOUT,
                                 f"no response after {self.timeout_seconds:.0f}s") from e
        except aiohttp.ClientError as e:
            raise InferenceError(InferenceErrorCategory.UPSTREAM_ERROR, str(e)) from e
        except json.JSONDecodeError as e:
            raise InferenceError(InferenceErrorCategory.MALFORMED_RESPONSE, "response body is not JSON") from e

        try:
            content = result["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise InferenceError(InferenceErrorCategory.MALFORMED_RESPONSE, "no message content") from e
        if not isinstance(content, str):
            raise InferenceError(InferenceErrorCategory.MALFORMED_RESPONSE, "no message content")
        return content.strip()

    async def complete_json(self, prompt: str, system: Optional[str] = None,
                            temperature: float = 0.7, max_tokens: int = 2000) -> Dict[str, Any]:
        """Send a prompt that must be answered with a JSON object."""
        content = await self.complete(prompt, system=system, temperature=temperature,
                                      max_tokens=max_tokens, json_response=True)
        try:
            parsed = json.loads(strip_code_fences(content))
        except json.JSONDecodeError as e:
            logger.error(f"Model returned invalid JSON: {content[:200]}")
            raise InferenceError(InferenceErrorCategory.MALFORMED_RESPONSE, "invalid JSON") from e
        if not isinstance(parsed, dict):
            raise InferenceError(InferenceErrorCategory.MALFORMED_RESPONSE, "expected a JSON object")
        return parsed

    @staticmethod
    def _error_for_status(status: int, body: str) -> InferenceError:
        if status == 429:
            return InferenceError(InferenceErrorCategory.RATE_LIMITED, status_code=status)
        if status == 402:
            return InferenceError(InferenceErrorCategory.QUOTA_EXHAUSTED, status_code=status)
        if status == 504:
            return InferenceError(InferenceErrorCategory.TIMEOUT, status_code=status)
        return InferenceError(InferenceErrorCategory.UPSTREAM_ERROR, f"HTTP {status}", status_code=status)
