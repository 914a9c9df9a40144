"""
Chat Client - OpenAI-Compatible Chat Completions over HTTP
===========================================================

One POST per call, explicit timeout, no retries. Every failure is raised as
a ClassifierError subclass so callers see a single error family.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

import requests

from ..config.settings import LLMSettings
from .errors import ClassifierMalformedResponse, ClassifierTimeout, ClassifierUnavailable

logger = logging.getLogger(__name__)


@dataclass
class ChatCompletion:
    """Text returned by the model plus token accounting."""
    content: str
    tokens_in: int = 0
    tokens_out: int = 0
    prompt: str = ""


class ChatClient:
    """
    Thin requests-based client for a chat-completions endpoint.

    USAGE:
        client = ChatClient(settings.llm)
        completion = client.complete([{"role": "user", "content": "Hi"}])
        print(completion.content)
    """

    def __init__(self, settings: LLMSettings):
        self._api_key = settings.api_key
        self._api_url = settings.api_url
        self._model = settings.model
        self._temperature = settings.temperature
        self._timeout = settings.timeout_seconds

        if not self._api_key:
            logger.warning("No OPENAI_API_KEY set. LLM calls will fail until it is.")

    @property
    def model(self) -> str:
        return self._model

    def complete(self, messages: List[dict], json_mode: bool = False,
                 max_tokens: Optional[int] = None) -> ChatCompletion:
        """
        Send messages and return the first choice's content.

        Raises:
            ClassifierUnavailable: missing key, connection error or HTTP error status
            ClassifierTimeout: no answer within the configured timeout
            ClassifierMalformedResponse: body is not a chat-completions payload
        """
        if not self._api_key:
            raise ClassifierUnavailable("OPENAI_API_KEY is not configured")

        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

        payload = {
            "model": self._model,
            "messages": messages,
            "temperature": self._temperature,
        }
        if json_mode:
            payload["response_format"] = {"type": "json_object"}
        if max_tokens:
            payload["max_tokens"] = max_tokens

        try:
            response = requests.post(
                self._api_url,
                headers=headers,
                json=payload,
                timeout=self._timeout
            )
            response.raise_for_status()
        except requests.Timeout as e:
            logger.warning(f"LLM API timeout after {self._timeout}s")
            raise ClassifierTimeout(f"LLM call timed out after {self._timeout}s") from e
        except requests.RequestException as e:
            logger.warning(f"LLM API error: {e}")
            raise ClassifierUnavailable(f"LLM call failed: {e}") from e

        try:
            data = response.json()
        except ValueError as e:
            raise ClassifierMalformedResponse("LLM response body is not JSON") from e

        content = self._extract_response_content(data)
        usage = data.get("usage") or {}
        try:
            tokens_in = int(usage.get("prompt_tokens") or 0)
            tokens_out = int(usage.get("completion_tokens") or 0)
        except (AttributeError, TypeError, ValueError) as e:
            raise ClassifierMalformedResponse(f"LLM response has unreadable usage: {usage!r}") from e

        return ChatCompletion(
            content=content,
            tokens_in=tokens_in,
            tokens_out=tokens_out,
            prompt="\n\n".join(str(m.get("content", "")) for m in messages),
        )

    def _extract_response_content(self, data) -> str:
        """Extract text content from API response."""
        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise ClassifierMalformedResponse("LLM response has no message content") from e
        if not isinstance(content, str) or not content.strip():
            raise ClassifierMalformedResponse("LLM response content is empty")
        return content.strip()
