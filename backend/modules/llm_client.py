"""
LLM Client: OpenAI-compatible wrapper for the Groq chat-completions API.
Sends standard /chat/completions requests with Bearer token auth.
"""

import logging
from typing import Optional

from openai import OpenAI, OpenAIError

logger = logging.getLogger(__name__)


class LLMError(RuntimeError):
    """The upstream model could not produce a response."""


class LLMUnavailable(LLMError):
    """No API key configured, so no request was attempted."""


class LLMClient:
    def __init__(
        self,
        api_key: str,
        base_url: str,
        model: str,
        timeout: float = 20.0,
        client: Optional[OpenAI] = None,
    ):
        self.model = model
        self._client = client
        if self._client is None and api_key:
            self._client = OpenAI(
                api_key=api_key,
                base_url=base_url,
                timeout=timeout,
                max_retries=0,
            )

    @property
    def available(self) -> bool:
        return self._client is not None

    def call_llm(
        self,
        prompt: str,
        system_prompt: str = "",
        temperature: float = 0.7,
        max_tokens: int = 2000,
        json_mode: bool = False,
    ) -> str:
        """Send a chat completion request and return the text response."""
        if self._client is None:
            raise LLMUnavailable("LLM API key not configured")

        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        kwargs = {}
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        try:
            response = self._client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens,
                **kwargs,
            )
        except OpenAIError as e:
            logger.warning("[LLM ERROR] %s", e)
            raise LLMError(str(e)) from e

        if not response.choices:
            raise LLMError("LLM returned no choices")
        content = response.choices[0].message.content
        if not content:
            raise LLMError("LLM returned an empty message")
        return content.strip()
