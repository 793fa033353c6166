"""OpenAI API provider implementation.

This module provides an AIProvider implementation that connects to
OpenAI's chat completions API using the official SDK.

Usage:
    provider = OpenAIProvider(api_key="sk-...")
    answer = provider.call_model("Translate ...")
"""
import logging
from typing import Iterator, List, Optional

from .base import AIProvider

logger = logging.getLogger(__name__)


class OpenAIProvider(AIProvider):
    """AIProvider implementation using OpenAI's API.

    Attributes:
        api_key: OpenAI API key for authentication.
        model: OpenAI model to use (default: gpt-4o).
        base_url: Optional API base URL for OpenAI-compatible gateways.
        timeout_seconds: Per-request timeout passed to the SDK client.
    """

    DEFAULT_MODEL = "gpt-4o"

    def __init__(
        self,
        api_key: str,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout_seconds: float = 120.0,
    ) -> None:
        """Initialize the OpenAI provider.

        Args:
            api_key: OpenAI API key for authentication.
            model: OpenAI model to use. Defaults to gpt-4o.
            base_url: Optional custom API base URL.
            timeout_seconds: Request timeout in seconds.
        """
        self.api_key = api_key
        self.model = model or self.DEFAULT_MODEL
        self.base_url = base_url
        self.timeout_seconds = timeout_seconds
        self._client: Optional[object] = None

    def _get_client(self) -> object:
        """Get or create the OpenAI client.

        Raises:
            ImportError: If openai package is not installed.
        """
        if self._client is None:
            try:
                import openai
            except ImportError as exc:
                raise ImportError(
                    "openai package is required for OpenAIProvider. "
                    "Install it with: pip install openai"
                ) from exc
            kwargs = {"api_key": self.api_key, "timeout": self.timeout_seconds}
            if self.base_url:
                kwargs["base_url"] = self.base_url
            self._client = openai.OpenAI(**kwargs)
        return self._client

    @staticmethod
    def _messages(prompt: str, system: Optional[str]) -> List[dict]:
        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})
        return messages

    def health_check(self) -> bool:
        """Check if the OpenAI API is accessible with a one-token request."""
        try:
            client = self._get_client()
            client.chat.completions.create(
                model=self.model,
                max_tokens=1,
                messages=[{"role": "user", "content": "hi"}],
            )
            return True
        except Exception as e:
            logger.warning(f"OpenAI health check failed: {e}")
            return False

    def call_model(
        self,
        prompt: str,
        max_tokens: int = 2048,
        system: Optional[str] = None,
        temperature: Optional[float] = None,
    ) -> str:
        """Call the OpenAI model with a raw prompt."""
        client = self._get_client()

        kwargs = {}
        if temperature is not None:
            kwargs["temperature"] = temperature

        response = client.chat.completions.create(
            model=self.model,
            max_tokens=max_tokens,
            messages=self._messages(prompt, system),
            **kwargs,
        )

        return (response.choices[0].message.content or "").strip()

    def stream_model(
        self,
        prompt: str,
        max_tokens: int = 2048,
        system: Optional[str] = None,
        temperature: Optional[float] = None,
    ) -> Iterator[str]:
        """Stream the completion as text deltas."""
        client = self._get_client()

        kwargs = {}
        if temperature is not None:
            kwargs["temperature"] = temperature

        stream = client.chat.completions.create(
            model=self.model,
            max_tokens=max_tokens,
            messages=self._messages(prompt, system),
            stream=True,
            **kwargs,
        )
        try:
            for chunk in stream:
                if not chunk.choices:
                    continue
                text = chunk.choices[0].delta.content
                if text:
                    yield text
        finally:
            stream.close()
