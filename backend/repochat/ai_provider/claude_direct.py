"""Claude Direct API provider implementation.

This module provides an AIProvider implementation that connects directly
to Anthropic's Claude API using the official SDK.

Usage:
    provider = ClaudeDirectProvider(api_key="sk-ant-...")
    for text in provider.stream_model("Explain ..."):
        ...
"""
import logging
from typing import Iterator, Optional

from .base import AIProvider

logger = logging.getLogger(__name__)


class ClaudeDirectProvider(AIProvider):
    """AIProvider implementation using Anthropic's Claude API directly.

    Attributes:
        api_key: Anthropic API key for authentication.
        model: Claude model to use.
        base_url: Anthropic API base URL.
        timeout_seconds: Per-request timeout passed to the SDK client.
    """

    DEFAULT_MODEL = "claude-sonnet-4-5"
    DEFAULT_BASE_URL = "https://api.anthropic.com"

    def __init__(
        self,
        api_key: str,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout_seconds: float = 120.0,
    ) -> None:
        """Initialize the Claude Direct provider.

        Args:
            api_key: Anthropic API key for authentication.
            model: Claude model to use.
            base_url: Optional custom API base URL.
            timeout_seconds: Request timeout in seconds.
        """
        self.api_key = api_key
        self.model = model or self.DEFAULT_MODEL
        self.base_url = base_url or self.DEFAULT_BASE_URL
        self.timeout_seconds = timeout_seconds
        self._client: Optional[object] = None

    def _get_client(self) -> object:
        """Get or create the Anthropic client.

        Raises:
            ImportError: If anthropic package is not installed.
        """
        if self._client is None:
            try:
                import anthropic
            except ImportError as exc:
                raise ImportError(
                    "anthropic package is required for ClaudeDirectProvider. "
                    "Install it with: pip install anthropic"
                ) from exc
            self._client = anthropic.Anthropic(
                api_key=self.api_key,
                base_url=self.base_url,
                timeout=self.timeout_seconds,
            )
        return self._client

    def _request_kwargs(
        self,
        prompt: str,
        max_tokens: int,
        system: Optional[str],
        temperature: Optional[float],
    ) -> dict:
        kwargs = {
            "model": self.model,
            "max_tokens": max_tokens,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system:
            kwargs["system"] = system
        if temperature is not None:
            kwargs["temperature"] = temperature
        return kwargs

    def health_check(self) -> bool:
        """Check if the Claude Direct API is accessible with a one-token request."""
        try:
            client = self._get_client()
            client.messages.create(
                model=self.model,
                max_tokens=1,
                messages=[{"role": "user", "content": "hi"}],
            )
            return True
        except Exception as e:
            logger.warning(f"Claude Direct health check failed: {e}")
            return False

    def call_model(
        self,
        prompt: str,
        max_tokens: int = 2048,
        system: Optional[str] = None,
        temperature: Optional[float] = None,
    ) -> str:
        """Call Claude with a raw prompt and return the concatenated text blocks."""
        client = self._get_client()
        response = client.messages.create(
            **self._request_kwargs(prompt, max_tokens, system, temperature)
        )
        return "".join(
            block.text for block in response.content if getattr(block, "type", "text") == "text"
        ).strip()

    def stream_model(
        self,
        prompt: str,
        max_tokens: int = 2048,
        system: Optional[str] = None,
        temperature: Optional[float] = None,
    ) -> Iterator[str]:
        """Stream Claude's answer via ``messages.stream``.

        Leaving the ``with`` block (exhaustion, error or generator close)
        closes the HTTP response.
        """
        client = self._get_client()
        with client.messages.stream(
            **self._request_kwargs(prompt, max_tokens, system, temperature)
        ) as stream:
            for text in stream.text_stream:
                if text:
                    yield text
