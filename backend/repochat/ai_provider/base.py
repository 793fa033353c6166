"""AIProvider abstract interface for LLM integrations.

Each provider offers a blocking ``call_model`` (used for query translation)
and a lazy ``stream_model`` (used for answer generation).

Usage:
    from repochat.ai_provider import OpenAIProvider

    provider = OpenAIProvider(api_key="...")
    fragments = provider.stream_model("Explain ...")
    try:
        for text in fragments:
            ...
    finally:
        fragments.close()   # releases the underlying HTTP stream
"""
from abc import ABC, abstractmethod
from typing import Iterator, Optional


class AIProvider(ABC):
    """Abstract base class for AI provider implementations.

    Methods:
        health_check: Verify the provider is operational.
        call_model: Return the full response text for a prompt.
        stream_model: Yield response text fragments as they arrive.
    """

    @abstractmethod
    def health_check(self) -> bool:
        """Check if the AI provider is healthy and operational.

        Returns:
            bool: True if the provider is operational, False otherwise.
        """

    @abstractmethod
    def call_model(
        self,
        prompt: str,
        max_tokens: int = 2048,
        system: Optional[str] = None,
        temperature: Optional[float] = None,
    ) -> str:
        """Call the AI model with a raw prompt and return the response text.

        Args:
            prompt:      The user-turn prompt to send to the model.
            max_tokens:  Maximum tokens in the response (default: 2048).
            system:      Optional system-role instruction.
            temperature: Optional sampling temperature; provider default when None.

        Returns:
            str: The model's response text.

        Raises:
            Exception: If the API call fails.
        """

    @abstractmethod
    def stream_model(
        self,
        prompt: str,
        max_tokens: int = 2048,
        system: Optional[str] = None,
        temperature: Optional[float] = None,
    ) -> Iterator[str]:
        """Stream the model's response as text fragments.

        The returned iterator is a generator: closing it (or exhausting it)
        closes the underlying network stream.  No request is sent before the
        first fragment is pulled.

        Raises:
            Exception: If the API call fails, possibly after fragments were
                already yielded.
        """
