"""Streaming answer generation.

``AnswerGenerator.stream`` is a plain generator over the provider's fragment
stream.  Fragments are forwarded as they arrive; closing the generator closes
the provider stream and with it the HTTP connection to the model.
"""
import logging
from typing import Iterator

from repochat.ai_provider.base import AIProvider
from repochat.errors import GenerationStreamError

logger = logging.getLogger(__name__)


class AnswerGenerator:
    """Turns a prompt into a lazy sequence of answer fragments.

    Args:
        provider:    Streaming-capable AI provider.
        max_tokens:  Output token cap per answer.
        temperature: Sampling temperature.
    """

    def __init__(
        self,
        provider: AIProvider,
        max_tokens: int = 2048,
        temperature: float = 0.7,
    ) -> None:
        self._provider = provider
        self._max_tokens = max_tokens
        self._temperature = temperature

    def stream(self, prompt: str) -> Iterator[str]:
        """Yield answer fragments for *prompt*.

        Raises:
            GenerationStreamError: If the model fails before or during
                streaming.  Fragments already yielded stand.
        """
        fragments = self._provider.stream_model(
            prompt,
            max_tokens=self._max_tokens,
            temperature=self._temperature,
        )
        emitted = 0
        try:
            for fragment in fragments:
                emitted += 1
                yield fragment
        except GeneratorExit:
            logger.info("[AnswerGenerator] Stream abandoned after %d fragments", emitted)
            raise
        except Exception as exc:
            logger.error(
                "[AnswerGenerator] Model stream failed after %d fragments: %s", emitted, exc,
            )
            raise GenerationStreamError(str(exc)) from exc
        finally:
            close = getattr(fragments, "close", None)
            if close is not None:
                close()
