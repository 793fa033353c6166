"""Provider resolution for the answer-generation and translation models.

Builds the AIProvider selected by ``llm.provider`` in configuration.  The
translation bridge may use a different model on the same backend
(``llm.translation_model``), so the factory takes an optional model override.

Usage:
    from repochat.ai_provider.resolver import create_ai_provider
    from repochat.config import get_config

    provider = create_ai_provider(get_config())
"""
import logging
from enum import Enum
from typing import Optional

from repochat.config import AppConfig
from repochat.errors import ProviderNotAvailableError

from .base import AIProvider
from .claude_bedrock import ClaudeBedrockProvider
from .claude_direct import ClaudeDirectProvider
from .openai_provider import OpenAIProvider

logger = logging.getLogger(__name__)


class ProviderType(str, Enum):
    """Supported AI provider types."""
    ANTHROPIC = "anthropic"
    AWS_BEDROCK = "aws_bedrock"
    OPENAI = "openai"


def create_ai_provider(config: AppConfig, model: Optional[str] = None) -> AIProvider:
    """Create the configured AI provider.

    Args:
        config: Full application configuration.
        model:  Optional model override (defaults to ``llm.model``).

    Returns:
        A ready-to-use AIProvider (no network call is made here).

    Raises:
        ProviderNotAvailableError: When the selected provider lacks credentials.
    """
    llm = config.llm
    secrets = config.secrets
    provider_type = ProviderType(llm.provider)
    model = model or llm.model

    if provider_type == ProviderType.OPENAI:
        if not secrets.openai.api_key:
            raise ProviderNotAvailableError("OpenAI API key not configured")
        provider: AIProvider = OpenAIProvider(
            api_key=secrets.openai.api_key,
            model=model,
            base_url=secrets.openai.base_url,
            timeout_seconds=llm.request_timeout_seconds,
        )
    elif provider_type == ProviderType.ANTHROPIC:
        if not secrets.anthropic.api_key:
            raise ProviderNotAvailableError("Anthropic API key not configured")
        provider = ClaudeDirectProvider(
            api_key=secrets.anthropic.api_key,
            model=model,
            timeout_seconds=llm.request_timeout_seconds,
        )
    else:
        provider = ClaudeBedrockProvider(
            aws_access_key_id=secrets.aws.access_key_id,
            aws_secret_access_key=secrets.aws.secret_access_key,
            aws_session_token=secrets.aws.session_token,
            region_name=secrets.aws.region,
            model_id=model,
            timeout_seconds=llm.request_timeout_seconds,
        )

    logger.info("AI provider ready: provider=%s model=%s", provider_type.value, model)
    return provider
