"""AI Provider module for LLM integrations.

This module provides a unified interface for the chat models used to
translate queries and stream grounded answers: OpenAIProvider,
ClaudeDirectProvider and ClaudeBedrockProvider.

Usage:
    from repochat.ai_provider import create_ai_provider

    provider = create_ai_provider(config)
    for fragment in provider.stream_model(prompt):
        ...
"""
from .base import AIProvider
from .claude_bedrock import ClaudeBedrockProvider
from .claude_direct import ClaudeDirectProvider
from .openai_provider import OpenAIProvider
from .resolver import ProviderType, create_ai_provider

__all__ = [
    "AIProvider",
    "ClaudeBedrockProvider",
    "ClaudeDirectProvider",
    "OpenAIProvider",
    "ProviderType",
    "create_ai_provider",
]
