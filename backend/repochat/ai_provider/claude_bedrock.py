"""Claude Bedrock provider implementation.

This module provides an AIProvider implementation that connects to Claude
via AWS Bedrock service.

Usage:
    provider = ClaudeBedrockProvider(
        aws_access_key_id="...",
        aws_secret_access_key="...",
        region_name="us-east-1"
    )
    answer = provider.call_model("Translate ...")
"""
import json
import logging
from typing import Iterator, Optional

from .base import AIProvider

logger = logging.getLogger(__name__)

ANTHROPIC_VERSION = "bedrock-2023-05-31"


class ClaudeBedrockProvider(AIProvider):
    """AIProvider implementation using Claude via AWS Bedrock.

    Note: Newer Claude models require cross-region inference profiles
    instead of direct model IDs; the default uses the US inference profile.

    Attributes:
        aws_access_key_id: AWS access key ID.
        aws_secret_access_key: AWS secret access key.
        region_name: AWS region for Bedrock service.
        model_id: Bedrock model ID or inference profile ID for Claude.
        timeout_seconds: Read timeout for each Bedrock call.
    """

    DEFAULT_MODEL_ID = "us.anthropic.claude-sonnet-4-5-20250929-v1:0"
    DEFAULT_REGION = "us-east-1"

    def __init__(
        self,
        aws_access_key_id: Optional[str] = None,
        aws_secret_access_key: Optional[str] = None,
        aws_session_token: Optional[str] = None,
        region_name: Optional[str] = None,
        model_id: Optional[str] = None,
        timeout_seconds: float = 120.0,
    ) -> None:
        """Initialize the Claude Bedrock provider.

        Args:
            aws_access_key_id: AWS access key ID. If None, uses default credential chain.
            aws_secret_access_key: AWS secret access key.
            aws_session_token: Optional AWS session token for temporary credentials.
            region_name: AWS region for Bedrock. Defaults to us-east-1.
            model_id: Bedrock model ID or inference profile.
            timeout_seconds: Read timeout in seconds.
        """
        self.aws_access_key_id = aws_access_key_id
        self.aws_secret_access_key = aws_secret_access_key
        self.aws_session_token = aws_session_token
        self.region_name = region_name or self.DEFAULT_REGION
        self.model_id = model_id or self.DEFAULT_MODEL_ID
        self.timeout_seconds = timeout_seconds
        self._client: Optional[object] = None

    def _get_client(self) -> object:
        """Get or create the Bedrock runtime client.

        Raises:
            ImportError: If boto3 package is not installed.
        """
        if self._client is None:
            try:
                import boto3
                from botocore.config import Config
            except ImportError as exc:
                raise ImportError(
                    "boto3 package is required for ClaudeBedrockProvider. "
                    "Install it with: pip install boto3"
                ) from exc
            kwargs = {
                "region_name": self.region_name,
                "config": Config(read_timeout=self.timeout_seconds),
            }
            if self.aws_access_key_id and self.aws_secret_access_key:
                kwargs["aws_access_key_id"] = self.aws_access_key_id
                kwargs["aws_secret_access_key"] = self.aws_secret_access_key
            if self.aws_session_token:
                kwargs["aws_session_token"] = self.aws_session_token
            self._client = boto3.client("bedrock-runtime", **kwargs)
        return self._client

    @staticmethod
    def _body(
        prompt: str,
        max_tokens: int,
        system: Optional[str],
        temperature: Optional[float],
    ) -> str:
        payload = {
            "anthropic_version": ANTHROPIC_VERSION,
            "max_tokens": max_tokens,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system:
            payload["system"] = system
        if temperature is not None:
            payload["temperature"] = temperature
        return json.dumps(payload)

    def health_check(self) -> bool:
        """Check if Claude via Bedrock is accessible with a one-token request."""
        try:
            client = self._get_client()
            client.invoke_model(
                modelId=self.model_id,
                body=self._body("hi", 1, None, None),
            )
            return True
        except Exception as e:
            logger.warning(f"Claude Bedrock health check failed: {e}")
            return False

    def call_model(
        self,
        prompt: str,
        max_tokens: int = 2048,
        system: Optional[str] = None,
        temperature: Optional[float] = None,
    ) -> str:
        """Call the Claude model via Bedrock with a raw prompt."""
        client = self._get_client()
        response = client.invoke_model(
            modelId=self.model_id,
            body=self._body(prompt, max_tokens, system, temperature),
        )
        response_body = json.loads(response["body"].read())
        return "".join(
            block.get("text", "") for block in response_body.get("content", [])
        ).strip()

    def stream_model(
        self,
        prompt: str,
        max_tokens: int = 2048,
        system: Optional[str] = None,
        temperature: Optional[float] = None,
    ) -> Iterator[str]:
        """Stream Claude's answer via ``invoke_model_with_response_stream``.

        Only ``content_block_delta`` text deltas are forwarded; the event
        stream is closed when the generator finishes or is closed.
        """
        client = self._get_client()
        response = client.invoke_model_with_response_stream(
            modelId=self.model_id,
            body=self._body(prompt, max_tokens, system, temperature),
        )
        event_stream = response["body"]
        try:
            for event in event_stream:
                chunk = event.get("chunk")
                if not chunk:
                    continue
                payload = json.loads(chunk["bytes"])
                if payload.get("type") != "content_block_delta":
                    continue
                delta = payload.get("delta", {})
                if delta.get("type") == "text_delta" and delta.get("text"):
                    yield delta["text"]
        finally:
            close = getattr(event_stream, "close", None)
            if close is not None:
                close()
