"""
AI Gateway Client for Briefly CoPilot

Thin wrapper around an OpenAI-compatible chat-completions gateway. Two call
styles are supported:

- stream_chat(): returns the SDK's chunk iterator for SSE relaying
- complete_chat(): blocking call used for tool-based extraction, with a
  per-attempt timeout, exponential backoff and strict JSON parsing

Gateway failures are translated into GatewayError subclasses that carry the
HTTP status the API layer should return (429 rate limit, 402 payment
required, 500 otherwise).
"""

import os
import json
import time
import logging
from typing import Iterator, Optional
from dataclasses import dataclass

logger = logging.getLogger(__name__)

DEFAULT_GATEWAY_URL = "https://ai.gateway.lovable.dev/v1"


@dataclass
class GatewayConfig:
    """Configuration for the AI gateway client."""
    base_url: Optional[str] = None
    model: str = "google/gemini-2.5-flash"
    request_timeout: float = 45.0   # Per attempt, blocking calls
    stream_timeout: float = 120.0
    max_retries: int = 2
    backoff_base_seconds: float = 1.0


class GatewayError(Exception):
    """Raised when the AI gateway call fails."""

    status_code = 500

    def __init__(self, message: str, upstream_status: Optional[int] = None):
        super().__init__(message)
        self.upstream_status = upstream_status


class GatewayRateLimitError(GatewayError):
    """The gateway rejected the request because of rate limits."""

    status_code = 429


class GatewayPaymentRequiredError(GatewayError):
    """The gateway workspace has run out of credits."""

    status_code = 402


def translate_gateway_error(error: Exception) -> GatewayError:
    """Map an SDK exception onto the gateway error hierarchy."""
    if isinstance(error, GatewayError):
        return error

    status = getattr(error, "status_code", None)
    if status == 429:
        return GatewayRateLimitError("Rate limits exceeded. Please try again later.", upstream_status=429)
    if status == 402:
        return GatewayPaymentRequiredError(
            "Payment required. Please add credits to your workspace.", upstream_status=402
        )
    return GatewayError(f"AI gateway error: {type(error).__name__}: {error}", upstream_status=status)


class AIGateway:
    """
    Client for the hosted LLM gateway.

    Usage:
        gateway = AIGateway()
        for chunk in gateway.stream_chat(messages):
            ...
        response = gateway.complete_chat(messages, tools=[...], tool_choice={...})
    """

    def __init__(self, config: Optional[GatewayConfig] = None, client=None):
        self.config = config or GatewayConfig()
        self._client = client

    @property
    def client(self):
        if self._client is None:
            from openai import OpenAI

            api_key = os.getenv("AI_GATEWAY_API_KEY")
            if not api_key:
                raise GatewayError("AI service configuration error: AI_GATEWAY_API_KEY is not set")

            self._client = OpenAI(
                base_url=self.config.base_url or os.getenv("AI_GATEWAY_URL", DEFAULT_GATEWAY_URL),
                api_key=api_key,
                max_retries=0,
            )
            logger.info(f"AI gateway client initialized (model={self.config.model})")
        return self._client

    def stream_chat(
        self,
        messages: list[dict],
        model: Optional[str] = None,
        tools: Optional[list[dict]] = None,
        tool_choice=None,
    ) -> Iterator:
        """
        Start a streaming chat completion.

        Errors raised while opening the stream (bad status, auth) are
        translated before any bytes are sent to the caller's client.

        Returns:
            Iterator of ChatCompletionChunk objects
        """
        kwargs = {
            "model": model or self.config.model,
            "messages": messages,
            "stream": True,
        }
        if tools:
            kwargs["tools"] = tools
            kwargs["tool_choice"] = tool_choice or "auto"

        try:
            return self.client.with_options(timeout=self.config.stream_timeout).chat.completions.create(**kwargs)
        except GatewayError:
            raise
        except Exception as e:
            translated = translate_gateway_error(e)
            logger.error(f"AI gateway error: {translated.upstream_status} {e}")
            raise translated from e

    def complete_chat(
        self,
        messages: list[dict],
        model: Optional[str] = None,
        tools: Optional[list[dict]] = None,
        tool_choice=None,
    ) -> dict:
        """
        Blocking chat completion with retry and strict JSON parsing.

        Returns:
            Parsed JSON response body as a dict

        Raises:
            GatewayError: After the final attempt fails
        """
        payload = {
            "model": model or self.config.model,
            "messages": messages,
        }
        if tools:
            payload["tools"] = tools
        if tool_choice:
            payload["tool_choice"] = tool_choice

        last_error = None
        for attempt in range(self.config.max_retries + 1):
            try:
                raw = self.client.with_options(
                    timeout=self.config.request_timeout
                ).chat.completions.with_raw_response.create(**payload)
                text = raw.text
                try:
                    return json.loads(text)
                except ValueError:
                    logger.error(f"JSON parse error (attempt {attempt + 1}), first 300 chars: {text[:300]}")
                    raise GatewayError("Invalid JSON response from AI")
            except Exception as e:
                last_error = translate_gateway_error(e)
                if isinstance(last_error, GatewayPaymentRequiredError):
                    raise last_error from e
                if attempt == self.config.max_retries:
                    break
                delay = self.config.backoff_base_seconds * (2 ** attempt)
                logger.warning(f"Attempt {attempt + 1} failed, retrying in {delay:.0f}s: {e}")
                time.sleep(delay)

        raise last_error


def extract_tool_arguments(response: dict, tool_name: Optional[str] = None) -> Optional[dict]:
    """
    Return the parsed arguments of the first tool call in a completion.

    Args:
        response: Parsed chat-completion JSON
        tool_name: If set, only a call to this function is accepted

    Returns:
        Arguments dict, or None when the model made no usable tool call
    """
    choices = response.get("choices") or []
    if not choices:
        return None
    tool_calls = (choices[0].get("message") or {}).get("tool_calls") or []
    if not tool_calls:
        return None

    function = tool_calls[0].get("function") or {}
    if tool_name and function.get("name") not in (None, tool_name):
        return None
    arguments = function.get("arguments")
    if not arguments:
        return None
    if isinstance(arguments, dict):
        return arguments
    return json.loads(arguments)


def message_content(response: dict) -> str:
    """Return the assistant text of a completion, or an empty string."""
    choices = response.get("choices") or []
    if not choices:
        return ""
    return (choices[0].get("message") or {}).get("content") or ""
