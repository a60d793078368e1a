"""Language-model access for review analysis.

This module provides:
- An httpx client for an OpenAI-compatible chat-completions gateway
- Prompt templates for review-to-timeline extraction
- Error types for configuration and upstream failures
"""

from .client import DEFAULT_GATEWAY_URL, DEFAULT_MODEL, LanguageModelClient
from .errors import NlpConfigError, NlpError, UpstreamError
from .prompts import SYSTEM_PROMPT, build_messages, build_user_prompt


__all__ = [
    "DEFAULT_GATEWAY_URL",
    "DEFAULT_MODEL",
    "LanguageModelClient",
    "NlpConfigError",
    "NlpError",
    "SYSTEM_PROMPT",
    "UpstreamError",
    "build_messages",
    "build_user_prompt",
]
