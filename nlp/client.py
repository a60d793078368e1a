"""HTTP client for the language-model gateway.

The gateway speaks the OpenAI-compatible chat-completions protocol. The
client sends one review per request and returns the raw completion text;
turning that text into a timeline is the job of ``timeline.nlp``.

Example:
    >>> from nlp.client import LanguageModelClient
    >>> client = LanguageModelClient(base_url, api_key)
    >>> text = client.analyze_review("Great climax, dull opening.", 118)
"""

import logging

import httpx

from .errors import NlpConfigError, UpstreamError
from .prompts import build_messages


logger = logging.getLogger(__name__)


DEFAULT_GATEWAY_URL = "https://ai.gateway.lovable.dev/v1"
DEFAULT_MODEL = "google/gemini-2.5-flash"


class LanguageModelClient:
    """Client for the chat-completions gateway.

    Attributes:
        base_url: Gateway base URL (without ``/chat/completions``).
        model: Model identifier sent with each request.
        temperature: Sampling temperature.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_GATEWAY_URL,
        api_key: str = "",
        model: str = DEFAULT_MODEL,
        temperature: float = 0.3,
        timeout_sec: float = 60.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.temperature = temperature
        self._api_key = api_key
        self._timeout = httpx.Timeout(timeout_sec)
        self._transport = transport

    def complete(self, messages: list[dict[str, str]]) -> str:
        """Send a chat completion request and return the message content.

        Raises:
            NlpConfigError: If no API key is configured.
            UpstreamError: On transport failure, non-success status, or a
                response without content.
        """
        if not self._api_key:
            raise NlpConfigError(
                "Language-model API key is not configured",
                code="MISSING_API_KEY",
            )

        payload = {
            "model": self.model,
            "messages": messages,
            "temperature": self.temperature,
        }
        headers = {"Authorization": f"Bearer {self._api_key}"}

        try:
            with httpx.Client(timeout=self._timeout, transport=self._transport) as client:
                response = client.post(
                    f"{self.base_url}/chat/completions",
                    json=payload,
                    headers=headers,
                )
        except httpx.HTTPError as exc:
            raise UpstreamError(
                f"Language-model request failed: {exc}",
                code="UPSTREAM_UNAVAILABLE",
            ) from exc

        if response.is_error:
            logger.error(
                "Language-model error: status=%d body=%s",
                response.status_code,
                response.text[:500],
            )
            raise UpstreamError(
                f"AI processing failed: {response.status_code}",
                status_code=response.status_code,
            )

        try:
            content = response.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError):
            content = None

        if not content:
            raise UpstreamError(
                "No content returned from AI",
                code="EMPTY_COMPLETION",
                status_code=response.status_code,
            )

        return content

    def analyze_review(self, review_text: str, runtime_minutes: float) -> str:
        """Ask the model for an emotion timeline of one review.

        Returns:
            Raw completion text, expected to contain a JSON array.
        """
        logger.info(
            "Requesting review analysis: model=%s runtime_minutes=%g chars=%d",
            self.model,
            runtime_minutes,
            len(review_text),
        )
        return self.complete(build_messages(review_text, runtime_minutes))
