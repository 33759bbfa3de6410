"""
LLM client for the grading model.

Provides a wrapper around the OpenAI SDK configured for any
OpenAI-compatible endpoint. Every request is bounded by the configured
timeout and is never retried: a failed grading call surfaces to the
caller, who decides whether to trigger it again.
"""

import logging

from openai import (
    APIConnectionError,
    APIStatusError,
    APITimeoutError,
    OpenAI,
    OpenAIError,
    RateLimitError,
)

from exam_correction.config import Settings, get_settings

logger = logging.getLogger(__name__)


class GraderError(Exception):
    """Raised when the external grading call fails."""

    def __init__(self, message: str, cause: Exception | None = None, retryable: bool = False):
        self.cause = cause
        self.retryable = retryable
        super().__init__(message)


class LLMClient:
    """
    Client for the grading model's chat completions API.

    Uses OpenAI SDK with custom base URL, SDK-level retries disabled and
    an explicit request timeout.
    """

    def __init__(self, settings: Settings | None = None):
        """
        Initialize the LLM client.

        Args:
            settings: Configuration settings. Uses global settings if not provided.
        """
        self._settings = settings or get_settings()
        self._client = OpenAI(
            api_key=self._settings.grader_api_key,
            base_url=self._settings.grader_base_url,
            timeout=self._settings.grader_timeout_seconds,
            max_retries=0,
        )

    def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> str:
        """
        Generate a response from the LLM.

        Args:
            system_prompt: System message defining the LLM's role.
            user_prompt: User message with the actual request.
            temperature: Override temperature (uses config default if None).
            max_tokens: Maximum tokens in response (uses config default if None).

        Returns:
            The generated text response.

        Raises:
            GraderError: If the request fails, times out or returns nothing.
        """
        temp = temperature if temperature is not None else self._settings.grader_temperature
        tokens = max_tokens or self._settings.grader_max_tokens

        messages: list[dict[str, str]] = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ]

        try:
            response = self._client.chat.completions.create(
                model=self._settings.grader_model,
                messages=messages,  # type: ignore[arg-type]
                temperature=temp,
                max_tokens=tokens,
            )
        except APITimeoutError as e:
            raise GraderError(
                f"Grading request timed out after {self._settings.grader_timeout_seconds}s",
                cause=e,
                retryable=True,
            ) from e
        except RateLimitError as e:
            raise GraderError("Grading quota exceeded", cause=e, retryable=True) from e
        except APIConnectionError as e:
            raise GraderError("Connection to grading model failed", cause=e, retryable=True) from e
        except APIStatusError as e:
            # 5xx may succeed on a later attempt, 4xx will not
            raise GraderError(
                f"API error: {e.message}",
                cause=e,
                retryable=e.status_code >= 500,
            ) from e
        except OpenAIError as e:
            raise GraderError(f"Unexpected error: {e}", cause=e) from e

        if response.choices and response.choices[0].message.content:
            return response.choices[0].message.content

        raise GraderError("Empty response from grading model")

    def health_check(self) -> bool:
        """
        Check if the API is reachable.

        Returns:
            True if API is healthy, False otherwise.
        """
        try:
            response = self._client.chat.completions.create(
                model=self._settings.grader_model,
                messages=[{"role": "user", "content": "ping"}],
                max_tokens=5,
            )
            return bool(response.choices)
        except OpenAIError as e:
            logger.warning("Grading model health check failed: %s", e)
            return False
