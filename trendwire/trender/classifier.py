"""
External text-classification providers.

Abstracts the chat-completion service used to derive per-document keywords
and to select trending terms. Every failure surfaces as a ``ClassifierError``
so callers can fall back locally; ``NoLLMClassifier`` is used when no service
is configured.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import httpx
import openai
from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential, retry_if_exception

from trendwire.core.logging import get_logger
from trendwire.core.settings import Settings, get_settings

logger = get_logger(__name__)

DEFAULT_TEMPERATURE = 0.3


class ClassifierError(Exception):
    """Base class for recoverable external classifier failures."""


class ClassifierUnavailableError(ClassifierError):
    """No classifier configured or the service cannot be reached."""


class ClassifierTimeoutError(ClassifierError):
    """The classifier did not answer within the configured timeout."""


class ClassifierResponseError(ClassifierError):
    """The classifier answered with an error status or an unusable body."""


class TextClassifier(ABC):
    """Abstract base class for classification providers."""

    @abstractmethod
    async def classify(
        self,
        system_instruction: str,
        user_payload: str,
        response_schema: Optional[Dict[str, Any]] = None,
        max_tokens: int = 200,
    ) -> str:
        """
        Run one classification call.

        Args:
            system_instruction: Task description for the model
            user_payload: The text or candidate list to classify
            response_schema: Optional JSON schema the answer must follow
            max_tokens: Token budget for the answer

        Returns:
            Raw text content of the answer

        Raises:
            ClassifierError: on any failure
        """

    @abstractmethod
    async def health_check(self) -> Dict[str, Any]:
        """Check provider availability."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Provider identification name."""

    async def aclose(self) -> None:
        """Release network resources, if any."""


class NoLLMClassifier(TextClassifier):
    """Provider used when no external service is configured; always fails."""

    @property
    def provider_name(self) -> str:
        return "NoLLM"

    async def health_check(self) -> Dict[str, Any]:
        return {
            "status": "unavailable",
            "provider": self.provider_name,
            "message": "No classifier configured",
            "timestamp": datetime.now(timezone.utc).isoformat()
        }

    async def classify(self, system_instruction: str, user_payload: str,
                       response_schema: Optional[Dict[str, Any]] = None,
                       max_tokens: int = 200) -> str:
        raise ClassifierUnavailableError("No classifier configured")


def _is_retryable(error: BaseException) -> bool:
    # Connection failures get another attempt; timeouts are final
    return isinstance(error, openai.APIConnectionError) and not isinstance(error, openai.APITimeoutError)


class OpenAIChatClassifier(TextClassifier):
    """Classifier backed by an OpenAI-compatible chat-completions endpoint."""

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        base_url: str = "https://api.openai.com/v1",
        timeout: float = 20.0,
        max_retries: int = 2,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.model = model
        self.max_retries = max_retries
        self.call_count = 0
        # Retries are driven by tenacity, so the SDK makes a single attempt
        self.client = openai.AsyncOpenAI(
            api_key=api_key,
            base_url=base_url.rstrip('/'),
            timeout=timeout,
            max_retries=0,
            http_client=http_client,
        )

    @property
    def provider_name(self) -> str:
        return f"OpenAI:{self.model}"

    async def aclose(self) -> None:
        await self.client.close()

    async def health_check(self) -> Dict[str, Any]:
        return {
            "status": "configured",
            "provider": self.provider_name,
            "calls_made": self.call_count,
            "timestamp": datetime.now(timezone.utc).isoformat()
        }

    def _build_request(self, system_instruction: str, user_payload: str,
                       response_schema: Optional[Dict[str, Any]], max_tokens: int) -> Dict[str, Any]:
        request: Dict[str, Any] = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_instruction},
                {"role": "user", "content": user_payload},
            ],
            "temperature": DEFAULT_TEMPERATURE,
            "max_tokens": max_tokens,
        }
        if response_schema is not None:
            request["response_format"] = {
                "type": "json_schema",
                "json_schema": {
                    "name": response_schema.get("title", "response"),
                    "schema": response_schema,
                    "strict": False,
                },
            }
        return request

    async def _create(self, request: Dict[str, Any]) -> Any:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.max_retries),
            wait=wait_exponential(multiplier=0.5, max=4),
            retry=retry_if_exception(_is_retryable),
            reraise=True,
        ):
            with attempt:
                return await self.client.chat.completions.create(**request)

    @staticmethod
    def _extract_content(completion: Any) -> str:
        # Non-JSON bodies come back from the SDK as plain text
        try:
            content = completion.choices[0].message.content
        except (AttributeError, IndexError, TypeError) as e:
            raise ClassifierResponseError(f"Unexpected response structure: {e}") from e
        if not isinstance(content, str) or not content.strip():
            raise ClassifierResponseError("Empty classifier response")
        return content.strip()

    async def classify(self, system_instruction: str, user_payload: str,
                       response_schema: Optional[Dict[str, Any]] = None,
                       max_tokens: int = 200) -> str:
        self.call_count += 1
        request = self._build_request(system_instruction, user_payload, response_schema, max_tokens)

        try:
            completion = await self._create(request)
        except openai.APITimeoutError as e:
            raise ClassifierTimeoutError(f"{self.provider_name} timed out") from e
        except openai.APIStatusError as e:
            raise ClassifierResponseError(f"{self.provider_name} returned HTTP {e.status_code}") from e
        except openai.APIConnectionError as e:
            raise ClassifierUnavailableError(f"{self.provider_name} unreachable: {e}") from e
        except openai.APIError as e:
            raise ClassifierResponseError(f"{self.provider_name} failed: {e}") from e
        except ValueError as e:
            # Undecodable or invalid JSON bodies
            raise ClassifierResponseError(f"{self.provider_name} returned an unreadable body: {e}") from e

        return self._extract_content(completion)


class ClassifierFactory:
    """Factory for creating classifier instances."""

    @classmethod
    def create(cls, settings: Optional[Settings] = None) -> TextClassifier:
        """
        Create the classifier described by ``settings``.

        Without an API key the NoLLM provider is returned, so every selection
        takes the local fallback path.
        """
        settings = settings or get_settings()
        if not settings.llm_api_key:
            logger.info("No classifier API key configured, using frequency-based fallback only")
            return NoLLMClassifier()

        return OpenAIChatClassifier(
            api_key=settings.llm_api_key,
            model=settings.llm_model,
            base_url=settings.llm_base_url,
            timeout=settings.llm_timeout_seconds,
            max_retries=settings.llm_max_retries,
        )


def create_classifier(settings: Optional[Settings] = None) -> TextClassifier:
    return ClassifierFactory.create(settings)
