"""OpenAI-compatible chat completion client."""
import abc
from typing import Any, Dict, List, Optional

import httpx
from pydantic import BaseModel, Field, ValidationError

from execution.rate_limiter import RequestThrottle
from utils.logger import setup_logger
import config

logger = setup_logger(__name__)

TRUNCATION_REASONS = ("length", "max_tokens")
RETRYABLE_STATUS_CODES = {408, 409, 429}


class LLMError(Exception):
    """Base class for failed LLM calls."""
    pass


class LLMTransportError(LLMError):
    """Timeout, refused connection, DNS failure. Always retryable."""
    pass


class LLMProviderError(LLMError):
    """Non-2xx response from the provider."""

    def __init__(self, status_code: int, message: str):
        super().__init__(f"AI service error ({status_code}): {message}")
        self.status_code = status_code
        self.provider_message = message

    @property
    def retryable(self) -> bool:
        return self.status_code in RETRYABLE_STATUS_CODES or self.status_code >= 500


class LLMEnvelopeError(LLMError):
    """2xx response without the expected choices/message/content."""
    pass


class Completion(BaseModel):
    content: str
    finish_reason: Optional[str] = None
    usage: Dict[str, Any] = Field(default_factory=dict)

    @property
    def truncated(self) -> bool:
        """True when the provider cut the reply at its output limit."""
        return (self.finish_reason or "").lower() in TRUNCATION_REASONS


class ModelInfo(BaseModel):
    id: str
    name: str
    context_length: int = config.DEFAULT_LISTED_CONTEXT_LENGTH
    max_completion_tokens: Optional[int] = None
    pricing: Optional[Dict[str, Any]] = None

    @property
    def is_free(self) -> bool:
        if not self.pricing:
            return "free" in self.id
        prompt_free = str(self.pricing.get("prompt")) in ("0", "0.0")
        completion_free = str(self.pricing.get("completion")) in ("0", "0.0")
        return (prompt_free and completion_free) or ":free" in self.id


class ConnectionStatus(BaseModel):
    success: bool
    model_count: int = 0
    error: Optional[str] = None


class BaseLLMClient(abc.ABC):
    """What the pipeline needs from an LLM provider."""

    @abc.abstractmethod
    async def chat(
        self,
        model: str,
        prompt: str,
        max_tokens: int,
        allow_empty: bool = False
    ) -> Completion:
        """Send one user message, return the first choice"""
        pass

    @abc.abstractmethod
    async def list_models(self) -> List[ModelInfo]:
        """List models with their capabilities"""
        pass

    async def get_model_info(self, model_id: str) -> Optional[ModelInfo]:
        """Look up one model's metadata, None if the provider doesn't list it."""
        for info in await self.list_models():
            if info.id == model_id:
                return info
        return None


class OpenAICompatibleClient(BaseLLMClient):
    """Client for any provider exposing /chat/completions and /models."""

    def __init__(
        self,
        api_key: str,
        base_url: str = config.LLM_API_BASE_URL,
        timeout: float = config.AI_REQUEST_TIMEOUT,
        throttle: Optional[RequestThrottle] = None,
        http_client: Optional[httpx.AsyncClient] = None
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.throttle = throttle if throttle is not None else RequestThrottle(config.API_CALL_DELAY)
        self._client = http_client or httpx.AsyncClient(timeout=timeout)
        self.request_count = 0
        self.total_tokens_used = 0

    async def __aenter__(self) -> "OpenAICompatibleClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    @property
    def headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    async def chat(
        self,
        model: str,
        prompt: str,
        max_tokens: int,
        allow_empty: bool = False
    ) -> Completion:
        """Send a non-streaming chat completion request.

        Args:
            model: Model id
            prompt: User message content
            max_tokens: Response token cap
            allow_empty: Accept an empty message (used for continuations)

        Returns:
            Completion for the first choice

        Raises:
            LLMTransportError: Timeout or connection failure
            LLMProviderError: Non-2xx status
            LLMEnvelopeError: Missing choices or message content
        """
        payload = {
            "model": model,
            "messages": [{"role": "user", "content": prompt}],
            "max_tokens": max_tokens,
            "stream": False,
        }
        data = await self._request("POST", "/chat/completions", json=payload)
        completion = self._parse_completion(data, allow_empty)

        total = completion.usage.get("total_tokens")
        if isinstance(total, int):
            self.total_tokens_used += total
        logger.debug(
            f"LLM ('{model}') reply: {len(completion.content)} chars, finish_reason={completion.finish_reason}"
        )
        return completion

    async def list_models(self) -> List[ModelInfo]:
        """Fetch available models from the provider.

        Raises:
            LLMError: If the request fails or the listing is malformed
        """
        data = await self._request("GET", "/models")
        models = data.get("data", data) if isinstance(data, dict) else data
        if not isinstance(models, list):
            raise LLMEnvelopeError("Unexpected response format from models endpoint")

        available = []
        for raw in models:
            if not isinstance(raw, dict) or not raw.get("id"):
                continue
            try:
                available.append(self._parse_model(raw))
            except ValidationError as e:
                logger.warning(f"Skipping malformed model entry {raw.get('id')!r}: {e}")
        return available

    async def test_connection(self) -> ConnectionStatus:
        """Check that the base URL and API key work."""
        try:
            data = await self._request("GET", "/models", timeout=config.CONNECTION_TEST_TIMEOUT)
        except LLMError as e:
            return ConnectionStatus(success=False, error=str(e))

        models = data.get("data", data) if isinstance(data, dict) else data
        return ConnectionStatus(success=True, model_count=len(models) if isinstance(models, list) else 0)

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        await self.throttle.acquire()
        self.request_count += 1

        try:
            response = await self._client.request(
                method, f"{self.base_url}{path}", headers=self.headers, **kwargs
            )
        except httpx.TimeoutException as e:
            raise LLMTransportError(
                "AI request timed out. The book may be too large or the AI service is slow."
            ) from e
        except httpx.RequestError as e:
            raise LLMTransportError(
                f"No response from AI service ({type(e).__name__}). Check your connection and API base URL."
            ) from e

        if response.is_error:
            raise LLMProviderError(response.status_code, self._error_message(response))

        try:
            return response.json()
        except ValueError as e:
            raise LLMEnvelopeError(f"AI response is not JSON: {response.text[:200]}") from e

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.reason_phrase or response.text[:200]

        error = body.get("error") if isinstance(body, dict) else None
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str):
            return error
        return response.reason_phrase or str(body)[:200]

    @staticmethod
    def _parse_completion(data: Any, allow_empty: bool) -> Completion:
        if not isinstance(data, dict):
            raise LLMEnvelopeError("AI response is not a JSON object")

        choices = data.get("choices")
        if not choices or not isinstance(choices, list):
            # Some gateways return 200 with an error body
            error = data.get("error")
            if isinstance(error, dict):
                code = error.get("code")
                raise LLMProviderError(code if isinstance(code, int) else 502, str(error.get("message")))
            raise LLMEnvelopeError("AI response missing choices")

        choice = choices[0] if isinstance(choices[0], dict) else {}
        message = choice.get("message")
        if not isinstance(message, dict):
            raise LLMEnvelopeError("AI response missing message")

        content = message.get("content")
        if isinstance(content, list):
            content = "".join(
                str(part.get("text") or "") for part in content if isinstance(part, dict)
            )

        if not isinstance(content, str) or (not content and not allow_empty):
            raise LLMEnvelopeError("AI response missing message content")

        finish_reason = choice.get("finish_reason")
        usage = data.get("usage")

        return Completion(
            content=content,
            finish_reason=finish_reason if isinstance(finish_reason, str) else None,
            usage=usage if isinstance(usage, dict) else {},
        )

    @staticmethod
    def _parse_model(raw: Dict[str, Any]) -> ModelInfo:
        top_provider = raw.get("top_provider")
        if not isinstance(top_provider, dict):
            top_provider = {}
        return ModelInfo(
            id=raw["id"],
            name=raw.get("name") or raw["id"],
            context_length=raw.get("context_length") or config.DEFAULT_LISTED_CONTEXT_LENGTH,
            max_completion_tokens=(
                raw.get("max_completion_tokens") or top_provider.get("max_completion_tokens")
            ),
            pricing=raw.get("pricing"),
        )
