"""Ollama client wrapper with timeout and bounded-retry handling."""
import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from docrag import config
from docrag.errors import ModelError

logger = structlog.get_logger()

T = TypeVar("T")

MAX_BACKOFF_SECONDS = 10.0


def _json_object(response: httpx.Response, operation: str) -> Dict[str, Any]:
    """Decode a response body that must be a JSON object."""
    try:
        data = response.json()
    except ValueError as e:
        logger.error("ollama_invalid_json", operation=operation, body_preview=response.text[:100])
        raise ModelError(operation, f"response body is not JSON: {e}") from e

    if not isinstance(data, dict):
        raise ModelError(operation, f"expected a JSON object, got {type(data).__name__}")

    return data


class OllamaClient:
    """Async client for the Ollama embedding and generation endpoints.

    Transport and HTTP status errors are re-raised as httpx exceptions so the
    caller can decide whether to retry. A body that is not the expected JSON
    shape raises ModelError.
    """

    def __init__(
        self,
        base_url: str = None,
        timeout: float = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize Ollama client.

        Args:
            base_url: Ollama API base URL (defaults to config.OLLAMA_BASE_URL)
            timeout: Request timeout in seconds (defaults to config.MODEL_TIMEOUT)
            transport: Optional httpx transport, used to stub the server in tests
        """
        self.base_url = base_url or config.OLLAMA_BASE_URL
        self.timeout = config.MODEL_TIMEOUT if timeout is None else timeout
        self.transport = transport

    def _client(self, timeout: float = None) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout if timeout is None else timeout,
            transport=self.transport,
        )

    async def embed(
        self,
        inputs: List[str],
        model: str = None,
        truncate: bool = True,
    ) -> Dict[str, Any]:
        """Embed a batch of texts.

        Args:
            inputs: Texts to embed
            model: Model to use (defaults to config.EMBEDDING_MODEL)
            truncate: Let the server truncate inputs past the model context

        Returns:
            Response dict whose 'embeddings' is a list, one vector per input

        Raises:
            httpx.HTTPError: On API errors
            ModelError: If the body is not a JSON object with an 'embeddings' list
        """
        model = model or config.EMBEDDING_MODEL

        payload = {
            "model": model,
            "input": inputs,
            "truncate": truncate,
        }

        try:
            async with self._client() as client:
                logger.debug(
                    "ollama_embed_request",
                    model=model,
                    batch_size=len(inputs),
                )

                response = await client.post("/api/embed", json=payload)
                response.raise_for_status()

        except httpx.HTTPError as e:
            logger.error("ollama_embed_error", error=str(e), base_url=self.base_url)
            raise

        data = _json_object(response, "embedding")
        if not isinstance(data.get("embeddings"), list):
            raise ModelError("embedding", "response has no 'embeddings' list")

        logger.debug(
            "ollama_embed_response",
            model=model,
            vectors=len(data["embeddings"]),
        )

        return data

    async def generate(
        self,
        prompt: str,
        model: str = None,
        options: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Send a non-streaming completion request.

        Args:
            prompt: Fully rendered prompt
            model: Model to use (defaults to config.CHAT_MODEL)
            options: Ollama model options (num_predict, num_ctx, temperature, ...)

        Returns:
            Response dict with a str 'response', plus 'prompt_eval_count' and 'eval_count'

        Raises:
            httpx.HTTPError: On API errors
            httpx.ConnectError: If Ollama service is unavailable
            ModelError: If the body is not a JSON object with a str 'response'
        """
        model = model or config.CHAT_MODEL

        payload = {
            "model": model,
            "prompt": prompt,
            "stream": False,
        }
        if options:
            payload["options"] = options

        try:
            async with self._client() as client:
                logger.info(
                    "ollama_generate_request",
                    model=model,
                    prompt_length=len(prompt),
                )

                response = await client.post("/api/generate", json=payload)
                response.raise_for_status()

        except httpx.ConnectError as e:
            logger.error("ollama_connection_error", error=str(e), base_url=self.base_url)
            raise
        except httpx.HTTPError as e:
            logger.error(
                "ollama_http_error",
                error=str(e),
                status_code=getattr(getattr(e, "response", None), "status_code", None),
            )
            raise

        data = _json_object(response, "generation")
        if not isinstance(data.get("response"), str):
            raise ModelError("generation", "response has no 'response' text")

        logger.info(
            "ollama_generate_response",
            model=model,
            response_length=len(data["response"]),
            eval_count=data.get("eval_count"),
        )

        return data

    async def list_models(self) -> List[str]:
        """List all available Ollama models.

        Raises:
            httpx.HTTPError: On API errors
            ModelError: If the body is not a JSON object
        """
        try:
            async with self._client(timeout=5.0) as client:
                response = await client.get("/api/tags")
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error("ollama_list_models_error", error=str(e))
            raise

        data = _json_object(response, "list_models")
        return [m["name"] for m in data.get("models", []) if isinstance(m, dict) and "name" in m]

    async def ensure_models(self, *names: str) -> None:
        """Check that the server is reachable and has every named model pulled.

        Raises:
            ModelError: If the server is unreachable or a model is missing
        """
        try:
            available = await self.list_models()
        except httpx.HTTPError as e:
            raise ModelError("list_models", str(e)) from e

        # an untagged name refers to the ":latest" tag
        missing = [
            name for name in names
            if name not in available and f"{name}:latest" not in available
        ]
        if missing:
            logger.error("ollama_models_missing", missing=missing, available=available)
            raise ModelError(
                "list_models",
                f"models not available on {self.base_url}: {', '.join(missing)} "
                f"(run `ollama pull <model>`)",
            )


def _is_retryable(error: BaseException) -> bool:
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code >= 500
    return isinstance(error, (httpx.HTTPError, TimeoutError))


def _log_retry(operation: str) -> Callable[[RetryCallState], None]:
    def before_sleep(retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception()
        logger.warning(
            "model_call_retrying",
            operation=operation,
            attempt=retry_state.attempt_number,
            wait_seconds=retry_state.next_action.sleep if retry_state.next_action else None,
            error=str(error),
            error_type=type(error).__name__,
        )

    return before_sleep


async def call_with_retries(
    operation: str,
    call: Callable[[], Awaitable[T]],
    timeout: float,
    max_retries: int,
    backoff: float = 0.5,
) -> T:
    """Run a model call under a timeout, retrying transient failures.

    The call is attempted at most ``max_retries + 1`` times. Transport
    errors, timeouts and HTTP 5xx responses are retried; HTTP 4xx responses
    and any other exception are raised on the first occurrence.

    Args:
        operation: Name used in logs and in the raised ModelError
        call: Zero-argument coroutine factory, invoked once per attempt
        timeout: Per-attempt timeout in seconds
        max_retries: Retries after the first attempt
        backoff: Base delay in seconds, doubled after each failed attempt

    Raises:
        ModelError: Once the call fails permanently or the attempts run out
    """
    retrying = AsyncRetrying(
        stop=stop_after_attempt(max_retries + 1),
        wait=wait_exponential(multiplier=backoff, max=MAX_BACKOFF_SECONDS),
        retry=retry_if_exception(_is_retryable),
        before_sleep=_log_retry(operation),
        reraise=True,
    )

    try:
        async for attempt in retrying:
            with attempt:
                async with asyncio.timeout(timeout):
                    result = await call()
    except (httpx.HTTPError, TimeoutError) as e:
        message = str(e) or f"timed out after {timeout}s"
        logger.error(
            "model_call_failed",
            operation=operation,
            max_attempts=max_retries + 1,
            error=message,
            error_type=type(e).__name__,
        )
        raise ModelError(operation, message) from e

    return result
