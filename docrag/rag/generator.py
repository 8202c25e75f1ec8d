"""Generation adapters.

``OllamaGenerator`` checks the prompt against the model's sequence-length
budget before calling the model, so an over-long prompt fails with
PromptTooLong instead of being silently truncated by the server.
"""
import math
from abc import ABC, abstractmethod
from typing import Callable, Optional

import structlog
from pydantic import BaseModel, Field, ValidationError

from docrag import config
from docrag.errors import (
    InvalidArgument,
    ModelError,
    PromptTooLong,
    require_non_negative_int,
    require_positive_int,
    require_positive_number,
)
from docrag.llm_client import OllamaClient, call_with_retries

logger = structlog.get_logger()


class GenerationResult(BaseModel):
    """Generated text plus token accounting."""

    text: str
    input_tokens: Optional[int] = Field(default=None, ge=0)
    output_tokens: Optional[int] = Field(default=None, ge=0)
    padding_tokens: int = Field(default=0, ge=0)
    model: Optional[str] = None


def estimate_tokens(text: str) -> int:
    """Estimate a token count from the character length (no tokenizer needed)."""
    return math.ceil(len(text) / config.CHARS_PER_TOKEN)


class BaseGenerator(ABC):
    """Abstract base class for text generation models."""

    @abstractmethod
    async def generate(self, prompt: str, max_new_tokens: int = None) -> GenerationResult:
        """Generate a completion for ``prompt``."""


class OllamaGenerator(BaseGenerator):
    """Generator backed by an Ollama completion model."""

    def __init__(
        self,
        client: Optional[OllamaClient] = None,
        model: str = None,
        max_sequence_length: int = None,
        max_new_tokens: int = None,
        token_counter: Callable[[str], int] = estimate_tokens,
        temperature: Optional[float] = None,
        timeout: float = None,
        max_retries: int = None,
    ):
        """Initialize the generator.

        Args:
            client: Ollama client (a default one is created if not provided)
            model: Chat model name (default from config)
            max_sequence_length: Prompt plus output token budget (default from config)
            max_new_tokens: Default output budget (default from config)
            token_counter: Function estimating the token count of a prompt
            temperature: Sampling temperature, model default if None
            timeout: Per-request timeout in seconds (default from config)
            max_retries: Retries after the first attempt (default from config)
        """
        self.client = client or OllamaClient()
        self.model = model or config.CHAT_MODEL
        self.max_sequence_length = require_positive_int(
            "max_sequence_length",
            config.MAX_SEQUENCE_LENGTH if max_sequence_length is None else max_sequence_length,
        )
        self.max_new_tokens = require_positive_int(
            "max_new_tokens", config.MAX_NEW_TOKENS if max_new_tokens is None else max_new_tokens
        )
        self.token_counter = token_counter
        self.temperature = temperature
        self.timeout = require_positive_number(
            "timeout", config.MODEL_TIMEOUT if timeout is None else timeout
        )
        self.max_retries = require_non_negative_int(
            "max_retries", config.MODEL_MAX_RETRIES if max_retries is None else max_retries
        )

    def check_prompt(self, prompt: str, max_new_tokens: int) -> int:
        """Return the prompt's token count, or raise if it cannot fit the budget.

        Raises:
            InvalidArgument: If max_new_tokens is not positive
            PromptTooLong: If prompt tokens plus max_new_tokens exceed the sequence length
        """
        require_positive_int("max_new_tokens", max_new_tokens)

        prompt_tokens = self.token_counter(prompt)
        if prompt_tokens + max_new_tokens > self.max_sequence_length:
            logger.error(
                "prompt_too_long",
                prompt_tokens=prompt_tokens,
                max_new_tokens=max_new_tokens,
                max_sequence_length=self.max_sequence_length,
            )
            raise PromptTooLong(prompt_tokens, max_new_tokens, self.max_sequence_length)

        return prompt_tokens

    async def generate(self, prompt: str, max_new_tokens: int = None) -> GenerationResult:
        """Generate a completion.

        Raises:
            PromptTooLong: Before any model call, if the prompt does not fit
            ModelError: If the model is unreachable or returns no text
        """
        if max_new_tokens is None:
            max_new_tokens = self.max_new_tokens
        prompt_tokens = self.check_prompt(prompt, max_new_tokens)

        options = {
            "num_predict": max_new_tokens,
            "num_ctx": self.max_sequence_length,
        }
        if self.temperature is not None:
            options["temperature"] = self.temperature

        data = await call_with_retries(
            "generation",
            lambda: self.client.generate(prompt, model=self.model, options=options),
            timeout=self.timeout,
            max_retries=self.max_retries,
        )

        if not isinstance(data, dict) or not isinstance(data.get("response"), str):
            raise ModelError("generation", "model response has no 'response' text")

        try:
            result = GenerationResult(
                text=data["response"],
                input_tokens=data.get("prompt_eval_count", prompt_tokens),
                output_tokens=data.get("eval_count"),
                model=self.model,
            )
        except ValidationError as e:
            raise ModelError("generation", f"malformed token counts: {e}") from e

        logger.info(
            "generation_completed",
            model=self.model,
            input_tokens=result.input_tokens,
            output_tokens=result.output_tokens,
        )

        return result
