"""Tests for the Ollama generation adapter."""
import json

import httpx
import pytest

from docrag.errors import InvalidArgument, ModelError, PromptTooLong
from docrag.rag.generator import GenerationResult, OllamaGenerator, estimate_tokens


def generate_handler(requests: list):
    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        requests.append(body)
        return httpx.Response(
            200,
            json={"response": "Paris.", "prompt_eval_count": 12, "eval_count": 3, "done": True},
        )

    return handler


@pytest.mark.asyncio
async def test_generate_returns_text_and_token_counts(make_client):
    requests = []
    generator = OllamaGenerator(
        client=make_client(generate_handler(requests)),
        model="test-chat",
        max_sequence_length=512,
    )

    result = await generator.generate("What is the capital of France?", max_new_tokens=32)

    assert result == GenerationResult(
        text="Paris.", input_tokens=12, output_tokens=3, padding_tokens=0, model="test-chat"
    )
    assert requests[0]["model"] == "test-chat"
    assert requests[0]["stream"] is False
    assert requests[0]["options"] == {"num_predict": 32, "num_ctx": 512}


@pytest.mark.asyncio
async def test_prompt_too_long_fails_before_model_call(make_client):
    requests = []
    generator = OllamaGenerator(
        client=make_client(generate_handler(requests)),
        max_sequence_length=100,
        token_counter=len,
    )

    with pytest.raises(PromptTooLong) as exc_info:
        await generator.generate("x" * 90, max_new_tokens=20)

    assert exc_info.value.prompt_tokens == 90
    assert exc_info.value.max_sequence_length == 100
    assert requests == []


@pytest.mark.asyncio
async def test_prompt_exactly_at_budget_is_accepted(make_client):
    requests = []
    generator = OllamaGenerator(
        client=make_client(generate_handler(requests)),
        max_sequence_length=100,
        token_counter=len,
    )

    await generator.generate("x" * 80, max_new_tokens=20)

    assert len(requests) == 1


@pytest.mark.asyncio
async def test_invalid_max_new_tokens(make_client):
    generator = OllamaGenerator(client=make_client(generate_handler([])))

    with pytest.raises(InvalidArgument):
        await generator.generate("hello", max_new_tokens=-5)


@pytest.mark.asyncio
async def test_backend_failure_is_model_error(make_client):
    def handler(request):
        return httpx.Response(500, json={"error": "out of memory"})

    generator = OllamaGenerator(client=make_client(handler), max_retries=0)

    with pytest.raises(ModelError):
        await generator.generate("hello", max_new_tokens=8)


@pytest.mark.asyncio
async def test_missing_response_field(make_client):
    def handler(request):
        return httpx.Response(200, json={"done": True})

    generator = OllamaGenerator(client=make_client(handler))

    with pytest.raises(ModelError):
        await generator.generate("hello", max_new_tokens=8)


def test_estimate_tokens_rounds_up():
    assert estimate_tokens("") == 0
    assert estimate_tokens("abcd") == 1
    assert estimate_tokens("abcde") == 2


@pytest.mark.asyncio
async def test_zero_max_new_tokens_is_rejected_not_defaulted(make_client):
    requests = []
    generator = OllamaGenerator(client=make_client(generate_handler(requests)))

    with pytest.raises(InvalidArgument):
        await generator.generate("hello", max_new_tokens=0)
    with pytest.raises(InvalidArgument):
        await generator.generate("hello", max_new_tokens=True)
    assert requests == []


@pytest.mark.parametrize(
    "kwargs",
    [
        {"max_new_tokens": 0},
        {"max_sequence_length": 0},
        {"timeout": 0},
        {"max_retries": -1},
    ],
)
def test_explicit_zero_settings_are_rejected(kwargs):
    with pytest.raises(InvalidArgument):
        OllamaGenerator(**kwargs)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "body",
    [
        {"response": None, "done": True},
        {"response": 42},
        ["Paris."],
    ],
)
async def test_malformed_response_is_model_error(make_client, body):
    def handler(request):
        return httpx.Response(200, json=body)

    generator = OllamaGenerator(client=make_client(handler), max_retries=0)

    with pytest.raises(ModelError):
        await generator.generate("hello", max_new_tokens=8)


@pytest.mark.asyncio
async def test_html_body_is_model_error(make_client):
    def handler(request):
        return httpx.Response(200, text="<html>Service Unavailable</html>")

    generator = OllamaGenerator(client=make_client(handler), max_retries=0)

    with pytest.raises(ModelError):
        await generator.generate("hello", max_new_tokens=8)


@pytest.mark.asyncio
async def test_negative_token_count_is_model_error(make_client):
    def handler(request):
        return httpx.Response(200, json={"response": "ok", "eval_count": -1})

    generator = OllamaGenerator(client=make_client(handler))

    with pytest.raises(ModelError):
        await generator.generate("hello", max_new_tokens=8)
