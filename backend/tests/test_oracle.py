"""
Tests for the oracle client: response parsing, timeouts, retries and the factory.
"""

import asyncio
import httpx
import openai
import pytest
from unittest.mock import AsyncMock, patch

from affilai.oracle import (
    LLMOracle, OfflineOracle, OracleMalformedResponse, OracleTimeout,
    OracleUnavailable, create_oracle, extract_json_items,
)


def _connection_error():
    return openai.APIConnectionError(request=httpx.Request("POST", "https://api.openai.com/v1/chat/completions"))


# ── extract_json_items ───────────────────────────────────────────────

def test_extract_prose_wrapped_array():
    text = 'Sure! Here are the programs:\n```json\n[{"program_name": "A"}, {"program_name": "B"}]\n```\nGood luck.'
    items = extract_json_items(text)
    assert [i["program_name"] for i in items] == ["A", "B"]


def test_extract_wrapped_in_programs_key():
    items = extract_json_items('{"programs": [{"program_name": "A"}]}')
    assert items == [{"program_name": "A"}]


def test_extract_single_object_is_one_item():
    items = extract_json_items('{"headline": "Hi", "body": "There", "cta": "Buy"}')
    assert items == [{"headline": "Hi", "body": "There", "cta": "Buy"}]


def test_extract_empty_array_is_a_valid_answer():
    assert extract_json_items("[]") == []
    assert extract_json_items('{"programs": []}') == []


def test_extract_salvages_truncated_array():
    items = extract_json_items('[{"a": 1}, {"b": 2}, {"c": ')
    assert items == [{"a": 1}, {"b": 2}]


def test_extract_skips_bracketed_prose():
    items = extract_json_items('Programs [see below]: {"programs": [{"program_name": "X"}]}')
    assert items == [{"program_name": "X"}]


@pytest.mark.parametrize("text", ["", "   ", "no json here", "[1, 2, 3]", '[{"a": '])
def test_extract_rejects_unusable_text(text):
    with pytest.raises(OracleMalformedResponse):
        extract_json_items(text)


# ── Oracle implementations ───────────────────────────────────────────

@pytest.mark.anyio
async def test_offline_oracle_is_always_unavailable():
    with pytest.raises(OracleUnavailable):
        await OfflineOracle().invoke("anything", 1.0)


def test_create_oracle_without_model_is_offline():
    assert isinstance(create_oracle(""), OfflineOracle)


def test_create_oracle_without_key_falls_back_to_offline():
    assert isinstance(create_oracle("anthropic:claude-3-5-sonnet-latest"), OfflineOracle)


def test_create_oracle_parses_provider_and_model():
    oracle = create_oracle("openai:gpt-4o-mini", openai_api_key="sk-test")
    assert isinstance(oracle, LLMOracle)
    assert oracle.provider == "openai"
    assert oracle.model == "gpt-4o-mini"


def test_unknown_provider_rejected():
    with pytest.raises(ValueError, match="Unknown AI provider"):
        LLMOracle("mistral:large", openai_api_key="sk-test")


@pytest.mark.anyio
async def test_invoke_times_out():
    oracle = LLMOracle("openai:gpt-4o", openai_api_key="sk-test")

    async def slow(*args, **kwargs):
        await asyncio.sleep(5)
        return "[]"

    with patch.object(oracle, "_completion", side_effect=slow):
        with pytest.raises(OracleTimeout):
            await oracle.invoke("prompt", timeout=0.05)


@pytest.mark.anyio
async def test_invoke_retries_transient_errors():
    oracle = LLMOracle("openai:gpt-4o", openai_api_key="sk-test", max_retries=1)
    completion = AsyncMock(side_effect=[_connection_error(), '{"programs": []}'])
    with patch.object(oracle, "_completion", completion):
        text = await oracle.invoke("prompt", timeout=5)
    assert text == '{"programs": []}'
    assert completion.await_count == 2


@pytest.mark.anyio
async def test_invoke_gives_up_after_retries():
    oracle = LLMOracle("openai:gpt-4o", openai_api_key="sk-test", max_retries=0)
    completion = AsyncMock(side_effect=_connection_error())
    with patch.object(oracle, "_completion", completion):
        with pytest.raises(OracleUnavailable):
            await oracle.invoke("prompt", timeout=5)
    assert completion.await_count == 1


@pytest.mark.anyio
async def test_invoke_rejects_empty_reply():
    oracle = LLMOracle("openai:gpt-4o", openai_api_key="sk-test")
    with patch.object(oracle, "_completion", AsyncMock(return_value="  ")):
        with pytest.raises(OracleMalformedResponse):
            await oracle.invoke("prompt", timeout=5)
