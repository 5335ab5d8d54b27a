"""
Advisory oracle — multi-provider LLM client (OpenAI GPT, Anthropic Claude) used for
affiliate program discovery, ad-type analysis and ad copy.

The oracle is advisory only: every caller treats an OracleError as "take the
deterministic fallback". Which implementation runs is decided once, at construction,
by create_oracle().
"""

import asyncio
import json
import logging
import re
from typing import Optional, Protocol

import anthropic
import openai
from openai import AsyncOpenAI
from anthropic import AsyncAnthropic
from affilai.config import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()

SYSTEM_PROMPT = """You are an expert affiliate marketing analyst and direct-response ad copywriter.
You know the creator programs of TikTok Shop, Instagram Shopping, YouTube Shopping,
Pinterest and Amazon Associates, and which ad formats work for which product categories.

Rules:
- Respond ONLY with valid JSON matching the structure requested in the prompt.
- Never wrap the JSON in explanatory text.
- Use decimals for rates (0.12 means 12%) and whole days for cookie durations.
- Only mention programs that actually exist. If you are unsure, return an empty list.
- Never make medical, financial or guaranteed-result claims in ad copy."""

# Keys a model may wrap its candidate list in
_WRAPPER_KEYS = ("programs", "candidates", "recommendations", "items")


class OracleError(Exception):
    """Base class. Never reaches a service caller; always absorbed by a fallback."""


class OracleTimeout(OracleError):
    pass


class OracleMalformedResponse(OracleError):
    pass


class OracleUnavailable(OracleError):
    pass


class OracleClient(Protocol):
    async def invoke(self, prompt: str, timeout: Optional[float] = None) -> str:
        ...


# Transient provider errors worth another attempt
_RETRYABLE = (
    openai.APITimeoutError,
    openai.APIConnectionError,
    openai.RateLimitError,
    openai.InternalServerError,
    anthropic.APITimeoutError,
    anthropic.APIConnectionError,
    anthropic.RateLimitError,
    anthropic.InternalServerError,
)


def _parse_model_id(model_id: Optional[str]) -> tuple[str, str]:
    """Parse 'provider:model' into (provider, model). Fallback to OpenAI config."""
    if model_id and ":" in model_id:
        p, m = model_id.split(":", 1)
        return (p.strip().lower(), m.strip())
    return ("openai", model_id.strip() if model_id else settings.openai_model)


class LLMOracle:
    """Oracle backed by a hosted LLM. Retries transient failures inside one bounded call."""

    def __init__(
        self,
        model_id: Optional[str] = None,
        openai_api_key: Optional[str] = None,
        anthropic_api_key: Optional[str] = None,
        max_retries: Optional[int] = None,
    ):
        self.provider, self.model = _parse_model_id(model_id)
        self.max_retries = settings.oracle_max_retries if max_retries is None else max_retries
        self._openai_client: Optional[AsyncOpenAI] = None
        self._anthropic_client: Optional[AsyncAnthropic] = None

        # Use passed keys, else env
        openai_key = openai_api_key or settings.openai_api_key
        anthropic_key = anthropic_api_key or settings.anthropic_api_key

        if self.provider == "openai":
            if not openai_key:
                raise ValueError("OPENAI_API_KEY not configured. Set OPENAI_API_KEY env.")
            self._openai_client = AsyncOpenAI(api_key=openai_key, max_retries=0)
        elif self.provider == "anthropic":
            if not anthropic_key:
                raise ValueError("ANTHROPIC_API_KEY not configured. Set ANTHROPIC_API_KEY env.")
            self._anthropic_client = AsyncAnthropic(api_key=anthropic_key, max_retries=0)
        else:
            raise ValueError(f"Unknown AI provider: {self.provider}")

    def __repr__(self) -> str:
        return f"LLMOracle({self.provider}:{self.model})"

    async def _completion(
        self,
        messages: list[dict],
        temperature: float = 0.2,
        max_tokens: int = 2000,
        json_response: bool = True,
    ) -> str:
        """Call the appropriate provider's completion API."""
        if self.provider == "openai":
            kwargs = dict(
                model=self.model,
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens,
            )
            if json_response:
                kwargs["response_format"] = {"type": "json_object"}
            response = await self._openai_client.chat.completions.create(**kwargs)
            return response.choices[0].message.content or ""

        # Anthropic: system prompt travels separately
        system = ""
        anthropic_messages = []
        for m in messages:
            role = m.get("role", "user")
            content = m.get("content", "")
            if role == "system":
                system += content + "\n\n" if content else ""
            else:
                anthropic_messages.append({"role": "user" if role == "user" else "assistant", "content": content})

        response = await self._anthropic_client.messages.create(
            model=self.model,
            max_tokens=max_tokens,
            system=system.strip(),
            messages=anthropic_messages,
        )
        if response.content and response.content[0].type == "text":
            return response.content[0].text
        return ""

    async def _completion_with_retries(self, messages: list[dict]) -> str:
        attempt = 0
        while True:
            try:
                return await self._completion(messages)
            except _RETRYABLE as e:
                if attempt >= self.max_retries:
                    raise OracleUnavailable(f"{self.provider} failed after {attempt + 1} attempt(s): {e}") from e
                attempt += 1
                logger.warning(f"Oracle call failed ({e}); retry {attempt}/{self.max_retries}")
                await asyncio.sleep(0.5 * attempt)
            except (openai.APIError, anthropic.APIError) as e:
                raise OracleUnavailable(f"{self.provider} rejected the request: {e}") from e

    async def invoke(self, prompt: str, timeout: Optional[float] = None) -> str:
        """
        Send one prompt and return the raw text reply.
        The whole call, retries included, is bounded by `timeout` seconds.
        """
        timeout = timeout or settings.oracle_timeout_seconds
        messages = [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": prompt},
        ]
        try:
            content = await asyncio.wait_for(self._completion_with_retries(messages), timeout)
        except asyncio.TimeoutError as e:
            raise OracleTimeout(f"Oracle did not answer within {timeout:.1f}s") from e
        if not content or not content.strip():
            raise OracleMalformedResponse("Oracle returned an empty response")
        return content


class OfflineOracle:
    """Always unavailable, so every discovery and analysis takes the keyword fallback."""

    def __repr__(self) -> str:
        return "OfflineOracle()"

    async def invoke(self, prompt: str, timeout: Optional[float] = None) -> str:
        raise OracleUnavailable("No oracle model configured")


def create_oracle(
    model_id: Optional[str] = None,
    openai_api_key: Optional[str] = None,
    anthropic_api_key: Optional[str] = None,
) -> OracleClient:
    """Factory. Empty model id (or missing provider key) gives the offline oracle."""
    model_id = settings.oracle_model if model_id is None else model_id
    if not model_id:
        logger.info("No oracle model configured; using offline fallback tables")
        return OfflineOracle()
    try:
        oracle = LLMOracle(
            model_id=model_id,
            openai_api_key=openai_api_key,
            anthropic_api_key=anthropic_api_key,
        )
    except ValueError as e:
        logger.warning(f"Oracle '{model_id}' unusable ({e}); using offline fallback tables")
        return OfflineOracle()
    logger.info(f"Oracle configured: {oracle!r}")
    return oracle


# ══════════════════════════════════════════════════════════════════════
#  RESPONSE PARSING
# ══════════════════════════════════════════════════════════════════════

def _unwrap(value) -> Optional[list[dict]]:
    if isinstance(value, dict):
        for key in _WRAPPER_KEYS:
            if isinstance(value.get(key), list):
                value = value[key]
                break
        else:
            return [value]
    if isinstance(value, list) and all(isinstance(v, dict) for v in value):
        return value
    return None


def _salvage_objects(text: str, pos: int, decoder: json.JSONDecoder) -> list[dict]:
    """Complete objects at the head of a truncated array body."""
    items = []
    while pos < len(text):
        while pos < len(text) and text[pos] in " \t\r\n,":
            pos += 1
        if pos >= len(text) or text[pos] != "{":
            break
        try:
            obj, pos = decoder.raw_decode(text, pos)
        except json.JSONDecodeError:
            break
        items.append(obj)
    return items


def extract_json_items(text: str) -> list[dict]:
    """
    Pull a list of JSON objects out of a model reply.

    Accepts a bare array, an object wrapping the array under one of
    programs/candidates/recommendations/items, or a single object (returned as a
    one-item list). Prose and code fences around the JSON are ignored. If the array
    was cut off mid-way, the complete objects before the cut are kept.

    An explicit empty array is a valid answer and returns []. Raises
    OracleMalformedResponse when nothing usable is found.
    """
    if not text or not text.strip():
        raise OracleMalformedResponse("Oracle returned an empty response")
    decoder = json.JSONDecoder()
    for match in re.finditer(r"[\[{]", text):
        start = match.start()
        try:
            value, _ = decoder.raw_decode(text, start)
        except json.JSONDecodeError:
            if text[start] == "[":
                salvaged = _salvage_objects(text, start + 1, decoder)
                if salvaged:
                    logger.warning(f"Oracle reply truncated; salvaged {len(salvaged)} complete item(s)")
                    return salvaged
            continue
        items = _unwrap(value)
        if items is not None:
            return items
    raise OracleMalformedResponse(f"No JSON found in oracle response: {text[:120]!r}")
