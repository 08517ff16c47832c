"""Google Gemini LLM provider."""

import asyncio
import base64
import binascii
import logging
from contextlib import aclosing
from typing import AsyncIterator

import httpx
from google import genai
from google.genai import errors, types

from chathome.core.config import settings
from chathome.core.errors import UpstreamUnavailable
from chathome.services.llm.base import BaseLLMProvider, LLMRequest, Message
from chathome.services.llm.tiers import tier_config

logger = logging.getLogger(__name__)

# ValueError also covers a missing API key and malformed responses (pydantic).
_UPSTREAM_ERRORS = (errors.APIError, httpx.HTTPError, asyncio.TimeoutError, ValueError)


def parse_data_uri(uri: str) -> tuple[str, bytes]:
    """Split ``data:<mime>;base64,<payload>`` into (mime, raw bytes)."""
    header, sep, payload = uri.partition(",")
    if not sep or not header.startswith("data:") or not header.endswith(";base64"):
        raise ValueError("Not a base64 data URI")
    mime = header[len("data:"):-len(";base64")] or "application/octet-stream"
    try:
        return mime, base64.b64decode(payload, validate=True)
    except binascii.Error as e:
        raise ValueError(f"Invalid base64 payload: {e}") from e


def to_contents(messages: list[Message]) -> list[types.Content]:
    """Map provider-neutral messages onto Gemini contents (assistant -> model)."""
    contents = []
    for m in messages:
        role = "model" if m.role == "assistant" else "user"
        if isinstance(m.content, str):
            parts = [types.Part(text=m.content)]
        else:
            parts = []
            for part in m.content:
                if part.type == "image":
                    mime, data = parse_data_uri(part.data_uri)
                    parts.append(types.Part.from_bytes(data=data, mime_type=mime))
                else:
                    parts.append(types.Part(text=part.text))
        contents.append(types.Content(role=role, parts=parts))
    return contents


def build_config(request: LLMRequest) -> types.GenerateContentConfig:
    cfg = tier_config(request.tier)
    kwargs: dict = {
        "temperature": cfg.temperature if request.temperature is None else request.temperature,
    }
    if request.system:
        kwargs["system_instruction"] = request.system
    if request.max_output_tokens:
        kwargs["max_output_tokens"] = request.max_output_tokens
    if cfg.thinking_budget is not None:
        kwargs["thinking_config"] = types.ThinkingConfig(thinking_budget=cfg.thinking_budget)
    return types.GenerateContentConfig(**kwargs)


class GeminiProvider(BaseLLMProvider):
    def __init__(self, api_key: str | None = None):
        self._api_key = api_key
        self._client: genai.Client | None = None

    @property
    def client(self) -> genai.Client:
        # Created on first use so the app can boot without a key configured.
        if self._client is None:
            self._client = genai.Client(
                api_key=self._api_key or settings.gemini_api_key,
                http_options=types.HttpOptions(timeout=int(settings.llm_timeout_seconds * 1000)),
            )
        return self._client

    async def complete(self, request: LLMRequest) -> str:
        model = tier_config(request.tier).model
        logger.debug(f"Gemini complete ({request.purpose}) on {model}, {len(request.messages)} messages")
        try:
            response = await self.client.aio.models.generate_content(
                model=model,
                contents=to_contents(request.messages),
                config=build_config(request),
            )
        except _UPSTREAM_ERRORS as e:
            raise UpstreamUnavailable(f"Gemini request failed: {e}") from e

        usage = response.usage_metadata
        if usage:
            logger.debug(
                f"Gemini usage ({request.purpose}): prompt={usage.prompt_token_count} "
                f"response={usage.candidates_token_count} total={usage.total_token_count}"
            )
        return response.text or ""

    async def stream(self, request: LLMRequest) -> AsyncIterator[str]:
        model = tier_config(request.tier).model
        logger.debug(f"Gemini stream ({request.purpose}) on {model}, {len(request.messages)} messages")
        try:
            response = await self.client.aio.models.generate_content_stream(
                model=model,
                contents=to_contents(request.messages),
                config=build_config(request),
            )
            async with aclosing(response) as chunks:
                async for chunk in chunks:
                    if chunk.text:
                        yield chunk.text
        except _UPSTREAM_ERRORS as e:
            raise UpstreamUnavailable(f"Gemini stream failed: {e}") from e
