"""Tests for mapping provider-neutral requests onto Gemini types."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from chathome.core.errors import UpstreamUnavailable
from chathome.services.llm import get_llm_provider
from chathome.services.llm.base import ContentPart, LLMRequest, Message
from chathome.services.llm.gemini import GeminiProvider, build_config, parse_data_uri, to_contents
from chathome.services.llm.tiers import Tier, effective_tier
from chathome.services.search import get_search_provider
from chathome.services.search.scrapingdog import ScrapingDogSearchProvider


def test_parse_data_uri():
    assert parse_data_uri("data:image/png;base64,aGk=") == ("image/png", b"hi")
    with pytest.raises(ValueError):
        parse_data_uri("https://example.com/cat.png")


def test_to_contents_maps_roles_and_images():
    contents = to_contents([
        Message(role="user", content="hello"),
        Message(role="assistant", content="hi"),
        Message(role="user", content=[
            ContentPart(type="text", text="what is this"),
            ContentPart(type="image", data_uri="data:image/png;base64,aGk="),
        ]),
    ])
    assert [c.role for c in contents] == ["user", "model", "user"]
    assert contents[0].parts[0].text == "hello"
    image = contents[2].parts[1].inline_data
    assert image.mime_type == "image/png"
    assert image.data == b"hi"


def test_fast_tier_config():
    config = build_config(LLMRequest(messages=[], tier=Tier.FAST, system="Be brief"))
    assert config.temperature == 0.7
    assert config.system_instruction == "Be brief"
    assert config.thinking_config is None


def test_thinking_tier_config():
    config = build_config(LLMRequest(messages=[], tier=Tier.THINKING))
    assert config.temperature == 1.0
    assert config.thinking_config.thinking_budget == 8192


def test_request_overrides_temperature_and_tokens():
    config = build_config(LLMRequest(messages=[], temperature=0.0, max_output_tokens=5))
    assert config.temperature == 0.0
    assert config.max_output_tokens == 5


def test_tier_aliases_and_vision():
    assert Tier.parse("minimal") is Tier.FAST
    assert Tier.parse(" Medium ") is Tier.THINKING
    with pytest.raises(ValueError):
        Tier.parse("turbo")
    assert effective_tier(Tier.THINKING, needs_vision=True) is Tier.FAST
    assert effective_tier(Tier.THINKING, needs_vision=False) is Tier.THINKING


def test_complete_wraps_transport_errors():
    provider = GeminiProvider(api_key="test")
    client = MagicMock()
    client.aio.models.generate_content = AsyncMock(side_effect=asyncio.TimeoutError())
    provider._client = client

    with pytest.raises(UpstreamUnavailable):
        asyncio.run(provider.complete(LLMRequest(messages=[Message(role="user", content="hi")])))


def test_complete_wraps_value_errors():
    provider = GeminiProvider(api_key="test")
    client = MagicMock()
    client.aio.models.generate_content = AsyncMock(side_effect=ValueError("Missing key inputs argument"))
    provider._client = client

    with pytest.raises(UpstreamUnavailable):
        asyncio.run(provider.complete(LLMRequest(messages=[Message(role="user", content="hi")])))


def test_complete_returns_text():
    provider = GeminiProvider(api_key="test")
    client = MagicMock()
    client.aio.models.generate_content = AsyncMock(return_value=MagicMock(text="Answer", usage_metadata=None))
    provider._client = client

    result = asyncio.run(provider.complete(LLMRequest(messages=[Message(role="user", content="hi")])))
    assert result == "Answer"
    assert client.aio.models.generate_content.call_args.kwargs["model"] == "gemini-2.0-flash"


def test_provider_factories():
    assert isinstance(get_llm_provider("Gemini"), GeminiProvider)
    assert isinstance(get_search_provider("scrapingdog"), ScrapingDogSearchProvider)
    with pytest.raises(ValueError):
        get_llm_provider("unknown")
    with pytest.raises(ValueError):
        get_search_provider("unknown")
