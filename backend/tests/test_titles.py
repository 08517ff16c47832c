"""Tests for conversation title generation."""

import asyncio

from chathome.services.titles import TitleGenerator, clean_title


def test_clean_title_strips_quotes_and_whitespace():
    assert clean_title('  "Trip   to Rome"  ') == "Trip to Rome"
    assert clean_title("“Nested 'quotes'”") == "Nested 'quotes"


def test_clean_title_caps_length():
    assert len(clean_title("word " * 40)) <= 60
    assert clean_title("abcdefghij", max_length=4) == "abcd"


def test_generate_uses_model_reply(fake_llm):
    fake_llm.replies["title"] = '"Dinner Ideas"'
    outcome = asyncio.run(TitleGenerator(fake_llm).generate("What should we cook?", "Try pasta."))
    assert outcome.title == "Dinner Ideas"
    assert not outcome.degraded
    request = fake_llm.last("title")
    assert request.temperature == 0.3
    assert request.max_output_tokens == 30


def test_generate_falls_back_on_failure(fake_llm):
    fake_llm.failing.add("title")
    text = "x" * 80
    outcome = asyncio.run(TitleGenerator(fake_llm).generate(text, "reply"))
    assert outcome.degraded
    assert outcome.title == "x" * 50


def test_generate_falls_back_on_empty_reply(fake_llm):
    fake_llm.replies["title"] = '  ""  '
    outcome = asyncio.run(TitleGenerator(fake_llm).generate("Short question", "reply"))
    assert outcome.degraded
    assert outcome.title == "Short question"


def test_generate_falls_back_on_unexpected_error(fake_llm):
    fake_llm.crashing["title"] = RuntimeError("client closed")
    outcome = asyncio.run(TitleGenerator(fake_llm).generate("Plan a birthday party", "reply"))
    assert outcome.degraded
    assert outcome.title == "Plan a birthday party"
