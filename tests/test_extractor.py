"""
Tests for prompt assembly, the completion parse ladder, and the extraction stage.
"""

import asyncio

from openai import OpenAIError

import config
from extractor import (
    SYSTEM_PROMPT,
    build_prompt,
    complete_product_record,
    extract_product_data,
    parse_completion,
)
from models import ERROR_CATEGORY, FALLBACK_CATEGORY, FALLBACK_TITLE, ParseTier
from parser import ExtractionContext, extract_signals, reduce_markup

URL = "https://shop.example/p/widget"


# ---------------------------------------------------------------------------
# Prompt assembly
# ---------------------------------------------------------------------------


class TestBuildPrompt:
    def test_signals_surface_in_labeled_block(self):
        markup = reduce_markup('<h1>Widget</h1><span class="price">$19.99</span>')
        prompt = build_prompt(extract_signals(markup, URL), markup)

        lines = prompt.splitlines()
        assert lines[0] == f"URL: {URL}"
        assert "Title: Widget" in lines
        assert "Price: 19.99" in lines
        assert "HTML excerpt:" in lines

    def test_signal_excerpt_is_short(self, monkeypatch):
        monkeypatch.setattr(config, "SIGNAL_EXCERPT_CHARS", 10)
        context = ExtractionContext(url=URL, title="Widget", price="19.99")
        prompt = build_prompt(context, "A" * 500)

        assert prompt.endswith("HTML excerpt:\n" + "A" * 10)

    def test_fewer_than_two_signals_uses_raw_excerpt(self, monkeypatch):
        monkeypatch.setattr(config, "FALLBACK_EXCERPT_CHARS", 50)
        context = ExtractionContext(url=URL, title="Widget")
        prompt = build_prompt(context, "B" * 500)

        assert "Title:" not in prompt
        assert prompt == f"URL: {URL}\n\nHTML:\n" + "B" * 50

    def test_output_is_capped(self, monkeypatch):
        monkeypatch.setattr(config, "PROMPT_MAX_CHARS", 100)
        context = ExtractionContext(url=URL, title="Widget", description="D" * 400)
        assert len(build_prompt(context, "C" * 5000)) == 100


# ---------------------------------------------------------------------------
# Parse ladder
# ---------------------------------------------------------------------------


class TestParseCompletion:
    def test_whole_text_is_json(self):
        text = (
            '{"url": "https://shop.example/p/tee", "title": "Tee", "category": "Shirts",'
            ' "attributes": {"colorOptions": ["Red"], "sizeOptions": ["S", "M"], "material": "cotton"},'
            ' "rawPrice": 24.5}'
        )
        result = parse_completion(text, URL)

        assert result.tier is ParseTier.PARSED
        assert result.record.title == "Tee"
        assert result.record.attributes.size_options == ["S", "M"]
        body = result.record.to_response()
        assert body["attributes"]["material"] == "cotton"
        assert body["rawPrice"] == 24.5

    def test_embedded_object_is_recovered(self):
        text = 'Here is the JSON: {"url":"x","title":"y","category":"z","attributes":{},"rawPrice":1}'
        result = parse_completion(text, URL)

        assert result.tier is ParseTier.REPAIRED
        assert result.record.url == "x"
        assert result.record.title == "y"
        assert result.record.category == "z"
        assert result.record.raw_price == 1

    def test_fenced_block_is_recovered(self):
        text = 'Sure!\n```json\n{"title": "Lamp", "rawPrice": "$1,049.00"}\n```\nAnything else?'
        result = parse_completion(text, URL)

        assert result.tier is ParseTier.REPAIRED
        assert result.record.url == URL
        assert result.record.raw_price == 1049.0

    def test_garbage_becomes_fallback_record(self):
        result = parse_completion("I could not find a product on this page {oops", URL)

        assert result.tier is ParseTier.FALLBACK
        assert result.record.to_response() == {
            "url": URL,
            "title": FALLBACK_TITLE,
            "category": FALLBACK_CATEGORY,
            "attributes": {"colorOptions": [], "sizeOptions": []},
            "rawPrice": 0,
        }

    def test_non_object_json_falls_back(self):
        assert parse_completion('["not", "a", "record"]', URL).tier is ParseTier.FALLBACK

    def test_nulls_are_tolerated(self):
        result = parse_completion('{"title": null, "attributes": null, "rawPrice": null}', URL)

        assert result.tier is ParseTier.PARSED
        assert result.record.title == ""
        assert result.record.raw_price == 0
        assert result.record.attributes.color_options == []

    def test_list_category_is_joined_not_rejected(self):
        text = (
            '{"url":"u","title":"Tee","category":["Men","Shirts"],'
            '"attributes":{"colorOptions":[],"sizeOptions":["S"]},"rawPrice":24}'
        )
        result = parse_completion(text, URL)

        assert result.tier is ParseTier.PARSED
        assert result.record.url == "u"
        assert result.record.category == "Men > Shirts"
        assert result.record.raw_price == 24

    def test_scalar_fields_are_stringified(self):
        result = parse_completion('{"title": 123, "category": true, "attributes": "n/a"}', URL)

        assert result.tier is ParseTier.PARSED
        assert result.record.title == "123"
        assert result.record.category == "True"
        assert result.record.attributes.size_options == []

    def test_numeric_options_are_stringified(self):
        result = parse_completion('{"title": "Boot", "attributes": {"sizeOptions": [8, 9.5, null]}}', URL)

        assert result.tier is ParseTier.PARSED
        assert result.record.attributes.size_options == ["8", "9.5"]


# ---------------------------------------------------------------------------
# Completion client
# ---------------------------------------------------------------------------


def test_completion_request_shape(fake_openai):
    client = fake_openai(content='{"title": "Widget", "rawPrice": 19.99}')
    result = asyncio.run(complete_product_record("Title: Widget", URL, "sk-test", client=client))

    assert result.tier is ParseTier.PARSED
    assert result.record.title == "Widget"

    (call,) = client.completions.calls
    assert call["model"] == config.OPENAI_MODEL
    assert call["temperature"] == config.OPENAI_TEMPERATURE
    assert call["max_tokens"] == config.OPENAI_MAX_TOKENS
    assert call["response_format"] == {"type": "json_object"}
    system, user = call["messages"]
    assert system == {"role": "system", "content": SYSTEM_PROMPT}
    assert '"colorOptions"' in user["content"]
    assert f'"url": "{URL}"' in user["content"]
    assert user["content"].endswith("Title: Widget")


def test_transport_failure_becomes_error_record(fake_openai):
    error = OpenAIError("Incorrect API key provided: sk-test. You can find your key elsewhere.")
    client = fake_openai(error=error)
    result = asyncio.run(complete_product_record("prompt", URL, "sk-test", client=client))

    assert result.tier is ParseTier.FALLBACK
    assert result.error == str(error)
    assert result.record.title == "Error: " + str(error)[:30]
    assert result.record.category == "Error"
    assert result.record.raw_price == 0
    assert result.record.attributes.size_options == []


def test_empty_content_falls_back(fake_openai):
    client = fake_openai(content=None)
    result = asyncio.run(complete_product_record("prompt", URL, "sk-test", client=client))
    assert result.tier is ParseTier.FALLBACK


def test_owned_client_uses_caller_key(monkeypatch, fake_openai):
    created = []

    def factory(api_key):
        client = fake_openai(content='{"title": "Widget"}', api_key=api_key)
        created.append(client)
        return client

    monkeypatch.setattr("extractor.AsyncOpenAI", factory)
    result = asyncio.run(complete_product_record("prompt", URL, "sk-caller"))

    assert result.record.title == "Widget"
    assert created[0].api_key == "sk-caller"
    assert created[0].closed


# ---------------------------------------------------------------------------
# Full stage
# ---------------------------------------------------------------------------


def test_extract_product_data_sends_signals(product_html, fake_openai):
    client = fake_openai(
        content='{"title": "Classic Tee", "category": "Shirts",'
        ' "attributes": {"sizeOptions": ["S", "M"]}, "rawPrice": 24}'
    )
    result = asyncio.run(extract_product_data(product_html, URL, "sk-test", client=client))

    assert result.tier is ParseTier.PARSED
    assert result.record.url == URL
    user = client.completions.calls[0]["messages"][1]["content"]
    assert "Title: Classic Tee" in user
    assert "Price: 24.00" in user
    assert "Sizes: S, M" in user
    assert "Category: Home > Men > Shirts" in user
    assert "window.__STATE__" not in user


def test_extraction_error_becomes_error_record(monkeypatch, fake_openai):
    def broken(markup, url):
        raise RuntimeError("extractor blew up")

    monkeypatch.setattr("extractor.extract_signals", broken)
    client = fake_openai(content="{}")
    result = asyncio.run(extract_product_data("<p>x</p>", URL, "sk-test", client=client))

    assert result.tier is ParseTier.FALLBACK
    assert result.error == "extractor blew up"
    assert result.record.url == URL
    assert result.record.title == "Error: extractor blew up"
    assert result.record.category == ERROR_CATEGORY
    assert result.record.attributes.color_options == []
    assert result.record.raw_price == 0
    assert client.completions.calls == []


def test_long_extraction_error_is_cut_in_title(monkeypatch, fake_openai):
    def broken(markup):
        raise ValueError("x" * 100)

    monkeypatch.setattr("extractor.reduce_markup", broken)
    result = asyncio.run(extract_product_data("<p>x</p>", URL, "sk-test", client=fake_openai(content="{}")))

    assert result.record.title == "Error: " + "x" * 30
    assert result.error == "x" * 100
