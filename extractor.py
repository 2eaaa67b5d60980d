"""
Product record extraction: prompt assembly + LLM completion + JSON recovery.

Stages:
  A) Reduce the fetched markup and run the signal extractors (free)
  B) Assemble a bounded prompt from the signals, or a raw excerpt when too few were found
  C) One chat-completion call; parse the reply down a ladder
     (whole text -> embedded object -> static fallback record)
"""

import logging
import re

import orjson
from openai import AsyncOpenAI, OpenAIError
from pydantic import ValidationError

import config
from models import ERROR_CATEGORY, CompletionResult, ParseTier, ProductRecord, fallback_record
from parser import ExtractionContext, extract_signals, reduce_markup

logger = logging.getLogger(__name__)

# Signals needed before the labeled prompt replaces the raw-markup prompt
MIN_SIGNAL_FIELDS = 2

# Error text kept in the fallback title when the completion call fails
ERROR_TITLE_CHARS = 30

SYSTEM_PROMPT = (
    "You are a JSON-only product information extractor. "
    "You MUST ALWAYS respond with ONLY a valid JSON object and nothing else. "
    "Do not include any explanation, preamble, or commentary."
)


# =====================================================================
# Stage B: Prompt Assembly
# =====================================================================


def build_prompt(context: ExtractionContext, markup: str) -> str:
    """Labeled signal block plus a short excerpt, or URL plus a longer excerpt."""
    found = context.found_fields()

    if len(found) >= MIN_SIGNAL_FIELDS:
        lines = [f"URL: {context.url}"]
        lines.extend(f"{label}: {value}" for label, value in found)
        lines.extend(["", "HTML excerpt:", markup[: config.SIGNAL_EXCERPT_CHARS]])
    else:
        lines = [f"URL: {context.url}", "", "HTML:", markup[: config.FALLBACK_EXCERPT_CHARS]]

    return "\n".join(lines)[: config.PROMPT_MAX_CHARS]


def _user_message(prompt: str, url: str) -> str:
    quoted_url = orjson.dumps(url).decode()
    return (
        f"Extract basic product info from this page: {url}\n\n"
        "Respond with ONLY this JSON structure:\n"
        "{\n"
        f'  "url": {quoted_url},\n'
        '  "title": "Product title",\n'
        '  "category": "Product category if found, otherwise best guess",\n'
        '  "attributes": {\n'
        '    "colorOptions": ["array of colors if found"],\n'
        '    "sizeOptions": ["array of sizes if found"]\n'
        "  },\n"
        '  "rawPrice": 29.99\n'
        "}\n"
        'Put any other attributes you find inside "attributes". '
        "rawPrice is a number without currency symbol.\n\n"
        f"{prompt}"
    )


# =====================================================================
# Stage C: Completion + Parse Ladder
# =====================================================================

_FENCED_JSON_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```")
_OBJECT_SPAN_RE = re.compile(r"\{[\s\S]*\}")


def _load_record(candidate: str, url: str) -> ProductRecord | None:
    """Parse one candidate string into a ProductRecord, or None if it isn't one."""
    try:
        data = orjson.loads(candidate)
    except orjson.JSONDecodeError:
        return None
    if not isinstance(data, dict):
        return None

    if not data.get("url"):
        data["url"] = url
    try:
        return ProductRecord.model_validate(data)
    except ValidationError as e:
        logger.warning(f"  Completion JSON did not validate: {e.error_count()} error(s)")
        return None


def parse_completion(text: str, url: str) -> CompletionResult:
    """Turn completion text into a record, reporting which rung of the ladder was used."""
    text = (text or "").strip()

    record = _load_record(text, url)
    if record is not None:
        return CompletionResult(record=record, tier=ParseTier.PARSED)

    logger.warning("  Direct JSON parsing failed, searching for an embedded object")
    candidates: list[str] = []
    fenced = _FENCED_JSON_RE.search(text)
    if fenced:
        candidates.append(fenced.group(1).strip())
    span = _OBJECT_SPAN_RE.search(text)
    if span:
        candidates.append(span.group(0))

    for candidate in candidates:
        record = _load_record(candidate, url)
        if record is not None:
            return CompletionResult(record=record, tier=ParseTier.REPAIRED)

    logger.error("  Falling back to basic product data")
    return CompletionResult(record=fallback_record(url), tier=ParseTier.FALLBACK)


async def _request_completion(client: AsyncOpenAI, prompt: str, url: str) -> str:
    response = await client.chat.completions.create(
        model=config.OPENAI_MODEL,
        messages=[
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": _user_message(prompt, url)},
        ],
        response_format={"type": "json_object"},
        max_tokens=config.OPENAI_MAX_TOKENS,
        temperature=config.OPENAI_TEMPERATURE,
    )
    content = response.choices[0].message.content or ""
    logger.info(f"  Completion response: {content[:100]}...")
    return content


async def complete_product_record(
    prompt: str,
    url: str,
    api_key: str,
    client: AsyncOpenAI | None = None,
) -> CompletionResult:
    """Single completion call. Transport/auth/quota failures become a fallback record."""
    try:
        if client is None:
            async with AsyncOpenAI(api_key=api_key) as owned:
                content = await _request_completion(owned, prompt, url)
        else:
            content = await _request_completion(client, prompt, url)
    except OpenAIError as e:
        logger.error(f"  Error extracting product data: {e}")
        return _error_result(url, e)

    return parse_completion(content, url)


def _error_result(url: str, error: Exception) -> CompletionResult:
    """Fallback record whose title carries the start of the error message."""
    message = str(error) or error.__class__.__name__
    record = fallback_record(url, title=f"Error: {message[:ERROR_TITLE_CHARS]}", category=ERROR_CATEGORY)
    return CompletionResult(record=record, tier=ParseTier.FALLBACK, error=message)


# ===== Main Entry Point =====


async def extract_product_data(
    html: str,
    url: str,
    api_key: str,
    client: AsyncOpenAI | None = None,
) -> CompletionResult:
    """Reduce -> extract signals -> assemble prompt -> complete.

    Never raises: any failure in this stage becomes an "Error: ..." fallback record.
    """
    try:
        markup = reduce_markup(html)
        logger.info(f"  Reduced markup: {len(html)} -> {len(markup)} chars")

        context = extract_signals(markup, url)
        prompt = build_prompt(context, markup)
        logger.debug(f"  Prompt ({len(prompt)} chars): {prompt[:100]}")

        result = await complete_product_record(prompt, url, api_key, client=client)
    except Exception as e:
        logger.exception(f"  Error extracting product data for {url}")
        return _error_result(url, e)

    logger.info(f"  Record for {url}: tier={result.tier.value} title={result.record.title!r}")
    return result
