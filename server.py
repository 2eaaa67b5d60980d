"""
FastAPI server for the product parser.

Endpoints:
- GET  /               → health probe
- POST /parse-product  → fetch a product page and return a normalized ProductRecord

The X-Parse-Tier response header reports how the record was produced
(parsed / repaired / fallback).
"""

import logging

from fastapi import FastAPI, Request
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import ORJSONResponse
from fastapi.staticfiles import StaticFiles

import config
from extractor import extract_product_data
from fetcher import FetchError, fetch_product_page
from models import ParseRequest, ProductRecord

logger = logging.getLogger("server")

PARSE_PATH = "/parse-product"
MISSING_PARAMS_ERROR = "Missing required parameters: url and openaiApiKey are required"
PROCESSING_ERROR = "Failed to process product URL"
TIER_HEADER = "X-Parse-Tier"


# ---------------------------------------------------------------------------
# App setup
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Product Parser API",
    default_response_class=ORJSONResponse,
)

app.add_middleware(GZipMiddleware, minimum_size=500)
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
    expose_headers=[TIER_HEADER],
    max_age=86400,
)


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


def _missing_params() -> ORJSONResponse:
    return ORJSONResponse(status_code=400, content={"error": MISSING_PARAMS_ERROR})


@app.exception_handler(RequestValidationError)
async def validation_error(request: Request, exc: RequestValidationError):
    """A body that isn't a JSON object counts as missing parameters on the parse route."""
    if request.url.path == PARSE_PATH:
        return _missing_params()
    return await request_validation_exception_handler(request, exc)


@app.get("/")
async def health():
    return {"status": "API is running"}


@app.post(PARSE_PATH, response_model=ProductRecord)
async def parse_product(body: ParseRequest | None = None):
    """Fetch the page at ``url`` and turn it into a ProductRecord.

    A failed fetch is a 500. Extraction and completion failures are absorbed
    into a fallback record and still return 200.
    """
    if body is None or not body.url or not body.openai_api_key:
        return _missing_params()

    try:
        html = await fetch_product_page(body.url)
    except FetchError as e:
        logger.error(f"Error processing request for {body.url}: {e}")
        return ORJSONResponse(status_code=500, content={"error": PROCESSING_ERROR, "message": str(e)})

    result = await extract_product_data(html, body.url, body.openai_api_key)
    return ORJSONResponse(content=result.record.to_response(), headers={TIER_HEADER: result.tier.value})


# Static front-end, if one is shipped. Mounted last so API routes take precedence.
if config.PUBLIC_DIR.is_dir():
    app.mount("/", StaticFiles(directory=config.PUBLIC_DIR, html=True), name="public")
