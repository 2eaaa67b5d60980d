"""
Page fetcher: one GET to the product URL with a browser-like User-Agent.
"""

import logging

import httpx

import config

logger = logging.getLogger(__name__)


class FetchError(Exception):
    """The product page could not be retrieved."""


async def fetch_product_page(url: str, client: httpx.AsyncClient | None = None) -> str:
    """Return the raw markup at ``url``.

    Redirects are followed and non-2xx responses count as failures. Any
    transport or status error is re-raised as FetchError carrying the
    underlying message.
    """
    headers = {"User-Agent": config.USER_AGENT}
    logger.info(f"Fetching {url}")

    try:
        if client is not None:
            resp = await client.get(url, headers=headers, follow_redirects=True)
        else:
            async with httpx.AsyncClient(timeout=config.FETCH_TIMEOUT) as owned:
                resp = await owned.get(url, headers=headers, follow_redirects=True)
        resp.raise_for_status()
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        message = str(e) or e.__class__.__name__
        logger.error(f"Error fetching URL {url}: {message}")
        raise FetchError(f"Failed to fetch product page: {message}") from e

    logger.info(f"  Fetched {len(resp.text)} chars ({resp.status_code})")
    return resp.text
