from types import SimpleNamespace

import pytest


class FakeCompletions:
    def __init__(self, content=None, error=None):
        self.content = content
        self.error = error
        self.calls = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


class FakeOpenAI:
    """Stands in for AsyncOpenAI: same call path, canned reply."""

    def __init__(self, content=None, error=None, api_key=None):
        self.api_key = api_key
        self.completions = FakeCompletions(content=content, error=error)
        self.chat = SimpleNamespace(completions=self.completions)
        self.closed = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        self.closed = True
        return False


@pytest.fixture
def fake_openai():
    """Factory for fake completion clients."""
    return FakeOpenAI


@pytest.fixture
def product_html():
    return """<!DOCTYPE html>
<html>
<head>
  <title>Classic Tee | Example Shop</title>
  <meta name="description" content="A soft cotton tee for everyday wear.">
  <style>.price { color: red; }</style>
  <script>window.__STATE__ = {"price": 99};</script>
</head>
<body>
  <!-- promo banner -->
  <nav aria-label="breadcrumb">
    <ol>
      <li><a href="/">Home</a></li>
      <li><a href="/men">Men</a></li>
      <li><a href="/men/shirts">Shirts</a></li>
    </ol>
  </nav>
  <h1 class="product-title">Classic Tee</h1>
  <span class="price">$24.00</span>
  <select name="size">
    <option value="">Select a size</option>
    <option value="s">S</option>
    <option value="m">M</option>
    <option value="l" disabled>L - Sold Out</option>
  </select>
  <div class="color-swatches">
    <button class="swatch swatch--black" data-color="black" aria-label="Black"></button>
    <button class="swatch" style="background-color: white" aria-label="Ivory Mist"></button>
  </div>
  <svg><path d="M0 0h24v24H0z"></path></svg>
</body>
</html>
"""
