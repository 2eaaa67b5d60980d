import re
from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Placeholders used when the completion response cannot be turned into a record
FALLBACK_TITLE = "Product Title Not Extracted"
FALLBACK_CATEGORY = "Unknown"
ERROR_CATEGORY = "Error"

_PRICE_NUMBER_RE = re.compile(r"\d[\d,]*(?:\.\d+)?")


class ProductAttributes(BaseModel):
    """Option lists plus whatever other attributes the model reported."""

    model_config = ConfigDict(extra="allow", frozen=True, populate_by_name=True)

    color_options: list[str] = Field(default_factory=list, alias="colorOptions")
    size_options: list[str] = Field(default_factory=list, alias="sizeOptions")

    @field_validator("color_options", "size_options", mode="before")
    @classmethod
    def coerce_option_list(cls, v: Any) -> list[str]:
        if v is None:
            return []
        if isinstance(v, str):
            return [v] if v.strip() else []
        if isinstance(v, (list, tuple)):
            return [_as_text(item) for item in v if item is not None and _as_text(item).strip()]
        return []


def _as_text(v: Any) -> str:
    """Stringify a scalar JSON value; lists are joined as a " > " path."""
    if v is None:
        return ""
    if isinstance(v, (list, tuple)):
        return " > ".join(_as_text(item) for item in v if item is not None and _as_text(item).strip())
    return v if isinstance(v, str) else str(v)


# The record returned to callers. Field aliases match the public JSON shape.
# Validators coerce rather than reject, so any JSON object becomes a record.
class ProductRecord(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    url: str
    title: str = ""
    category: str = ""
    attributes: ProductAttributes = Field(default_factory=ProductAttributes)
    raw_price: float = Field(default=0, alias="rawPrice")

    @field_validator("url", "title", "category", mode="before")
    @classmethod
    def coerce_text(cls, v: Any) -> str:
        return _as_text(v)

    @field_validator("attributes", mode="before")
    @classmethod
    def coerce_attributes(cls, v: Any) -> Any:
        return v if isinstance(v, (dict, ProductAttributes)) else {}

    @field_validator("raw_price", mode="before")
    @classmethod
    def parse_raw_price(cls, v: Any) -> Any:
        """Accept numbers, "$1,299.00"-style strings; anything else is 0."""
        if isinstance(v, bool) or not isinstance(v, (int, float, str)):
            return 0
        if isinstance(v, str):
            match = _PRICE_NUMBER_RE.search(v)
            return float(match.group(0).replace(",", "")) if match else 0
        return v

    def to_response(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


def fallback_record(
    url: str,
    title: str = FALLBACK_TITLE,
    category: str = FALLBACK_CATEGORY,
) -> ProductRecord:
    """The single "unknown" representation: placeholder text, empty options, zero price."""
    return ProductRecord(url=url, title=title, category=category, attributes=ProductAttributes(), raw_price=0)


class ParseRequest(BaseModel):
    """Body of POST /parse-product. Both fields are checked by the handler, not here."""

    model_config = ConfigDict(populate_by_name=True)

    url: str | None = None
    openai_api_key: str | None = Field(default=None, alias="openaiApiKey")


class ParseTier(str, Enum):
    """Which rung of the completion parsing ladder produced the record."""

    PARSED = "parsed"  # whole response was valid JSON
    REPAIRED = "repaired"  # JSON recovered from surrounding text
    FALLBACK = "fallback"  # static placeholder record


@dataclass(frozen=True)
class CompletionResult:
    record: ProductRecord
    tier: ParseTier
    error: str | None = None  # transport error text, when the call itself failed
