"""
Markup reduction and heuristic product signal extraction.

The reducer strips non-content blocks from a fetched page; the extractors
scan the reduced markup for title, price, category, description, and the
size/color option lists. Each scalar field is described by an ordered table
of named rules; the first rule that yields a non-empty value wins.

Extractors operate on reducer output, where every attribute value is
double-quoted. Nothing here raises on a miss: an undetected field is empty.
"""

import html as html_lib
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass, field

from bs4 import BeautifulSoup, Comment

logger = logging.getLogger(__name__)

# Option strings this long or longer are treated as noise
MAX_OPTION_LENGTH = 20
MAX_TITLE_LENGTH = 200
MAX_DESCRIPTION_LENGTH = 500


# ---------------------------------------------------------------------------
# Markup reducer
# ---------------------------------------------------------------------------

_WHITESPACE_RUN = re.compile(r"\s{2,}")


def reduce_markup(html: str) -> str:
    """Drop script/style/svg blocks and comments, then collapse whitespace runs."""
    soup = BeautifulSoup(html, "lxml")

    for tag_name in ("script", "style", "svg"):
        for el in soup.find_all(tag_name):
            el.decompose()

    for comment in soup.find_all(string=lambda s: isinstance(s, Comment)):
        comment.extract()

    return _WHITESPACE_RUN.sub(" ", str(soup)).strip()


# ---------------------------------------------------------------------------
# Text helpers
# ---------------------------------------------------------------------------

_TAG_RE = re.compile(r"<[^>]+>")
_SPACE_RE = re.compile(r"\s+")


def _clean_text(fragment: str) -> str:
    """Strip tags, decode entities, normalize whitespace."""
    text = _TAG_RE.sub(" ", fragment)
    text = html_lib.unescape(text)
    return _SPACE_RE.sub(" ", text).strip()


def _attr_value(attrs: str, names: tuple[str, ...]) -> str:
    """Return the first non-empty attribute among ``names`` in an opening-tag attribute string."""
    for name in names:
        match = re.search(rf'\b{re.escape(name)}="([^"]*)"', attrs, re.IGNORECASE)
        if match and match.group(1).strip():
            return html_lib.unescape(match.group(1)).strip()
    return ""


def _element_span(markup: str, start: int, tag: str) -> str | None:
    """Return the element whose opening tag begins at ``start``, through its matching close.

    Tracks nesting depth of same-named tags so a wrapper <div> is not cut at
    the first inner </div>. Self-closing tags do not change depth.
    """
    tag_re = re.compile(rf"<(/?){re.escape(tag)}\b[^>]*?(/?)>", re.IGNORECASE)
    depth = 0

    for m in tag_re.finditer(markup, start):
        if m.group(1):
            depth -= 1
            if depth == 0:
                return markup[start : m.end()]
        elif not m.group(2):
            depth += 1

    return None


# ---------------------------------------------------------------------------
# Rule tables
# ---------------------------------------------------------------------------


def _value_text(m: re.Match[str]) -> str | None:
    return _clean_text(m.group("value"))


@dataclass(frozen=True)
class Rule:
    """A named detector: a pattern plus how to turn a match into a value."""

    name: str
    pattern: re.Pattern[str]
    extract: Callable[[re.Match[str]], str | None] = _value_text


def first_match(rules: list[Rule], markup: str) -> tuple[str, str] | None:
    """Evaluate rules in priority order; return (rule name, value) of the first hit."""
    for rule in rules:
        for m in rule.pattern.finditer(markup):
            value = rule.extract(m)
            if value:
                return rule.name, value
    return None


def _content_attr(key: str) -> re.Pattern[str]:
    """Any tag carrying property/name/itemprop == key, capturing its content attribute."""
    return re.compile(
        rf'<\w+\b(?=[^>]*\b(?:property|name|itemprop)="{re.escape(key)}")[^>]*\bcontent="(?P<value>[^"]*)"',
        re.IGNORECASE,
    )


def _truncated(limit: int) -> Callable[[re.Match[str]], str | None]:
    def extract(m: re.Match[str]) -> str | None:
        return _clean_text(m.group("value"))[:limit].strip()

    return extract


# ----- Title -----

TITLE_RULES = [
    Rule(
        "heading_class",
        re.compile(
            r'<(?P<tag>h[1-6])\b[^>]*\bclass="[^"]*(?:product|title|name)[^"]*"[^>]*>(?P<value>.*?)</(?P=tag)>',
            re.IGNORECASE | re.DOTALL,
        ),
        _truncated(MAX_TITLE_LENGTH),
    ),
    Rule(
        "h1",
        re.compile(r"<h1\b[^>]*>(?P<value>.*?)</h1>", re.IGNORECASE | re.DOTALL),
        _truncated(MAX_TITLE_LENGTH),
    ),
    Rule("og_title", _content_attr("og:title"), _truncated(MAX_TITLE_LENGTH)),
    Rule(
        "title_tag",
        re.compile(r"<title\b[^>]*>(?P<value>.*?)</title>", re.IGNORECASE | re.DOTALL),
        _truncated(MAX_TITLE_LENGTH),
    ),
]


# ----- Price -----

_PRICE_NUMBER_RE = re.compile(r"\d[\d,]*(?:\.\d+)?")
_DECIMAL_COMMA_RE = re.compile(r"^\d+,\d{2}$")


def _price_number(text: str) -> str | None:
    """Pull a bare number out of price text: "$1,299.00" -> "1299.00", "19,99" -> "19.99"."""
    match = _PRICE_NUMBER_RE.search(text)
    if not match:
        return None
    number = match.group(0)
    if _DECIMAL_COMMA_RE.match(number):
        return number.replace(",", ".")
    return number.replace(",", "")


def _price_value(m: re.Match[str]) -> str | None:
    return _price_number(_clean_text(m.group("value")))


PRICE_RULES = [
    Rule("itemprop_price", _content_attr("price"), _price_value),
    Rule("product_price_meta", _content_attr("product:price:amount"), _price_value),
    Rule("og_price_meta", _content_attr("og:price:amount"), _price_value),
    Rule(
        "price_class",
        re.compile(
            r'<(?P<tag>\w+)\b[^>]*\b(?:class|id)="[^"]*(?:price|cost)[^"]*"[^>]*>(?P<value>.*?)</(?P=tag)>',
            re.IGNORECASE | re.DOTALL,
        ),
        _price_value,
    ),
    Rule(
        "currency_amount",
        re.compile(r"(?P<value>[$€£¥]\s?\d[\d,]*(?:\.\d{1,2})?)"),
        _price_value,
    ),
]


# ----- Category -----

_CRUMB_RE = re.compile(r"<(?P<tag>a|li|span)\b[^>]*>(?P<body>.*?)</(?P=tag)>", re.IGNORECASE | re.DOTALL)
_CRUMB_SEPARATOR_RE = re.compile(r"^[\s/>|›»\\-]*$")


def _breadcrumb_trail(m: re.Match[str]) -> str | None:
    """Join the crumbs of a breadcrumb container with " > "."""
    element = _element_span(m.string, m.start(), m.group("tag"))
    if not element:
        return None
    inner = element[element.index(">") + 1 :]

    crumbs: list[str] = []
    for crumb in _CRUMB_RE.finditer(inner):
        text = _clean_text(crumb.group("body"))
        if text and not _CRUMB_SEPARATOR_RE.match(text) and text not in crumbs:
            crumbs.append(text)
    return " > ".join(crumbs) or None


CATEGORY_RULES = [
    Rule(
        "breadcrumb",
        re.compile(
            r'<(?P<tag>nav|ol|ul|div)\b[^>]*\b(?:class|id|aria-label)="[^"]*breadcrumb[^"]*"[^>]*>',
            re.IGNORECASE,
        ),
        _breadcrumb_trail,
    ),
    Rule("itemprop_category", _content_attr("category")),
    Rule("product_category_meta", _content_attr("product:category")),
]


# ----- Description -----


def _description_block(m: re.Match[str]) -> str | None:
    element = _element_span(m.string, m.start(), m.group("tag"))
    if not element:
        return None
    return _clean_text(element)[:MAX_DESCRIPTION_LENGTH].strip()


DESCRIPTION_RULES = [
    Rule("meta_description", _content_attr("description"), _truncated(MAX_DESCRIPTION_LENGTH)),
    Rule("og_description", _content_attr("og:description"), _truncated(MAX_DESCRIPTION_LENGTH)),
    Rule(
        "description_block",
        re.compile(
            r'<(?P<tag>div|p|section)\b[^>]*\b(?:class|id)="[^"]*(?:description|details|features)[^"]*"[^>]*>',
            re.IGNORECASE,
        ),
        _description_block,
    ),
]


# ---------------------------------------------------------------------------
# Size / color options
# ---------------------------------------------------------------------------

# Attribute-name fragment used to spot a container for a given option field
_FIELD_KEYWORDS = {
    "size": r"size",
    "color": r"colou?r|swatch",
}

_CONTAINER_ATTRS = r"(?:name|id|class|aria-label|data-[\w-]+)"

# Item-like sub-elements of a container; labeled <div>/<span> need a value-ish attribute
_ITEM_RE = re.compile(
    r"<(?P<tag>option|li|button|a|label)\b(?P<attrs>[^>]*)>(?P<body>.*?)</(?P=tag)>"
    r'|<(?P<dtag>div|span)\b(?P<dattrs>[^>]*\b(?:data-value|aria-label|data-(?:size|colou?r|option)[\w-]*)="[^"]*"[^>]*)>'
    r"(?P<dbody>.*?)</(?P=dtag)>",
    re.IGNORECASE | re.DOTALL,
)

# Unavailability: a bare disabled attribute, aria-disabled="true", a class token, or visible text
_DISABLED_ATTR_RE = re.compile(r'(?:^|\s)(?:disabled(?:="[^"]*")?|aria-disabled="true")(?=\s|/|$)', re.IGNORECASE)
_UNAVAILABLE_CLASS_RE = re.compile(r"(?:^|[-_])(?:disabled|sold[-_]?out|out[-_]of[-_]stock|unavailable)(?:$|[-_])", re.IGNORECASE)
_UNAVAILABLE_TEXT_RE = re.compile(r"sold[\s-]?out|out[\s-]of[\s-]stock|unavailable", re.IGNORECASE)
_OPEN_TAG_ATTRS_RE = re.compile(r"<\w+\b([^>]*)>")
_PLACEHOLDER_RE = re.compile(r"^(?:select|choose|pick)\b", re.IGNORECASE)
_ITEM_LABEL_ATTRS = ("aria-label", "data-value", "value", "title")


def _container_rules(field_name: str) -> list[tuple[str, re.Pattern[str]]]:
    keyword = _FIELD_KEYWORDS[field_name]
    attr = rf'\b{_CONTAINER_ATTRS}="[^"]*(?:{keyword})[^"]*"'
    return [
        ("select", re.compile(rf"<(?P<tag>select)\b[^>]*{attr}[^>]*>", re.IGNORECASE)),
        ("list", re.compile(rf"<(?P<tag>ul|ol)\b[^>]*{attr}[^>]*>", re.IGNORECASE)),
        ("group", re.compile(rf"<(?P<tag>div|fieldset)\b[^>]*{attr}[^>]*>", re.IGNORECASE)),
    ]


def _is_unavailable(item_markup: str, text: str) -> bool:
    """True when the option is marked disabled/sold out on any of its tags or says so in its text."""
    if _UNAVAILABLE_TEXT_RE.search(text):
        return True
    for attrs in _OPEN_TAG_ATTRS_RE.findall(item_markup):
        if _DISABLED_ATTR_RE.search(attrs):
            return True
        classes = _attr_value(attrs, ("class",)).split()
        if any(_UNAVAILABLE_CLASS_RE.search(token) for token in classes):
            return True
    return False


def _item_values(inner: str, field_name: str) -> list[str]:
    """Collect the visible, available, deduplicated option labels inside a container."""
    values: list[str] = []

    for m in _ITEM_RE.finditer(inner):
        if m.group("tag"):
            attrs, body = m.group("attrs"), m.group("body")
        else:
            attrs, body = m.group("dattrs"), m.group("dbody")

        text = _clean_text(body) or _attr_value(attrs, _ITEM_LABEL_ATTRS)
        if not text or _is_unavailable(m.group(0), text):
            continue
        if len(text) >= MAX_OPTION_LENGTH:
            continue
        if _PLACEHOLDER_RE.match(text) or text.rstrip(":").lower() == field_name:
            continue
        if text not in values:
            values.append(text)

    return values


def _find_options(markup: str, field_name: str) -> tuple[list[str], str | None]:
    """Return (option values, container inner markup) from the first productive container."""
    for _name, pattern in _container_rules(field_name):
        for m in pattern.finditer(markup):
            element = _element_span(markup, m.start(), m.group("tag"))
            if not element:
                continue
            inner = element[m.end() - m.start() :]
            values = _item_values(inner, field_name)
            if values:
                return values, inner
    return [], None


def extract_options(markup: str, field_name: str) -> list[str]:
    """Option values for ``field_name`` ("size" or "color") from its container, if any."""
    values, _ = _find_options(markup, field_name)
    return values


def extract_sizes(markup: str) -> list[str]:
    return extract_options(markup, "size")


# ----- Color vocabulary cross-check -----

COMMON_COLORS = (
    "black",
    "white",
    "red",
    "blue",
    "green",
    "yellow",
    "orange",
    "purple",
    "pink",
    "brown",
    "gray",
    "grey",
    "navy",
    "beige",
    "ivory",
    "cream",
    "tan",
    "khaki",
    "olive",
    "maroon",
    "burgundy",
    "teal",
    "turquoise",
    "gold",
    "silver",
    "charcoal",
    "coral",
    "lavender",
    "mint",
    "indigo",
    "camel",
    "taupe",
)

_COLOR_WORD_RE = re.compile(r"\b(" + "|".join(COMMON_COLORS) + r")\b", re.IGNORECASE)
_BACKGROUND_COLOR_RE = re.compile(r"background(?:-color)?\s*:\s*([^;\"]+)", re.IGNORECASE)
_CLASS_ATTR_RE = re.compile(r'\bclass="([^"]*)"', re.IGNORECASE)
_DATA_COLOR_RE = re.compile(r'\bdata-colou?r="([^"]*)"', re.IGNORECASE)
_SWATCH_TAG_RE = re.compile(r'<\w+\b[^>]*\b(?:class|data-[\w-]+)="[^"]*(?:swatch|colou?r)[^"]*"[^>]*>', re.IGNORECASE)


def _vocabulary_colors(scope: str) -> list[str]:
    """Known color names found in text, background-color styles, class tokens, and data-color."""
    sources: list[str] = [_clean_text(scope)]
    sources.extend(_BACKGROUND_COLOR_RE.findall(scope))
    sources.extend(" ".join(re.split(r"[\s_-]+", c)) for c in _CLASS_ATTR_RE.findall(scope))
    sources.extend(_DATA_COLOR_RE.findall(scope))

    found: list[str] = []
    for source in sources:
        for word in _COLOR_WORD_RE.findall(source):
            name = word.title()
            if name not in found:
                found.append(name)
    return found


def extract_colors(markup: str) -> list[str]:
    """Container option values unioned with vocabulary hits.

    Without a color container the vocabulary check only looks at swatch/color
    tagged opening tags, so page chrome like "text-white" does not leak in.
    """
    values, inner = _find_options(markup, "color")
    scope = inner if inner is not None else " ".join(_SWATCH_TAG_RE.findall(markup))

    for name in _vocabulary_colors(scope):
        if name not in values:
            values.append(name)
    return values


# ---------------------------------------------------------------------------
# Extraction context
# ---------------------------------------------------------------------------


@dataclass
class ExtractionContext:
    """Signals found on one page. Built per request and dropped after prompt assembly."""

    url: str
    title: str = ""
    price: str = ""
    sizes: list[str] = field(default_factory=list)
    colors: list[str] = field(default_factory=list)
    description: str = ""
    category: str = ""
    sources: dict[str, str] = field(default_factory=dict)  # field -> rule name that fired

    def found_fields(self) -> list[tuple[str, str]]:
        """(label, value) pairs for every non-empty signal, in prompt order."""
        fields = [
            ("Title", self.title),
            ("Price", self.price),
            ("Sizes", ", ".join(self.sizes)),
            ("Colors", ", ".join(self.colors)),
            ("Description", self.description),
            ("Category", self.category),
        ]
        return [(label, value) for label, value in fields if value]


_SCALAR_RULES = {
    "title": TITLE_RULES,
    "price": PRICE_RULES,
    "category": CATEGORY_RULES,
    "description": DESCRIPTION_RULES,
}


def extract_signals(markup: str, url: str) -> ExtractionContext:
    """Run every extractor over reduced markup."""
    context = ExtractionContext(url=url)

    for name, rules in _SCALAR_RULES.items():
        hit = first_match(rules, markup)
        if hit:
            rule_name, value = hit
            setattr(context, name, value)
            context.sources[name] = rule_name

    context.sizes = extract_sizes(markup)
    context.colors = extract_colors(markup)

    logger.info(
        f"  Signals: {[label for label, _ in context.found_fields()]} "
        f"(sizes={len(context.sizes)}, colors={len(context.colors)})"
    )
    return context
