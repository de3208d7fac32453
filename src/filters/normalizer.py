# src/filters/normalizer.py

"""Map each source's raw record shape onto ``NormalizedProduct``."""

import logging
import math
import re
import uuid
from collections.abc import Callable, Mapping
from typing import Any

from src.models.product import NormalizedProduct
from src.models.raw_record import RawProductRecord

logger = logging.getLogger("sourcing.normalizer")

PLACEHOLDER_TITLE = "Unnamed Product"
DEFAULT_CURRENCY = "USD"

_NUMBER_RE = re.compile(r"\d+(?:\.\d+)?")
# A minus counts as a sign only when it is not a hyphen inside a word
_SIGNED_NUMBER_RE = re.compile(r"(?:(?<![\w-])-)?\d+(?:\.\d+)?")
_OUT_OF_RE = re.compile(r"(\d+(?:\.\d+)?)\s*/\s*(\d+(?:\.\d+)?)")
_RANGE_RE = re.compile(
    r"(\d+(?:\.\d+)?)\s*(?:-+|~|to)\s*\D{0,4}?(\d+(?:\.\d+)?)",
    re.IGNORECASE,
)
_PIECES_RE = re.compile(
    r"(\d[\d,]*)\s*(?:pieces?|pcs|units?|sets?|pairs?)", re.IGNORECASE
)
_CURRENCY_SYMBOLS: dict[str, str] = {
    "$": "USD",
    "US$": "USD",
    "€": "EUR",
    "£": "GBP",
    "¥": "CNY",
}


# ── Field helpers ────────────────────────────────────────


def first_value(payload: Mapping[str, Any], *keys: str) -> Any:
    """Return the first present, non-blank value among *keys*."""
    for key in keys:
        value = payload.get(key)
        if value is None:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        return value
    return None


def clean_text(value: Any) -> str | None:
    """Coerce to a stripped string, ``None`` when empty."""
    if value is None or isinstance(value, (dict, list)):
        return None
    text = str(value).strip()
    return text or None


def _positive(number: float) -> float | None:
    if math.isnan(number) or math.isinf(number) or number <= 0:
        return None
    return number


def parse_price(value: Any) -> float | None:
    """Parse a price into a positive float, ``None`` when unknown.

    Accepts numbers, strings such as ``"$1,299.00"`` and ranges such as
    ``"$5.00-$10.00 / Piece"`` (the midpoint is used).  Zero, negative,
    NaN and unparsable input all mean "absent", including signed
    strings such as ``"-5.00"``.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return _positive(float(value))
    if isinstance(value, Mapping):
        return parse_price(
            first_value(value, "amount", "value", "min", "price")
        )
    text = str(value).replace(",", "")
    first = _SIGNED_NUMBER_RE.search(text)
    if not first or first.group(0).startswith("-"):
        return None
    span = _RANGE_RE.match(text, first.start())
    if span:
        low, high = float(span.group(1)), float(span.group(2))
        return _positive((low + high) / 2)
    return _positive(float(first.group(0)))


def parse_quantity(value: Any) -> int | None:
    """Parse a positive integer quantity, ``None`` when unknown."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        if isinstance(value, float) and (
            math.isnan(value) or math.isinf(value)
        ):
            return None
        number = int(value)
        return number if number > 0 else None
    text = str(value)
    match = _PIECES_RE.search(text)
    raw = match.group(1) if match else None
    if raw is None:
        bare = re.search(r"\d[\d,]*", text)
        if not bare:
            return None
        raw = bare.group(0)
    digits = re.sub(r"\D", "", raw)
    number = int(digits) if digits else 0
    return number if number > 0 else None


def pieces_in(text: Any) -> int | None:
    """Quantity stated as e.g. ``"100 Pieces"`` inside a longer string."""
    if not isinstance(text, str):
        return None
    match = _PIECES_RE.search(text)
    if not match:
        return None
    number = int(match.group(1).replace(",", ""))
    return number if number > 0 else None


def parse_moq(*candidates: Any) -> int:
    """First parsable positive quantity among *candidates*, else 1."""
    for candidate in candidates:
        quantity = parse_quantity(candidate)
        if quantity is not None:
            return quantity
    return 1


def parse_rating(value: Any) -> float | None:
    """Parse a rating onto a 0-5 scale.

    An explicit scale is honoured (``"4.8/5"`` stays 4.8, ``"8.5/10"``
    becomes 4.25); other values above 5 are read as percentages.
    """
    if value is None or isinstance(value, bool):
        return None
    scale: float | None = None
    if isinstance(value, (int, float)):
        rating = float(value)
    else:
        text = str(value)
        out_of = _OUT_OF_RE.search(text)
        if out_of and float(out_of.group(2)) > 0:
            rating = float(out_of.group(1))
            scale = float(out_of.group(2))
        else:
            match = _NUMBER_RE.search(text)
            if not match:
                return None
            rating = float(match.group(0))
    if math.isnan(rating) or math.isinf(rating) or rating < 0:
        return None
    if scale is not None:
        rating = rating / scale * 5
    elif rating > 5:
        rating = rating / 100 * 5
    return round(min(rating, 5.0), 2)


def parse_count(value: Any) -> int | None:
    """Parse a non-negative integer count such as a review total."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        if isinstance(value, float) and not math.isfinite(value):
            return None
        return int(value) if value >= 0 else None
    digits = re.sub(r"[^\d]", "", str(value).split(".")[0])
    return int(digits) if digits else None


def detect_currency(*values: Any) -> str | None:
    """Guess an ISO currency from a code field or a price string."""
    for value in values:
        text = clean_text(value)
        if not text:
            continue
        if re.fullmatch(r"[A-Za-z]{3}", text):
            return text.upper()
        for symbol, code in _CURRENCY_SYMBOLS.items():
            if text.startswith(symbol):
                return code
    return None


def absolute_url(value: Any) -> str | None:
    """Clean a URL, upgrading protocol-relative ``//host/...`` links."""
    url = clean_text(value)
    if url and url.startswith("//"):
        url = "https:" + url
    return url


def image_of(value: Any) -> str | None:
    """Image URLs arrive as strings, lists or ``{"url": ...}`` objects."""
    if isinstance(value, Mapping):
        value = first_value(value, "url", "src", "originalSrc")
    elif isinstance(value, list):
        return image_of(value[0]) if value else None
    return absolute_url(value)


def synthesize_id(source: str, index: int) -> str:
    """Build an id for records that arrive without one."""
    return f"{source}-{index}-{uuid.uuid4().hex[:8]}"


# ── Per-source mappings ──────────────────────────────────

Mapper = Callable[[str, Mapping[str, Any], str], NormalizedProduct]


def map_shopify(
    source: str, p: Mapping[str, Any], fallback_id: str,
) -> NormalizedProduct:
    """Shopify global catalog product."""
    price_field = p.get("price")
    price_currency = (
        price_field.get("currency") or price_field.get("currencyCode")
        if isinstance(price_field, Mapping)
        else None
    )
    return NormalizedProduct(
        id=clean_text(first_value(p, "id", "product_id")) or fallback_id,
        title=clean_text(first_value(p, "title", "name"))
        or PLACEHOLDER_TITLE,
        description=clean_text(first_value(p, "description", "summary")),
        price=parse_price(price_field),
        currency=detect_currency(p.get("currency"), price_currency)
        or DEFAULT_CURRENCY,
        image_url=image_of(
            first_value(p, "image", "imageUrl", "image_url", "featuredImage")
        ),
        supplier_name=clean_text(
            first_value(p, "supplier", "vendor", "shop_name")
        )
        or "Shopify Network",
        source_url=clean_text(
            first_value(p, "url", "link", "onlineStoreUrl")
        ),
        minimum_order_quantity=parse_moq(
            p.get("moq"), p.get("minimum_order_quantity")
        ),
        rating=parse_rating(p.get("rating")),
        review_count=parse_count(first_value(p, "reviews", "review_count")),
        source=source,
    )


def map_cj(
    source: str, p: Mapping[str, Any], fallback_id: str,
) -> NormalizedProduct:
    """CJ Dropshipping ``listV2`` product; CJ has no MOQ."""
    raw_id = clean_text(first_value(p, "id", "pid"))
    return NormalizedProduct(
        id=f"cj-{raw_id}" if raw_id else fallback_id,
        title=clean_text(
            first_value(p, "nameEn", "productNameEn", "productName")
        )
        or PLACEHOLDER_TITLE,
        description=clean_text(p.get("description")),
        price=parse_price(
            first_value(p, "nowPrice", "discountPrice", "sellPrice")
        ),
        currency=detect_currency(p.get("currency")) or DEFAULT_CURRENCY,
        image_url=image_of(first_value(p, "bigImage", "productImage")),
        supplier_name=clean_text(p.get("supplierName"))
        or "CJ Dropshipping",
        source_url=(
            f"https://cjdropshipping.com/product-detail/{raw_id}.html"
            if raw_id
            else None
        ),
        minimum_order_quantity=1,
        rating=parse_rating(p.get("rating")),
        review_count=None,
        source=source,
    )


def map_alibaba(
    source: str, p: Mapping[str, Any], fallback_id: str,
) -> NormalizedProduct:
    """Alibaba item carrying display strings for price/MOQ/rating."""
    price_text = first_value(p, "price", "priceRange", "price_range")
    return NormalizedProduct(
        id=clean_text(first_value(p, "id", "productId", "product_id"))
        or fallback_id,
        title=clean_text(first_value(p, "title", "subject", "name"))
        or PLACEHOLDER_TITLE,
        description=clean_text(first_value(p, "description", "summary")),
        price=parse_price(price_text),
        currency=detect_currency(p.get("currency"), price_text)
        or DEFAULT_CURRENCY,
        image_url=image_of(
            first_value(p, "image", "imageUrl", "image_url", "mainImage")
        ),
        supplier_name=clean_text(
            first_value(p, "supplier", "supplierName", "companyName", "vendor")
        ),
        source_url=absolute_url(first_value(p, "url", "link", "detailUrl")),
        minimum_order_quantity=parse_moq(
            first_value(p, "moq", "minOrder", "min_order", "minimum_order_quantity"),
            pieces_in(price_text),
        ),
        rating=parse_rating(first_value(p, "rating", "supplierRating")),
        review_count=parse_count(first_value(p, "reviews", "reviewCount")),
        source=source,
    )


def map_made_in_china(
    source: str, p: Mapping[str, Any], fallback_id: str,
) -> NormalizedProduct:
    """Product card scraped from a made-in-china.com results page."""
    price_text = p.get("price")
    return NormalizedProduct(
        id=clean_text(p.get("id")) or fallback_id,
        title=clean_text(p.get("title")) or PLACEHOLDER_TITLE,
        description=clean_text(p.get("description")),
        price=parse_price(price_text),
        currency=detect_currency(p.get("currency"), price_text)
        or DEFAULT_CURRENCY,
        image_url=image_of(p.get("image")),
        supplier_name=clean_text(p.get("supplier"))
        or "Made-in-China Supplier",
        source_url=absolute_url(p.get("url")),
        minimum_order_quantity=parse_moq(p.get("moq")),
        rating=parse_rating(p.get("rating")),
        review_count=None,
        source=source,
    )


def map_generic(
    source: str, p: Mapping[str, Any], fallback_id: str,
) -> NormalizedProduct:
    """Best-effort mapping for sources without a dedicated mapper."""
    return NormalizedProduct(
        id=clean_text(p.get("id")) or fallback_id,
        title=clean_text(first_value(p, "title", "name"))
        or PLACEHOLDER_TITLE,
        description=clean_text(first_value(p, "description", "summary")),
        price=parse_price(p.get("price")),
        currency=detect_currency(p.get("currency"), p.get("price"))
        or DEFAULT_CURRENCY,
        image_url=image_of(
            first_value(p, "image", "imageUrl", "image_url")
        ),
        supplier_name=clean_text(
            first_value(p, "supplier", "vendor", "supplierName")
        ),
        source_url=clean_text(first_value(p, "url", "link")),
        minimum_order_quantity=parse_moq(
            p.get("moq"), p.get("minimum_order_quantity")
        ),
        rating=parse_rating(p.get("rating")),
        review_count=parse_count(first_value(p, "reviews", "review_count")),
        source=source,
    )


_MAPPERS: dict[str, Mapper] = {
    "shopify-global": map_shopify,
    "cj-dropshipping": map_cj,
    "alibaba": map_alibaba,
    "made-in-china": map_made_in_china,
}


class ResultNormalizer:
    """Convert raw connector records into ``NormalizedProduct`` values.

    Pure and total: a malformed record becomes a product with
    documented defaults instead of being dropped, and nothing raises.
    """

    @staticmethod
    def normalize(
        source: str,
        records: list[RawProductRecord],
    ) -> list[NormalizedProduct]:
        """Normalize *records* for *source*, preserving upstream order."""
        mapper = _MAPPERS.get(source, map_generic)
        products: list[NormalizedProduct] = []
        for index, record in enumerate(records):
            fallback_id = synthesize_id(source, index)
            payload: Mapping[str, Any] = (
                record.payload
                if isinstance(record.payload, Mapping)
                else {}
            )
            try:
                products.append(mapper(source, payload, fallback_id))
            except Exception as exc:
                logger.debug(
                    "[%s] Record %d fell back to defaults: %s",
                    source,
                    index,
                    exc,
                )
                products.append(
                    NormalizedProduct(
                        id=fallback_id,
                        title=clean_text(payload.get("title"))
                        or PLACEHOLDER_TITLE,
                        source=source,
                    )
                )
        return products
