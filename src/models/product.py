# src/models/product.py

"""Normalized product model shared by every source connector."""

from dataclasses import asdict, dataclass
from typing import Any


@dataclass(frozen=True)
class NormalizedProduct:
    """A single supplier listing in the common shape.

    Instances are produced by the normalizer and never mutated
    afterwards; callers only filter, sort or display them.
    """

    id: str
    title: str
    source: str
    description: str | None = None
    price: float | None = None
    currency: str = "USD"
    image_url: str | None = None
    supplier_name: str | None = None
    source_url: str | None = None
    minimum_order_quantity: int = 1
    rating: float | None = None
    review_count: int | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialise to a plain dict for JSON output."""
        return asdict(self)
