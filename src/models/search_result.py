# src/models/search_result.py

"""Request and result containers for multi-source searches."""

from dataclasses import dataclass, field
from typing import Any

from src.models.product import NormalizedProduct


@dataclass(frozen=True)
class SearchRequest:
    """A single logical search fanned out to several sources."""

    query: str
    sources: tuple[str, ...]
    limit: int | None = None
    options: dict[str, dict[str, Any]] = field(
        default_factory=lambda: dict[str, dict[str, Any]]()
    )


@dataclass
class SourceOutcome:
    """What one source contributed to a search.

    ``degraded`` marks a source whose retries were exhausted (or that
    was not configured), as opposed to one that genuinely found
    nothing.  Both carry an empty ``products`` list.
    """

    source: str
    products: list[NormalizedProduct] = field(
        default_factory=lambda: list[NormalizedProduct]()
    )
    degraded: bool = False
    attempts: int = 0
    error: str | None = None


@dataclass
class AggregatedSearchResult:
    """Container for a completed search across multiple sources."""

    query: str
    outcomes: dict[str, SourceOutcome] = field(
        default_factory=lambda: dict[str, SourceOutcome]()
    )
    duration_ms: float = 0.0

    @property
    def results(self) -> dict[str, list[NormalizedProduct]]:
        """Map every requested source to its (possibly empty) products."""
        return {
            source: list(outcome.products)
            for source, outcome in self.outcomes.items()
        }

    @property
    def total(self) -> int:
        """Number of products across all sources."""
        return sum(len(o.products) for o in self.outcomes.values())

    @property
    def degraded_sources(self) -> list[str]:
        """Sources that failed or were skipped."""
        return [
            source
            for source, outcome in self.outcomes.items()
            if outcome.degraded
        ]

    def counts(self) -> dict[str, int]:
        """Per-source product counts, zero for silent sources."""
        return {
            source: len(outcome.products)
            for source, outcome in self.outcomes.items()
        }

    def all_products(self) -> list[NormalizedProduct]:
        """Flatten products in source order, keeping upstream order."""
        products: list[NormalizedProduct] = []
        for outcome in self.outcomes.values():
            products.extend(outcome.products)
        return products
