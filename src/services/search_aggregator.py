# src/services/search_aggregator.py

"""Fans one product search out to several supplier sources at once."""

import asyncio
import logging
import time
from collections.abc import Iterable, Mapping
from typing import Any

from src.connectors.base_connector import BaseConnector
from src.core.exceptions import InvalidRequestError
from src.filters.normalizer import ResultNormalizer
from src.models.raw_record import RawProductRecord
from src.models.search_result import (
    AggregatedSearchResult,
    SearchRequest,
    SourceOutcome,
)
from src.services.context import SourcingContext

logger = logging.getLogger("sourcing.aggregator")


class SearchAggregator:
    """Coordinates connector calls, retries and normalization.

    A failing source never fails the search: it contributes an empty,
    degraded outcome while the others carry on.  Only malformed
    requests (no sources, unknown sources, bad limit, rejected
    per-source options) raise.
    """

    def __init__(self, context: SourcingContext) -> None:
        self.context = context
        self.settings = context.settings

    # ── Request validation ───────────────────────────────

    @staticmethod
    def _source_list(sources: Iterable[str]) -> list[str]:
        """Accept one source id or an iterable of them."""
        if isinstance(sources, str):
            return [sources]
        return list(sources)

    def _validate(
        self,
        query: str,
        sources: Iterable[str],
        limit: int | None,
        options: Mapping[str, Mapping[str, Any]] | None = None,
    ) -> SearchRequest:
        """Check a request before any I/O; raise on programmer error."""
        unique: list[str] = []
        for source in self._source_list(sources):
            source = str(source).strip()
            if source and source not in unique:
                unique.append(source)
        if not unique:
            raise InvalidRequestError("At least one source is required")

        unknown = [s for s in unique if s not in self.context.connectors]
        if unknown:
            raise InvalidRequestError(
                f"Unknown source(s): {', '.join(unknown)}"
            )

        if limit is not None and (
            isinstance(limit, bool) or not isinstance(limit, int) or limit <= 0
        ):
            raise InvalidRequestError(
                f"limit must be a positive integer, got {limit!r}"
            )
        effective = min(
            limit or self.settings.DEFAULT_RESULT_LIMIT,
            self.settings.MAX_RESULT_LIMIT,
        )

        source_options: dict[str, dict[str, Any]] = {}
        for source, opts in (options or {}).items():
            if source not in unique:
                raise InvalidRequestError(
                    f"Options given for unselected source: {source}"
                )
            try:
                self.context.connectors[source].parse_options(opts)
            except (TypeError, ValueError) as exc:
                raise InvalidRequestError(
                    f"Invalid options for {source}: {exc}"
                ) from exc
            if opts:
                source_options[source] = dict(opts)

        return SearchRequest(
            query=(query or "").strip(),
            sources=tuple(unique),
            limit=effective,
            options=source_options,
        )

    # ── Per-source dispatch ──────────────────────────────

    async def _run_source(
        self,
        connector: BaseConnector,
        query: str,
        limit: int,
        max_attempts: int | None,
        options: Mapping[str, Any] | None = None,
    ) -> SourceOutcome:
        """Search one source under the retry executor."""
        source = connector.source_id
        if not connector.is_configured():
            logger.warning(
                "[%s] Not configured, contributing no results", source
            )
            return SourceOutcome(
                source=source,
                degraded=True,
                error="Credentials not configured",
            )

        async def call() -> list[RawProductRecord]:
            return await connector.search(query, limit, options)

        execution = await self.context.executor.execute(
            source,
            call,
            default=list[RawProductRecord](),
            max_attempts=max_attempts,
        )
        products = ResultNormalizer.normalize(source, execution.value)
        if execution.degraded:
            logger.warning(
                "[%s] Degraded to empty result after %d attempts: %s",
                source,
                execution.attempts,
                execution.error,
            )
        return SourceOutcome(
            source=source,
            products=products[:limit],
            degraded=execution.degraded,
            attempts=execution.attempts,
            error=execution.error,
        )

    # ── Public API ───────────────────────────────────────

    async def search_all(
        self,
        query: str,
        sources: Iterable[str],
        limit: int | None = None,
        max_attempts: int | None = None,
        options: Mapping[str, Mapping[str, Any]] | None = None,
    ) -> AggregatedSearchResult:
        """Search every selected source concurrently.

        Returns one outcome per source (empty when the source failed or
        found nothing).  A blank query returns an empty result without
        any network call.  *options* maps a source id to its own
        narrowing, e.g. ``{"cj-dropshipping": {"min_price": 5}}``.

        Raises:
            InvalidRequestError: no/unknown sources, a bad limit or
                options a source rejects.
        """
        request = self._validate(query, sources, limit, options)
        start = time.monotonic()

        if not request.query:
            logger.warning("Empty search query, nothing to do")
            return AggregatedSearchResult(query=request.query)

        logger.info(
            "Searching '%s' across %s (limit=%d)",
            request.query,
            ", ".join(request.sources),
            request.limit,
        )
        outcomes = await asyncio.gather(
            *(
                self._run_source(
                    self.context.connectors[source],
                    request.query,
                    request.limit or self.settings.DEFAULT_RESULT_LIMIT,
                    max_attempts,
                    request.options.get(source),
                )
                for source in request.sources
            )
        )

        result = AggregatedSearchResult(
            query=request.query,
            outcomes={o.source: o for o in outcomes},
            duration_ms=(time.monotonic() - start) * 1000,
        )
        logger.info(
            "Search '%s' completed in %.0fms: %d products %s",
            request.query,
            result.duration_ms,
            result.total,
            result.counts(),
        )
        return result

    async def batch_search(
        self,
        queries: Iterable[str],
        sources: Iterable[str],
        limit: int | None = None,
        options: Mapping[str, Mapping[str, Any]] | None = None,
    ) -> dict[str, AggregatedSearchResult]:
        """Run several queries one after another against the same sources.

        Queries are never overlapped, so each upstream sees at most one
        in-flight search from this batch.  Blank queries are skipped.
        *sources* may be a single source id.
        """
        source_list = self._source_list(sources)
        self._validate("", source_list, limit, options)

        results: dict[str, AggregatedSearchResult] = {}
        start = time.monotonic()
        ordered = [q.strip() for q in queries if q and q.strip()]
        logger.info("Starting batch search for %d queries", len(ordered))

        for query in ordered:
            if query in results:
                continue
            results[query] = await self.search_all(
                query,
                source_list,
                limit,
                max_attempts=self.settings.BATCH_MAX_ATTEMPTS,
                options=options,
            )

        logger.info(
            "Batch search completed in %.0fms: %d queries, %d products",
            (time.monotonic() - start) * 1000,
            len(results),
            sum(r.total for r in results.values()),
        )
        return results

    async def health_check(self, source: str) -> bool:
        """True when *source* currently authenticates (or answers)."""
        connector = self.context.connector(source)
        if connector is None:
            raise InvalidRequestError(f"Unknown source: {source}")
        return await connector.health_check()

    async def clear_credential(self, source: str) -> None:
        """Force the next call to *source* to re-authenticate."""
        if self.context.connector(source) is None:
            raise InvalidRequestError(f"Unknown source: {source}")
        await self.context.credentials.clear(source)
