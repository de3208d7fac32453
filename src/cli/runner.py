# src/cli/runner.py

"""Headless CLI runner on top of the async search aggregator."""

import json
import logging
import sys
from typing import Any

from rich.console import Console
from rich.table import Table

from src.config.settings import Settings
from src.core.exceptions import InvalidRequestError
from src.models.product import NormalizedProduct
from src.models.search_result import AggregatedSearchResult
from src.services.context import SourcingContext
from src.services.health_checker import HealthChecker
from src.services.search_aggregator import SearchAggregator

logger = logging.getLogger("sourcing.cli")

# Stderr console for status messages so stdout stays clean for JSON
_err = Console(stderr=True)


def resolve_sources(source_csv: str | None) -> list[str]:
    """Map a comma-separated list of source IDs to registry ids.

    Returns all sources when *source_csv* is ``None``.
    Raises ``SystemExit`` on unknown IDs.
    """
    available = Settings.source_ids()
    if source_csv is None:
        return available

    requested = [
        s.strip() for s in source_csv.split(",") if s.strip()
    ]
    unknown = [r for r in requested if r not in available]
    if unknown:
        _err.print(
            f"[red]Unknown source(s): {', '.join(unknown)}[/red]"
        )
        _err.print(f"[dim]Available: {', '.join(available)}[/dim]")
        raise SystemExit(2)
    return requested


def parse_source_options(
    cj_filters: list[str] | None,
) -> dict[str, dict[str, str]]:
    """Turn repeated ``KEY=VALUE`` CLI filters into per-source options.

    Raises ``SystemExit`` on an entry without ``=``.
    """
    if not cj_filters:
        return {}
    parsed: dict[str, str] = {}
    for entry in cj_filters:
        key, sep, value = entry.partition("=")
        if not sep or not key.strip():
            _err.print(f"[red]Bad filter {entry!r}, expected KEY=VALUE[/red]")
            raise SystemExit(2)
        parsed[key.strip().replace("-", "_")] = value.strip()
    return {"cj-dropshipping": parsed}


def result_to_dict(result: AggregatedSearchResult) -> dict[str, Any]:
    """Serialise a search result for JSON output."""
    return {
        "query": result.query,
        "duration_ms": round(result.duration_ms, 1),
        "counts": result.counts(),
        "degraded": result.degraded_sources,
        "results": {
            source: [p.to_dict() for p in products]
            for source, products in result.results.items()
        },
    }


def _format_price(p: NormalizedProduct) -> str:
    if p.price is None:
        return "N/A"
    return f"{p.currency} {p.price:,.2f}"


def _print_table(result: AggregatedSearchResult) -> None:
    """Render a Rich table of products to stdout."""
    table = Table(
        title=f"Results for '{result.query}'",
        show_lines=True,
        title_style="bold cyan",
    )
    table.add_column("#", style="dim", width=4)
    table.add_column("Title", max_width=60)
    table.add_column("Price", justify="right", style="green")
    table.add_column("MOQ", justify="right")
    table.add_column("Supplier", max_width=30)
    table.add_column("Source", style="magenta")
    table.add_column("URL", overflow="fold", style="dim")

    for idx, p in enumerate(result.all_products(), 1):
        table.add_row(
            str(idx),
            p.title[:60],
            _format_price(p),
            str(p.minimum_order_quantity),
            p.supplier_name or "—",
            p.source,
            p.source_url or "",
        )

    Console().print(table)


def _print_summary(result: AggregatedSearchResult) -> None:
    counts = ", ".join(
        f"{source}={count}" for source, count in result.counts().items()
    )
    _err.print(
        f"[green]✓ {result.total} products[/green] "
        f"[dim]({counts}; {result.duration_ms:.0f}ms)[/dim]"
    )
    for source in result.degraded_sources:
        error = result.outcomes[source].error or "no results"
        _err.print(f"[yellow]{source} unavailable: {error}[/yellow]")


def _emit(results: list[AggregatedSearchResult], output_format: str) -> None:
    if output_format == "table":
        for result in results:
            _print_table(result)
        return
    payload: Any = (
        result_to_dict(results[0])
        if len(results) == 1
        else [result_to_dict(r) for r in results]
    )
    json.dump(payload, sys.stdout, ensure_ascii=False, indent=2)
    sys.stdout.write("\n")


async def cli_search(
    query: str,
    source_csv: str | None,
    limit: int | None,
    output_format: str,
    batch: bool = False,
    cj_filters: list[str] | None = None,
) -> int:
    """Run a headless search and return an exit code.

    0 = products found, 1 = nothing found, 2 = invalid request.
    """
    sources = resolve_sources(source_csv)
    options = parse_source_options(cj_filters)
    _err.print(
        f"[bold]Searching:[/bold] {query}  "
        f"[dim]sources={', '.join(sources)}[/dim]"
    )

    async with await SourcingContext.create() as context:
        aggregator = SearchAggregator(context)
        try:
            if batch:
                queries = [q for q in query.split(";") if q.strip()]
                batch_results = await aggregator.batch_search(
                    queries, sources, limit, options=options
                )
                results = list(batch_results.values())
            else:
                results = [
                    await aggregator.search_all(
                        query, sources, limit, options=options
                    )
                ]
        except InvalidRequestError as exc:
            logger.error("Invalid search request: %s", exc)
            _err.print(f"[red]Invalid request: {exc}[/red]")
            return 2

    for result in results:
        _print_summary(result)

    if not any(r.total for r in results):
        _err.print("[yellow]No products found.[/yellow]")
        return 1

    _emit(results, output_format)
    return 0


async def run_health_check() -> int:
    """Run a connectivity health check on all sources."""
    _err.print("[bold]Running source health check...[/bold]")
    async with await SourcingContext.create() as context:
        results = await HealthChecker(context).check_all()

    table = Table(
        title="Source Health Check",
        show_lines=True,
        title_style="bold cyan",
    )
    table.add_column("Source", style="bold")
    table.add_column("Status", justify="center")
    table.add_column("Latency", justify="right")
    table.add_column("Notes", style="dim")

    any_down = False
    for r in results:
        if r.status == "ok":
            status = "[green]✅ OK[/green]"
        elif r.status == "slow":
            status = "[yellow]⚠️  SLOW[/yellow]"
        elif r.status == "unconfigured":
            status = "[dim]– SKIPPED[/dim]"
        else:
            status = "[red]❌ DOWN[/red]"
            any_down = True

        latency = (
            f"{r.latency_ms:.0f}ms"
            if r.latency_ms > 0
            else "—"
        )
        table.add_row(
            r.source_id, status, latency, r.message,
        )

    Console().print(table)
    return 1 if any_down else 0


async def run_clear_credential(source: str) -> int:
    """Invalidate the cached token for *source* in both tiers."""
    async with await SourcingContext.create() as context:
        try:
            await SearchAggregator(context).clear_credential(source)
        except InvalidRequestError as exc:
            _err.print(f"[red]{exc}[/red]")
            return 2
    _err.print(f"[green]✓ Cleared cached credential for {source}[/green]")
    return 0
