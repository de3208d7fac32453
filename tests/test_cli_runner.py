# tests/test_cli_runner.py

"""Tests for the headless CLI runner."""

import unittest
from unittest.mock import AsyncMock, MagicMock, patch

from src.cli import runner
from src.core.exceptions import InvalidRequestError
from src.models.product import NormalizedProduct
from src.models.search_result import AggregatedSearchResult, SourceOutcome


def _result(total: int = 1) -> AggregatedSearchResult:
    products = [
        NormalizedProduct(id=str(i), title=f"P{i}", source="alibaba")
        for i in range(total)
    ]
    return AggregatedSearchResult(
        query="earbuds",
        outcomes={"alibaba": SourceOutcome("alibaba", products)},
        duration_ms=12.34,
    )


class TestResolveSources(unittest.TestCase):

    def test_none_returns_all(self) -> None:
        self.assertEqual(
            runner.resolve_sources(None),
            ["alibaba", "made-in-china", "cj-dropshipping", "shopify-global"],
        )

    def test_csv_subset(self) -> None:
        self.assertEqual(
            runner.resolve_sources("alibaba, cj-dropshipping"),
            ["alibaba", "cj-dropshipping"],
        )

    def test_unknown_exits(self) -> None:
        with self.assertRaises(SystemExit):
            runner.resolve_sources("alibaba,ebay")


class TestResultToDict(unittest.TestCase):

    def test_shape(self) -> None:
        data = runner.result_to_dict(_result(2))
        self.assertEqual(data["query"], "earbuds")
        self.assertEqual(data["counts"], {"alibaba": 2})
        self.assertEqual(data["duration_ms"], 12.3)
        self.assertEqual(len(data["results"]["alibaba"]), 2)
        self.assertEqual(data["degraded"], [])


def _patched_context(aggregator: MagicMock) -> tuple[object, object]:
    context = MagicMock()
    context.__aenter__ = AsyncMock(return_value=context)
    context.__aexit__ = AsyncMock(return_value=None)
    create = patch.object(
        runner.SourcingContext, "create", AsyncMock(return_value=context)
    )
    agg = patch.object(runner, "SearchAggregator", return_value=aggregator)
    return create, agg


class TestCliSearch(unittest.IsolatedAsyncioTestCase):

    async def test_exit_zero_with_results(self) -> None:
        aggregator = MagicMock()
        aggregator.search_all = AsyncMock(return_value=_result(1))
        create, agg = _patched_context(aggregator)
        with create, agg, patch.object(runner, "_emit") as emit:
            code = await runner.cli_search("earbuds", "alibaba", 5, "json")
        self.assertEqual(code, 0)
        emit.assert_called_once()

    async def test_exit_one_when_empty(self) -> None:
        aggregator = MagicMock()
        aggregator.search_all = AsyncMock(return_value=_result(0))
        create, agg = _patched_context(aggregator)
        with create, agg:
            code = await runner.cli_search("earbuds", None, None, "json")
        self.assertEqual(code, 1)

    async def test_exit_two_on_invalid_request(self) -> None:
        aggregator = MagicMock()
        aggregator.search_all = AsyncMock(
            side_effect=InvalidRequestError("bad limit")
        )
        create, agg = _patched_context(aggregator)
        with create, agg:
            code = await runner.cli_search("earbuds", None, None, "json")
        self.assertEqual(code, 2)

    async def test_batch_splits_on_semicolons(self) -> None:
        aggregator = MagicMock()
        aggregator.batch_search = AsyncMock(
            return_value={"a": _result(1), "b": _result(1)}
        )
        create, agg = _patched_context(aggregator)
        with create, agg, patch.object(runner, "_emit"):
            code = await runner.cli_search(
                "a; b ;", "alibaba", None, "json", batch=True
            )
        self.assertEqual(code, 0)
        queries = aggregator.batch_search.await_args.args[0]
        self.assertEqual(queries, ["a", " b "])

    async def test_cj_filters_passed_as_source_options(self) -> None:
        aggregator = MagicMock()
        aggregator.search_all = AsyncMock(return_value=_result(1))
        create, agg = _patched_context(aggregator)
        with create, agg, patch.object(runner, "_emit"):
            await runner.cli_search(
                "earbuds",
                "cj-dropshipping",
                None,
                "json",
                cj_filters=["country-code=US", "max_price = 20"],
            )
        self.assertEqual(
            aggregator.search_all.await_args.kwargs["options"],
            {"cj-dropshipping": {"country_code": "US", "max_price": "20"}},
        )


class TestParseSourceOptions(unittest.TestCase):

    def test_no_filters(self) -> None:
        self.assertEqual(runner.parse_source_options(None), {})
        self.assertEqual(runner.parse_source_options([]), {})

    def test_entry_without_equals_exits(self) -> None:
        with self.assertRaises(SystemExit):
            runner.parse_source_options(["free_shipping"])


if __name__ == "__main__":
    unittest.main()
