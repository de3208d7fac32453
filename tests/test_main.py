# tests/test_main.py

"""Tests for the command-line argument parser."""

import unittest

from main import _build_parser


class TestArgumentParser(unittest.TestCase):

    def test_search_arguments(self) -> None:
        args = _build_parser().parse_args(
            ["wireless earbuds", "-s", "alibaba,cj-dropshipping", "-l", "5"]
        )
        self.assertEqual(args.query, "wireless earbuds")
        self.assertEqual(args.sources, "alibaba,cj-dropshipping")
        self.assertEqual(args.limit, 5)
        self.assertEqual(args.output_format, "json")
        self.assertFalse(args.batch)

    def test_operational_flags(self) -> None:
        args = _build_parser().parse_args(
            ["--clear-credential", "shopify-global", "-v"]
        )
        self.assertIsNone(args.query)
        self.assertEqual(args.clear_credential, "shopify-global")
        self.assertTrue(args.verbose)

    def test_repeated_cj_filters(self) -> None:
        args = _build_parser().parse_args(
            [
                "earbuds",
                "--cj-filter",
                "country_code=US",
                "--cj-filter",
                "free_shipping=true",
            ]
        )
        self.assertEqual(
            args.cj_filters, ["country_code=US", "free_shipping=true"]
        )

    def test_cj_filters_default_to_none(self) -> None:
        self.assertIsNone(_build_parser().parse_args(["earbuds"]).cj_filters)

    def test_non_positive_limit_rejected(self) -> None:
        with self.assertRaises(SystemExit):
            _build_parser().parse_args(["earbuds", "-l", "0"])


if __name__ == "__main__":
    unittest.main()
