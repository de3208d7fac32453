# src/connectors/shopify_mcp_connector.py

"""Connector for Shopify's global product discovery (MCP) endpoint."""

import json
import time
from collections.abc import Mapping
from typing import Any

from src.connectors.base_connector import BaseConnector
from src.core.exceptions import AuthenticationError, SourceError
from src.models.raw_record import RawProductRecord, TokenGrant


class ShopifyGlobalConnector(BaseConnector):
    """Searches the Shopify network through a JSON-RPC ``tools/call``.

    Authentication is an OAuth client-credentials exchange; the bearer
    token is cached per process and in Redis by the credential cache.
    """

    source_id = "shopify-global"
    label = "Shopify Global"

    TOOL_NAME = "search_global_products"
    SEARCH_CONTEXT = "sourcing,wholesale"

    def is_configured(self) -> bool:
        return bool(
            self.settings.SHOPIFY_MCP_CLIENT_ID
            and self.settings.SHOPIFY_MCP_CLIENT_SECRET
        )

    async def fetch_token(self) -> TokenGrant:
        """Exchange the client id/secret for a bearer token."""
        try:
            data = await self._request_json(
                "POST",
                self.settings.SHOPIFY_TOKEN_ENDPOINT,
                headers=self.settings.JSON_HEADERS,
                json={
                    "client_id": self.settings.SHOPIFY_MCP_CLIENT_ID,
                    "client_secret": (
                        self.settings.SHOPIFY_MCP_CLIENT_SECRET
                    ),
                    "grant_type": "client_credentials",
                },
            )
        except SourceError as exc:
            raise AuthenticationError(
                f"Token request failed: {exc.message}", self.source_id
            ) from exc

        token = str(data.get("access_token") or "")
        if not token:
            raise AuthenticationError(
                "Token response missing access_token", self.source_id
            )
        return TokenGrant(
            access_token=token,
            expires_in=int(
                data.get("expires_in")
                or self.settings.DEFAULT_TOKEN_TTL
            ),
        )

    def build_payload(self, query: str, limit: int) -> dict[str, Any]:
        """Build the JSON-RPC 2.0 tool invocation envelope."""
        return {
            "jsonrpc": "2.0",
            "method": "tools/call",
            "id": int(time.time() * 1000),
            "params": {
                "name": self.TOOL_NAME,
                "arguments": {
                    "query": query,
                    "context": self.SEARCH_CONTEXT,
                    "limit": limit,
                },
            },
        }

    async def _search(
        self, query: str, limit: int, options: Mapping[str, Any],
    ) -> list[RawProductRecord]:
        token = await self._access_token()
        start = time.monotonic()
        data = await self._request_json(
            "POST",
            self.settings.SHOPIFY_MCP_ENDPOINT,
            headers={
                **self.settings.JSON_HEADERS,
                "Authorization": f"Bearer {token}",
            },
            json=self.build_payload(query, limit),
        )
        error = self._error_message(data)
        if error:
            self.logger.error(
                "[%s] MCP returned error: %s", self.source_id, error
            )
            raise SourceError(f"MCP error: {error}", self.source_id)

        items = self.extract_products(data)
        self.logger.info(
            "[%s] MCP response with %d products in %.0fms",
            self.source_id,
            len(items),
            (time.monotonic() - start) * 1000,
        )
        return self._records(items, limit)

    @staticmethod
    def _error_message(data: dict[str, Any]) -> str:
        """Return the upstream error text, or '' when there is none."""
        error = data.get("error")
        if not error:
            result = data.get("result")
            if isinstance(result, dict) and result.get("isError"):
                return str(result.get("content") or "tool error")
            return ""
        if isinstance(error, dict):
            return str(error.get("message") or error)
        return str(error)

    @staticmethod
    def extract_products(data: dict[str, Any]) -> list[Any]:
        """Pull the product list out of the response envelope.

        Accepts a bare ``products`` array, ``result.products``, or MCP
        text content blocks carrying JSON with a ``products`` key.
        """
        products = data.get("products")
        if isinstance(products, list):
            return products

        result = data.get("result")
        if not isinstance(result, dict):
            return []
        products = result.get("products")
        if isinstance(products, list):
            return products

        collected: list[Any] = []
        for block in result.get("content") or []:
            if not isinstance(block, dict) or block.get("type") != "text":
                continue
            try:
                parsed: Any = json.loads(block.get("text") or "")
            except ValueError:
                continue
            if isinstance(parsed, dict) and isinstance(
                parsed.get("products"), list
            ):
                collected.extend(parsed["products"])
            elif isinstance(parsed, list):
                collected.extend(parsed)
        return collected
