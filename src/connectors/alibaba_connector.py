# src/connectors/alibaba_connector.py

"""Connector for the Alibaba.com product search API."""

from collections.abc import Mapping
from typing import Any

from src.connectors.base_connector import BaseConnector
from src.core.exceptions import AuthenticationError, SourceError
from src.models.raw_record import RawProductRecord, TokenGrant


class AlibabaConnector(BaseConnector):
    """Bearer-token REST search against Alibaba's open API.

    Items come back with Alibaba's display strings intact (price
    ranges like ``"$5.00-$10.00 / Piece"``, ratings like ``"4.8/5"``);
    turning those into numbers is the normalizer's job.
    """

    source_id = "alibaba"
    label = "Alibaba"

    TOKEN_PATH = "/auth/token"
    SEARCH_PATH = "/products/search"

    def is_configured(self) -> bool:
        return bool(
            self.settings.ALIBABA_CLIENT_ID
            and self.settings.ALIBABA_CLIENT_SECRET
        )

    def _url(self, path: str) -> str:
        return f"{self.settings.ALIBABA_API_URL.rstrip('/')}{path}"

    async def fetch_token(self) -> TokenGrant:
        """Client-credentials exchange for a bearer token."""
        try:
            data = await self._request_json(
                "POST",
                self._url(self.TOKEN_PATH),
                headers=self.settings.JSON_HEADERS,
                json={
                    "client_id": self.settings.ALIBABA_CLIENT_ID,
                    "client_secret": self.settings.ALIBABA_CLIENT_SECRET,
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
                str(
                    data.get("error_description")
                    or "Token response missing access_token"
                ),
                self.source_id,
            )
        return TokenGrant(
            access_token=token,
            expires_in=int(
                data.get("expires_in")
                or self.settings.DEFAULT_TOKEN_TTL
            ),
        )

    async def _search(
        self, query: str, limit: int, options: Mapping[str, Any],
    ) -> list[RawProductRecord]:
        token = await self._access_token()
        data = await self._request_json(
            "GET",
            self._url(self.SEARCH_PATH),
            headers={
                **self.settings.JSON_HEADERS,
                "Authorization": f"Bearer {token}",
            },
            params={"keywords": query, "page_size": limit},
        )
        error = data.get("error") or data.get("error_message")
        if error:
            raise SourceError(str(error), self.source_id)

        items = self.extract_products(data)
        self.logger.info(
            "[%s] Found %d products for '%s'",
            self.source_id,
            len(items),
            query,
        )
        return self._records(items, limit)

    @staticmethod
    def extract_products(data: dict[str, Any]) -> list[Any]:
        """Return the first list found under the known item keys."""
        for key in ("products", "items", "data"):
            value = data.get(key)
            if isinstance(value, list):
                return value
            if isinstance(value, dict):
                nested = value.get("products") or value.get("items")
                if isinstance(nested, list):
                    return nested
        return []
