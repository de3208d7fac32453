# src/connectors/cj_dropshipping_connector.py

"""Connector for the CJ Dropshipping open API (v2 product search)."""

import time
from collections.abc import Mapping
from dataclasses import dataclass, fields
from datetime import datetime, timezone
from typing import Any

from src.connectors.base_connector import BaseConnector
from src.core.exceptions import AuthenticationError, SourceError
from src.models.raw_record import RawProductRecord, TokenGrant

# listV2 sort and product-flag codes
_SORT_CODES: dict[str, int] = {
    "best_match": 0,
    "listings": 1,
    "price": 2,
    "newest": 3,
    "inventory": 4,
}
_PRODUCT_FLAGS: dict[str, int] = {
    "trending": 0,
    "new": 1,
    "video": 2,
}

REFRESH_TOKEN = "refresh_token"


@dataclass(frozen=True)
class CJSearchFilters:
    """Optional narrowing for a CJ product search."""

    category_id: str | None = None
    country_code: str | None = None     # Warehouse country (CN, US, ...)
    min_price: float | None = None
    max_price: float | None = None
    free_shipping: bool = False
    product_type: str | None = None     # trending | new | video
    sort_by: str | None = None          # see _SORT_CODES
    sort_order: str = "desc"

    @classmethod
    def from_options(cls, options: Mapping[str, Any]) -> "CJSearchFilters":
        """Build filters from loosely typed options (CLI or caller dicts).

        Raises:
            ValueError: unknown keys or values CJ does not accept.
        """
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(options) - known)
        if unknown:
            raise ValueError(f"Unknown CJ filter(s): {', '.join(unknown)}")

        values: dict[str, Any] = {
            key: value for key, value in options.items() if value is not None
        }
        for key in ("min_price", "max_price"):
            if key in values:
                values[key] = float(values[key])
                if values[key] < 0:
                    raise ValueError(f"{key} must not be negative")
        if "free_shipping" in values:
            values["free_shipping"] = _as_bool(values["free_shipping"])
        for key in ("category_id", "country_code", "product_type", "sort_by"):
            if key in values:
                values[key] = str(values[key]).strip() or None
        if values.get("country_code"):
            values["country_code"] = values["country_code"].upper()

        if values.get("sort_by") not in (None, *_SORT_CODES):
            raise ValueError(f"Unknown sort_by: {values['sort_by']!r}")
        if values.get("product_type") not in (None, *_PRODUCT_FLAGS):
            raise ValueError(
                f"Unknown product_type: {values['product_type']!r}"
            )
        if "sort_order" in values:
            values["sort_order"] = str(values["sort_order"]).lower()
            if values["sort_order"] not in ("asc", "desc"):
                raise ValueError("sort_order must be 'asc' or 'desc'")
        return cls(**values)


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ("1", "true", "yes", "on"):
        return True
    if text in ("0", "false", "no", "off", ""):
        return False
    raise ValueError(f"Not a boolean: {value!r}")


class CJDropshippingConnector(BaseConnector):
    """Searches CJ Dropshipping's ElasticSearch-backed ``listV2``.

    CJ exchanges an API key for an access token that is sent in the
    ``CJ-Access-Token`` header.  The exchange also hands out a refresh
    token; later exchanges spend that instead of the API key and only
    fall back to the key when the refresh is refused.  Every response
    is wrapped in a ``{code, message, data}`` envelope where
    ``code == 200`` is success.
    """

    source_id = "cj-dropshipping"
    label = "CJ Dropshipping"

    default_filters = CJSearchFilters()

    def is_configured(self) -> bool:
        return bool(self.settings.CJ_API_KEY)

    def parse_options(self, options: Mapping[str, Any]) -> CJSearchFilters:
        return CJSearchFilters.from_options(options)

    def _url(self, path: str) -> str:
        return f"{self.settings.CJ_API_URL.rstrip('/')}{path}"

    async def fetch_token(self) -> TokenGrant:
        """Get an access token, preferring the stored refresh token."""
        refresh_token = await self.credentials.recall(
            self.source_id, REFRESH_TOKEN
        )
        if refresh_token:
            try:
                grant = await self._exchange(
                    "/authentication/refreshAccessToken",
                    {"refreshToken": refresh_token},
                )
            except AuthenticationError as exc:
                self.logger.warning(
                    "[%s] Token refresh failed, using API key: %s",
                    self.source_id,
                    exc.message,
                )
                await self.credentials.forget(self.source_id, REFRESH_TOKEN)
            else:
                self.logger.info(
                    "[%s] Access token refreshed", self.source_id
                )
                return grant

        return await self._exchange(
            "/authentication/getAccessToken",
            {"apiKey": self.settings.CJ_API_KEY},
        )

    async def _exchange(
        self, path: str, payload: dict[str, Any],
    ) -> TokenGrant:
        """POST one token call and unwrap the envelope into a grant."""
        try:
            data = await self._request_json(
                "POST",
                self._url(path),
                headers=self.settings.JSON_HEADERS,
                json=payload,
            )
        except SourceError as exc:
            raise AuthenticationError(
                f"Token request failed: {exc.message}", self.source_id
            ) from exc

        body = data.get("data")
        if data.get("code") != 200 or not isinstance(body, dict):
            raise AuthenticationError(
                str(data.get("message") or "Authentication failed"),
                self.source_id,
            )
        token = str(body.get("accessToken") or "")
        if not token:
            raise AuthenticationError(
                "Token response missing accessToken", self.source_id
            )
        expires_in = self._seconds_until(body.get("accessTokenExpiryDate"))
        if expires_in <= 0:
            raise AuthenticationError(
                f"Access token already expired at "
                f"{body.get('accessTokenExpiryDate')}",
                self.source_id,
            )

        refresh_token = str(body.get("refreshToken") or "")
        if refresh_token:
            await self.credentials.remember(
                self.source_id,
                REFRESH_TOKEN,
                refresh_token,
                self.settings.CJ_REFRESH_TOKEN_TTL,
            )
        return TokenGrant(access_token=token, expires_in=expires_in)

    def _seconds_until(self, expiry: Any) -> int:
        """Convert CJ's ISO expiry timestamp into a lifetime in seconds.

        A missing or unparsable expiry falls back to the default TTL; a
        past expiry comes back as zero or negative.
        """
        default = self.settings.DEFAULT_TOKEN_TTL
        if not expiry:
            return default
        try:
            parsed = datetime.fromisoformat(
                str(expiry).replace("Z", "+00:00")
            )
        except ValueError:
            self.logger.warning(
                "[%s] Unparsable token expiry %r, assuming %ds",
                self.source_id,
                expiry,
                default,
            )
            return default
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return int((parsed - datetime.now(timezone.utc)).total_seconds())

    def build_params(
        self,
        query: str,
        limit: int,
        filters: CJSearchFilters | None = None,
    ) -> dict[str, Any]:
        """Build the ``listV2`` query string for *query*."""
        params: dict[str, Any] = {
            "keyWord": query,
            "page": 1,
            "size": limit,
            "features": "enable_description,enable_category",
            "zonePlatform": "shopify",
            "currency": "USD",
        }
        f = filters or self.default_filters
        if f.category_id:
            params["categoryId"] = f.category_id
        if f.country_code:
            params["countryCode"] = f.country_code
        if f.min_price is not None:
            params["startSellPrice"] = f.min_price
        if f.max_price is not None:
            params["endSellPrice"] = f.max_price
        if f.free_shipping:
            params["addMarkStatus"] = 1
        if f.sort_by:
            params["orderBy"] = _SORT_CODES.get(f.sort_by, 0)
        params["sort"] = f.sort_order or "desc"
        if f.product_type in _PRODUCT_FLAGS:
            params["productFlag"] = _PRODUCT_FLAGS[f.product_type]
        return params

    async def _search(
        self, query: str, limit: int, options: Mapping[str, Any],
    ) -> list[RawProductRecord]:
        filters = self.parse_options(options) if options else None
        token = await self._access_token()
        start = time.monotonic()
        try:
            data = await self._request_json(
                "GET",
                self._url("/product/listV2"),
                headers={
                    **self.settings.JSON_HEADERS,
                    "CJ-Access-Token": token,
                },
                params=self.build_params(query, limit, filters),
            )
        except SourceError as exc:
            if exc.status_code == 401:
                # Next attempt re-authenticates, via the refresh token
                self.logger.warning(
                    "[%s] Access token rejected, clearing cache",
                    self.source_id,
                )
                await self.credentials.clear(self.source_id)
            raise

        body = data.get("data")
        if data.get("code") != 200 or not isinstance(body, dict):
            raise SourceError(
                str(data.get("message") or "Search failed"),
                self.source_id,
            )

        items = self.extract_products(body)
        self.logger.info(
            "[%s] Found %d products (totalRecords=%s) in %.0fms",
            self.source_id,
            len(items),
            body.get("totalRecords"),
            (time.monotonic() - start) * 1000,
        )
        return self._records(items, limit)

    @staticmethod
    def extract_products(body: dict[str, Any]) -> list[Any]:
        """Flatten ``content[].productList`` into one list."""
        products: list[Any] = []
        for group in body.get("content") or []:
            if isinstance(group, dict) and isinstance(
                group.get("productList"), list
            ):
                products.extend(group["productList"])
        return products
