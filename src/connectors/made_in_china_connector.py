# src/connectors/made_in_china_connector.py

"""Connector for made-in-china.com using its public search pages."""

import asyncio
import re
from collections.abc import Mapping
from typing import Any

import cloudscraper  # type: ignore[import-untyped]
from bs4 import BeautifulSoup, Tag

from src.connectors.base_connector import BaseConnector
from src.core.exceptions import SourceError
from src.models.raw_record import RawProductRecord

_PRODUCT_SELECTORS: list[str] = [
    ".product-item",
    ".prod-list .prod-item",
    ".pro-info",
    ".product-info",
    "[data-product-id]",
    ".search-result-item",
]
_TITLE_SELECTOR = "h2, h3, .title, .pro-name, .product-name, a[title]"
_LINK_SELECTOR = 'a[href*="/product/"], a[href*="made-in-china.com"]'
_PRICE_SELECTOR = ".price, .pro-price, .product-price, [class*='price']"
_MOQ_SELECTOR = ".moq, .min-order, [class*='moq'], [class*='min']"
_SUPPLIER_SELECTOR = (
    ".company, .supplier, .factory, .manufacturer, [class*='company']"
)
_VERIFIED_SELECTOR = (
    ".verified, .gold, .audited, [class*='verified'], [class*='audit']"
)
_PRODUCT_ID_RE = re.compile(r"/product/([^/?]+)")


class MadeInChinaConnector(BaseConnector):
    """Scrapes made-in-china.com search results.

    The site needs no credentials, so this source is always configured
    and never touches the credential cache.  Listing markup varies, so
    product cards are located through an ordered list of selectors with
    a generic ``/product/`` link fallback.
    """

    source_id = "made-in-china"
    label = "Made-in-China"
    requires_auth = False

    SEARCH_PATH = "/productdirectory.do"

    def is_configured(self) -> bool:
        return True

    def _homepage(self) -> str:
        return self.settings.MADE_IN_CHINA_URL.rstrip("/") + "/"

    def _looks_blocked(self, text: str) -> bool:
        """Detect anti-bot interstitials served with HTTP 200."""
        lower = text.lower()
        if "<body" in lower and len(text) > 5000:
            return False
        return any(k in lower for k in self.settings.CAPTCHA_KEYWORDS)

    async def _fetch_listing(self, query: str) -> str:
        url = self.settings.MADE_IN_CHINA_URL.rstrip("/") + self.SEARCH_PATH
        params = {
            "word": query,
            "subaction": "hunt",
            "style": "b",
            "mode": "and",
            "code": "0",
            "order": "0",
        }
        headers = {
            **self.settings.DEFAULT_HEADERS,
            "Referer": self._homepage(),
        }
        resp = await self._send("GET", url, headers=headers, params=params)
        status = int(getattr(resp, "status_code", 0) or 0)
        text = str(getattr(resp, "text", "") or "")
        if status == 200 and not self._looks_blocked(text):
            return text

        self.logger.info(
            "[%s] HTTP %d or challenge page, falling back to cloudscraper",
            self.source_id,
            status,
        )
        return await asyncio.to_thread(
            self._fetch_with_cloudscraper, url, headers, params
        )

    def _fetch_with_cloudscraper(
        self,
        url: str,
        headers: dict[str, str],
        params: dict[str, str],
    ) -> str:
        _cs: Any = cloudscraper
        scraper: Any = _cs.create_scraper()
        try:
            resp: Any = scraper.get(
                url,
                headers=headers,
                params=params,
                timeout=self._request_timeout,
            )
        except Exception as exc:
            raise SourceError(
                f"cloudscraper fallback failed: {exc}", self.source_id
            ) from exc
        finally:
            scraper.close()
        if resp.status_code != 200:
            raise SourceError(
                f"HTTP {resp.status_code} from search page",
                self.source_id,
                status_code=int(resp.status_code),
            )
        return str(resp.text)

    async def _search(
        self, query: str, limit: int, options: Mapping[str, Any],
    ) -> list[RawProductRecord]:
        html = await self._fetch_listing(query)
        items = self.parse_listing(html, limit)
        self.logger.info(
            "[%s] Parsed %d products for '%s'",
            self.source_id,
            len(items),
            query,
        )
        return self._records(items, limit)

    async def health_check(self) -> bool:
        """Return True when the homepage answers HTTP 200."""
        try:
            resp = await self._send(
                "GET",
                self._homepage(),
                headers=self.settings.DEFAULT_HEADERS,
            )
        except SourceError as exc:
            self.logger.error(
                "[%s] Health check failed: %s", self.source_id, exc
            )
            return False
        return int(getattr(resp, "status_code", 0) or 0) == 200

    # ── HTML parsing ─────────────────────────────────────

    @classmethod
    def parse_listing(cls, html: str, limit: int) -> list[dict[str, Any]]:
        """Extract product cards from a search results page."""
        soup = BeautifulSoup(html, "lxml")
        cards = cls._find_cards(soup)
        items: list[dict[str, Any]] = []
        for card in cards:
            if limit > 0 and len(items) >= limit:
                break
            item = cls._parse_card(card)
            if item is not None:
                items.append(item)
        return items

    @staticmethod
    def _find_cards(soup: BeautifulSoup) -> list[Tag]:
        for selector in _PRODUCT_SELECTORS:
            found = soup.select(selector)
            if found:
                return list(found)

        # Generic fallback: the container of each distinct product link
        cards: list[Tag] = []
        seen: set[str] = set()
        for link in soup.select('a[href*="/product/"]'):
            href = str(link.get("href") or "")
            if not href or href in seen:
                continue
            seen.add(href)
            container = link.find_parent(["div", "li", "article"])
            if isinstance(container, Tag):
                cards.append(container)
        return cards

    @staticmethod
    def _parse_card(card: Tag) -> dict[str, Any] | None:
        title_el = card.select_one(_TITLE_SELECTOR)
        if title_el is None:
            title_el = card.select_one(_LINK_SELECTOR)
        title = ""
        if title_el is not None:
            title = title_el.get_text(strip=True) or str(
                title_el.get("title") or ""
            )
        if len(title) < 3:
            return None

        link_el = card.select_one(_LINK_SELECTOR)
        url = str(link_el.get("href") or "") if link_el else ""
        if url.startswith("//"):
            url = "https:" + url
        id_match = _PRODUCT_ID_RE.search(url)

        img_el = card.select_one("img[src], img[data-src]")
        image = ""
        if img_el is not None:
            image = str(img_el.get("data-src") or img_el.get("src") or "")

        def text_of(selector: str) -> str:
            el = card.select_one(selector)
            return el.get_text(" ", strip=True) if el else ""

        return {
            "id": id_match.group(1) if id_match else "",
            "title": title,
            "url": url,
            "price": text_of(_PRICE_SELECTOR),
            "moq": text_of(_MOQ_SELECTOR),
            "image": image,
            "supplier": text_of(_SUPPLIER_SELECTOR),
            "verified": card.select_one(_VERIFIED_SELECTOR) is not None,
        }
