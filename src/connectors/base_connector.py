# src/connectors/base_connector.py

"""Abstract base class for all supplier source connectors."""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import Any

from curl_cffi.requests import AsyncSession

from src.config.settings import Settings
from src.core.exceptions import (
    AuthenticationError,
    SourceError,
    SourceTimeoutError,
)
from src.models.raw_record import RawProductRecord, TokenGrant
from src.storage.credential_cache import CredentialCache


class BaseConnector(ABC):
    """Builds, sends and parses search requests for one upstream.

    Connectors raise on failure; retrying and degrading to an empty
    result is the executor's job, not theirs.
    """

    source_id: str = ""
    label: str = ""
    requires_auth: bool = True

    def __init__(
        self,
        session: AsyncSession,
        credentials: CredentialCache,
        settings: Settings | None = None,
    ) -> None:
        self.session = session
        self.credentials = credentials
        self.settings = settings or Settings()
        self.logger = logging.getLogger(f"sourcing.{self.source_id}")
        self._request_timeout: float = float(
            self.settings.REQUEST_TIMEOUT
        )

    # ── Subclass hooks ───────────────────────────────────

    @abstractmethod
    def is_configured(self) -> bool:
        """Return True when every credential this source needs is set."""
        ...

    async def fetch_token(self) -> TokenGrant:
        """Exchange configured credentials for an access token."""
        raise AuthenticationError(
            "Source does not use token authentication", self.source_id
        )

    def parse_options(self, options: Mapping[str, Any]) -> Any:
        """Validate source-specific search options.

        Raises:
            ValueError: this source does not accept *options*.
        """
        if options:
            raise ValueError(
                f"{self.source_id} does not accept search options"
            )
        return None

    @abstractmethod
    async def _search(
        self, query: str, limit: int, options: Mapping[str, Any],
    ) -> list[RawProductRecord]:
        """Issue the source-specific search call."""
        ...

    # ── Public API ───────────────────────────────────────

    async def search(
        self,
        query: str,
        limit: int,
        options: Mapping[str, Any] | None = None,
    ) -> list[RawProductRecord]:
        """Search this source and return its raw records.

        *options* are source-specific narrowing (see
        :meth:`parse_options`), already validated by the caller.

        Blank queries and unconfigured sources short-circuit to an
        empty list without touching the network.
        """
        if not query or not query.strip():
            self.logger.warning(
                "[%s] Empty search query, skipping", self.source_id
            )
            return []
        if not self.is_configured():
            self.logger.warning(
                "[%s] Credentials not configured, skipping search",
                self.source_id,
            )
            return []
        return await self._search(query.strip(), limit, options or {})

    async def health_check(self) -> bool:
        """Return True when authentication with this source succeeds."""
        if not self.is_configured():
            return False
        try:
            token = await self.credentials.get_token(self.source_id)
        except Exception as exc:
            self.logger.error(
                "[%s] Health check failed: %s",
                self.source_id,
                exc,
                exc_info=True,
            )
            return False
        return bool(token)

    # ── HTTP helpers ─────────────────────────────────────

    async def _access_token(self) -> str:
        return await self.credentials.get_token(self.source_id)

    async def _send(
        self,
        method: str,
        url: str,
        **kwargs: Any,
    ) -> Any:
        """Send one request under the fixed per-call deadline."""
        try:
            return await asyncio.wait_for(
                self.session.request(
                    method,
                    url,
                    timeout=self._request_timeout,
                    **kwargs,
                ),
                timeout=self._request_timeout,
            )
        except asyncio.TimeoutError as exc:
            raise SourceTimeoutError(
                f"{method} {url} timed out after "
                f"{self._request_timeout:.0f}s",
                self.source_id,
            ) from exc
        except SourceError:
            raise
        except Exception as exc:
            raise SourceError(
                f"{method} {url} failed: {exc}", self.source_id
            ) from exc

    async def _request_json(
        self,
        method: str,
        url: str,
        **kwargs: Any,
    ) -> dict[str, Any]:
        """Send a request and decode a JSON object body.

        Raises:
            SourceError: non-2xx status or a body that is not a JSON
                object.
        """
        resp = await self._send(method, url, **kwargs)
        status = int(getattr(resp, "status_code", 0) or 0)
        if not 200 <= status < 300:
            raise SourceError(
                f"HTTP {status}: {str(getattr(resp, 'text', ''))[:200]}",
                self.source_id,
                status_code=status,
            )
        try:
            data: Any = json.loads(resp.text)
        except (TypeError, ValueError) as exc:
            raise SourceError(
                f"Invalid JSON response: {exc}", self.source_id
            ) from exc
        if not isinstance(data, dict):
            raise SourceError(
                "Unexpected response shape (not an object)",
                self.source_id,
            )
        return data

    def _records(
        self, items: list[Any], limit: int,
    ) -> list[RawProductRecord]:
        """Wrap raw items as tagged records, honouring *limit*.

        Non-object items are kept (as an empty payload) so the
        normalizer can still emit a placeholder product for them.
        """
        records = [
            RawProductRecord(
                source=self.source_id,
                payload=item if isinstance(item, dict) else {},
            )
            for item in items
        ]
        return records[:limit] if limit > 0 else records
