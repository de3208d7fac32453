# src/models/raw_record.py

"""Connector-boundary data: raw upstream records and token grants."""

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class RawProductRecord:
    """One unnormalized upstream item, tagged with the source it came from.

    ``payload`` keeps the upstream's own field names; only the
    normalizer is allowed to interpret them.
    """

    source: str
    payload: Mapping[str, Any] = field(
        default_factory=lambda: dict[str, Any]()
    )


@dataclass(frozen=True)
class TokenGrant:
    """Access token returned by a source's authentication endpoint."""

    access_token: str
    expires_in: int = 3600
