"""Configuration settings for utilfetch."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import logging


@dataclass
class TransportDefaults:
    """Process-wide connection defaults shared by every fetch.

    The fetcher never mutates an instance it was given; each fetch works on
    a :meth:`clone`.

    Attributes:
        limit: Total simultaneous connections per fetch.
        limit_per_host: Simultaneous connections per host, 0 for no limit.
        ttl_dns_cache: Seconds to cache DNS lookups, None to cache forever.
        trust_env: Read proxy settings from the environment on every fetch.
        user_agent: User-Agent sent when the request does not set one.

    """

    limit: int = 100
    limit_per_host: int = 0
    ttl_dns_cache: int | None = 10
    trust_env: bool = True
    user_agent: str | None = None

    def clone(self) -> TransportDefaults:
        """Return an independent copy safe to adjust for a single fetch."""
        return dataclasses.replace(self)


@dataclass
class FetcherConfig:
    """Configuration for utilfetch.

    Attributes:
        transport: Connection defaults, cloned for each fetch.
        default_min_delay_ms: Minimum retry delay when the request sets none.
        default_max_delay_ms: Maximum retry delay when the request sets none.
        logger: Logger instance for structured logging. If None, uses module logger.

    """

    transport: TransportDefaults = field(default_factory=TransportDefaults)
    default_min_delay_ms: int = 1000
    default_max_delay_ms: int = 30000
    logger: logging.Logger | None = None
