"""
WizardDAO - HTTP Price Feed

PriceFeed implementation that polls a JSON endpoint for the native/USD
answer. The endpoint is expected to return something like:

    {"answer": "60000000000", "updatedAt": 1700000000, "decimals": 8}

Field names are configurable. Any transport or parsing failure surfaces as
an OracleError so the engine rejects the mint instead of pricing it blind.

Environment Variables:
    WIZARD_PRICE_FEED_URL=https://oracle.example/bnb-usd
    WIZARD_PRICE_FEED_TIMEOUT=10
"""

import logging
import os
from collections import deque
from datetime import UTC, datetime
from typing import Any

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from collaborators import PriceFeed
from wizard_exceptions import OracleError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10
CONNECT_TIMEOUT = 5
MAX_RETRIES = 3
RETRY_BACKOFF_FACTOR = 1

# Most recent reads kept for diagnostics
REQUEST_LOG_SIZE = 100


class HttpPriceFeed(PriceFeed):
    """Native/USD price read over HTTP."""

    def __init__(
        self,
        url: str | None = None,
        decimals: int = 8,
        timeout: int | None = None,
        price_field: str = "answer",
        updated_at_field: str = "updatedAt",
        session: requests.Session | None = None,
    ):
        self.url = url or os.getenv("WIZARD_PRICE_FEED_URL", "")
        if not self.url:
            raise ValueError("Price feed URL is required")
        self.decimals = decimals
        self.timeout = timeout or int(os.getenv("WIZARD_PRICE_FEED_TIMEOUT", DEFAULT_TIMEOUT))
        self.price_field = price_field
        self.updated_at_field = updated_at_field
        self.session = session or self._build_session()
        self.request_log: deque[dict[str, Any]] = deque(maxlen=REQUEST_LOG_SIZE)

    def _build_session(self) -> requests.Session:
        """Session with retry on transient upstream errors."""
        session = requests.Session()
        retry_strategy = Retry(
            total=MAX_RETRIES,
            backoff_factor=RETRY_BACKOFF_FACTOR,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=["GET"],
        )
        adapter = HTTPAdapter(max_retries=retry_strategy)
        session.mount("http://", adapter)
        session.mount("https://", adapter)
        session.headers.update({"Accept": "application/json", "User-Agent": "WizardDAO-PriceFeed"})
        return session

    def latest_price(self) -> tuple[int, int]:
        """
        Fetch the current answer.

        Returns:
            Tuple of (price, updated_at)

        Raises:
            OracleError: On transport failure, HTTP error or malformed payload
        """
        log_entry = {"timestamp": datetime.now(UTC).isoformat(), "url": self.url}
        try:
            response = self.session.get(self.url, timeout=(CONNECT_TIMEOUT, self.timeout))
            log_entry["status_code"] = response.status_code
            response.raise_for_status()
            data = response.json()
        except requests.exceptions.RequestException as e:
            log_entry["error"] = str(e)
            self.request_log.append(log_entry)
            logger.warning("Price feed request failed", extra={"url": self.url, "error": str(e)})
            raise OracleError("Price feed unavailable", cause=e) from e
        except ValueError as e:
            log_entry["error"] = "invalid_json"
            self.request_log.append(log_entry)
            raise OracleError("Price feed returned invalid JSON", cause=e) from e

        self.request_log.append(log_entry)

        try:
            price = int(data[self.price_field])
            updated_at = int(data[self.updated_at_field])
            decimals = int(data.get("decimals", self.decimals))
        except (KeyError, TypeError, ValueError) as e:
            raise OracleError(
                "Price feed payload missing fields",
                details={"fields": [self.price_field, self.updated_at_field, "decimals"]},
                cause=e,
            ) from e

        self.decimals = decimals
        return price, updated_at
