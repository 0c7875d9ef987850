"""HTTP client for insurer policy feeds."""

from __future__ import annotations

from typing import Any, List, Optional

import httpx
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from verification_service.config import settings
from verification_service.errors import ExternalFetchError
from verification_service.utils.error_codes import ErrorCode
from verification_service.utils.logging import get_logger

logger = get_logger(__name__)


class FeedClient:
    """Fetches the list of policy payloads an insurer publishes.

    Feeds are untrusted: transport errors are retried a bounded number of
    times, everything that is not a JSON list (or an object wrapping one under
    ``policies``) is rejected.
    """

    def __init__(
        self,
        timeout: Optional[float] = None,
        max_attempts: Optional[int] = None,
        backoff_seconds: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.timeout = timeout if timeout is not None else settings.feed_timeout_seconds
        self.max_attempts = max_attempts or settings.feed_max_attempts
        self.backoff_seconds = (
            backoff_seconds if backoff_seconds is not None else settings.feed_retry_backoff_seconds
        )
        self._transport = transport

    def fetch(self, endpoint: str, api_key: str) -> List[Any]:
        """Return the raw entries published at ``endpoint``.

        Raises:
            ExternalFetchError: timeout, transport or body decoding failure, non-200 status or
                a payload that is not a list of entries.
        """
        retrying = Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.backoff_seconds, max=10),
            retry=retry_if_exception_type(httpx.TransportError),
            reraise=True,
        )
        try:
            response = retrying(self._get, endpoint, api_key)
        except httpx.TimeoutException as exc:
            raise ExternalFetchError(
                f"Feed request timed out after {self.timeout}s", code=ErrorCode.FEED_TIMEOUT
            ) from exc
        except httpx.HTTPError as exc:
            # transport, decoding and redirect failures alike
            raise ExternalFetchError(f"Feed request failed: {exc}", code=ErrorCode.FEED_TRANSPORT) from exc

        if response.status_code != 200:
            raise ExternalFetchError(
                f"API returned status {response.status_code}", code=ErrorCode.FEED_BAD_STATUS
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise ExternalFetchError("Feed response is not valid JSON", code=ErrorCode.FEED_MALFORMED) from exc

        if isinstance(payload, dict) and "policies" in payload:
            payload = payload["policies"]
        if not isinstance(payload, list):
            raise ExternalFetchError(
                "Invalid response format: expected array of policies", code=ErrorCode.FEED_MALFORMED
            )
        return payload

    def _get(self, endpoint: str, api_key: str) -> httpx.Response:
        with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
            logger.debug("Fetching feed %s", endpoint)
            return client.get(
                endpoint,
                headers={
                    "Authorization": f"Bearer {api_key}",
                    "Accept": "application/json",
                },
            )
