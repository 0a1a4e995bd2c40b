# shipsync/kurasi_integration/kurasi_shipment_service.py
# Fetches shipment pages from the Kurasi shipmentManagement endpoint with retry/backoff.

import random
import threading
import time
from dataclasses import dataclass, field
from typing import Optional, List, Dict, Any, Tuple, Callable

import requests

from shipsync.config import config
from shipsync.domain.sync import ShipmentPageRequest, ShipmentPage
from .kurasi_auth_service import KurasiAuthService
from shipsync.utils.logger import logger
from shipsync.api.errors import (
    RetriableFetchError, NonRetriableFetchError, FetchAbortedError, SyncCancelledError
)

# Page-size shrinking starts once this many attempts of the same page have failed
SHRINK_AFTER_ATTEMPT = 2


@dataclass
class RetryStats:
    """Retry bookkeeping for the last fetch_page() call."""
    attempts: int = 0
    delays: List[float] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    def record_failure(self, error: Exception, delay: Optional[float] = None):
        self.errors.append(f"{type(error).__name__}: {error}")
        if delay is not None:
            self.delays.append(delay)


def extract_rows(payload: Any) -> Tuple[List[Dict[str, Any]], Optional[int]]:
    """
    Pulls the row list (and total, when present) out of the shapes Kurasi returns:
    a bare list, {rows,total}, {data:{rows,total}}, {data:[...],total}, {data:{data:[...],total}}.
    Unknown shapes yield no rows.
    """
    if isinstance(payload, list):
        return payload, None
    if not isinstance(payload, dict):
        return [], None
    if isinstance(payload.get("rows"), list):
        return payload["rows"], payload.get("total")
    data = payload.get("data")
    if isinstance(data, dict) and isinstance(data.get("rows"), list):
        return data["rows"], data.get("total")
    if isinstance(data, list):
        return data, payload.get("total")
    if isinstance(data, dict) and isinstance(data.get("data"), list):
        return data["data"], data.get("total")
    return [], None


class KurasiShipmentService:
    """
    Retrying page fetcher for POST {base}/api/v1/shipmentManagement.

    Transient failures (5xx, 429, network errors) are retried up to
    max_retries attempts with capped exponential backoff plus jitter. After
    repeated failures the page size is halved down to min_page_size; the
    reduced size sticks for the rest of the run (current_page_size).
    Waiting is interruptible through the run's cancel event and deadline.
    """

    def __init__(
        self,
        auth_service: KurasiAuthService,
        session: Optional[requests.Session] = None,
        max_retries: Optional[int] = None,
        base_delay: Optional[float] = None,
        max_delay: Optional[float] = None,
        jitter: Optional[float] = None,
        min_page_size: Optional[int] = None,
        timeout: Optional[int] = None,
        sleep: Optional[Callable[[float], bool]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            auth_service: Supplies the X-Ship-Auth-Token.
            sleep: Optional replacement for the backoff wait. Receives the delay in
                seconds and returns True when the wait was interrupted.
            clock: Monotonic clock used for the run deadline.
        """
        self.auth_service = auth_service
        self.session = session or auth_service.session
        self.shipments_url = f"{auth_service.base_url}{config.SHIPMENTS_ENDPOINT}"
        self.max_retries = max_retries if max_retries is not None else config.MAX_RETRIES
        self.base_delay = base_delay if base_delay is not None else config.RETRY_BASE_DELAY
        self.max_delay = max_delay if max_delay is not None else config.RETRY_MAX_DELAY
        self.jitter = jitter if jitter is not None else config.RETRY_JITTER
        self.min_page_size = min_page_size if min_page_size is not None else config.MIN_PAGE_SIZE
        self.timeout = timeout or config.REQUEST_TIMEOUT
        self._sleep = sleep
        self._clock = clock

        self.cancel_event = threading.Event()
        self.deadline: Optional[float] = None
        self.current_page_size: Optional[int] = None
        self.last_retry_stats = RetryStats()
        logger.info(f"KurasiShipmentService initialized for {self.shipments_url} (max attempts {self.max_retries}).")

    # --- Run context ---

    def start_run(self, page_size: int, cancel_event: Optional[threading.Event] = None, deadline: Optional[float] = None):
        """Resets per-run state: page size, cancellation and deadline."""
        self.current_page_size = page_size
        self.cancel_event = cancel_event or threading.Event()
        self.deadline = deadline

    def check_cancelled(self):
        if self.cancel_event.is_set():
            raise SyncCancelledError("Synchronization cancelled by request.")
        if self.deadline is not None and self._clock() >= self.deadline:
            raise SyncCancelledError("Synchronization run deadline reached.")

    def calculate_backoff(self, attempt: int) -> float:
        """Delay in seconds after failed attempt number `attempt` (1-indexed)."""
        delay = min(self.max_delay, self.base_delay * (2 ** attempt))
        if self.jitter > 0:
            delay += random.uniform(0, self.jitter)
        return delay

    def _wait(self, seconds: float):
        if self.deadline is not None:
            remaining = self.deadline - self._clock()
            if remaining <= seconds:
                self._interruptible_wait(max(remaining, 0))
                raise SyncCancelledError("Synchronization run deadline reached during backoff.")
        if self._interruptible_wait(seconds):
            raise SyncCancelledError("Synchronization cancelled during backoff.")

    def _interruptible_wait(self, seconds: float) -> bool:
        if self._sleep is not None:
            return bool(self._sleep(seconds))
        return self.cancel_event.wait(timeout=seconds)

    # --- HTTP ---

    def _post(self, payload: Dict[str, Any]) -> requests.Response:
        headers = {
            "Accept": "application/json, text/plain, */*",
            "Content-Type": "application/json; charset=UTF-8",
            "X-Ship-Auth-Token": self.auth_service.get_token(),
        }
        return self.session.post(self.shipments_url, json=payload, headers=headers, timeout=self.timeout)

    def _attempt(self, request: ShipmentPageRequest, reauthenticated: bool) -> Tuple[Optional[ShipmentPage], bool]:
        """
        One HTTP attempt. Returns (page, reauthenticated); page is None when the
        token was refreshed and the request should simply be sent again.
        Raises RetriableFetchError / NonRetriableFetchError on failure.
        """
        try:
            response = self._post(request.to_payload())
        except requests.exceptions.RequestException as e:
            raise RetriableFetchError(f"Network error calling Kurasi: {e}") from e

        status = response.status_code
        if status == 401:
            if not reauthenticated and self.auth_service.invalidate_token():
                logger.warning("Kurasi returned 401. Token invalidated, retrying with a fresh login.")
                return None, True
            raise NonRetriableFetchError("Kurasi rejected the auth token (401).", status_code=502)
        if status == 429 or status >= 500:
            raise RetriableFetchError(f"Kurasi responded with HTTP {status}.", payload={"upstreamStatus": status})
        if status >= 400:
            snippet = (response.text or "")[:300]
            raise NonRetriableFetchError(
                f"Kurasi responded with HTTP {status}: {snippet}", payload={"upstreamStatus": status}
            )

        try:
            body = response.json()
        except ValueError as e:
            raise NonRetriableFetchError(f"Kurasi returned a non-JSON body (status {status}).") from e

        rows, total = extract_rows(body)
        return ShipmentPage(rows=rows, requested_limit=request.limit, total=total), reauthenticated

    def fetch_page(self, request: ShipmentPageRequest) -> ShipmentPage:
        """
        Fetches one page, retrying transient failures.

        Returns:
            ShipmentPage with the rows and the limit actually sent.

        Raises:
            NonRetriableFetchError: 4xx (other than a first 401) or malformed body.
            FetchAbortedError: retries exhausted on transient failures.
            SyncCancelledError: run cancelled or deadline hit.
        """
        if self.current_page_size is not None and request.limit > self.current_page_size:
            request.limit = self.current_page_size

        stats = RetryStats()
        self.last_retry_stats = stats
        reauthenticated = False
        last_error: Optional[Exception] = None

        while stats.attempts < self.max_retries:
            self.check_cancelled()
            stats.attempts += 1
            logger.debug(
                f"Attempt {stats.attempts}/{self.max_retries} fetching Kurasi shipments "
                f"{request.start_date}..{request.end_date} index={request.index} limit={request.limit}"
            )
            try:
                page, reauthenticated_now = self._attempt(request, reauthenticated)
                if page is None:
                    reauthenticated = reauthenticated_now
                    stats.attempts -= 1  # a token refresh is not a failed attempt
                    continue
                page.attempts = stats.attempts
                logger.debug(f"Kurasi page index={request.index}: {len(page.rows)} rows (total={page.total}).")
                return page
            except NonRetriableFetchError as e:
                stats.record_failure(e)
                logger.error(f"Non-retriable Kurasi error: {e.message}")
                raise
            except RetriableFetchError as e:
                last_error = e
                if stats.attempts >= self.max_retries:
                    stats.record_failure(e)
                    break
                delay = self.calculate_backoff(stats.attempts)
                stats.record_failure(e, delay)
                logger.warning(
                    f"Kurasi transient error (attempt {stats.attempts}/{self.max_retries}): {e.message} "
                    f"Retrying in {delay:.2f}s."
                )
                self._wait(delay)
                if stats.attempts >= SHRINK_AFTER_ATTEMPT and request.limit > self.min_page_size:
                    request.limit = max(self.min_page_size, request.limit // 2)
                    self.current_page_size = request.limit
                    logger.warning(f"Shrinking Kurasi page size to {request.limit} for the rest of the run.")

        logger.error(f"Giving up on Kurasi page index={request.index} after {stats.attempts} attempts: {last_error}")
        raise FetchAbortedError(
            f"Kurasi fetch failed after {stats.attempts} attempts: {last_error}",
            attempts=stats.attempts,
            last_error=last_error,
        ) from last_error
