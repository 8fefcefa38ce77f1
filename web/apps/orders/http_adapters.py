"""HTTP adapter for the inventory service with retries and a circuit breaker.

This module implements ``InventoryPort`` over ``httpx``. It adds:

- Request correlation: propagates ``X-Request-ID`` from the ContextVar set
    by the gateway middleware.
- A circuit breaker for the inventory service so an unhealthy dependency
    is not hammered, with HALF_OPEN probing after a timeout.
- A retry policy with exponential backoff for transport errors and 5xx.

Business outcomes (422 insufficient stock, 404 unknown product) are
returned to the caller and never count as circuit failures.
"""

import logging
import threading
import time
from typing import Iterable, List, Optional

import httpx
from django.conf import settings
from django.utils.module_loading import import_string

from .domain import InventoryPort, LineItem

REQUEST_ID_CTX = import_string("gateway.middleware.REQUEST_ID_CTX")

logger = logging.getLogger(__name__)

BUSINESS_STATUSES = (200, 404, 409, 422)


# ---------------- Circuit Breaker ---------------- #

class CircuitOpenError(RuntimeError):
    """Raised instead of calling the inventory service while the circuit refuses calls.

    Attributes:
        service: Name of the guarded service.
        retry_after: Seconds until the next trial call is admitted (0 when a trial
            is already in flight).
    """

    def __init__(self, code: str, service: str, retry_after: float):
        super().__init__(code)
        self.code = code
        self.service = service
        self.retry_after = retry_after


class CircuitBreaker:
    """Circuit breaker with CLOSED/OPEN/HALF_OPEN states.

    Transitions:
    - CLOSED → OPEN when consecutive failures reach the threshold.
    - OPEN → HALF_OPEN after the reset timeout.
    - HALF_OPEN → CLOSED on a successful trial call; only one trial may be in
      flight; a failed trial re-opens the breaker.

    Thresholds left as None are read from ``HTTP_CIRCUIT_FAIL_THRESHOLD``
    and ``HTTP_CIRCUIT_RESET_TIMEOUT`` on every check, so settings overrides
    apply to the module-level inventory breaker without rebuilding it.
    """

    def __init__(self, name: str, fail_threshold: Optional[int] = None, reset_timeout: Optional[float] = None):
        self.name = name
        self._fail_threshold = fail_threshold
        self._reset_timeout = reset_timeout
        self._lock = threading.RLock()
        self._failures = 0
        self._state = "CLOSED"
        self._opened_at = 0.0
        self._trial_in_flight = False

    @property
    def fail_threshold(self) -> int:
        if self._fail_threshold is not None:
            return self._fail_threshold
        return max(1, getattr(settings, "HTTP_CIRCUIT_FAIL_THRESHOLD", 5))

    @property
    def reset_timeout(self) -> float:
        if self._reset_timeout is not None:
            return self._reset_timeout
        return getattr(settings, "HTTP_CIRCUIT_RESET_TIMEOUT", 30.0)

    @property
    def state(self) -> str:
        with self._lock:
            if self._state == "OPEN" and self._elapsed() >= self.reset_timeout:
                self._state = "HALF_OPEN"
                self._trial_in_flight = False
            return self._state

    def before_call(self) -> str:
        """Admit a call or refuse it.

        Raises:
            CircuitOpenError: ``CIRCUIT_OPEN`` or ``CIRCUIT_HALF_OPEN_BUSY``.
        """
        with self._lock:
            st = self.state
            if st == "OPEN":
                raise CircuitOpenError("CIRCUIT_OPEN", self.name, max(0.0, self.reset_timeout - self._elapsed()))
            if st == "HALF_OPEN":
                if self._trial_in_flight:
                    raise CircuitOpenError("CIRCUIT_HALF_OPEN_BUSY", self.name, 0.0)
                self._trial_in_flight = True
            return st

    def on_success(self):
        with self._lock:
            if self._state != "CLOSED":
                logger.info("circuit closed", extra={"service": self.name})
            self._failures = 0
            self._state = "CLOSED"
            self._trial_in_flight = False

    def on_failure(self):
        with self._lock:
            self._failures += 1
            if self._state == "HALF_OPEN" or (self._failures >= self.fail_threshold and self._state != "OPEN"):
                self._state = "OPEN"
                self._opened_at = time.monotonic()
                logger.warning("circuit opened", extra={"service": self.name, "failures": self._failures})
            self._trial_in_flight = False

    def on_finish(self):
        with self._lock:
            if self._state == "HALF_OPEN":
                self._trial_in_flight = False

    def reset(self) -> None:
        """Force the breaker closed and forget past failures."""
        with self._lock:
            self._failures = 0
            self._state = "CLOSED"
            self._opened_at = 0.0
            self._trial_in_flight = False

    def snapshot(self) -> dict:
        """State and consecutive failure count, as reported by the health endpoint."""
        with self._lock:
            return {"state": self.state, "failures": self._failures}

    def _elapsed(self) -> float:
        return time.monotonic() - self._opened_at


_inventory_cb = CircuitBreaker("inventory")


def inventory_circuit() -> CircuitBreaker:
    return _inventory_cb


# ---------------- Helpers ---------------- #

def request_headers(extra: Optional[dict] = None) -> dict:
    """Base headers with ``X-Request-ID`` when a request is in flight."""
    headers: dict[str, str] = {}
    rid = REQUEST_ID_CTX.get()
    if rid and rid != "-":
        headers["X-Request-ID"] = rid
    if extra:
        headers.update(extra)
    return headers


def _retry_policy():
    """Return retry configuration as (max_attempts, backoff_base_seconds)."""
    return (
        max(1, getattr(settings, "HTTP_RETRY_MAX", 3)),
        getattr(settings, "HTTP_RETRY_BACKOFF_BASE", 0.15),
    )


def _should_retry(resp: Optional[httpx.Response], exc: Optional[Exception]) -> bool:
    """Retry only on transport errors or 5xx."""
    if exc is not None:
        return True
    return resp is not None and 500 <= resp.status_code < 600


def _payload(items: Iterable[LineItem]) -> dict:
    return {"items": [{"product_id": str(i.product_id), "quantity": i.quantity} for i in items]}


# ---------------- Inventory Adapter ---------------- #

class HttpInventoryClient(InventoryPort):
    """HTTP client for the inventory service with retry and circuit breaker."""

    def __init__(self, base_url: str | None = None, timeout: float | None = None):
        self.base_url = (base_url or settings.INVENTORY_BASE_URL).rstrip("/")
        self.timeout = timeout or settings.HTTP_TIMEOUT_SECS

    def reserve(self, items: List[LineItem]) -> bool:
        """Reserve stock for all items or none.

        Maps business responses:
        - 200 → the ``reserved`` flag of the body
        - 422 → False (insufficient stock)

        Raises:
            CircuitOpenError: When the circuit refuses the call.
            httpx.RequestError: For transport errors after retries.
            httpx.HTTPStatusError: For non-retriable or exhausted error statuses.
        """
        resp = self._post("/reserve", _payload(items))
        if resp.status_code == 200:
            return bool(resp.json().get("reserved", False))
        return False

    def release(self, items: List[LineItem]) -> None:
        resp = self._post("/release", _payload(items))
        if resp.status_code == 404:
            logger.warning("release for unknown inventory", extra={"body": resp.json()})

    def confirm(self, items: List[LineItem]) -> None:
        resp = self._post("/confirm", _payload(items))
        if resp.status_code == 404:
            logger.warning("confirm for unknown inventory", extra={"body": resp.json()})

    def deduct(self, items: List[LineItem]) -> None:
        resp = self._post("/deduct", _payload(items))
        if resp.status_code == 404:
            logger.warning("deduct for unknown inventory", extra={"body": resp.json()})

    def _post(self, path: str, payload: dict) -> httpx.Response:
        """POST with circuit-breaker precheck and exponential backoff retries.

        Returns the response for any business status; raises otherwise.
        """
        max_attempts, backoff = _retry_policy()
        cap = getattr(settings, "HTTP_RETRY_MAX_SLEEP", 0.5)
        tries = 0

        state = _inventory_cb.before_call()
        headers = request_headers({"X-Circuit-State": state, "X-Retry-Count": "0"})

        try:
            with httpx.Client(timeout=self.timeout) as client:
                while True:
                    resp = None
                    exc = None
                    try:
                        resp = client.post(f"{self.base_url}{path}", json=payload, headers=headers)
                        if resp.status_code in BUSINESS_STATUSES:
                            _inventory_cb.on_success()
                            return resp
                        if not _should_retry(resp, None):
                            _inventory_cb.on_failure()
                            resp.raise_for_status()
                    except httpx.RequestError as e:
                        exc = e

                    tries += 1
                    headers["X-Retry-Count"] = str(tries)

                    if tries >= max_attempts:
                        _inventory_cb.on_failure()
                        logger.warning(
                            "inventory call failed",
                            extra={"path": path, "tries": tries, "error": repr(exc) if exc else resp.status_code},
                        )
                        if exc:
                            raise exc
                        resp.raise_for_status()

                    time.sleep(min(backoff * (2 ** (tries - 1)), cap))
        finally:
            _inventory_cb.on_finish()
