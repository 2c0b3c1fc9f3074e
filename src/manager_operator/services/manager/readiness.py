"""One-shot readiness latch for the LicenseKey API and its bootstrap watcher.

The LicenseKey kind is served by the API server extension, which may come
up after the operator. A background thread polls discovery until the kind
is served, then sets the latch once. Reconcile passes only read the latch;
they never block on it.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from typing import TYPE_CHECKING

import structlog
from tenacity import (
    RetryCallState,
    RetryError,
    Retrying,
    retry_if_exception_type,
    retry_if_result,
    stop_when_event_set,
    wait_fixed,
)

from manager_operator.integrations.kubernetes.models.operator import PROJECTCALICO_API_VERSION
from manager_operator.services.manager.constants import LICENSE_KEY_KIND

if TYPE_CHECKING:
    from manager_operator.integrations.kubernetes.client import KubernetesClient

logger = structlog.get_logger()


class ReadyFlag:
    """A boolean that can only go from False to True."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def mark_ready(self) -> None:
        """Set the flag. Setting it again is a no-op."""
        self._event.set()

    def is_ready(self) -> bool:
        """Non-blocking read."""
        return self._event.is_set()


def license_api_served(client: KubernetesClient) -> bool:
    """Whether API discovery currently lists the LicenseKey kind."""
    from kubernetes.dynamic.exceptions import ResourceNotFoundError

    try:
        client.dynamic.resources.get(api_version=PROJECTCALICO_API_VERSION, kind=LICENSE_KEY_KIND)
        return True
    except ResourceNotFoundError:
        # Discovery results are cached; refresh before the next check.
        client.dynamic.resources.invalidate_cache()
        return False


class LicenseAPIWatcher:
    """Polls ``served`` until it returns True, then marks ``flag`` ready.

    Args:
        served: Returns True once the LicenseKey API is served.
        flag: Latch to set.
        poll_interval: Seconds between checks.
        stop_event: Set on shutdown; ends polling early.
        on_ready: Called once after the flag is set, e.g. to trigger a pass.
        log: Logger of the owning host; the module logger when omitted.
    """

    def __init__(
        self,
        served: Callable[[], bool],
        flag: ReadyFlag,
        *,
        poll_interval: float,
        stop_event: threading.Event,
        on_ready: Callable[[], None] | None = None,
        log: structlog.BoundLogger | None = None,
    ) -> None:
        self._served = served
        self._flag = flag
        self._poll_interval = poll_interval
        self._stop_event = stop_event
        self._on_ready = on_ready
        self._log = (log or logger).bind(watcher="license_api")

    def _log_retry(self, retry_state: RetryCallState) -> None:
        outcome = retry_state.outcome
        error = outcome.exception() if outcome is not None else None
        self._log.debug(
            "license_api_not_ready",
            attempt=retry_state.attempt_number,
            error=str(error) if error else None,
        )

    def run(self) -> None:
        """Block until the API is served or shutdown is requested."""
        retrying = Retrying(
            retry=retry_if_result(lambda served: not served)
            | retry_if_exception_type(Exception),
            wait=wait_fixed(self._poll_interval),
            stop=stop_when_event_set(self._stop_event),
            before_sleep=self._log_retry,
            sleep=self._stop_event.wait,
        )
        try:
            retrying(self._served)
        except RetryError:
            self._log.info("license_api_watch_stopped")
            return

        self._flag.mark_ready()
        self._log.info("license_api_ready")
        if self._on_ready is not None:
            self._on_ready()

    def start(self) -> threading.Thread:
        """Run the watcher on a daemon thread."""
        thread = threading.Thread(target=self.run, name="license-api-watcher", daemon=True)
        thread.start()
        return thread
