# blackswan/scheduler.py
"""
Polling Scheduler
BSO v1

Runs one update cycle immediately, then one every POLL_INTERVAL_SECONDS,
on a background thread. Ticks go through the orchestrator's guarded
run_cycle(), so a tick that lands while a manual /update is in flight is
dropped rather than interleaved.

Shutdown: cancel() stops the timer; stop() also waits for the in-flight
cycle, since a submitted transaction must not be abandoned mid-confirmation.
"""

import logging
import threading
import time

log = logging.getLogger("blackswan.scheduler")


class Scheduler:
    def __init__(self, orchestrator, interval: float):
        self.orchestrator = orchestrator
        self.interval = interval
        self._cancelled = threading.Event()
        self._thread = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self):
        if self.running:
            log.warning("Scheduler is already running")
            return
        self._cancelled.clear()
        self._thread = threading.Thread(target=self._loop, name="blackswan-scheduler", daemon=True)
        self._thread.start()
        log.info(f"Polling interval: {self.interval}s")

    def _loop(self):
        while not self._cancelled.is_set():
            started = time.monotonic()
            self.orchestrator.run_cycle()
            wait = max(0.0, self.interval - (time.monotonic() - started))
            if self._cancelled.wait(wait):
                break
        log.info("Scheduler stopped")

    def cancel(self):
        """Stop scheduling new cycles. Does not wait."""
        self._cancelled.set()

    def stop(self, timeout: float | None = None) -> bool:
        """Cancel and wait for an in-flight cycle. Returns False if the wait timed out."""
        self.cancel()
        if self._thread is None:
            return True
        if self.orchestrator.busy:
            log.info("Waiting for in-flight update cycle to finish...")
        self._thread.join(timeout)
        return not self._thread.is_alive()
