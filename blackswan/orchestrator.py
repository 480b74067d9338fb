# blackswan/orchestrator.py
"""
Update Orchestrator
BSO v1

One cycle:
  1. fetch both scores from the analytics API
  2. diff against the last on-chain-confirmed values (the cache)
  3. pick the cheapest contract call that covers the change
  4. optionally pin both analysis documents to IPFS first
  5. submit, wait for confirmation
  6. commit the cache only if the transaction confirmed

The cache is never written optimistically. A failed cycle leaves it as it
was, so the next cycle sees the same diff and retries the same update.

Only one cycle runs at a time. A timer tick or manual trigger that arrives
while a cycle is in flight is turned away with a BUSY outcome.
"""

import logging
import threading
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum

from blackswan.errors import OracleError, TransactionError
from blackswan.publisher import BLACK_SWAN, MARKET_PEAK, DOCUMENT_TYPES, build_document

log = logging.getLogger("blackswan.orchestrator")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class UpdateMode(Enum):
    BOTH_SCORES = "both"
    BLACK_SWAN_ONLY = "blackswan"
    MARKET_PEAK_ONLY = "marketpeak"
    SCORES_AND_ANALYSIS = "scores+analysis"


class CycleResult(Enum):
    UPDATED = "updated"
    UNCHANGED = "unchanged"
    FAILED = "failed"
    BUSY = "busy"


@dataclass
class CachedState:
    black_swan: int | None = None
    market_peak: int | None = None
    black_swan_ref: str | None = None
    market_peak_ref: str | None = None

    @property
    def seeded(self) -> bool:
        return self.black_swan is not None and self.market_peak is not None


@dataclass
class ServiceStatus:
    phase: str = "starting"
    is_healthy: bool = False
    start_time: datetime = field(default_factory=utc_now)
    last_attempt_time: datetime | None = None
    last_success_time: datetime | None = None
    update_count: int = 0
    error_count: int = 0
    last_error: dict | None = None


@dataclass(frozen=True)
class CycleOutcome:
    result: CycleResult
    timestamp: datetime
    mode: UpdateMode | None = None
    error: str | None = None
    tx_hash: str | None = None

    @property
    def ok(self) -> bool:
        return self.result in (CycleResult.UPDATED, CycleResult.UNCHANGED)


def select_mode(cache: CachedState, black_swan: int, market_peak: int, publishing: bool = False):
    """Return the UpdateMode for a fetched pair, or None when nothing changed.

    An unseeded cache always yields a full write, no diff is taken against it.
    With publishing on, any change goes out as SCORES_AND_ANALYSIS because both
    documents are regenerated together.
    """
    if not cache.seeded:
        return UpdateMode.SCORES_AND_ANALYSIS if publishing else UpdateMode.BOTH_SCORES

    bs_changed = black_swan != cache.black_swan
    mp_changed = market_peak != cache.market_peak
    if not bs_changed and not mp_changed:
        return None
    if publishing:
        return UpdateMode.SCORES_AND_ANALYSIS
    if bs_changed and mp_changed:
        return UpdateMode.BOTH_SCORES
    if bs_changed:
        return UpdateMode.BLACK_SWAN_ONLY
    return UpdateMode.MARKET_PEAK_ONLY


class UpdateOrchestrator:
    def __init__(self, source, client, publisher=None, data_source: str = "", clock=utc_now):
        self.source = source
        self.client = client
        self.publisher = publisher
        self.data_source = data_source
        self.clock = clock

        self._cache = CachedState()
        self._status = ServiceStatus(start_time=clock())
        self._cycle_lock = threading.Lock()
        self._state_lock = threading.Lock()

    @property
    def publishing(self) -> bool:
        return self.publisher is not None

    @property
    def busy(self) -> bool:
        return self._cycle_lock.locked()

    # === Read-safe views ===

    def status_snapshot(self) -> ServiceStatus:
        with self._state_lock:
            snap = replace(self._status)
            if snap.last_error is not None:
                snap.last_error = dict(snap.last_error)
            return snap

    def cache_snapshot(self) -> CachedState:
        with self._state_lock:
            return replace(self._cache)

    # === Lifecycle ===

    def mark_running(self):
        with self._state_lock:
            self._status.phase = "running"
            self._status.is_healthy = True

    def mark_stopping(self):
        with self._state_lock:
            self._status.phase = "stopping"

    def mark_stopped(self):
        with self._state_lock:
            self._status.phase = "stopped"
            self._status.is_healthy = False

    # === Cycle ===

    def run_cycle(self) -> CycleOutcome:
        if not self._cycle_lock.acquire(blocking=False):
            log.warning("Update cycle already in progress, request dropped")
            return CycleOutcome(CycleResult.BUSY, self.clock(), error="Update already in progress")
        try:
            return self._run_cycle()
        except OracleError as e:
            return self._record_failure(e)
        except Exception as e:
            log.exception("Unexpected error during score check")
            return self._record_failure(e)
        finally:
            self._cycle_lock.release()

    def _run_cycle(self) -> CycleOutcome:
        log.info("Checking for score updates...")
        with self._state_lock:
            self._status.last_attempt_time = self.clock()

        snapshot = self.source.fetch()
        bs, mp = snapshot.black_swan, snapshot.market_peak
        log.info(f"Fetched scores from API - BlackSwan: {bs}, MarketPeak: {mp}")

        cache = self.cache_snapshot()
        mode = select_mode(cache, bs, mp, self.publishing)

        if mode is None:
            log.info(f"No changes - BlackSwan: {bs}, MarketPeak: {mp}")
            with self._state_lock:
                self._status.is_healthy = True
            return CycleOutcome(CycleResult.UNCHANGED, self.clock())

        if not cache.seeded:
            log.info("First run - writing current scores and seeding the cache")
        elif mode is UpdateMode.BLACK_SWAN_ONLY:
            log.info(f"BlackSwan score changed: {cache.black_swan} -> {bs}")
        elif mode is UpdateMode.MARKET_PEAK_ONLY:
            log.info(f"MarketPeak score changed: {cache.market_peak} -> {mp}")
        else:
            log.info(
                f"Scores changed - BlackSwan: {cache.black_swan} -> {bs}, "
                f"MarketPeak: {cache.market_peak} -> {mp}"
            )

        refs = self._publish(snapshot) if mode is UpdateMode.SCORES_AND_ANALYSIS else None

        log.info(f"Updating oracle contract ({mode.value}) - BlackSwan: {bs}, MarketPeak: {mp}")
        tx = self._submit(mode, bs, mp, refs)
        if not tx.success:
            raise TransactionError(
                f"Transaction failed in block {tx.block_number}",
                reason=TransactionError.REVERTED,
                tx_hash=tx.tx_hash,
            )

        self._commit(mode, bs, mp, refs)
        return CycleOutcome(CycleResult.UPDATED, self.clock(), mode=mode, tx_hash=tx.tx_hash)

    def _publish(self, snapshot) -> tuple[str, str]:
        generated_at = self.clock()
        refs = []
        for kind, score, analysis in (
            (BLACK_SWAN, snapshot.black_swan, snapshot.black_swan_analysis),
            (MARKET_PEAK, snapshot.market_peak, snapshot.market_peak_analysis),
        ):
            doc = build_document(kind, score, analysis, self.data_source, generated_at)
            name = f"{DOCUMENT_TYPES[kind]}-{generated_at.strftime('%Y%m%dT%H%M%SZ')}"
            refs.append(self.publisher.publish(doc, name))
        return refs[0], refs[1]

    def _submit(self, mode: UpdateMode, bs: int, mp: int, refs):
        if mode is UpdateMode.BOTH_SCORES:
            return self.client.update_both_scores(bs, mp)
        if mode is UpdateMode.BLACK_SWAN_ONLY:
            return self.client.update_black_swan_score(bs)
        if mode is UpdateMode.MARKET_PEAK_ONLY:
            return self.client.update_market_peak_score(mp)
        return self.client.update_scores_and_analysis(bs, mp, refs[0], refs[1])

    def _commit(self, mode: UpdateMode, bs: int, mp: int, refs):
        with self._state_lock:
            if mode in (UpdateMode.BOTH_SCORES, UpdateMode.BLACK_SWAN_ONLY, UpdateMode.SCORES_AND_ANALYSIS):
                self._cache.black_swan = bs
            if mode in (UpdateMode.BOTH_SCORES, UpdateMode.MARKET_PEAK_ONLY, UpdateMode.SCORES_AND_ANALYSIS):
                self._cache.market_peak = mp
            if refs is not None:
                self._cache.black_swan_ref, self._cache.market_peak_ref = refs
            self._status.last_success_time = self.clock()
            self._status.update_count += 1
            self._status.is_healthy = True
        log.info("Cached scores updated")

    def _record_failure(self, exc: Exception) -> CycleOutcome:
        now = self.clock()
        message = str(exc) or type(exc).__name__
        with self._state_lock:
            self._status.error_count += 1
            self._status.is_healthy = False
            self._status.last_error = {"message": message, "timestamp": now}
        log.error(f"Update cycle failed ({type(exc).__name__}): {message}")
        log.warning("Cached scores unchanged")
        return CycleOutcome(CycleResult.FAILED, now, error=message)
