from __future__ import annotations

import logging
import os
import threading
import time
from dataclasses import dataclass
from typing import Optional

from constellation.runtime.metrics import inc_counter, set_gauge


log = logging.getLogger("constellation.block_loop")


@dataclass(frozen=True, slots=True)
class BlockLoopConfig:
    interval_ms: int
    enabled: bool
    max_block_txs: int

    # Reliability knobs
    fail_fast_after: int
    error_backoff_min_ms: int
    error_backoff_max_ms: int


def _env_bool(name: str, default: bool) -> bool:
    v = os.environ.get(name)
    if v is None:
        return bool(default)
    return (v or "").strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.environ.get(name, str(default)))
    except ValueError:
        return int(default)


def block_loop_config_from_env(*, interval_ms: int = 10_000, max_block_txs: int = 500) -> BlockLoopConfig:
    error_backoff_min_ms = max(50, _env_int("CONSTELLATION_BLOCK_LOOP_ERROR_BACKOFF_MIN_MS", 250))
    return BlockLoopConfig(
        interval_ms=max(250, _env_int("CONSTELLATION_BLOCK_INTERVAL_MS", interval_ms)),
        enabled=_env_bool("CONSTELLATION_BLOCK_LOOP_ENABLED", True),
        max_block_txs=max(1, _env_int("CONSTELLATION_BLOCK_MAX_TXS", max_block_txs)),
        fail_fast_after=max(3, _env_int("CONSTELLATION_BLOCK_LOOP_FAIL_FAST_AFTER", 10)),
        error_backoff_min_ms=error_backoff_min_ms,
        error_backoff_max_ms=max(error_backoff_min_ms, _env_int("CONSTELLATION_BLOCK_LOOP_ERROR_BACKOFF_MAX_MS", 10_000)),
    )


class BlockProducerLoop:
    """Produces one block per interval, empty or not.

    Height is the game clock: cycles advance with blocks, so the loop never
    skips a tick just because the mempool is empty.
    """

    def __init__(self, *, executor, cfg: Optional[BlockLoopConfig] = None) -> None:
        self._executor = executor
        self._cfg = cfg or block_loop_config_from_env(
            interval_ms=int(executor.cfg.block_interval_ms),
            max_block_txs=int(executor.cfg.max_txs_per_block),
        )

        self._t: Optional[threading.Thread] = None
        self._stop = threading.Event()
        self._started = False

        self._consecutive_failures = 0
        self._last_error: str = ""

    @property
    def started(self) -> bool:
        return self._started

    def start(self) -> bool:
        if self._started:
            return True
        if not self._cfg.enabled:
            return False
        self._stop.clear()
        self._t = threading.Thread(target=self._run, name="constellation-block-loop", daemon=True)
        self._t.start()
        self._started = True
        self._executor.block_loop_running = True
        inc_counter("block_loop_start_total", 1)
        return True

    def stop(self) -> None:
        self._stop.set()
        t = self._t
        if t is not None:
            t.join(timeout=2.0)
        self._started = False
        self._executor.block_loop_running = False
        inc_counter("block_loop_stop_total", 1)

    def _mark_error(self, err: str) -> None:
        self._consecutive_failures += 1
        self._last_error = err
        inc_counter("block_loop_errors_total", 1)
        set_gauge("block_loop_consecutive_failures", self._consecutive_failures)
        self._executor.block_loop_last_error = self._last_error

    def _clear_error(self) -> None:
        if self._consecutive_failures == 0 and not self._last_error:
            return
        self._consecutive_failures = 0
        self._last_error = ""
        set_gauge("block_loop_consecutive_failures", 0)
        self._executor.block_loop_last_error = ""

    def _sleep_backoff(self) -> None:
        n = max(1, int(self._consecutive_failures))
        ms = min(int(self._cfg.error_backoff_max_ms), int(self._cfg.error_backoff_min_ms) * (2 ** min(10, n - 1)))
        self._stop.wait(float(ms) / 1000.0)

    def _trip_unhealthy_and_stop(self) -> None:
        self._executor.block_loop_unhealthy = True
        self._executor.block_loop_running = False
        set_gauge("block_loop_unhealthy", 1)
        inc_counter("block_loop_failfast_total", 1)
        log.error(
            "block loop fail-fast tripped: failures=%s last_error=%s",
            self._consecutive_failures,
            self._last_error,
        )
        self._stop.set()

    def tick(self) -> bool:
        """Produce a single block. Returns False once the loop should stop."""
        try:
            meta = self._executor.produce_block(max_txs=int(self._cfg.max_block_txs))
        except Exception as err:
            log.exception("block loop error failures=%s", self._consecutive_failures + 1)
            self._mark_error(f"produce_block:{type(err).__name__}:{err}")
        else:
            if meta.ok:
                inc_counter("block_loop_produce_ok_total", 1)
                self._clear_error()
                return True
            self._mark_error(f"produce_block:{meta.error}")

        if self._consecutive_failures >= int(self._cfg.fail_fast_after):
            self._trip_unhealthy_and_stop()
            return False
        self._sleep_backoff()
        return True

    def _run(self) -> None:
        interval_s = float(self._cfg.interval_ms) / 1000.0
        next_ts = time.monotonic() + interval_s

        while not self._stop.is_set():
            now = time.monotonic()
            if now < next_ts:
                self._stop.wait(min(0.25, next_ts - now))
                continue
            next_ts = now + interval_s
            if not self.tick():
                break
