from __future__ import annotations

import time
from types import SimpleNamespace

import pytest

from constellation.runtime.block_loop import BlockLoopConfig, BlockProducerLoop, block_loop_config_from_env
from constellation.runtime.executor import ExecutorMeta


class _FlakyExecutor:
    """Executor stub whose produce_block fails a configurable number of times."""

    def __init__(self, *, failures: int) -> None:
        self.cfg = SimpleNamespace(block_interval_ms=250, max_txs_per_block=10)
        self.failures = failures
        self.calls = 0
        self.block_loop_running = False
        self.block_loop_unhealthy = False
        self.block_loop_last_error = ""

    def produce_block(self, *, max_txs=None) -> ExecutorMeta:
        self.calls += 1
        if self.calls <= self.failures:
            raise RuntimeError("disk on fire")
        return ExecutorMeta(ok=True, height=self.calls)


def _cfg(**kw) -> BlockLoopConfig:
    base = dict(
        interval_ms=250,
        enabled=True,
        max_block_txs=10,
        fail_fast_after=3,
        error_backoff_min_ms=1,
        error_backoff_max_ms=1,
    )
    base.update(kw)
    return BlockLoopConfig(**base)


def test_config_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CONSTELLATION_BLOCK_INTERVAL_MS", "10")
    monkeypatch.setenv("CONSTELLATION_BLOCK_LOOP_ENABLED", "0")
    cfg = block_loop_config_from_env(interval_ms=5000)
    assert cfg.interval_ms == 250
    assert cfg.enabled is False
    assert cfg.fail_fast_after >= 3


def test_tick_recovers_after_transient_error() -> None:
    ex = _FlakyExecutor(failures=1)
    loop = BlockProducerLoop(executor=ex, cfg=_cfg())

    assert loop.tick() is True
    assert ex.block_loop_last_error.startswith("produce_block:RuntimeError")

    assert loop.tick() is True
    assert ex.block_loop_last_error == ""
    assert ex.block_loop_unhealthy is False


def test_fail_fast_trips_unhealthy() -> None:
    ex = _FlakyExecutor(failures=100)
    loop = BlockProducerLoop(executor=ex, cfg=_cfg(fail_fast_after=3))

    assert loop.tick() is True
    assert loop.tick() is True
    assert loop.tick() is False
    assert ex.block_loop_unhealthy is True
    assert ex.block_loop_running is False


def test_disabled_loop_does_not_start() -> None:
    ex = _FlakyExecutor(failures=0)
    loop = BlockProducerLoop(executor=ex, cfg=_cfg(enabled=False))
    assert loop.start() is False
    assert loop.started is False


def test_loop_produces_empty_blocks(make_executor) -> None:
    ex = make_executor()
    loop = BlockProducerLoop(executor=ex, cfg=_cfg(interval_ms=250))
    assert loop.start() is True
    try:
        deadline = time.monotonic() + 5.0
        while time.monotonic() < deadline and int(ex.read_state()["height"]) < 2:
            time.sleep(0.05)
    finally:
        loop.stop()

    assert int(ex.read_state()["height"]) >= 2
    assert ex.block_loop_running is False
