"""Concurrent stress workload for weak concurrent maps."""

from __future__ import annotations

import copy
import gc
import logging
import random
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, List, Optional

from pydantic import BaseModel, Field

from .config import AppConfig, CLEANER_MODES
from .contracts.error import BadInputError
from .core.maps import WeakConcurrentMap
from .metrics import CleanupMetrics, MetricsSnapshot

logger = logging.getLogger(__name__)


class StressKey:
    """Weakly referenceable key carrying the slot it was created for."""

    __slots__ = ("slot", "__weakref__")

    def __init__(self, slot: int) -> None:
        self.slot = slot

    def __eq__(self, other: object) -> bool:
        # Value equality on purpose: the map must ignore it.
        return isinstance(other, StressKey) and other.slot == self.slot

    def __hash__(self) -> int:
        return hash(self.slot)

    def __repr__(self) -> str:
        return f"StressKey({self.slot})"


class StressSummary(BaseModel):
    mode: str
    threads: int = Field(ge=1)
    ops_per_thread: int = Field(ge=0)
    puts: int = 0
    gets: int = 0
    removes: int = 0
    key_replacements: int = 0
    anomalies: int = 0
    size_before_drain: int = 0
    final_size: int = 0
    drained: bool = False
    drain_seconds: float = 0.0
    metrics: Optional[MetricsSnapshot] = None

    @property
    def ok(self) -> bool:
        return self.anomalies == 0 and self.drained


def _worker(
    m: WeakConcurrentMap[StressKey, Any],
    pool: List[StressKey],
    ghosts: List[StressKey],
    ops: int,
    seed: int,
) -> dict[str, int]:
    rng = random.Random(seed)
    counts = {"puts": 0, "gets": 0, "removes": 0, "key_replacements": 0, "anomalies": 0}
    for n in range(ops):
        slot = rng.randrange(len(pool))
        key = pool[slot]
        roll = rng.random()
        if roll < 0.35:
            m.put(key, (slot, n))
            counts["puts"] += 1
        elif roll < 0.7:
            value = m.get(key)
            counts["gets"] += 1
            if value is not None and value[0] != slot:
                counts["anomalies"] += 1
            if m.get(ghosts[slot % len(ghosts)]) is not None:
                counts["anomalies"] += 1
        elif roll < 0.9:
            m.remove(key)
            counts["removes"] += 1
        else:
            # Drop the pool's reference so the old key (and its entry) goes stale.
            pool[slot] = StressKey(slot)
            counts["key_replacements"] += 1
        del key
    return counts


def _drain(m: WeakConcurrentMap[Any, Any], timeout: float) -> bool:
    deadline = time.monotonic() + timeout
    while True:
        gc.collect()
        if m.cleaner is None:
            m.expunge_stale_entries()
        if m.approximate_size() == 0:
            return True
        if time.monotonic() >= deadline:
            return False
        time.sleep(0.01)


def run_stress(
    threads: int = 4,
    ops_per_thread: int = 2_000,
    mode: str = "inline",
    *,
    key_pool: int = 64,
    seed: Optional[int] = None,
    drain_timeout: float = 5.0,
    config: Optional[AppConfig] = None,
    metrics: Optional[CleanupMetrics] = None,
) -> StressSummary:
    """Hammer a shared map from ``threads`` workers, then drop every key and drain.

    The summary counts anomalies: values read back under the wrong key, and
    values found for keys that were never inserted.
    """

    if mode not in CLEANER_MODES:
        raise BadInputError(f"Unknown cleaner mode: {mode}")
    if threads < 1:
        raise BadInputError("threads must be >= 1")
    if ops_per_thread < 0:
        raise BadInputError("ops_per_thread must be >= 0")
    if key_pool < 1:
        raise BadInputError("key_pool must be >= 1")

    cfg = copy.deepcopy(config) if config is not None else AppConfig()
    cfg.cleaner.mode = mode
    base_seed = seed if seed is not None else random.randrange(1 << 30)
    logger.info(
        "Stress run starting (mode=%s, threads=%d, ops=%d, seed=%d)",
        mode,
        threads,
        ops_per_thread,
        base_seed,
    )

    m: WeakConcurrentMap[StressKey, Any] = WeakConcurrentMap.from_config(cfg, metrics=metrics)
    pool = [StressKey(i) for i in range(key_pool)]
    ghosts = [StressKey(i) for i in range(key_pool)]
    totals = {"puts": 0, "gets": 0, "removes": 0, "key_replacements": 0, "anomalies": 0}
    try:
        with ThreadPoolExecutor(max_workers=threads, thread_name_prefix="weakmap-stress") as executor:
            futures = [
                executor.submit(_worker, m, pool, ghosts, ops_per_thread, base_seed + i)
                for i in range(threads)
            ]
            for future in futures:
                for name, value in future.result().items():
                    totals[name] += value

        size_before = m.approximate_size()
        pool.clear()
        started = time.monotonic()
        drained = _drain(m, drain_timeout)
        elapsed = time.monotonic() - started
        final_size = m.approximate_size()
        # Map gauges need the map, so take the snapshot before the cleaner stops.
        snapshot = metrics.snapshot(m) if metrics is not None else None
    finally:
        m.close()

    summary = StressSummary(
        mode=mode,
        threads=threads,
        ops_per_thread=ops_per_thread,
        size_before_drain=size_before,
        final_size=final_size,
        drained=drained,
        drain_seconds=round(elapsed, 6),
        metrics=snapshot,
        **totals,
    )
    if not drained:
        logger.warning("Stress run left %d entries after %.1fs", final_size, drain_timeout)
    logger.info("Stress run finished: %s", summary.model_dump_json())
    return summary


__all__ = ["StressKey", "StressSummary", "run_stress"]
