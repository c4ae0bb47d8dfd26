"""Prometheus metrics for the keeper and rebalancer loops."""

from __future__ import annotations

from prometheus_client import Counter, Gauge

__all__ = [
    "KEEPER_TRIGGERS_TOTAL",
    "KEEPER_ERRORS_TOTAL",
    "REBALANCER_ACTIONS_TOTAL",
    "POOL_DEFICIT_GAUGE",
    "POOL_SURPLUS_GAUGE",
    "POOL_SCORE_GAUGE",
    "POOL_UNOBSERVABLE_TOTAL",
    "RUNNER_STATE_GAUGE",
    "LAST_CYCLE_TS",
    "BATCH_HALTED_GAUGE",
    "record_runner_state",
]

KEEPER_TRIGGERS_TOTAL = Counter(
    "lanca_keeper_triggers_total",
    "Keeper transactions confirmed, by pool and action.",
    ("pool", "action"),
)

KEEPER_ERRORS_TOTAL = Counter(
    "lanca_keeper_errors_total",
    "Keeper cycle failures by pool and error kind.",
    ("pool", "kind"),
)

REBALANCER_ACTIONS_TOTAL = Counter(
    "lanca_rebalancer_actions_total",
    "Rebalancer corrections by pool, action and outcome.",
    ("pool", "action", "outcome"),
)

POOL_DEFICIT_GAUGE = Gauge(
    "lanca_pool_deficit",
    "Deficit observed in the latest snapshot (token base units).",
    ("pool",),
)

POOL_SURPLUS_GAUGE = Gauge(
    "lanca_pool_surplus",
    "Surplus observed in the latest snapshot (token base units).",
    ("pool",),
)

POOL_SCORE_GAUGE = Gauge(
    "lanca_pool_score",
    "Latest pool health scores in fixed point (1e6 = healthy).",
    ("pool", "score"),
)

POOL_UNOBSERVABLE_TOTAL = Counter(
    "lanca_pool_unobservable_total",
    "Snapshots skipped because the pool could not be read.",
    ("pool",),
)

RUNNER_STATE_GAUGE = Gauge(
    "lanca_runner_state",
    "Per-pool runner state (1 for the current state).",
    ("runner", "pool", "state"),
)

LAST_CYCLE_TS = Gauge(
    "lanca_last_cycle_ts",
    "Unix timestamp of the last completed cycle per runner.",
    ("runner",),
)

BATCH_HALTED_GAUGE = Gauge(
    "lanca_batch_halted",
    "1 when a pool's batching is halted awaiting operator resume.",
    ("pool",),
)

_RUNNER_STATES = ("OK", "IDLE", "ERROR", "SKIPPED")


def record_runner_state(runner: str, pool: str, state: str) -> None:
    for candidate in _RUNNER_STATES:
        RUNNER_STATE_GAUGE.labels(runner=runner, pool=pool, state=candidate).set(
            1.0 if candidate == state else 0.0
        )


for _runner in ("keeper", "rebalancer"):  # pre-warm default labels for exporters
    LAST_CYCLE_TS.labels(runner=_runner).set(0.0)
