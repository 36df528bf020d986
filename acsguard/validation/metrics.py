# -*- coding: utf-8 -*-
"""
Prometheus Metrics - ACS Guard Domain Validation

Metrics:
    1.  acsguard_validations_total (Counter)
    2.  acsguard_validation_duration_seconds (Histogram)
    3.  acsguard_violations_total (Counter)
    4.  acsguard_rule_evaluations_total (Counter)
    5.  acsguard_rule_errors_total (Counter)
    6.  acsguard_critical_short_circuits_total (Counter)
    7.  acsguard_bulk_batch_size (Histogram)
    8.  acsguard_cache_hits_total (Counter)
    9.  acsguard_cache_misses_total (Counter)
    10. acsguard_cache_entries (Gauge)
    11. acsguard_system_invariant_violations (Gauge)
"""

from __future__ import annotations

import logging

from prometheus_client import Counter, Gauge, Histogram

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Metric definitions
# ---------------------------------------------------------------------------

# 1. Validation calls
validations_total = Counter(
    "acsguard_validations_total",
    "Total entity validations by entity type and outcome",
    labelnames=["entity_type", "result"],
)

# 2. Validation duration
validation_duration_seconds = Histogram(
    "acsguard_validation_duration_seconds",
    "Entity validation duration in seconds",
    labelnames=["entity_type"],
    buckets=(0.0001, 0.0005, 0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 1.0),
)

# 3. Violations by kind
violations_total = Counter(
    "acsguard_violations_total",
    "Total violations reported by kind",
    labelnames=["kind"],
)

# 4. Rule evaluations
rule_evaluations_total = Counter(
    "acsguard_rule_evaluations_total",
    "Total rule evaluations by rule ID",
    labelnames=["rule_id"],
)

# 5. Rule faults
rule_errors_total = Counter(
    "acsguard_rule_errors_total",
    "Total unexpected rule failures by rule ID",
    labelnames=["rule_id"],
)

# 6. Critical short-circuits
critical_short_circuits_total = Counter(
    "acsguard_critical_short_circuits_total",
    "Business rule stages stopped by a critical violation",
)

# 7. Bulk batch size
bulk_batch_size = Histogram(
    "acsguard_bulk_batch_size",
    "Number of entities per bulk validation call",
    buckets=(1, 5, 10, 25, 50, 100, 250, 500, 1000),
)

# 8. Cache hits
cache_hits_total = Counter(
    "acsguard_cache_hits_total",
    "Total validation cache hits",
)

# 9. Cache misses
cache_misses_total = Counter(
    "acsguard_cache_misses_total",
    "Total validation cache misses",
)

# 10. Cache entries gauge
cache_entries = Gauge(
    "acsguard_cache_entries",
    "Current number of validation cache entries",
)

# 11. System invariant violations gauge
system_invariant_violations = Gauge(
    "acsguard_system_invariant_violations",
    "Violations found by the last system-wide invariant run",
)


# ---------------------------------------------------------------------------
# Helper functions
# ---------------------------------------------------------------------------


def record_validation(entity_type: str, valid: bool, duration_seconds: float) -> None:
    """Record one entity validation.

    Args:
        entity_type: Entity type name.
        valid: Whether the entity passed.
        duration_seconds: Validation duration in seconds.
    """
    result = "valid" if valid else "invalid"
    validations_total.labels(entity_type=entity_type, result=result).inc()
    validation_duration_seconds.labels(entity_type=entity_type).observe(
        duration_seconds,
    )


def record_violation(kind: str) -> None:
    violations_total.labels(kind=kind).inc()


def record_rule_evaluation(rule_id: str) -> None:
    rule_evaluations_total.labels(rule_id=rule_id).inc()


def record_rule_error(rule_id: str) -> None:
    rule_errors_total.labels(rule_id=rule_id).inc()


def record_critical_short_circuit() -> None:
    critical_short_circuits_total.inc()


def record_bulk_batch(size: int) -> None:
    bulk_batch_size.observe(size)


def record_cache_hit() -> None:
    cache_hits_total.inc()


def record_cache_miss() -> None:
    cache_misses_total.inc()


def update_cache_entries(count: int) -> None:
    cache_entries.set(count)


def update_system_invariant_violations(count: int) -> None:
    system_invariant_violations.set(count)


__all__ = [
    "record_validation",
    "record_violation",
    "record_rule_evaluation",
    "record_rule_error",
    "record_critical_short_circuit",
    "record_bulk_batch",
    "record_cache_hit",
    "record_cache_miss",
    "update_cache_entries",
    "update_system_invariant_violations",
]
