from strata.compaction.metrics import CompressionMetrics


def test_empty_metrics_have_no_latency():
    snapshot = CompressionMetrics().snapshot()

    assert snapshot.success_count == 0
    assert snapshot.average_ms is None
    assert snapshot.p95_ms is None
    assert snapshot.last_run is None


def test_average_and_p95_over_recorded_runs():
    metrics = CompressionMetrics()
    for ms in range(1, 21):
        metrics.record_run(ms * 10, was_catch_up=(ms == 1), summary={"total_ms": ms * 10})

    snapshot = metrics.snapshot()
    assert snapshot.success_count == 20
    assert snapshot.catch_up_count == 1
    assert snapshot.regular_count == 19
    assert snapshot.average_ms == 105.0
    assert snapshot.p95_ms == 200
    assert snapshot.last_run == {"total_ms": 200}


def test_only_the_most_recent_durations_are_kept():
    metrics = CompressionMetrics(max_samples=3)
    for ms in (1000, 1000, 10, 20, 30):
        metrics.record_run(ms, was_catch_up=False)

    assert metrics.average_ms() == 20.0
    assert metrics.p95_ms() == 30
    assert metrics.snapshot().success_count == 5


def test_failures_are_counted_by_type():
    metrics = CompressionMetrics()
    metrics.record_failure("StorageError")
    metrics.record_failure("StorageError")
    metrics.record_failure("RuntimeError")

    snapshot = metrics.snapshot()
    assert snapshot.failure_count == 3
    assert snapshot.failures_by_type == {"StorageError": 2, "RuntimeError": 1}
