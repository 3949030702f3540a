"""
Tests for the snapshot aggregator.

============================================================
PURPOSE
============================================================
Verify that /stat snapshots are turned into the right rates.

TEST PRINCIPLES:
- Missing "actions" is a hard error with no side effects
- Missing individual actions count as zero
- Total is computed from this cycle's source totals
- Scan time mean ignores invalid samples
- First failure stops the cycle

============================================================
"""

import json
import math
import threading
from datetime import timedelta

import pytest

from rspamd_monitor.aggregator import StatAggregator, lookup_action, mean_scan_time
from rspamd_monitor.exceptions import AggregationError, DivisionByZeroError, MissingFieldError
from rspamd_monitor.models import CounterKind, MetricDefinition, MetricRole
from rspamd_monitor.state import MonitorState


ONE_SECOND = timedelta(milliseconds=1000)


# ============================================================
# FIXTURES
# ============================================================

@pytest.fixture
def aggregator():
    """Aggregator with the default metric set."""
    return StatAggregator(window_size=10)


@pytest.fixture
def first_snapshot():
    return {"actions": {"reject": 10, "no action": 20, "add header": 5}}


@pytest.fixture
def second_snapshot():
    return {"actions": {"reject": 20, "no action": 40, "add header": 15}}


# ============================================================
# RATE TESTS
# ============================================================

class TestRates:
    """Tests for rate derivation from actions."""

    def test_default_metric_order(self, aggregator):
        assert aggregator.keys == ["spam", "ham", "junk", "total", "avg_time"]

    def test_first_snapshot_produces_no_points(self, aggregator, first_snapshot):
        aggregator.update_from_snapshot(first_snapshot, ONE_SECOND)

        assert all(view.is_empty for view in aggregator.views())
        assert aggregator.cycles == 1

    def test_two_snapshots(self, aggregator, first_snapshot, second_snapshot):
        """Per-second rates after two snapshots one second apart."""
        aggregator.update_from_snapshot(first_snapshot, ONE_SECOND)
        aggregator.update_from_snapshot(second_snapshot, ONE_SECOND)

        assert aggregator.series("spam").history == (10.0,)
        assert aggregator.series("ham").history == (20.0,)
        assert aggregator.series("junk").history == (10.0,)

        total = aggregator.series("total").history[-1]
        assert total == 40.0
        assert total == sum(aggregator.series(k).history[-1] for k in ("spam", "ham", "junk"))

    def test_junk_combines_two_actions(self, aggregator):
        aggregator.update_from_snapshot(
            {"actions": {"add header": 1, "rewrite subject": 1}}, ONE_SECOND
        )
        aggregator.update_from_snapshot(
            {"actions": {"add header": 3, "rewrite subject": 4}}, ONE_SECOND
        )

        assert aggregator.series("junk").history == (5.0,)

    def test_missing_actions_count_as_zero(self, aggregator):
        aggregator.update_from_snapshot({"actions": {"reject": 4}}, ONE_SECOND)
        aggregator.update_from_snapshot({"actions": {}}, ONE_SECOND)

        assert aggregator.series("spam").history == (-4.0,)
        assert aggregator.series("ham").history == (0.0,)

    def test_non_integer_counts_are_ignored(self, aggregator):
        aggregator.update_from_snapshot({"actions": {"reject": 1}}, ONE_SECOND)
        aggregator.update_from_snapshot(
            {"actions": {"reject": "3", "no action": -1, "add header": 2.5}}, ONE_SECOND
        )

        assert aggregator.series("spam").history == (-1.0,)
        assert aggregator.series("ham").history == (0.0,)
        assert aggregator.series("junk").history == (0.0,)

    def test_underscore_action_names(self, aggregator):
        aggregator.update_from_snapshot({"actions": {"no_action": 1}}, ONE_SECOND)
        aggregator.update_from_snapshot({"actions": {"no_action": 3}}, ONE_SECOND)

        assert aggregator.series("ham").history == (2.0,)

    def test_spaced_name_wins_over_underscore(self):
        actions = {"no action": 7, "no_action": 100}
        assert lookup_action(actions, "no action") == 7

    def test_rates_use_elapsed_interval(self, aggregator):
        aggregator.update_from_snapshot({"actions": {"reject": 0}}, ONE_SECOND)
        aggregator.update_from_snapshot({"actions": {"reject": 10}}, timedelta(seconds=4))

        assert aggregator.series("spam").history == (2.5,)

    def test_counts_beyond_u64_are_ignored(self, aggregator):
        huge = json.loads("1" + "0" * 400)
        aggregator.update_from_snapshot({"actions": {"reject": 1}}, ONE_SECOND)
        aggregator.update_from_snapshot(
            {"actions": {"reject": huge, "no action": 2 ** 64 - 1}}, ONE_SECOND
        )

        assert aggregator.series("spam").history == (-1.0,)
        assert aggregator.series("ham").history == (pytest.approx(2.0 ** 64),)


# ============================================================
# SCAN TIME TESTS
# ============================================================

class TestScanTimes:
    """Tests for the average scan time gauge."""

    def test_mean_skips_nan(self, aggregator):
        aggregator.update_from_snapshot(
            {"actions": {}, "scan_times": [1.0, 2.0, math.nan, 3.0]}, ONE_SECOND
        )

        assert aggregator.series("avg_time").history == (2.0,)

    def test_all_nan_skipped(self, aggregator):
        aggregator.update_from_snapshot({"actions": {}, "scan_times": [0.5]}, ONE_SECOND)
        aggregator.update_from_snapshot(
            {"actions": {}, "scan_times": [math.nan, math.nan]}, ONE_SECOND
        )

        assert aggregator.series("avg_time").history == (0.5,)

    def test_empty_or_missing_scan_times(self, aggregator):
        aggregator.update_from_snapshot({"actions": {}, "scan_times": []}, ONE_SECOND)
        aggregator.update_from_snapshot({"actions": {}}, ONE_SECOND)
        aggregator.update_from_snapshot({"actions": {}, "scan_times": "n/a"}, ONE_SECOND)

        assert aggregator.series("avg_time").history == ()

    def test_non_numeric_samples_dropped(self):
        assert mean_scan_time([1, None, "x", True, 2.0]) == 1.5
        assert mean_scan_time([None]) is None

    def test_mean_is_accurate_for_long_arrays(self):
        samples = [0.1] * 10_000 + [1e8, -1e8]
        assert mean_scan_time(samples) == pytest.approx(1000.0 / 10_002, rel=1e-12)

    def test_non_finite_and_oversized_samples_dropped(self):
        huge = json.loads("1" + "0" * 400)

        assert mean_scan_time([huge, 2.0, math.inf, -math.inf]) == 2.0
        assert mean_scan_time([huge]) is None

    def test_mean_near_float_limit(self, aggregator):
        snapshot = json.loads('{"actions": {}, "scan_times": [1e308, 1e308]}')

        aggregator.update_from_snapshot(snapshot, ONE_SECOND)

        assert aggregator.series("avg_time").history == (1e308,)


# ============================================================
# ERROR TESTS
# ============================================================

class TestErrors:
    """Tests for error handling."""

    def test_missing_actions_leaves_state_untouched(self, aggregator, first_snapshot):
        aggregator.update_from_snapshot(first_snapshot, ONE_SECOND)

        with pytest.raises(MissingFieldError) as exc_info:
            aggregator.update_from_snapshot({"scan_times": [1.0]}, ONE_SECOND)

        assert exc_info.value.field_name == "actions"
        assert all(view.is_empty for view in aggregator.views())
        assert aggregator.series("spam").counter.previous_value == 10_000.0
        assert aggregator.cycles == 1

    def test_non_mapping_snapshot(self, aggregator):
        with pytest.raises(MissingFieldError):
            aggregator.update_from_snapshot([], ONE_SECOND)

    def test_zero_elapsed_fails_fast(self, aggregator, first_snapshot, second_snapshot):
        aggregator.update_from_snapshot(first_snapshot, ONE_SECOND)

        with pytest.raises(AggregationError) as exc_info:
            aggregator.update_from_snapshot(second_snapshot, timedelta(0))

        error = exc_info.value
        assert error.metric == "spam"
        assert isinstance(error.original_exception, DivisionByZeroError)
        # spam advanced before failing, ham was never reached
        assert aggregator.series("spam").counter.previous_value == 20_000.0
        assert aggregator.series("ham").counter.previous_value == 20_000.0
        assert aggregator.cycles == 1

    def test_duplicate_keys_rejected(self):
        metrics = [
            MetricDefinition(key="a", label="a", sources=("reject",)),
            MetricDefinition(key="a", label="b", sources=("no action",)),
        ]
        with pytest.raises(ValueError):
            StatAggregator(5, metrics)


# ============================================================
# CUSTOM METRICS / STATE TESTS
# ============================================================

class TestCustomMetrics:
    """Metric set is data, not code."""

    def test_custom_metric_set(self):
        metrics = [
            MetricDefinition(key="greylist", label="greylist msg/sec", sources=("greylist",)),
            MetricDefinition(key="soft", label="soft reject msg/sec", sources=("soft reject",)),
            MetricDefinition(key="all", label="all msg/sec", role=MetricRole.TOTAL),
        ]
        aggregator = StatAggregator(3, metrics)

        aggregator.update_from_snapshot({"actions": {"greylist": 1, "soft reject": 1}}, ONE_SECOND)
        aggregator.update_from_snapshot({"actions": {"greylist": 2, "soft reject": 4}}, ONE_SECOND)

        assert aggregator.series("greylist").history == (1.0,)
        assert aggregator.series("soft").history == (3.0,)
        assert aggregator.series("all").history == (4.0,)

    def test_summaries_skip_empty_series(self, aggregator, first_snapshot, second_snapshot):
        aggregator.update_from_snapshot(first_snapshot, ONE_SECOND)
        aggregator.update_from_snapshot(second_snapshot, ONE_SECOND)

        keys = [s.key for s in aggregator.summaries()]
        assert keys == ["spam", "ham", "junk", "total"]


class TestMonitorState:
    """Tests for the shared, locked state."""

    def test_apply_and_views(self, first_snapshot, second_snapshot):
        state = MonitorState(4)
        state.apply(first_snapshot, ONE_SECOND)
        state.apply(second_snapshot, ONE_SECOND)

        views = {v.key: v for v in state.views()}
        assert views["spam"].history == (10.0,)
        assert [s.key for s in state.summaries()][0] == "spam"

    def test_reader_blocks_writer(self, first_snapshot):
        """The lock is exclusive between update and read."""
        state = MonitorState(4)
        applied = threading.Event()

        def writer():
            state.apply(first_snapshot, ONE_SECOND)
            applied.set()

        with state.locked() as aggregator:
            thread = threading.Thread(target=writer)
            thread.start()
            assert not applied.wait(0.1)
            assert aggregator.cycles == 0

        thread.join(timeout=2)
        assert applied.is_set()

    def test_metrics_parameter(self):
        state = MonitorState(
            2,
            [MetricDefinition(key="t", label="t", kind=CounterKind.GAUGE, role=MetricRole.SCAN_TIME)],
        )
        state.apply({"actions": {}, "scan_times": [4.0]}, ONE_SECOND)

        assert state.views()[0].history == (4.0,)
