import math

import pytest

from cleancity_analytics import stats


def test_average_empty_and_invalid_values():
    assert stats.average([]) == 0
    assert stats.average(None) == 0
    assert stats.average([None, math.nan, math.inf]) == 0
    assert stats.average([1, 2, None, math.nan, -math.inf]) == 1.5


def test_average_rounds_to_two_decimals():
    assert stats.average([1, 2, 2]) == 1.67


def test_median_odd_and_even():
    assert stats.median([3, 1, 2]) == 2
    assert stats.median([4, 1, 3, 2]) == 2.5
    assert stats.median([]) == 0


def test_median_within_bounds():
    values = [7.5, 0.25, 12, 3, 3, 100]
    assert min(values) <= stats.median(values) <= max(values)


def test_percentile_bounds():
    values = [5, 1, 9, 3, 7]
    assert stats.percentile(values, 0) == 1
    assert stats.percentile(values, 100) == 9
    assert stats.percentile([], 50) == 0


def test_percentile_nearest_rank_known_value():
    assert stats.percentile(list(range(1, 101)), 90) == 90
    assert stats.percentile(list(range(1, 101)), 95) == 95


def test_percentile_small_sample_does_not_interpolate():
    # ceil(0.9 * 4) - 1 = 3
    assert stats.percentile([10, 20, 30, 40], 90) == 40
    assert stats.percentile([10, 20, 30, 40], 50) == 20


def test_variance_is_sample_variance():
    assert stats.variance([1, 2, 3, 4]) == pytest.approx(5 / 3)
    assert stats.variance([5]) == 0
    assert stats.variance([]) == 0


def test_summarize_empty_is_all_zero():
    assert stats.summarize([]) == {"average": 0, "median": 0, "min": 0, "max": 0, "variance": 0, "count": 0}


def test_summarize_values():
    summary = stats.summarize([2, 4, None, 6])
    assert summary["average"] == 4
    assert summary["median"] == 4
    assert summary["min"] == 2
    assert summary["max"] == 6
    assert summary["variance"] == 4
    assert summary["count"] == 3
