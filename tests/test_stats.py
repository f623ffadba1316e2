import math

from trade_sampler.stats import arithmetic_mean


def test_mean_of_empty_is_no_data():
    assert arithmetic_mean([]) is None


def test_mean_of_zeroes_is_zero_not_no_data():
    assert arithmetic_mean([0.0, 0.0]) == 0.0


def test_mean_matches_sum_over_count():
    prices = [60001.25, 59998.5, 60000.75, 60003.0]
    assert math.isclose(arithmetic_mean(prices), sum(prices) / len(prices))


def test_mean_of_means_is_exact():
    assert arithmetic_mean([60000.0, 60010.0, 59990.0, 60020.0, 59980.0]) == 60000.0
