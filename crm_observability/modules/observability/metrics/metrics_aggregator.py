"""Statistical helpers used by the metric store aggregations.

Averages, percentiles and percentage rates over plain lists of values. Values
are not sanitized: a NaN sample propagates into the result.
"""

import math
from typing import List


class MetricsAggregator:
    """Statistical helpers for windowed aggregates.

    Example:
        aggregator = MetricsAggregator()

        latencies = [120.0, 80.5, 2300.0]
        avg = aggregator.mean(latencies)
        p95 = aggregator.percentile(latencies, 95)
        error_rate = aggregator.calculate_error_rate(errors, total)
    """

    @staticmethod
    def round_half_up(value: float) -> float:
        """Round to the nearest whole number, halves away from zero.

        Non-finite values are returned unchanged.

        Args:
            value: Value to round

        Returns:
            Rounded value
        """
        if math.isnan(value) or math.isinf(value):
            return value
        return float(math.floor(value + 0.5))

    @staticmethod
    def percentile(values: List[float], p: float) -> float:
        """Calculate percentile value with linear interpolation.

        Args:
            values: List of numeric values
            p: Percentile (0-100)

        Returns:
            Percentile value, 0 for an empty list
        """
        if not values:
            return 0.0

        sorted_values = sorted(values)
        n = len(sorted_values)

        if p <= 0:
            return sorted_values[0]
        if p >= 100:
            return sorted_values[-1]

        index = (p / 100) * (n - 1)
        lower_index = int(math.floor(index))
        upper_index = int(math.ceil(index))

        if lower_index == upper_index:
            return sorted_values[lower_index]

        lower_value = sorted_values[lower_index]
        upper_value = sorted_values[upper_index]
        return lower_value + (upper_value - lower_value) * (index - lower_index)

    @staticmethod
    def mean(values: List[float]) -> float:
        """Arithmetic mean, 0 for an empty list."""
        if not values:
            return 0.0
        return sum(values) / len(values)

    @staticmethod
    def calculate_error_rate(error_count: int, total_count: int) -> float:
        """Calculate error rate as percentage.

        Args:
            error_count: Number of errors
            total_count: Total number of requests

        Returns:
            Error rate as percentage (0-100)
        """
        if total_count == 0:
            return 0.0
        return (error_count / total_count) * 100

    @staticmethod
    def calculate_hit_rate(hits: int, misses: int) -> float:
        """Calculate cache hit rate as percentage of hits + misses."""
        total = hits + misses
        if total == 0:
            return 0.0
        return (hits / total) * 100
