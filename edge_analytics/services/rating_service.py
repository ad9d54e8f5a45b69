"""
Rating Service - streaming average from two counters

Each day keeps a count of submissions (``rating``) and a sum of scores
(``rating-score``). The average is derived at read time; individual ratings
are never stored.
"""
from typing import Any, Optional

from edge_analytics.schemas import EventKey, RATING_SCORE_KEY
from edge_analytics.services.counter_service import CounterStore

MIN_SCORE = 1
MAX_SCORE = 5


def parse_score(raw: Any) -> Optional[int]:
    """Return an integer score in 1..5, or None"""
    if raw is None or isinstance(raw, bool):
        return None
    try:
        score = int(str(raw).strip())
    except ValueError:
        return None
    if MIN_SCORE <= score <= MAX_SCORE:
        return score
    return None


def rating_average(count: int, score_sum: int) -> float:
    if count <= 0:
        return 0.0
    return score_sum / count


class RatingAggregator:
    def __init__(self, counters: CounterStore):
        self.counters = counters

    def record(self, location_id: str, day: str, score: int) -> None:
        if parse_score(score) is None:
            raise ValueError(f"Rating score must be {MIN_SCORE}-{MAX_SCORE}, got {score!r}")
        self.counters.increment(location_id, day, EventKey.RATING)
        self.counters.add(location_id, day, RATING_SCORE_KEY, int(score))

    def average(self, location_id: str, day: str) -> float:
        count = self.counters.get(location_id, day, EventKey.RATING.value)
        score_sum = self.counters.get(location_id, day, RATING_SCORE_KEY)
        return rating_average(count, score_sum)
