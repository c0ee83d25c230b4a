"""
Vote Decay

Exponential attenuation of a vote's influence by age:
    factor = exp(-DECAY_RATE * hours_old)
Half-life is about 139 hours (~5.8 days). No floor is applied.
"""
import math
from datetime import datetime, timezone

DECAY_RATE = 0.005  # per hour


def decay_factor(hours_old: float) -> float:
    """Multiplicative factor in (0, 1]. Negative ages count as fresh."""
    return math.exp(-DECAY_RATE * max(0.0, hours_old))


def _as_naive_utc(moment: datetime) -> datetime:
    if moment.tzinfo is not None:
        return moment.astimezone(timezone.utc).replace(tzinfo=None)
    return moment


def hours_between(now: datetime, then: datetime) -> float:
    """Age in hours of `then` relative to `now`; mixes naive UTC and aware datetimes safely."""
    delta = _as_naive_utc(now) - _as_naive_utc(then)
    return delta.total_seconds() / 3600.0
