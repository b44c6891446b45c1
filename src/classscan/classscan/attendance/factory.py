from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime

from ..policies.model import PolicyRules
from .strategies.base import AttendanceStrategy, StatusDecision
from .strategies.late_strategy import LateStrategy
from .strategies.on_time_strategy import OnTimeStrategy

_EPOCH = datetime(1970, 1, 1)


def epoch_seconds(value: datetime) -> int:
    """Whole seconds since the epoch for a naive UTC datetime."""
    return math.floor((value - _EPOCH).total_seconds())


def threshold_seconds(rules: PolicyRules, *, is_break_round: bool) -> int:
    late_after = rules.late_after_minutes(is_break_round=is_break_round)
    return math.floor((late_after + (rules.grace_minutes or 0)) * 60)


def delta_seconds(*, now: datetime, round_starts_at: datetime) -> int:
    return epoch_seconds(now) - epoch_seconds(round_starts_at)


@dataclass
class AttendanceStrategyFactory:
    """Factory Pattern: choose the status strategy from server-side timing only."""

    def for_scan(self, *, delta_seconds: int, threshold_seconds: int) -> AttendanceStrategy:
        # Exactly on the threshold is still on time.
        if delta_seconds > threshold_seconds:
            return LateStrategy()
        return OnTimeStrategy()

    def decide(
        self,
        *,
        now: datetime,
        round_starts_at: datetime,
        rules: PolicyRules,
        is_break_round: bool,
    ) -> StatusDecision:
        delta = delta_seconds(now=now, round_starts_at=round_starts_at)
        threshold = threshold_seconds(rules, is_break_round=is_break_round)
        strategy = self.for_scan(delta_seconds=delta, threshold_seconds=threshold)
        return strategy.decide_scan(delta_seconds=delta, threshold_seconds=threshold)
