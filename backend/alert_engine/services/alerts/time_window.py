"""
Time Window Evaluator

Pure date arithmetic for the expiration/maturity thresholds.
No I/O, no clock access: callers pass `now` explicitly.

Key behaviors:
- Days remaining are counted in whole calendar days (UTC dates)
- Every crossed-but-unsent threshold is due, not just the nearest one,
  so a sweep that runs after a gap still issues the skipped notices
- Nothing is due once the target date has passed
"""
from datetime import date, datetime, timezone
from typing import Iterable, List, Optional, Union

from ...models.db_models import AlertType, TriggerPriority


# =============================================================================
# THRESHOLD CONFIGURATION
# =============================================================================

# Ordered widest window first; evaluation results keep this order.
THRESHOLD_CONFIG = {
    AlertType.DAYS_90: {"days": 90, "priority": TriggerPriority.LOW},
    AlertType.DAYS_60: {"days": 60, "priority": TriggerPriority.MEDIUM},
    AlertType.DAYS_30: {"days": 30, "priority": TriggerPriority.HIGH},
    AlertType.DAYS_7: {"days": 7, "priority": TriggerPriority.CRITICAL},
}

THRESHOLD_ORDER = list(THRESHOLD_CONFIG.keys())

SMALLEST_WINDOW_DAYS = min(cfg["days"] for cfg in THRESHOLD_CONFIG.values())
WIDEST_WINDOW_DAYS = max(cfg["days"] for cfg in THRESHOLD_CONFIG.values())

DateLike = Union[date, datetime]


def to_utc_date(value: DateLike) -> date:
    """Reduce a date or datetime to a calendar date (aware datetimes via UTC)."""
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date()
    return value


def window_days(alert_type: AlertType) -> int:
    return THRESHOLD_CONFIG[alert_type]["days"]


class TimeWindowEvaluator:
    """
    Classifies which warning thresholds are due for a target date.
    """

    def days_remaining(self, now: DateLike, target_date: DateLike) -> int:
        """Whole days from `now` until `target_date` (negative once past)."""
        return (to_utc_date(target_date) - to_utc_date(now)).days

    def evaluate(
        self,
        now: DateLike,
        target_date: Optional[DateLike],
        already_sent: Iterable[AlertType] = (),
    ) -> List[AlertType]:
        """
        Return all due thresholds, widest window first.

        A threshold is due iff 0 <= days_remaining <= window and it has
        not been sent yet.
        """
        if target_date is None:
            return []

        remaining = self.days_remaining(now, target_date)
        if remaining < 0:
            return []

        sent = set(already_sent)
        return [
            alert_type
            for alert_type in THRESHOLD_ORDER
            if remaining <= window_days(alert_type) and alert_type not in sent
        ]

    def nearest_threshold(self, days_remaining: int) -> Optional[AlertType]:
        """Smallest window that contains `days_remaining`, if any."""
        if days_remaining < 0:
            return None
        for alert_type in reversed(THRESHOLD_ORDER):
            if days_remaining <= window_days(alert_type):
                return alert_type
        return None

    def priority_for(self, days_remaining: int) -> TriggerPriority:
        """
        Trigger priority from the nearest threshold.

        7day -> critical, 30day -> high, 60day -> medium,
        90day or nothing crossed yet -> low.
        """
        nearest = self.nearest_threshold(days_remaining)
        if nearest is None:
            if days_remaining < 0:
                # Past the target date: stays at the most urgent level
                return TriggerPriority.CRITICAL
            return TriggerPriority.LOW
        return THRESHOLD_CONFIG[nearest]["priority"]

    @staticmethod
    def priority_for_threshold(alert_type: AlertType) -> TriggerPriority:
        return THRESHOLD_CONFIG[alert_type]["priority"]
