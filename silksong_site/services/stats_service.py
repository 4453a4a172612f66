"""
Subscription analytics for the admin stats endpoint.
"""
import calendar
import logging
from collections import Counter
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from ..adapters.base import SubscriptionAdapter
from ..errors import ValidationError
from ..models.subscription import STATUS_ACTIVE, STATUS_PENDING, STATUS_UNSUBSCRIBED, utcnow
from ..schemas.stats_schema import (
    PeriodCount,
    SourceCount,
    StatsData,
    StatsMeta,
    StatsQuery,
    StatsSummary,
    TagCount,
)
from ..schemas.subscription_schema import SubscriptionRecord

logger = logging.getLogger(__name__)

MAX_DATE_RANGE_DAYS = 365


def _months_ago(moment: datetime, months: int) -> datetime:
    month_index = moment.month - 1 - months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def _percent(part: int, whole: int) -> float:
    if not whole:
        return 0.0
    return round(part / whole * 100, 1)


def get_date_range(query: StatsQuery, now: Optional[datetime] = None) -> Tuple[datetime, datetime]:
    """Explicit start/end when both are given, otherwise derived from `period`."""
    now = now or utcnow()

    if query.start_date and query.end_date:
        start, end = query.start_date, query.end_date
        if start > end:
            raise ValidationError(message="Start date must be before end date", code="validation_date_range")
        if end - start > timedelta(days=MAX_DATE_RANGE_DAYS):
            raise ValidationError(
                message=f"Date range cannot exceed {MAX_DATE_RANGE_DAYS} days",
                code="validation_date_range",
            )
        return start, end

    if query.period == "day":
        start = now.replace(hour=0, minute=0, second=0, microsecond=0)
        return start, start + timedelta(days=1) - timedelta(microseconds=1)
    if query.period == "week":
        return now - timedelta(days=7), now
    if query.period == "year":
        return _months_ago(now, 12), now
    return _months_ago(now, 1), now


def _period_key(moment: datetime, group_by: str) -> str:
    if group_by == "month":
        return moment.strftime("%Y-%m")
    if group_by == "week":
        # weeks start on Sunday
        week_start = moment - timedelta(days=(moment.weekday() + 1) % 7)
        return week_start.strftime("%Y-%m-%d")
    return moment.strftime("%Y-%m-%d")


def _period_data(
    subscriptions: List[SubscriptionRecord],
    group_by: str,
    limit: int,
) -> List[PeriodCount]:
    joined: Counter = Counter()
    left: Counter = Counter()
    for subscription in subscriptions:
        if subscription.subscribed_at:
            joined[_period_key(subscription.subscribed_at, group_by)] += 1
        if subscription.unsubscribed_at:
            left[_period_key(subscription.unsubscribed_at, group_by)] += 1

    periods = sorted(set(joined) | set(left))
    return [
        PeriodCount(
            period=period,
            subscriptions=joined[period],
            unsubscriptions=left[period],
            net_growth=joined[period] - left[period],
        )
        for period in periods
    ][:limit]


def compute_stats(
    adapter: SubscriptionAdapter,
    query: StatsQuery,
    cache_ttl: int,
    now: Optional[datetime] = None,
) -> StatsData:
    now = now or utcnow()
    start, end = get_date_range(query, now)

    subscriptions = adapter.list_subscriptions(
        source=query.source,
        tag=query.tag,
        since=start,
        until=end,
    )

    total = adapter.count()
    today_start = now.replace(hour=0, minute=0, second=0, microsecond=0)

    sources = Counter(sub.source or "unknown" for sub in subscriptions)
    top_sources = [
        SourceCount(source=source, count=count)
        for source, count in sources.most_common(query.limit)
    ]

    stats = StatsData(
        total=total,
        today=adapter.count(since=today_start),
        this_week=adapter.count(since=now - timedelta(days=7)),
        this_month=adapter.count(since=_months_ago(now, 1)),
        top_sources=top_sources,
    )

    if query.include_summary:
        churned = adapter.count_unsubscriptions(since=start, until=end)
        stats.summary = StatsSummary(
            total_subscriptions=total,
            active_subscriptions=adapter.count(status=STATUS_ACTIVE),
            unsubscribed=adapter.count(status=STATUS_UNSUBSCRIBED),
            pending_confirmation=adapter.count(status=STATUS_PENDING),
            growth_rate=_percent(len(subscriptions), total),
            churn_rate=_percent(churned, total),
        )

    if query.include_period_data and query.group_by in ("day", "week", "month"):
        stats.period_data = _period_data(subscriptions, query.group_by, query.limit)

    if query.include_tags:
        tag_counts = Counter(tag for sub in subscriptions for tag in sub.tags)
        denominator = len(subscriptions) or 1
        stats.tags = [
            TagCount(tag=tag, count=count, percentage=_percent(count, denominator))
            for tag, count in tag_counts.most_common(query.limit)
        ]

    stats.meta = StatsMeta(
        period=query.period,
        start_date=start,
        end_date=end,
        total_records=len(subscriptions),
        cache_expires_at=now + timedelta(seconds=cache_ttl),
    )

    logger.info(f"Computed newsletter stats for {query.period}: {len(subscriptions)} records")
    return stats
