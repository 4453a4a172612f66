from datetime import datetime, timezone
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator


class StatsQuery(BaseModel):
    period: Literal["day", "week", "month", "year"] = "month"
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    group_by: Optional[Literal["day", "week", "month", "source", "tag"]] = None
    source: Optional[str] = Field(default=None, min_length=1, max_length=50)
    tag: Optional[str] = Field(default=None, min_length=1, max_length=30)
    include_summary: bool = False
    include_period_data: bool = False
    include_tags: bool = False
    limit: int = Field(default=100, ge=1, le=1000)

    @field_validator("start_date", "end_date")
    @classmethod
    def _assume_utc(cls, value: Optional[datetime]):
        # Bare timestamps are UTC
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


class SourceCount(BaseModel):
    source: str
    count: int


class PeriodCount(BaseModel):
    period: str
    subscriptions: int
    unsubscriptions: int
    net_growth: int = Field(serialization_alias="netGrowth")


class TagCount(BaseModel):
    tag: str
    count: int
    percentage: float


class StatsSummary(BaseModel):
    total_subscriptions: int = Field(serialization_alias="totalSubscriptions")
    active_subscriptions: int = Field(serialization_alias="activeSubscriptions")
    unsubscribed: int
    pending_confirmation: int = Field(serialization_alias="pendingConfirmation")
    growth_rate: float = Field(serialization_alias="growthRate")
    churn_rate: float = Field(serialization_alias="churnRate")


class StatsMeta(BaseModel):
    period: str
    start_date: datetime = Field(serialization_alias="startDate")
    end_date: datetime = Field(serialization_alias="endDate")
    total_records: int = Field(serialization_alias="totalRecords")
    cache_expires_at: datetime = Field(serialization_alias="cacheExpiresAt")


class StatsData(BaseModel):
    total: int
    today: int
    this_week: int = Field(serialization_alias="thisWeek")
    this_month: int = Field(serialization_alias="thisMonth")
    top_sources: List[SourceCount] = Field(serialization_alias="topSources")
    summary: Optional[StatsSummary] = None
    period_data: Optional[List[PeriodCount]] = Field(default=None, serialization_alias="periodData")
    tags: Optional[List[TagCount]] = None
    meta: Optional[StatsMeta] = None
